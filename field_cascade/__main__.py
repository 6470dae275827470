"""
CLI for the field classifier and its review workflow.

Usage:
    python -m field_cascade classify --field-json page.json --profile profile.json
    python -m field_cascade classify --field-json page.json --offline --explain
    python -m field_cascade review list --status pending
    python -m field_cascade review approve 3
    python -m field_cascade review reject 4
    python -m field_cascade review approve-all
    python -m field_cascade patterns list --unverified
    python -m field_cascade patterns verify "workday|label:given_name|type:text"
    python -m field_cascade patterns fix "workday|label:given_name|type:text" first_name
    python -m field_cascade stats
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Load environment variables from .env file
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv not installed, rely on system env vars

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _load_config(args):
    from .config import load_config, validate_config

    overrides = {}
    if args.cache_dir:
        overrides["store"] = {"cache_dir": args.cache_dir}
    config = load_config(args.config, overrides=overrides)
    for warning in validate_config(config):
        logger.warning(f"Config warning: {warning}")
    return config


def _store_path(config, filename: str) -> Path:
    if not config.store.cache_dir:
        print("Error: store.cache_dir is not set")
        sys.exit(1)
    return Path(config.store.cache_dir) / filename


def build_cascade(config, profile: dict = None, offline: bool = False):
    """Wire store, signals, oracle and resolver from config."""
    from .classify.cascade import TrustCascade
    from .classify.embeddings import EmbeddingMatcher, create_embedding_provider
    from .classify.llm_provider import RateLimitConfig, detect_provider, has_api_key
    from .classify.oracle import LLMOracle
    from .classify.zero_shot import ZeroShotClassifier
    from .profile.resolver import ProfileResolver
    from .store.store import Store

    provider = None
    matcher = None
    if config.embeddings.enabled:
        provider = create_embedding_provider(config.embeddings.provider, config.embeddings.model)
        matcher = EmbeddingMatcher(provider)

    zero_shot = ZeroShotClassifier(model_name=config.zero_shot.model) if config.zero_shot.enabled else None

    oracle = None
    if config.oracle.enabled and not offline:
        llm = config.oracle.provider or detect_provider(config.oracle.classify_model).value
        if has_api_key(llm):
            oracle = LLMOracle(
                verify_model=config.oracle.verify_model,
                classify_model=config.oracle.classify_model,
                provider=config.oracle.provider,
                timeout=config.oracle.timeout_seconds,
                rate_limit=(
                    RateLimitConfig(requests_per_minute=config.oracle.requests_per_minute)
                    if config.oracle.requests_per_minute else None
                ),
            )
        else:
            logger.warning(f"No API key for {llm}; running without the oracle")

    store = Store(
        config.store.cache_dir,
        auto_verify=config.store.auto_verify,
        provider=provider,
        seed_path=config.store.seed_path,
        dedup_threshold=config.thresholds.dedup,
    ).load()

    return TrustCascade(
        store,
        oracle=oracle,
        config=config,
        matcher=matcher,
        zero_shot=zero_shot,
        resolver=ProfileResolver(profile) if profile else None,
    )


# =============================================================================
# classify
# =============================================================================

def cmd_classify(args):
    """Classify a page of fields."""
    from .classify.models import PageContext
    from .profile.resolver import load_profile

    config = _load_config(args)

    with open(args.field_json, "r", encoding="utf-8") as f:
        raw = json.load(f)
    page = PageContext.model_validate({"fields": raw} if isinstance(raw, list) else raw)
    if args.url:
        page = page.model_copy(update={"url": args.url})

    profile = load_profile(args.profile) if args.profile else None
    cascade = build_cascade(config, profile=profile, offline=args.offline)

    results, trace = cascade.classify_page(page)
    cascade.store.flush()

    if args.explain:
        for descriptor, result in zip(page.fields, results):
            print(result.explain(descriptor.display_name))
            print()

    output = [
        {"field": descriptor.display_name, **result.to_dict()}
        for descriptor, result in zip(page.fields, results)
    ]
    print(json.dumps(output, indent=2, default=str))

    if args.trace_dir:
        path = trace.save(args.trace_dir)
        print(f"\nDecision trace saved to: {path}")

    stats = cascade.stats_dict()
    cost = stats["estimated_cost"]
    print(f"\n{'=' * 60}")
    print("CASCADE STATISTICS")
    print(f"{'=' * 60}")
    print(f"Fields:            {stats['total_fields']}")
    print(f"Tier 1 (free):     {stats['tier1_total']} "
          f"(id {stats['tier1_field_id']}, exact {stats['tier1_exact_cache']}, cache {stats['tier1_cache']})")
    print(f"Tier 2 verify:     {stats['tier2_calls']} calls, {stats['tier2_verified']} confirmed, "
          f"{stats['tier2_rejected']} rejected")
    print(f"Tier 3 classify:   {stats['tier3_calls']} calls, {stats['direct_answers']} direct answers")
    print(f"Guard corrections: {stats['guard_corrections']}")
    print(f"Failed:            {stats['failed']}")
    print(f"Learned patterns:  {stats['patterns_learned']}   Pending review: {stats['pending_review']}")
    print(f"Est. cost:         ${cost['total']:.4f} (saved ${cost['saved_vs_all_tier3']:.4f} vs all Tier 3)")


# =============================================================================
# review
# =============================================================================

def _load_queue(config):
    from .store.review_queue import ReviewQueue
    from .store.store import REVIEW_QUEUE_FILE

    queue = ReviewQueue(_store_path(config, REVIEW_QUEUE_FILE))
    queue.load()
    return queue


def cmd_review(args):
    """List or change review-queue items. Changes take effect on the next run."""
    from .store.records import ReviewStatus

    config = _load_config(args)
    queue = _load_queue(config)

    if args.review_command == "list":
        shown = 0
        for index, item in enumerate(queue.items):
            if args.status and item.status.value != args.status:
                continue
            shown += 1
            print(f"[{index:3d}] {item.status.value:<8} {item.store.value:<13} {item.field_type:<28} "
                  f'"{item.evidence[:70]}"')
            if args.verbose_items:
                print(f"       source={item.source} platform={item.platform} id={item.field_id or '-'}")
        print(f"\n{shown} item(s)")
        return

    if args.review_command == "approve-all":
        count = queue.approve_all()
        queue.flush()
        print(f"Approved {count} pending item(s); they will be merged on the next run")
        return

    status = ReviewStatus.APPROVED if args.review_command == "approve" else ReviewStatus.REJECTED
    try:
        item = queue.set_status(args.index, status)
    except IndexError:
        print(f"Error: no review item at index {args.index}")
        sys.exit(1)
    queue.flush()
    print(f'{status.value.capitalize()}: "{item.evidence[:70]}" -> {item.field_type}')


# =============================================================================
# patterns
# =============================================================================

def cmd_patterns(args):
    """Inspect and maintain learned cache patterns."""
    from .store.hierarchical_cache import HierarchicalCache
    from .store.store import CACHE_FILE

    config = _load_config(args)
    cache = HierarchicalCache(_store_path(config, CACHE_FILE))
    cache.load()

    if args.patterns_command == "list":
        if args.unverified:
            patterns = cache.unverified_patterns()
        elif args.recent:
            patterns = cache.recent_patterns(args.recent)
        else:
            patterns = cache.all_patterns()
        for key, entry in patterns:
            mark = "✓" if entry.verified else "?"
            print(f"{mark} {entry.field_type:<28} used {entry.usage_count:>3}x  "
                  f"[{entry.learned_from}]  {key}")
        print(f"\n{len(patterns)} pattern(s)")
        return

    if args.patterns_command == "verify":
        changed = cache.verify_pattern(args.key)
    elif args.patterns_command == "reject":
        changed = cache.reject_pattern(args.key)
    else:
        try:
            changed = cache.update_pattern_type(args.key, args.field_type)
        except ValueError as e:
            print(f"Error: {e}")
            sys.exit(1)

    if not changed:
        print(f"Error: pattern not found: {args.key}")
        sys.exit(1)
    cache.flush()
    print(f"{args.patterns_command}: {args.key}")


# =============================================================================
# stats
# =============================================================================

def cmd_stats(args):
    """Show store sizes and cache statistics."""
    from .store.store import Store

    config = _load_config(args)
    store = Store(config.store.cache_dir, auto_verify=config.store.auto_verify).load()
    print(json.dumps(store.stats(), indent=2, default=str))


def main():
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        description="Trust-cascade form field classifier",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", help="Path to YAML config (default: built-in defaults)")
    parser.add_argument("--cache-dir", help="Directory of store files (overrides config)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Classify command
    classify_parser = subparsers.add_parser("classify", help="Classify a page of fields")
    classify_parser.add_argument(
        "--field-json",
        required=True,
        help='JSON file: {"url": ..., "fields": [...]} or a list of fields',
    )
    classify_parser.add_argument("--profile", help="Profile JSON used to resolve answers")
    classify_parser.add_argument("--url", help="Page URL (platform detection)")
    classify_parser.add_argument("--trace-dir", help="Save the page decision trace here")
    classify_parser.add_argument("--explain", action="store_true", help="Print each field's decision trace")
    classify_parser.add_argument("--offline", action="store_true", help="Do not call the oracle")

    # Review command
    review_parser = subparsers.add_parser("review", help="Review learned associations")
    review_sub = review_parser.add_subparsers(dest="review_command", required=True)
    review_list = review_sub.add_parser("list", help="List review items")
    review_list.add_argument("--status", choices=["pending", "approved", "rejected"])
    review_list.add_argument("--details", dest="verbose_items", action="store_true", help="Show item details")
    review_sub.add_parser("approve", help="Approve an item").add_argument("index", type=int)
    review_sub.add_parser("reject", help="Reject an item").add_argument("index", type=int)
    review_sub.add_parser("approve-all", help="Approve every pending item")

    # Patterns command
    patterns_parser = subparsers.add_parser("patterns", help="Maintain learned cache patterns")
    patterns_sub = patterns_parser.add_subparsers(dest="patterns_command", required=True)
    patterns_list = patterns_sub.add_parser("list", help="List learned patterns")
    patterns_list.add_argument("--unverified", action="store_true", help="Only unverified patterns")
    patterns_list.add_argument("--recent", type=int, metavar="DAYS", help="Only patterns learned in the last DAYS")
    patterns_sub.add_parser("verify", help="Mark a pattern verified").add_argument("key")
    patterns_sub.add_parser("reject", help="Delete a pattern").add_argument("key")
    fix_parser = patterns_sub.add_parser("fix", help="Change a pattern's field type")
    fix_parser.add_argument("key")
    fix_parser.add_argument("field_type")

    # Stats command
    subparsers.add_parser("stats", help="Show store statistics")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "classify":
        cmd_classify(args)
    elif args.command == "review":
        cmd_review(args)
    elif args.command == "patterns":
        cmd_patterns(args)
    elif args.command == "stats":
        cmd_stats(args)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
