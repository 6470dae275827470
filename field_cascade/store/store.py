"""
Store: every persisted structure behind one load/flush lifecycle.

The orchestrator receives a Store explicitly; nothing here is a module-level
singleton. Typical run:

    store = Store("cache", provider=LocalEmbeddings())
    store.load()          # reads files, merges approved review items
    ... classify ...
    store.flush()         # writes whatever changed
"""

import logging
from pathlib import Path
from typing import Optional

from ..classify.embeddings import EmbeddingProvider
from .exact_cache import ExactCache
from .hierarchical_cache import HierarchicalCache
from .question_bank import QuestionBank
from .review_queue import MergeReport, ReviewQueue

logger = logging.getLogger(__name__)

CACHE_FILE = "learned-patterns.json"
EXACT_CACHE_FILE = "exact-cache.json"
QUESTION_BANK_FILE = "question-bank.json"
REVIEW_QUEUE_FILE = "review-queue.json"


class Store:
    """Hierarchical cache, exact cache, question bank and review queue."""

    def __init__(
        self,
        cache_dir: Optional[str | Path] = None,
        auto_verify: bool = False,
        provider: Optional[EmbeddingProvider] = None,
        seed_path: Optional[str | Path] = None,
        dedup_threshold: float = 0.95,
    ):
        """
        Args:
            cache_dir: Directory holding the store files. None keeps
                everything in memory (tests, dry runs).
            auto_verify: Bootstrap mode; new learned entries are verified.
            provider: Embedding provider for the question bank.
            seed_path: Question-bank seed used when no bank file exists yet.
        """
        self.cache_dir = Path(cache_dir) if cache_dir else None

        def path_for(name: str) -> Optional[Path]:
            return self.cache_dir / name if self.cache_dir else None

        self.cache = HierarchicalCache(path_for(CACHE_FILE), auto_verify=auto_verify)
        self.exact_cache = ExactCache(path_for(EXACT_CACHE_FILE))
        self.question_bank = QuestionBank(
            path_for(QUESTION_BANK_FILE),
            provider=provider,
            dedup_threshold=dedup_threshold,
            seed_path=seed_path,
        )
        self.review_queue = ReviewQueue(path_for(REVIEW_QUEUE_FILE))
        self.merge_report: Optional[MergeReport] = None
        self.loaded = False

    @property
    def auto_verify(self) -> bool:
        return self.cache.auto_verify

    def load(self) -> "Store":
        """Read every store, seed the exact cache, then merge reviewed items."""
        self.cache.load()
        self.question_bank.load()
        self.exact_cache.load()
        if not self.exact_cache.loaded_from_disk:
            self.exact_cache.seed_from(self.question_bank.questions)

        self.review_queue.load()
        self.merge_report = self.review_queue.merge_into(self.cache, self.exact_cache, self.question_bank)
        self.loaded = True
        return self

    def flush(self) -> dict[str, bool]:
        """
        Write every store that changed.

        Returns:
            {store name: written}; False means the store is memory-only
        """
        results = {
            "cache": self.cache.flush(),
            "exact_cache": self.exact_cache.flush(),
            "question_bank": self.question_bank.flush(),
            "review_queue": self.review_queue.flush(),
        }
        failed = [name for name, ok in results.items() if not ok]
        if failed and self.cache_dir is not None:
            logger.warning(f"[Store] Not persisted (memory-only): {', '.join(failed)}")
        return results

    def memory_only(self) -> dict[str, bool]:
        return {
            "cache": self.cache.memory_only,
            "exact_cache": self.exact_cache.memory_only,
            "question_bank": self.question_bank.memory_only,
            "review_queue": self.review_queue.memory_only,
        }

    def stats(self) -> dict:
        return {
            "cache": self.cache.get_stats(),
            "exact_cache_entries": len(self.exact_cache),
            "question_bank_size": len(self.question_bank),
            "review_pending": len(self.review_queue.pending()),
            "merge": self.merge_report.to_dict() if self.merge_report else None,
            "memory_only": self.memory_only(),
        }
