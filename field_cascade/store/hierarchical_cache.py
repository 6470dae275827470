"""
Hierarchical field-type cache.

Lookup order, first hit wins:

    Level 0  global      label rules that hold on every platform     0.95
    Level 1  platform    field-id rules for the detected platform    0.95
    Level 2  question    rules over label + section + description    0.90
    Level 3  learned     persisted associations (verified 0.95, else 0.85)
    Level 4  session     in-memory entries for this run              0.85

Learned entries are keyed by a normalized (platform, label, id suffix,
modality) signature. A key maps to at most one type: learn_pattern never
overwrites, it only bumps usage counters. Changing a learned type is an
explicit human action (update_pattern_type).
"""

import logging
import re
import threading
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

from ..classify.models import FieldDescriptor
from ..classify.patterns import (
    GLOBAL_LABEL_RULES,
    PLATFORM_ID_RULES,
    QUESTION_TEXT_RULES,
    detect_platform,
    extract_company,
)
from ..classify.taxonomy import is_known_type
from .persistence import JsonFile
from .records import CacheEntry, load_records, now

logger = logging.getLogger(__name__)

CACHE_LEVELS = ("global", "platform", "question", "learned", "session")

LEVEL_CONFIDENCE = {
    "global": 0.95,
    "platform": 0.95,
    "question": 0.90,
    "learned_verified": 0.95,
    "learned_unverified": 0.85,
    "session": 0.85,
}


@dataclass
class CacheHit:
    """Result of a cache lookup."""
    field_type: str
    confidence: float
    level: str
    verified: bool
    key: Optional[str] = None
    rule: Optional[str] = None
    learned_from: Optional[str] = None


# =============================================================================
# Keys
# =============================================================================

_LABEL_SEPARATORS = re.compile(r"[*:\s]+")
_HEX_RUN = re.compile(r"[0-9a-f]{8,}", re.IGNORECASE)


def normalize_label(label: str, max_length: int = 50) -> str:
    """'Legal First Name *:' -> 'legal_first_name'"""
    text = _LABEL_SEPARATORS.sub("_", label.lower())
    text = re.sub(r"_{2,}", "_", text).strip("_")
    return text[:max_length]


def id_suffix(field_id: str) -> str:
    """Last '--' part of an id with generated hex runs wildcarded."""
    return _HEX_RUN.sub("*", field_id.split("--")[-1]).lower()


def create_learned_key(descriptor: FieldDescriptor, platform: str) -> Optional[str]:
    """
    Normalized signature for a learned entry.

    Example:
        'workday|label:legal_first_name|id:firstname|type:text'

    Returns None when the field has neither label nor id.
    """
    if not descriptor.label and not descriptor.id:
        return None

    parts = [platform]
    if descriptor.label:
        parts.append(f"label:{normalize_label(descriptor.label)}")
    if descriptor.id:
        parts.append(f"id:{id_suffix(descriptor.id)}")
    parts.append(f"type:{descriptor.modality.value}")
    return "|".join(parts)


# =============================================================================
# Cache
# =============================================================================

class HierarchicalCache:
    """
    Layered lookup store with a persisted learned level.

    Usage:
        cache = HierarchicalCache("cache/learned-patterns.json")
        cache.load()
        cache.set_context(page_url)
        hit = cache.lookup(descriptor)
        ...
        cache.flush()
    """

    def __init__(self, path: Optional[str | Path] = None, auto_verify: bool = False):
        self._file = JsonFile(path, "Cache")
        self.auto_verify = auto_verify
        self.platform = "unknown"
        self.company = "unknown"

        self.patterns: dict[str, CacheEntry] = {}
        self.session: dict[str, str] = {}
        self.quarantined: list[dict] = []
        self._dirty = False
        self._lock = threading.RLock()

        self.stats = {level: 0 for level in CACHE_LEVELS}
        self.stats.update({"learned_verified": 0, "learned_unverified": 0, "misses": 0})

    @property
    def memory_only(self) -> bool:
        return self._file.memory_only

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load(self):
        raw = self._file.read() or {}
        if not isinstance(raw, dict):
            logger.warning(f"[Cache] Expected an object in {self._file.path}, got {type(raw).__name__}")
            raw = {}

        self.patterns, self.quarantined = load_records(raw.items(), CacheEntry, "Cache")
        self._file.write_quarantine(self.quarantined)

        verified = sum(1 for e in self.patterns.values() if e.verified)
        logger.info(
            f"[Cache] Loaded {len(self.patterns)} learned patterns "
            f"({verified} verified, {len(self.patterns) - verified} unverified)"
        )

    def flush(self) -> bool:
        """Write learned patterns if anything changed. False in memory-only mode."""
        with self._lock:
            if not self._dirty:
                return True
            data = {key: entry.model_dump(mode="json") for key, entry in self.patterns.items()}
            written = self._file.write(data)
            if written:
                self._dirty = False
            return written

    def set_context(self, url: Optional[str]):
        self.platform = detect_platform(url)
        self.company = extract_company(url)
        logger.info(f"[Cache] Context: platform={self.platform}, company={self.company}")

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def lookup(self, descriptor: FieldDescriptor) -> Optional[CacheHit]:
        """
        First hit across the levels.

        A generic label ("Select One") skips the question and learned levels:
        its section text spans every question on the page and its learned
        key would collide with every other generic field.
        """
        for level, check in (
            ("global", self._check_global),
            ("platform", self._check_platform),
            ("question", self._check_question),
            ("learned", self._check_learned),
            ("session", self._check_session),
        ):
            hit = check(descriptor)
            if hit:
                self.stats[level] += 1
                if level == "learned":
                    self.stats["learned_verified" if hit.verified else "learned_unverified"] += 1
                return hit

        self.stats["misses"] += 1
        return None

    def _check_global(self, descriptor: FieldDescriptor) -> Optional[CacheHit]:
        match = GLOBAL_LABEL_RULES.match(descriptor.label)
        if match:
            return CacheHit(match.field_type, LEVEL_CONFIDENCE["global"], "global", True, rule=match.rule)
        return None

    def _check_platform(self, descriptor: FieldDescriptor) -> Optional[CacheHit]:
        rules = PLATFORM_ID_RULES.get(self.platform)
        if rules is None:
            return None
        match = rules.match(descriptor.id)
        if match:
            return CacheHit(match.field_type, LEVEL_CONFIDENCE["platform"], "platform", True, rule=match.rule)
        return None

    def _check_question(self, descriptor: FieldDescriptor) -> Optional[CacheHit]:
        if descriptor.is_generic:
            return None
        text = " ".join([descriptor.label, descriptor.section_context, descriptor.aria_text]).lower()
        match = QUESTION_TEXT_RULES.match(text)
        if match:
            return CacheHit(match.field_type, LEVEL_CONFIDENCE["question"], "question", True, rule=match.rule)
        return None

    def _check_learned(self, descriptor: FieldDescriptor) -> Optional[CacheHit]:
        if descriptor.is_generic:
            return None
        key = create_learned_key(descriptor, self.platform)
        if key is None:
            return None
        with self._lock:
            entry = self.patterns.get(key)
            if entry is None:
                return None
            entry.touch()
            self._dirty = True

        confidence = LEVEL_CONFIDENCE["learned_verified" if entry.verified else "learned_unverified"]
        return CacheHit(
            entry.field_type,
            confidence,
            "learned",
            entry.verified,
            key=key,
            learned_from=entry.learned_from,
        )

    def _check_session(self, descriptor: FieldDescriptor) -> Optional[CacheHit]:
        field_type = self.session.get(self.session_key(descriptor))
        if field_type:
            return CacheHit(field_type, LEVEL_CONFIDENCE["session"], "session", True)
        return None

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def session_key(self, descriptor: FieldDescriptor) -> str:
        return ":".join([
            self.platform,
            self.company,
            descriptor.id or "",
            descriptor.label,
            descriptor.modality.value,
        ])

    def add_session(self, descriptor: FieldDescriptor, field_type: str):
        """Remember a type for the rest of this run only."""
        with self._lock:
            self.session.setdefault(self.session_key(descriptor), field_type)

    def learn_pattern(
        self,
        descriptor: FieldDescriptor,
        field_type: str,
        source: str,
        platform: Optional[str] = None,
        verified_by: Optional[str] = None,
    ) -> Optional[CacheEntry]:
        """
        Persist an association. Never overwrites an existing key.

        verified_by marks the entry verified (a human approval); otherwise
        new entries are verified only in auto-verify mode.

        Returns:
            The stored entry (new, or existing with bumped usage), or None
            when the field has no usable key
        """
        key = create_learned_key(descriptor, platform or self.platform)
        if key is None:
            return None

        with self._lock:
            existing = self.patterns.get(key)
            if existing is not None:
                existing.touch()
                self._dirty = True
                if verified_by and existing.field_type == field_type and not existing.verified:
                    existing.mark_verified(verified_by)
                if existing.field_type != field_type:
                    logger.info(
                        f'[Cache] Kept "{key}" -> {existing.field_type}; '
                        f"{source} proposed {field_type} (use review to change it)"
                    )
                return existing

            entry = CacheEntry(
                field_type=field_type,
                learned_from=source,
                platform=platform or self.platform,
                company=self.company,
                original_label=descriptor.label or None,
                original_id=descriptor.id,
            )
            if verified_by:
                entry.mark_verified(verified_by)
            elif self.auto_verify:
                entry.mark_verified("auto_bootstrap")
            self.patterns[key] = entry
            self._dirty = True

        status = "auto-verified" if entry.verified else "needs review"
        logger.info(f'[Cache] LEARNED: "{descriptor.display_name[:60]}" -> {field_type} ({status})')
        return entry

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def verify_pattern(self, key: str, verified_by: str = "manual") -> bool:
        with self._lock:
            entry = self.patterns.get(key)
            if entry is None:
                return False
            entry.mark_verified(verified_by)
            self._dirty = True
        return True

    def reject_pattern(self, key: str) -> bool:
        with self._lock:
            if self.patterns.pop(key, None) is None:
                return False
            self._dirty = True
        return True

    def update_pattern_type(self, key: str, new_type: str, verified_by: str = "manual") -> bool:
        """Correct a learned type. Marks the entry verified."""
        if not is_known_type(new_type):
            raise ValueError(f"Unknown field type: {new_type}")
        with self._lock:
            entry = self.patterns.get(key)
            if entry is None:
                return False
            entry.corrected_from = entry.field_type
            entry.field_type = new_type
            entry.mark_verified(verified_by)
            self._dirty = True
        return True

    def all_patterns(self) -> list[tuple[str, CacheEntry]]:
        return sorted(self.patterns.items(), key=lambda kv: kv[1].learned_at, reverse=True)

    def unverified_patterns(self) -> list[tuple[str, CacheEntry]]:
        return [(k, e) for k, e in self.all_patterns() if not e.verified]

    def recent_patterns(self, days: int = 7) -> list[tuple[str, CacheEntry]]:
        cutoff = now() - timedelta(days=days)
        return [(k, e) for k, e in self.all_patterns() if e.learned_at > cutoff]

    def get_stats(self) -> dict:
        total = sum(self.stats[level] for level in CACHE_LEVELS) + self.stats["misses"]
        hits = total - self.stats["misses"]
        verified = sum(1 for e in self.patterns.values() if e.verified)

        return {
            **self.stats,
            "total_lookups": total,
            "hit_rate": round(hits / total * 100, 1) if total else 0.0,
            "hit_rate_by_level": {
                level: round(self.stats[level] / total * 100, 1) if total else 0.0
                for level in CACHE_LEVELS
            },
            "session_size": len(self.session),
            "learned_patterns": len(self.patterns),
            "verified_patterns": verified,
            "unverified_patterns": len(self.patterns) - verified,
            "quarantined": len(self.quarantined),
        }
