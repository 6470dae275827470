"""
Persisted state for the classifier.

This module provides:
- Validated record types with quarantine on load
- The hierarchical cache, exact-match cache and question bank
- The review queue and its startup merge
- A Store object giving all of them one load/flush lifecycle
"""

from .records import (
    CacheEntry,
    ExactCacheEntry,
    QuestionBankEntry,
    ReviewQueueItem,
    ReviewStatus,
    ReviewTarget,
)
from .hierarchical_cache import (
    CacheHit,
    HierarchicalCache,
    create_learned_key,
)
from .exact_cache import (
    ExactCache,
    normalize_for_exact_match,
)
from .question_bank import (
    QuestionBank,
    QuestionMatch,
)
from .review_queue import (
    MergeReport,
    ReviewQueue,
)
from .store import Store

__all__ = [
    # Records
    "CacheEntry",
    "ExactCacheEntry",
    "QuestionBankEntry",
    "ReviewQueueItem",
    "ReviewStatus",
    "ReviewTarget",
    # Caches
    "CacheHit",
    "HierarchicalCache",
    "create_learned_key",
    "ExactCache",
    "normalize_for_exact_match",
    "QuestionBank",
    "QuestionMatch",
    # Review
    "MergeReport",
    "ReviewQueue",
    # Lifecycle
    "Store",
]
