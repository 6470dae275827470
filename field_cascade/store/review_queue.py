"""
Review queue: learned associations awaiting human approval.

File format (hand-editable):
    {"instructions": "...", "updated": "...", "items": [ReviewQueueItem, ...]}

On startup merge_into() materializes approved items into the permanent
stores, drops rejected ones and keeps pending ones pending. A pending item
is only ever used as an in-run hint; it never reaches the permanent cache
or question bank until someone approves it.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..classify.models import FieldDescriptor
from ..classify.taxonomy import FieldModality
from .exact_cache import normalize_for_exact_match
from .hierarchical_cache import create_learned_key
from .persistence import JsonFile
from .records import ReviewQueueItem, ReviewStatus, ReviewTarget, load_records, now

if TYPE_CHECKING:
    from .exact_cache import ExactCache
    from .hierarchical_cache import HierarchicalCache
    from .question_bank import QuestionBank

logger = logging.getLogger(__name__)

REVIEW_INSTRUCTIONS = (
    "Review each item. Change status to 'approved' or 'rejected'. "
    "Approved items get saved permanently on next run."
)


@dataclass
class MergeReport:
    """What a startup merge did."""
    to_question_bank: int = 0
    to_cache: int = 0
    corrected: int = 0  # Approved items that replaced a conflicting learned type
    rejected: int = 0
    pending: int = 0

    def to_dict(self) -> dict:
        return {
            "to_question_bank": self.to_question_bank,
            "to_cache": self.to_cache,
            "corrected": self.corrected,
            "rejected": self.rejected,
            "pending": self.pending,
        }


class ReviewQueue:
    """
    Append-only staging area for learned associations.

    Usage:
        queue = ReviewQueue("cache/review-queue.json")
        queue.load()
        queue.merge_into(cache, exact_cache, question_bank)
        queue.add(ReviewQueueItem(store="cache", field_type="first_name", label="Given Name"))
        queue.flush()
    """

    def __init__(self, path: Optional[str | Path] = None):
        self._file = JsonFile(path, "ReviewQueue")
        self.items: list[ReviewQueueItem] = []
        self.quarantined: list[dict] = []
        self._dirty = False
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.items)

    @property
    def memory_only(self) -> bool:
        return self._file.memory_only

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load(self):
        raw = self._file.read()
        items = raw.get("items", []) if isinstance(raw, dict) else (raw or [])
        valid, self.quarantined = load_records(enumerate(items), ReviewQueueItem, "ReviewQueue")
        self.items = list(valid.values())
        self._file.write_quarantine(self.quarantined)

        counts = {status: 0 for status in ReviewStatus}
        for item in self.items:
            counts[item.status] += 1
        logger.info(
            f"[ReviewQueue] Loaded {len(self.items)} items "
            f"({counts[ReviewStatus.PENDING]} pending, {counts[ReviewStatus.APPROVED]} approved, "
            f"{counts[ReviewStatus.REJECTED]} rejected)"
        )

    def flush(self) -> bool:
        with self._lock:
            if not self._dirty:
                return True
            data = {
                "instructions": REVIEW_INSTRUCTIONS,
                "updated": now().isoformat(),
                "items": [item.model_dump(mode="json") for item in self.items],
            }
            written = self._file.write(data)
            if written:
                self._dirty = False
            return written

    def merge_into(
        self,
        cache: "HierarchicalCache",
        exact_cache: "ExactCache",
        question_bank: "QuestionBank",
    ) -> MergeReport:
        """Materialize approved items, drop rejected ones, keep pending ones."""
        report = MergeReport()
        remaining = []

        for item in self.items:
            if item.status == ReviewStatus.PENDING:
                remaining.append(item)
                report.pending += 1
            elif item.status == ReviewStatus.REJECTED:
                report.rejected += 1
            elif item.store == ReviewTarget.QUESTION_BANK:
                self._apply_question(item, exact_cache, question_bank)
                report.to_question_bank += 1
            else:
                if self._apply_cache(item, cache):
                    report.corrected += 1
                report.to_cache += 1

        if len(remaining) != len(self.items):
            with self._lock:
                self.items = remaining
                self._dirty = True

        if report.to_question_bank or report.to_cache:
            logger.info(
                f"[ReviewQueue] Approved: {report.to_question_bank} to question bank, "
                f"{report.to_cache} to cache ({report.corrected} corrected)"
            )
        if report.rejected:
            logger.info(f"[ReviewQueue] Removed {report.rejected} rejected item(s)")
        if report.pending:
            logger.info(f"[ReviewQueue] {report.pending} item(s) still pending review")
        return report

    @staticmethod
    def _apply_question(item: ReviewQueueItem, exact_cache: "ExactCache", question_bank: "QuestionBank"):
        text = item.question or item.label
        question_bank.learn(text, item.field_type, source="approved")
        exact_cache.add(text, item.field_type, source="approved")

    @staticmethod
    def _apply_cache(item: ReviewQueueItem, cache: "HierarchicalCache") -> bool:
        """
        Write an approved association. An existing entry with another type is
        corrected to the approved one.

        Returns:
            True if an existing entry was corrected
        """
        descriptor = FieldDescriptor(
            id=item.field_id or None,
            label=item.label,
            modality=item.modality or FieldModality.TEXT,
            section_context=item.section,
        )
        key = create_learned_key(descriptor, item.platform)
        existing = cache.patterns.get(key) if key else None
        if existing is not None and existing.field_type != item.field_type:
            logger.info(f'[ReviewQueue] Correcting "{key}": {existing.field_type} -> {item.field_type}')
            return cache.update_pattern_type(key, item.field_type, verified_by="review")

        cache.learn_pattern(
            descriptor,
            item.field_type,
            source="approved",
            platform=item.platform,
            verified_by="review",
        )
        return False

    # -------------------------------------------------------------------------
    # Queue operations
    # -------------------------------------------------------------------------

    def add(self, item: ReviewQueueItem) -> bool:
        """
        Append a pending item unless an equivalent one exists (see dedup_key).

        Returns:
            True if added
        """
        with self._lock:
            if any(existing.dedup_key() == item.dedup_key() for existing in self.items):
                return False
            self.items.append(item.model_copy(update={"status": ReviewStatus.PENDING, "timestamp": now()}))
            self._dirty = True

        logger.info(f'[ReviewQueue] PENDING REVIEW: "{item.evidence[:60]}" -> {item.field_type}')
        return True

    def pending(self) -> list[ReviewQueueItem]:
        return [item for item in self.items if item.status == ReviewStatus.PENDING]

    def find_hint(self, question: Optional[str] = None, label: Optional[str] = None) -> Optional[ReviewQueueItem]:
        """Pending item whose question (normalized) or label matches."""
        question_key = normalize_for_exact_match(question) if question else ""
        label_key = (label or "").strip().lower()

        for item in self.pending():
            if question_key and item.question and normalize_for_exact_match(item.question) == question_key:
                return item
            if label_key and item.label and item.label.strip().lower() == label_key:
                return item
        return None

    def set_status(self, index: int, status: ReviewStatus) -> ReviewQueueItem:
        """
        Change an item's status by its position in the queue.

        Raises:
            IndexError: no item at index
        """
        with self._lock:
            item = self.items[index]
            item.status = status
            self._dirty = True
        return item

    def approve_all(self) -> int:
        with self._lock:
            pending = [item for item in self.items if item.status == ReviewStatus.PENDING]
            for item in pending:
                item.status = ReviewStatus.APPROVED
            if pending:
                self._dirty = True
        return len(pending)
