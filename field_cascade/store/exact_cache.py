"""
Exact-match question cache.

Keys are question (or long label) text normalized so that punctuation,
case, spacing and word order do not matter:

    "Are you authorized to work in the US?"
    -> "are authorized in the to us work you"

A hit costs nothing, so every oracle-confirmed question lands here. Session
entries (pending review) are looked up after the persisted ones and never
written to disk.
"""

import logging
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .persistence import JsonFile
from .records import ExactCacheEntry, QuestionBankEntry, load_records

logger = logging.getLogger(__name__)

MIN_KEY_LENGTH = 10
MIN_TEXT_LENGTH = 15
MAX_ORIGINAL_TEXT = 500

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def normalize_for_exact_match(text: Optional[str]) -> str:
    """Lowercase, strip punctuation, collapse whitespace, sort tokens."""
    if not text:
        return ""
    tokens = _NON_ALNUM.sub("", text.lower()).split()
    return " ".join(sorted(tokens))


@dataclass
class ExactHit:
    field_type: str
    source: str
    original_text: str
    persisted: bool = True


class ExactCache:
    """Normalized question text -> field type."""

    def __init__(self, path: Optional[str | Path] = None):
        self._file = JsonFile(path, "ExactCache")
        self.entries: dict[str, ExactCacheEntry] = {}
        self.session: dict[str, ExactCacheEntry] = {}
        self.quarantined: list[dict] = []
        self.loaded_from_disk = False
        self._dirty = False
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def memory_only(self) -> bool:
        return self._file.memory_only

    def load(self):
        raw = self._file.read()
        self.loaded_from_disk = isinstance(raw, dict)
        if raw is not None and not self.loaded_from_disk:
            logger.warning(f"[ExactCache] Expected an object in {self._file.path}, got {type(raw).__name__}")

        self.entries, self.quarantined = load_records(
            (raw or {}).items() if self.loaded_from_disk else [], ExactCacheEntry, "ExactCache"
        )
        self._file.write_quarantine(self.quarantined)
        logger.info(f"[ExactCache] Loaded {len(self.entries)} exact entries")

    def flush(self) -> bool:
        with self._lock:
            if not self._dirty:
                return True
            data = {key: entry.model_dump(mode="json") for key, entry in self.entries.items()}
            written = self._file.write(data)
            if written:
                self._dirty = False
            return written

    def seed_from(self, questions: Iterable[QuestionBankEntry]) -> int:
        """Pre-populate from question-bank entries. Returns entries added."""
        added = sum(1 for q in questions if self.add(q.text, q.field_type, source="seed", quiet=True))
        if added:
            logger.info(f"[ExactCache] Seeded {added} entries from question bank")
        return added

    def lookup(self, text: Optional[str]) -> Optional[ExactHit]:
        key = normalize_for_exact_match(text)
        if len(key) < MIN_KEY_LENGTH:
            return None

        entry = self.entries.get(key)
        if entry is not None:
            return ExactHit(entry.field_type, entry.source, entry.original_text, persisted=True)

        entry = self.session.get(key)
        if entry is not None:
            return ExactHit(entry.field_type, entry.source, entry.original_text, persisted=False)
        return None

    def _make_entry(self, text: Optional[str], field_type: str, source: str) -> Optional[tuple[str, ExactCacheEntry]]:
        if not text or not field_type or len(text) < MIN_TEXT_LENGTH:
            return None
        key = normalize_for_exact_match(text)
        if len(key) < MIN_KEY_LENGTH:
            return None
        entry = ExactCacheEntry(field_type=field_type, original_text=text[:MAX_ORIGINAL_TEXT], source=source)
        return key, entry

    def add(self, text: Optional[str], field_type: str, source: str = "learned", quiet: bool = False) -> bool:
        """
        Persist an exact entry. Never overwrites.

        Returns:
            True if a new entry was added
        """
        made = self._make_entry(text, field_type, source)
        if made is None:
            return False
        key, entry = made

        with self._lock:
            if key in self.entries:
                return False
            self.entries[key] = entry
            self.session.pop(key, None)
            self._dirty = True

        if not quiet:
            logger.info(f'[ExactCache] +1: "{text[:50]}..." -> {field_type} [{source}]')
        return True

    def add_session(self, text: Optional[str], field_type: str, source: str = "pending_review") -> bool:
        """Remember an exact entry for this run only."""
        made = self._make_entry(text, field_type, source)
        if made is None:
            return False
        key, entry = made

        with self._lock:
            if key in self.entries or key in self.session:
                return False
            self.session[key] = entry
        return True
