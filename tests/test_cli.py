"""Tests for the review and patterns CLI commands."""

import argparse

import pytest

from field_cascade.__main__ import cmd_patterns, cmd_review, cmd_stats
from field_cascade.classify.models import FieldDescriptor
from field_cascade.store.hierarchical_cache import HierarchicalCache
from field_cascade.store.records import ReviewQueueItem, ReviewStatus, ReviewTarget
from field_cascade.store.review_queue import ReviewQueue
from field_cascade.store.store import CACHE_FILE, REVIEW_QUEUE_FILE


def make_args(tmp_path, **kwargs) -> argparse.Namespace:
    return argparse.Namespace(config=None, cache_dir=str(tmp_path), **kwargs)


@pytest.fixture
def queue_file(tmp_path):
    queue = ReviewQueue(tmp_path / REVIEW_QUEUE_FILE)
    queue.add(ReviewQueueItem(store=ReviewTarget.CACHE, field_type="city", label="Town of residence"))
    queue.add(ReviewQueueItem(store=ReviewTarget.CACHE, field_type="skills", label="Strengths"))
    queue.flush()
    return tmp_path / REVIEW_QUEUE_FILE


@pytest.fixture
def pattern_key(tmp_path):
    cache = HierarchicalCache(tmp_path / CACHE_FILE)
    entry = cache.learn_pattern(FieldDescriptor(label="Town of residence"), "city", "tier3_oracle", platform="workday")
    assert entry is not None
    cache.flush()
    return cache.all_patterns()[0][0]


class TestReviewCommand:
    """Tests for cmd_review."""

    def test_list(self, tmp_path, queue_file, capsys):
        """Lists items with their index."""
        cmd_review(make_args(tmp_path, review_command="list", status="pending", verbose_items=False))
        out = capsys.readouterr().out
        assert "Town of residence" in out
        assert "2 item(s)" in out

    def test_reject_persists(self, tmp_path, queue_file):
        """Status changes are written back to the queue file."""
        cmd_review(make_args(tmp_path, review_command="reject", index=1))

        queue = ReviewQueue(queue_file)
        queue.load()
        assert queue.items[1].status == ReviewStatus.REJECTED
        assert queue.items[0].status == ReviewStatus.PENDING

    def test_approve_all(self, tmp_path, queue_file):
        """Every pending item is approved."""
        cmd_review(make_args(tmp_path, review_command="approve-all"))

        queue = ReviewQueue(queue_file)
        queue.load()
        assert queue.pending() == []

    def test_bad_index(self, tmp_path, queue_file):
        """An unknown index exits non-zero."""
        with pytest.raises(SystemExit):
            cmd_review(make_args(tmp_path, review_command="approve", index=9))


class TestPatternsCommand:
    """Tests for cmd_patterns."""

    def test_list_unverified(self, tmp_path, pattern_key, capsys):
        """New patterns show up as unverified."""
        cmd_patterns(make_args(tmp_path, patterns_command="list", unverified=True, recent=None))
        out = capsys.readouterr().out
        assert pattern_key in out
        assert "1 pattern(s)" in out

    def test_verify_and_fix(self, tmp_path, pattern_key):
        """verify and fix are persisted."""
        cmd_patterns(make_args(tmp_path, patterns_command="verify", key=pattern_key))
        cmd_patterns(make_args(tmp_path, patterns_command="fix", key=pattern_key, field_type="state"))

        cache = HierarchicalCache(tmp_path / CACHE_FILE)
        cache.load()
        assert cache.patterns[pattern_key].field_type == "state"

    def test_fix_unknown_type(self, tmp_path, pattern_key):
        """A type outside the taxonomy is refused."""
        with pytest.raises(SystemExit):
            cmd_patterns(make_args(tmp_path, patterns_command="fix", key=pattern_key, field_type="bogus"))

    def test_missing_key(self, tmp_path, pattern_key):
        """Unknown keys exit non-zero."""
        with pytest.raises(SystemExit):
            cmd_patterns(make_args(tmp_path, patterns_command="reject", key="nope"))


class TestStatsCommand:
    """Tests for cmd_stats."""

    def test_stats(self, tmp_path, pattern_key, capsys):
        """Store statistics print as JSON."""
        cmd_stats(make_args(tmp_path))
        assert "cache" in capsys.readouterr().out
