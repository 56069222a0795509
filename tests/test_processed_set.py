"""Tests for ProcessedSet deduplication."""

import pytest

from conftest import MINT
from src.core.models import Direction
from src.ingestion.processed_set import ProcessedSet, composite_key


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestProcessedSet:
    def test_mark_and_check(self):
        processed = ProcessedSet()
        assert not processed.has_processed("sig1")
        processed.mark_processed("sig1")
        assert processed.has_processed("sig1")
        assert "sig1" in processed
        assert len(processed) == 1

    def test_mark_is_idempotent(self):
        processed = ProcessedSet()
        processed.mark_processed("sig1")
        processed.mark_processed("sig1")
        assert len(processed) == 1

    def test_empty_key_never_processed(self):
        processed = ProcessedSet()
        processed.mark_processed("")
        assert not processed.has_processed("")
        assert len(processed) == 0

    def test_ids_expire_after_ttl(self):
        clock = FakeClock()
        processed = ProcessedSet(ttl_seconds=60, clock=clock)
        processed.mark_processed("sig1")

        clock.now = 59
        assert processed.has_processed("sig1")

        clock.now = 61
        assert not processed.has_processed("sig1")
        assert processed.get_stats()["evicted"] == 1

    def test_no_ttl_keeps_ids(self):
        clock = FakeClock()
        processed = ProcessedSet(ttl_seconds=None, clock=clock)
        processed.mark_processed("sig1")
        clock.now = 10 ** 9
        assert processed.has_processed("sig1")

    def test_oldest_evicted_when_full(self):
        processed = ProcessedSet(max_size=2)
        processed.mark_processed("a")
        processed.mark_processed("b")
        processed.mark_processed("c")
        assert not processed.has_processed("a")
        assert processed.has_processed("b")
        assert processed.has_processed("c")

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            ProcessedSet(max_size=0)


class TestCompositeKey:
    def test_format(self):
        assert composite_key(MINT, Direction.BUY) == f"{MINT}:buy"

    def test_direction_distinguishes(self):
        assert composite_key(MINT, Direction.BUY) != composite_key(MINT, Direction.SELL)
