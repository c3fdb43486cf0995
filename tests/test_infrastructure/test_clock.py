"""Tests for the clocks."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from safe_purchase.domain.ledger_protocol import Clock
from safe_purchase.infrastructure.clock import ManualClock, SystemClock


class TestSystemClock:
    def test_reads_epoch_seconds(self) -> None:
        before = int(datetime.now(UTC).timestamp())
        reading = SystemClock().now()
        after = int(datetime.now(UTC).timestamp())

        assert isinstance(reading, int)
        assert before <= reading <= after

    def test_independent_instances_agree(self) -> None:
        # A restarted process reads the same timeline
        assert abs(SystemClock().now() - SystemClock().now()) <= 1

    def test_satisfies_protocol(self) -> None:
        assert isinstance(SystemClock(), Clock)


class TestManualClock:
    def test_advance_and_set(self) -> None:
        clock = ManualClock(start=5)
        assert clock.advance(3) == 8
        clock.set(20)
        assert clock.now() == 20

    def test_cannot_move_backwards(self) -> None:
        clock = ManualClock(start=5)
        with pytest.raises(ValueError, match="backwards"):
            clock.set(4)
        with pytest.raises(ValueError, match="negative"):
            clock.advance(-1)
