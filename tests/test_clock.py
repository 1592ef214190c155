"""Tests for the wall clock."""

from medication_tracker.clock import SYSTEM_CLOCK, SystemClock
from medication_tracker.domain.diary import HealthDiary


def test_readings_strictly_increase() -> None:
    clock = SystemClock()

    readings = [clock.now_ms() for _ in range(1000)]

    assert all(later > earlier for earlier, later in zip(readings, readings[1:]))


def test_reading_moves_past_a_future_timestamp() -> None:
    clock = SystemClock(_last=SYSTEM_CLOCK.now_ms() + 60_000)
    ahead = clock._last

    assert clock.now_ms() == ahead + 1


def test_set_content_with_default_clock_bumps_update() -> None:
    diary = HealthDiary(user_id=1, content="same")

    diary.set_content("same")

    assert diary.updated_at > diary.created_at
    assert diary.modified
