"""Tests for field specs, schedules and alarm records."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import T0, ms
from cronalarm import (
    AlarmRecord,
    AtSchedule,
    CalendarSchedule,
    FieldSpec,
    MalformedFieldSpec,
    PastDeadline,
    RelativeSchedule,
    Weekday,
    coerce_field,
)


def noop(alarm) -> None:
    pass


# ============================================================================
# FieldSpec
# ============================================================================


class TestFieldSpec:
    def test_wildcard_contains_everything(self) -> None:
        spec = FieldSpec.wildcard()
        assert spec.is_wildcard
        assert spec.contains(0)
        assert spec.contains(59)
        assert str(spec) == "*"

    def test_explicit_values(self) -> None:
        spec = FieldSpec.of([3, 5, 7], 0, 11)
        assert spec.values == (3, 5, 7)
        assert spec.first() == 3
        assert spec.last() == 7
        assert spec.contains(5)
        assert not spec.contains(4)
        assert spec.upto(6) == (3, 5)

    def test_empty_rejected(self) -> None:
        with pytest.raises(MalformedFieldSpec, match="empty"):
            FieldSpec.of([], 0, 59)

    def test_unsorted_rejected(self) -> None:
        with pytest.raises(MalformedFieldSpec, match="ascending"):
            FieldSpec.of([5, 3], 0, 59)

    def test_duplicates_rejected(self) -> None:
        with pytest.raises(MalformedFieldSpec, match="ascending"):
            FieldSpec.of([3, 3], 0, 59)

    def test_out_of_range_rejected(self) -> None:
        with pytest.raises(MalformedFieldSpec, match="outside"):
            FieldSpec.of([60], 0, 59)

    def test_wildcard_mixed_with_values_rejected(self) -> None:
        with pytest.raises(MalformedFieldSpec, match="mixed"):
            FieldSpec.of([-1, 5], 0, 59)

    def test_malformed_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            FieldSpec.of([], 0, 59)

    @pytest.mark.parametrize("value", [None, "*", -1, [-1]])
    def test_coerce_wildcards(self, value) -> None:
        assert coerce_field(value, 0, 59).is_wildcard

    def test_coerce_single_int(self) -> None:
        assert coerce_field(30, 0, 59) == FieldSpec((30,))

    def test_coerce_enum_values(self) -> None:
        spec = coerce_field([Weekday.MONDAY, Weekday.FRIDAY], 1, 7)
        assert spec.values == (2, 6)

    def test_coerce_rejects_text(self) -> None:
        with pytest.raises(MalformedFieldSpec):
            coerce_field("5", 0, 59)


class TestCalendarSchedule:
    def test_defaults_are_wildcards(self) -> None:
        schedule = CalendarSchedule()
        for spec in (
            schedule.minutes,
            schedule.hours,
            schedule.days_of_month,
            schedule.months,
            schedule.days_of_week,
        ):
            assert spec.is_wildcard
        assert schedule.repeating is True

    def test_year_makes_it_one_shot(self) -> None:
        assert CalendarSchedule(year=2030).repeating is False
        assert CalendarSchedule(year=-1).repeating is True

    def test_field_ranges_checked(self) -> None:
        with pytest.raises(MalformedFieldSpec):
            CalendarSchedule(hours=24)
        with pytest.raises(MalformedFieldSpec):
            CalendarSchedule(days_of_month=0)
        with pytest.raises(MalformedFieldSpec):
            CalendarSchedule(months=12)
        with pytest.raises(MalformedFieldSpec):
            CalendarSchedule(days_of_week=0)

    def test_equal_by_value(self) -> None:
        assert CalendarSchedule(minutes=[0, 30]) == CalendarSchedule(minutes=(0, 30))


# ============================================================================
# AlarmRecord
# ============================================================================


class TestAlarmRecordCreate:
    def test_relative_first_occurrence(self) -> None:
        record = AlarmRecord.create("a", RelativeSchedule(1), noop, now_ms=T0)
        assert record.next_fire_at_ms == T0 + 60_000
        assert record.last_update_ms == T0
        assert record.repeating is False

    def test_calendar_first_occurrence(self) -> None:
        record = AlarmRecord.create("a", CalendarSchedule(minutes=0), noop, now_ms=T0)
        assert record.next_fire_at_ms == ms(2024, 1, 15, 11, 0)
        assert record.repeating is True

    def test_too_close_is_past_deadline(self) -> None:
        with pytest.raises(PastDeadline):
            AlarmRecord.create("a", AtSchedule(T0 + 500), noop, now_ms=T0)

    def test_exactly_one_second_is_past_deadline(self) -> None:
        with pytest.raises(PastDeadline):
            AlarmRecord.create("a", AtSchedule(T0 + 1000), noop, now_ms=T0)

    def test_one_and_a_half_seconds_is_accepted(self) -> None:
        record = AlarmRecord.create("a", AtSchedule(T0 + 1500), noop, now_ms=T0)
        assert record.next_fire_at_ms == T0 + 1500

    def test_calendar_minute_boundary_too_close(self) -> None:
        # 10:59:59.500 -> next minute is 500ms away
        now = ms(2024, 1, 15, 10, 59, 59) + 500
        with pytest.raises(PastDeadline):
            AlarmRecord.create("a", CalendarSchedule(), noop, now_ms=now)

    def test_zero_delay_rejected(self) -> None:
        with pytest.raises(PastDeadline):
            AlarmRecord.create("a", RelativeSchedule(0), noop, now_ms=T0)


class TestAlarmRecordIdentity:
    def test_equal_when_name_schedule_and_time_match(self) -> None:
        a = AlarmRecord.create("a", CalendarSchedule(minutes=0), noop, now_ms=T0)
        b = AlarmRecord.create("a", CalendarSchedule(minutes=0), print, now_ms=T0 + 10)
        assert a == b
        assert a.same_alarm(b)

    def test_different_name_is_distinct(self) -> None:
        a = AlarmRecord.create("a", CalendarSchedule(minutes=0), noop, now_ms=T0)
        b = AlarmRecord.create("b", CalendarSchedule(minutes=0), noop, now_ms=T0)
        assert a != b

    def test_different_schedule_same_time_is_distinct(self) -> None:
        a = AlarmRecord.create("a", CalendarSchedule(minutes=0), noop, now_ms=T0)
        b = AlarmRecord.create("a", CalendarSchedule(minutes=0, hours=11), noop, now_ms=T0)
        assert a.next_fire_at_ms == b.next_fire_at_ms
        assert a != b

    def test_relative_and_calendar_never_equal(self) -> None:
        a = AlarmRecord.create("a", RelativeSchedule(30), noop, now_ms=ms(2024, 1, 15, 10, 30))
        b = AlarmRecord.create("a", CalendarSchedule(minutes=0), noop, now_ms=T0)
        assert a.next_fire_at_ms == b.next_fire_at_ms
        assert a != b

    def test_unhashable(self) -> None:
        record = AlarmRecord.create("a", RelativeSchedule(1), noop, now_ms=T0)
        with pytest.raises(TypeError):
            hash(record)

    def test_sort_key_uses_last_update_as_tie_break(self) -> None:
        target = AtSchedule(T0 + 5000)
        older = AlarmRecord.create("x", target, noop, now_ms=T0)
        newer = AlarmRecord.create("y", target, noop, now_ms=T0 + 100)
        assert older.sort_key() < newer.sort_key()


class TestAlarmRecordAdvance:
    def test_repeating_relative(self) -> None:
        record = AlarmRecord.create("a", RelativeSchedule(1, repeating=True), noop, now_ms=T0)
        fired_at = record.next_fire_at_ms
        record.advance(fired_at + 20)
        assert record.next_fire_at_ms == fired_at + 20 + 60_000
        assert record.last_update_ms == fired_at + 20

    def test_fired_early_still_moves_forward(self) -> None:
        record = AlarmRecord.create("a", CalendarSchedule(), noop, now_ms=T0)
        fired_at = record.next_fire_at_ms
        # fired 400ms before its minute, inside the tolerance window
        record.advance(fired_at - 400)
        assert record.next_fire_at_ms == fired_at + 60_000

    def test_snapshot_is_detached(self) -> None:
        record = AlarmRecord.create("a", RelativeSchedule(1, repeating=True), noop, now_ms=T0)
        snapshot = record.snapshot()
        record.advance(T0 + 60_000)
        assert snapshot.next_fire_at_ms == T0 + 60_000
        assert record.next_fire_at_ms == T0 + 120_000
        assert snapshot.to_dict()["name"] == "a"

    def test_next_fire_at_in_schedule_timezone(self) -> None:
        now = int(datetime(2024, 1, 15, 10, 30, 15, tzinfo=timezone.utc).timestamp() * 1000)
        schedule = CalendarSchedule(minutes=0, timezone="Asia/Tokyo")
        record = AlarmRecord.create("tokyo", schedule, noop, now_ms=now)

        fire_at = record.snapshot().next_fire_at
        assert fire_at.tzinfo == ZoneInfo("Asia/Tokyo")
        assert (fire_at.hour, fire_at.minute) == (20, 0)
        assert fire_at == datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)

    def test_next_fire_at_without_timezone_is_local(self) -> None:
        record = AlarmRecord.create("local", CalendarSchedule(minutes=0), noop, now_ms=T0)
        assert record.snapshot().next_fire_at == datetime(2024, 1, 15, 11, 0)

    def test_describe(self) -> None:
        record = AlarmRecord.create("report", CalendarSchedule.at_time(7, 30), noop, now_ms=T0)
        assert record.describe() == "Alarm (report) every day at 7:30"
        assert str(record).startswith("Alarm (report) every day at 7:30 (next fire at 2024-01-16")
