# -*- coding: utf-8 -*-
"""Pytest unit tests for the review scheduler functions."""

import pytest
from datetime import date, datetime, timezone

from pydantic import ValidationError

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from study_planner.models import ReviewRecord
from study_planner.review_scheduler.review_scheduler import (
    REVIEW_INTERVALS,
    advance_review_record,
    calculate_next_review_date,
    filter_due_reviews,
    get_review_label,
    is_review_completed,
    new_review_record,
    to_date,
)


def _record(next_review_date, status="pending", review_count=0, record_id=None):
    kwargs = {"id": record_id} if record_id else {}
    return ReviewRecord(
        knowledge_point_id="kp_1",
        exam_id="exam_1",
        review_count=review_count,
        next_review_date=next_review_date,
        status=status,
        **kwargs,
    )


@pytest.mark.parametrize("review_count, expected", [
    (0, "2024-01-02"),
    (1, "2024-01-03"),
    (2, "2024-01-05"),
    (3, "2024-01-08"),
    (4, "2024-01-16"),
    (5, "2024-01-31"),
])
def test_calculate_next_review_date_follows_interval_table(review_count, expected):
    assert calculate_next_review_date(review_count, "2024-01-01") == expected


@pytest.mark.parametrize("review_count", [5, 6, 7, 50])
def test_calculate_next_review_date_saturates_at_thirty_days(review_count):
    assert calculate_next_review_date(review_count, date(2024, 3, 1)) == "2024-03-31"


def test_calculate_next_review_date_truncates_datetime_input():
    assert calculate_next_review_date(0, datetime(2024, 12, 31, 23, 59)) == "2025-01-01"
    assert calculate_next_review_date(0, "2024-02-28T08:30:00Z") == "2024-02-29"


def test_calculate_next_review_date_rejects_negative_count():
    with pytest.raises(ValueError):
        calculate_next_review_date(-1, "2024-01-01")


def test_get_review_label_clamps():
    assert get_review_label(0) == "首次复习"
    assert get_review_label(1) == "第2次复习"
    assert get_review_label(5) == "第6次复习"
    assert get_review_label(6) == "巩固完成"
    assert get_review_label(99) == "巩固完成"


def test_is_review_completed_boundary():
    assert not is_review_completed(len(REVIEW_INTERVALS) - 1)
    assert is_review_completed(len(REVIEW_INTERVALS))
    assert is_review_completed(len(REVIEW_INTERVALS) + 1)


def test_filter_due_reviews_includes_as_of_date():
    records = [_record("2024-01-01"), _record("2024-01-05"), _record("2024-01-10")]
    due = filter_due_reviews(records, "2024-01-05")
    assert [r.next_review_date for r in due] == ["2024-01-01", "2024-01-05"]


def test_filter_due_reviews_ignores_completed_records():
    records = [_record("2024-01-01", status="completed", review_count=6), _record("2024-01-02")]
    due = filter_due_reviews(records, date(2024, 1, 5))
    assert [r.next_review_date for r in due] == ["2024-01-02"]


def test_to_date_accepts_several_shapes():
    assert to_date("2024-05-06") == date(2024, 5, 6)
    assert to_date("2024-05-06T10:00:00") == date(2024, 5, 6)
    assert to_date(datetime(2024, 5, 6, 10)) == date(2024, 5, 6)
    assert to_date(date(2024, 5, 6)) == date(2024, 5, 6)


def test_to_date_takes_local_calendar_day_of_aware_values():
    instant = datetime(2024, 5, 6, 23, 30, tzinfo=timezone.utc)
    assert to_date("2024-05-06T23:30:00Z") == instant.astimezone().date()
    assert to_date(instant) == instant.astimezone().date()


def test_to_date_accepts_unpadded_and_rejects_garbage():
    assert to_date("2024-2-5") == date(2024, 2, 5)
    with pytest.raises(ValueError):
        to_date("next friday")


def test_review_record_dates_are_zero_padded():
    record = _record("2024-1-2")
    assert record.next_review_date == "2024-01-02"
    with pytest.raises(ValidationError):
        _record("soon")


def test_new_review_record_schedules_first_review_tomorrow():
    record = new_review_record("kp_1", "exam_1", now=datetime(2024, 1, 1, 9, 0))
    assert record.review_count == 0
    assert record.last_review_date is None
    assert record.next_review_date == "2024-01-02"
    assert record.status == "pending"
    assert record.created_at == "2024-01-01T09:00:00"


def test_advance_review_record_counts_from_today_not_due_date():
    record = _record("2024-01-02", review_count=0)
    advanced = advance_review_record(record, today="2024-01-10")
    assert advanced.review_count == 1
    assert advanced.last_review_date == "2024-01-10"
    assert advanced.next_review_date == "2024-01-12"
    assert advanced.status == "pending"
    assert advanced.id == record.id
    # the input record is left untouched
    assert record.review_count == 0


def test_advance_review_record_completes_after_last_cycle():
    record = _record("2024-02-01", review_count=5)
    advanced = advance_review_record(record, today="2024-02-01")
    assert advanced.review_count == 6
    assert advanced.status == "completed"
    assert advanced.last_review_date == "2024-02-01"
    assert advanced.next_review_date == "2024-02-01"


def test_advance_review_record_is_monotonic():
    record = _record("2024-01-02")
    for expected_count in range(1, 7):
        record = advance_review_record(record, today="2024-03-01")
        assert record.review_count == expected_count
