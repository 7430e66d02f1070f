"""Unit tests for status transitions and countdown derivation."""

from datetime import UTC, date, datetime
from unittest.mock import patch

import pytest

from mymetas.lifecycle import (
    CountdownKind,
    apply_status,
    countdown,
    countdown_for,
    enters_completed,
    format_status,
)
from mymetas.models import MetaRow, MetaStatus


class TestTransitions:
    """Tests for the completion stamp rule."""

    @pytest.mark.parametrize(
        "previous,new,expected",
        [
            (MetaStatus.TO_DO, MetaStatus.COMPLETED, True),
            (MetaStatus.IN_PROGRESS, MetaStatus.COMPLETED, True),
            (MetaStatus.COMPLETED, MetaStatus.COMPLETED, False),
            (MetaStatus.COMPLETED, MetaStatus.IN_PROGRESS, False),
            (MetaStatus.TO_DO, MetaStatus.IN_PROGRESS, False),
        ],
    )
    def test_enters_completed(self, previous, new, expected):
        """Test only a move into COMPLETED counts as entering it."""
        assert enters_completed(previous, new) is expected

    def test_apply_status_stamps_on_entry(self, frozen_now):
        """Test entering COMPLETED writes completed_at."""
        meta = MetaRow(title="Read", user_id=1, status=MetaStatus.IN_PROGRESS)

        assert apply_status(meta, MetaStatus.COMPLETED, now=frozen_now) is True
        assert meta.status == MetaStatus.COMPLETED
        assert meta.completed_at == "2024-06-10T12:00:00Z"

    def test_apply_status_keeps_stamp_when_reopened(self, frozen_now):
        """Test leaving COMPLETED leaves completed_at untouched."""
        meta = MetaRow(title="Read", user_id=1, status=MetaStatus.TO_DO)
        apply_status(meta, MetaStatus.COMPLETED, now=frozen_now)

        assert apply_status(meta, MetaStatus.IN_PROGRESS) is False
        assert meta.status == MetaStatus.IN_PROGRESS
        assert meta.completed_at == "2024-06-10T12:00:00Z"

    def test_apply_status_does_not_refresh_stamp(self, frozen_now):
        """Test re-sending COMPLETED keeps the first stamp."""
        meta = MetaRow(title="Read", user_id=1, status=MetaStatus.TO_DO)
        apply_status(meta, MetaStatus.COMPLETED, now=frozen_now)

        later = datetime(2024, 7, 1, tzinfo=UTC)
        assert apply_status(meta, MetaStatus.COMPLETED, now=later) is False
        assert meta.completed_at == "2024-06-10T12:00:00Z"

    def test_apply_status_defaults_to_current_time(self):
        """Test the stamp uses utc_now when no instant is given."""
        meta = MetaRow(title="Read", user_id=1)
        fixed = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)

        with patch("mymetas.lifecycle.utc_now", return_value=fixed):
            apply_status(meta, MetaStatus.COMPLETED)

        assert meta.completed_at == "2025-01-02T03:04:05Z"


class TestCountdown:
    """Tests for countdown labels."""

    def test_target_today_has_one_day_remaining(self, today):
        """Test the target day itself is not yet due."""
        result = countdown(MetaStatus.IN_PROGRESS, date(2024, 6, 10), today=today)

        assert result.kind == CountdownKind.REMAINING
        assert result.label == "1 days remaining"
        assert result.badge == "1 days"
        assert result.days == 1

    def test_target_yesterday_is_due_today(self, today):
        """Test deadline equal to today reads 'Due today'."""
        result = countdown(MetaStatus.IN_PROGRESS, date(2024, 6, 9), today=today)

        assert result.kind == CountdownKind.DUE_TODAY
        assert result.label == "Due today"
        assert result.days == 0

    def test_past_target_is_overdue(self, today):
        """Test a past deadline reports the days overdue."""
        result = countdown(MetaStatus.IN_PROGRESS, date(2024, 6, 1), today=today)

        assert result.kind == CountdownKind.OVERDUE
        assert result.label == "Overdue by 8 days"
        assert result.badge == "Overdue"
        assert result.days == -8

    def test_completed_uses_completion_date(self, today):
        """Test COMPLETED shows the completion date, not the target."""
        result = countdown(
            MetaStatus.COMPLETED,
            date(2024, 4, 1),
            "2024-05-01T09:30:00Z",
            today=today,
        )

        assert result.kind == CountdownKind.COMPLETED
        assert result.label == "Completed on 2024-05-01"
        assert result.badge == "Completed"

    def test_completed_without_stamp_falls_back_to_today(self, today):
        """Test a COMPLETED meta without a stamp uses today."""
        result = countdown(MetaStatus.COMPLETED, None, None, today=today)
        assert result.label == "Completed on 2024-06-10"

    def test_to_do_skips_date_arithmetic(self, today):
        """Test TO_DO never looks at the target date."""
        with patch("mymetas.lifecycle._as_date") as as_date:
            result = countdown(MetaStatus.TO_DO, "not-a-date", today=today)

        as_date.assert_not_called()
        assert result.kind == CountdownKind.TO_DO
        assert result.label == "To do"
        assert result.days is None

    def test_in_progress_without_target_has_no_countdown(self, today):
        """Test no target means no countdown."""
        assert countdown(MetaStatus.IN_PROGRESS, None, today=today) is None

    def test_accepts_string_inputs(self, today):
        """Test status and target may be given as strings."""
        result = countdown("in_progress", "2024-06-20", today=today)
        assert result.label == "11 days remaining"

    def test_countdown_for_row(self, today):
        """Test countdown_for reads fields from a row."""
        meta = MetaRow(
            title="Ship",
            user_id=1,
            status=MetaStatus.IN_PROGRESS,
            date_target=date(2024, 6, 1),
        )
        assert countdown_for(meta, today=today).label == "Overdue by 8 days"


class TestFormatStatus:
    """Tests for status labels."""

    def test_format_status(self):
        """Test status values render as sentence-case labels."""
        assert format_status(MetaStatus.IN_PROGRESS) == "In progress"
        assert format_status("to_do") == "To do"
        assert format_status(MetaStatus.COMPLETED) == "Completed"
