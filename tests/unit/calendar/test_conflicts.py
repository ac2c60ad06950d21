"""Tests for convene/calendar/conflicts.py

Conflict checks fail open: no credential, unknown user or a calendar
outage all report "no conflict" for that user only.
"""

import pytest

from convene.calendar.conflicts import check_scheduling_conflicts
from convene.config import get_config
from convene.models import BusyInterval, parse_instant

START = "2026-03-02T10:00:00Z"
END = "2026-03-02T11:30:00Z"


def _busy(start: str, end: str, title: str = "Busy") -> BusyInterval:
    return BusyInterval(start=parse_instant(start), end=parse_instant(end), title=title)


@pytest.fixture
def ana(make_user):
    return make_user("ana@example.com", "Ana", access_token="tok-ana")


@pytest.fixture
def ben(make_user):
    return make_user("ben@example.com", "Ben", access_token="tok-ben")


class TestCheckSchedulingConflicts:
    """Tests for check_scheduling_conflicts."""

    @pytest.mark.asyncio
    async def test_touching_boundary_is_not_a_conflict(self, ana, fake_gateway):
        fake_gateway.busy[ana.id] = [_busy("2026-03-02T11:30:00Z", "2026-03-02T12:00:00Z")]

        result = await check_scheduling_conflicts([ana.id], START, END, gateway=fake_gateway)

        assert result["success"] is True
        assert result["data"][ana.id]["has_conflict"] is False
        assert result["data"][ana.id]["calendar_checked"] is True

    @pytest.mark.asyncio
    async def test_overlap_is_a_conflict(self, ana, fake_gateway):
        fake_gateway.busy[ana.id] = [
            _busy("2026-03-02T11:00:00Z", "2026-03-02T12:00:00Z", "Standup"),
            _busy("2026-03-02T08:00:00Z", "2026-03-02T09:00:00Z", "Breakfast"),
        ]

        result = await check_scheduling_conflicts([ana.id], START, END, gateway=fake_gateway)

        entry = result["data"][ana.id]
        assert entry["has_conflict"] is True
        assert [i["title"] for i in entry["conflicting_intervals"]] == ["Standup"]
        assert entry["conflicting_intervals"][0]["start"] == "2026-03-02T11:00:00+00:00"

    @pytest.mark.asyncio
    async def test_user_without_credential_is_free(self, outsider, fake_gateway):
        result = await check_scheduling_conflicts([outsider.id], START, END, gateway=fake_gateway)

        assert result["data"][outsider.id] == {
            "has_conflict": False,
            "conflicting_intervals": [],
            "calendar_checked": False,
        }
        assert fake_gateway.busy_calls == []

    @pytest.mark.asyncio
    async def test_unknown_user_is_free(self, fake_gateway):
        result = await check_scheduling_conflicts(["ghost"], START, END, gateway=fake_gateway)

        assert result["data"]["ghost"]["has_conflict"] is False

    @pytest.mark.asyncio
    async def test_one_outage_does_not_fail_batch(self, ana, ben, fake_gateway):
        fake_gateway.failing_users.add(ana.id)
        fake_gateway.busy[ben.id] = [_busy("2026-03-02T10:30:00Z", "2026-03-02T10:45:00Z")]

        result = await check_scheduling_conflicts([ana.id, ben.id], START, END, gateway=fake_gateway)

        assert result["success"] is True
        assert result["data"][ana.id]["has_conflict"] is False
        assert result["data"][ana.id]["calendar_checked"] is False
        assert result["data"][ben.id]["has_conflict"] is True

    @pytest.mark.asyncio
    async def test_duplicate_users_checked_once(self, ana, fake_gateway):
        result = await check_scheduling_conflicts([ana.id, ana.id], START, END, gateway=fake_gateway)

        assert list(result["data"]) == [ana.id]
        assert len(fake_gateway.busy_calls) == 1

    @pytest.mark.asyncio
    async def test_passes_utc_window_to_gateway(self, ana, fake_gateway):
        await check_scheduling_conflicts(
            [ana.id], "2026-03-02T12:00:00+02:00", "2026-03-02T13:00:00+02:00", gateway=fake_gateway
        )

        _, start, end = fake_gateway.busy_calls[0]
        assert start == parse_instant("2026-03-02T10:00:00Z")
        assert end == parse_instant("2026-03-02T11:00:00Z")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("end", [START, "2026-03-02T09:00:00Z"])
    async def test_rejects_empty_or_inverted_interval(self, ana, fake_gateway, end):
        result = await check_scheduling_conflicts([ana.id], START, end, gateway=fake_gateway)

        assert result["success"] is False
        assert result["error_code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_unknown_provider_reports_everyone_free(self, ana, ben, monkeypatch):
        monkeypatch.setattr(get_config().calendar, "provider", "outlook")

        result = await check_scheduling_conflicts([ana.id, ben.id], START, END)

        assert result["success"] is True
        for user_id in (ana.id, ben.id):
            assert result["data"][user_id]["has_conflict"] is False
            assert result["data"][user_id]["calendar_checked"] is False
