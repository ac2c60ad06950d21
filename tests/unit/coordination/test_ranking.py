"""Tests for convene/coordination/ranking.py

rank_time_slots is pure, so most cases build slots and responses in memory.
find_optimal_time_slots is checked against a stored event.
"""

from datetime import datetime, timedelta, timezone

import pytest

from convene.coordination.engine import submit_availability_responses
from convene.coordination.ranking import (
    find_optimal_time_slots,
    rank_time_slots,
    round_half_up,
)
from convene.models import AvailabilityResponse, ResponseStatus, TimeSlot

BASE = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _slot(slot_id: str, position: int) -> TimeSlot:
    start = BASE + timedelta(hours=position)
    return TimeSlot(
        id=slot_id,
        event_id="ev",
        start_time=start,
        end_time=start + timedelta(hours=1),
        created_by="org",
        position=position,
    )


def _responses(slot_id: str, available=0, maybe=0, unavailable=0) -> list[AvailabilityResponse]:
    statuses = (
        [ResponseStatus.AVAILABLE] * available
        + [ResponseStatus.MAYBE] * maybe
        + [ResponseStatus.UNAVAILABLE] * unavailable
    )
    return [
        AvailabilityResponse(id=f"{slot_id}-{i}", time_slot_id=slot_id, user_id=f"u{i}", status=s)
        for i, s in enumerate(statuses)
    ]


# ─────────────────────────────────────────────────────────────────────────────
# Rounding
# ─────────────────────────────────────────────────────────────────────────────


class TestRoundHalfUp:
    """Tests for round_half_up."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0.125, 0.13), (0.5, 0.5), (2 / 3, 0.67), (1 / 3, 0.33), (0.005, 0.01), (1.0, 1.0)],
    )
    def test_rounds_half_up(self, value, expected):
        assert round_half_up(value) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Pure Ranking
# ─────────────────────────────────────────────────────────────────────────────


class TestRankTimeSlots:
    """Tests for rank_time_slots."""

    def test_orders_by_available_then_maybe(self):
        slots = [_slot("A", 0), _slot("B", 1), _slot("C", 2)]
        responses = (
            _responses("A", available=3, maybe=1)
            + _responses("B", available=3, maybe=2)
            + _responses("C", available=1)
        )

        ranked = rank_time_slots(slots, responses)

        assert [s["time_slot_id"] for s in ranked] == ["B", "A", "C"]

    def test_ties_keep_creation_order(self):
        slots = [_slot("late", 2), _slot("early", 0), _slot("middle", 1)]
        responses = (
            _responses("late", available=1)
            + _responses("early", available=1)
            + _responses("middle", available=1)
        )

        ranked = rank_time_slots(slots, responses)

        assert [s["time_slot_id"] for s in ranked] == ["early", "middle", "late"]

    def test_counts_sum_to_total(self):
        slots = [_slot("A", 0)]
        ranked = rank_time_slots(slots, _responses("A", available=2, maybe=1, unavailable=3))

        summary = ranked[0]
        assert summary["available_count"] == 2
        assert summary["maybe_count"] == 1
        assert summary["unavailable_count"] == 3
        assert summary["total_responses"] == 6
        assert (
            summary["available_count"] + summary["maybe_count"] + summary["unavailable_count"]
            == summary["total_responses"]
        )
        # (2 + 0.5) / 6 = 0.4166...
        assert summary["availability_score"] == 0.42

    def test_slot_without_responses_scores_zero_and_sorts_last(self):
        slots = [_slot("empty", 0), _slot("busy", 1)]
        ranked = rank_time_slots(slots, _responses("busy", available=1))

        assert [s["time_slot_id"] for s in ranked] == ["busy", "empty"]
        assert ranked[1]["availability_score"] == 0
        assert ranked[1]["total_responses"] == 0

    def test_details_include_names(self):
        slots = [_slot("A", 0)]
        ranked = rank_time_slots(slots, _responses("A", maybe=1), {"u0": "Ana"})

        assert ranked[0]["availability_details"] == [
            {"user_id": "u0", "user_name": "Ana", "status": "maybe"},
        ]

    def test_ignores_responses_for_other_slots(self):
        ranked = rank_time_slots([_slot("A", 0)], _responses("Z", available=5))

        assert ranked[0]["total_responses"] == 0


# ─────────────────────────────────────────────────────────────────────────────
# Stored Events
# ─────────────────────────────────────────────────────────────────────────────


class TestFindOptimalTimeSlots:
    """Tests for find_optimal_time_slots."""

    def test_ranks_stored_event(self, kickoff):
        a = kickoff["users"]["a@x.com"]
        b = kickoff["users"]["b@x.com"]
        s1, s2 = kickoff["slots"]["S1"], kickoff["slots"]["S2"]
        submit_availability_responses(a, kickoff["id"], [
            {"time_slot_id": s1, "status": "available"},
            {"time_slot_id": s2, "status": "maybe"},
        ])
        submit_availability_responses(b, kickoff["id"], [
            {"time_slot_id": s1, "status": "unavailable"},
            {"time_slot_id": s2, "status": "available"},
        ])

        result = find_optimal_time_slots(kickoff["id"])

        assert result["success"] is True
        assert [s["time_slot_id"] for s in result["data"]] == [s2, s1]
        assert result["data"][0]["availability_score"] == 0.75
        assert result["data"][1]["availability_score"] == 0.5
        names = {d["user_name"] for d in result["data"][0]["availability_details"]}
        assert names == {"a", "b"}

    def test_requester_must_have_access(self, kickoff, outsider):
        result = find_optimal_time_slots(kickoff["id"], requester_id=outsider.id)

        assert result["error_code"] == "access_denied"

    def test_unknown_event(self):
        result = find_optimal_time_slots("missing")

        assert result["error_code"] == "not_found"
