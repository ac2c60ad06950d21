"""
Tool: Slot Ranking
Purpose: Rank an event's candidate slots by aggregate availability

Score per slot: (available + 0.5 * maybe) / total_responses, 0 without
responses, rounded half-up to two decimals. Order: available count desc,
then maybe count desc, then slot creation order.

Usage:
    from convene.coordination.ranking import find_optimal_time_slots

    result = find_optimal_time_slots(event_id, requester_id=user_id)
    best = result["data"][0]
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from convene import store
from convene.coordination.engine import require_event
from convene.errors import CoordinationError, error_result
from convene.models import AvailabilityResponse, ResponseStatus, TimeSlot


def round_half_up(value: float, places: int = 2) -> float:
    """Round like the reporting layer expects (0.125 -> 0.13, not banker's rounding)."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def rank_time_slots(
    slots: list[TimeSlot],
    responses: list[AvailabilityResponse],
    user_names: dict[str, str] | None = None,
) -> list[dict[str, Any]]:
    """
    Summarize and order slots by availability.

    Pure function over already-loaded rows; responses for slots not in
    `slots` are ignored.

    Args:
        slots: The event's time slots
        responses: Availability responses on those slots
        user_names: Optional user_id -> display name for the detail lists

    Returns:
        Slot summaries, best first
    """
    names = user_names or {}
    by_slot: dict[str, list[AvailabilityResponse]] = {slot.id: [] for slot in slots}
    for response in responses:
        if response.time_slot_id in by_slot:
            by_slot[response.time_slot_id].append(response)

    summaries = []
    for slot in sorted(slots, key=lambda s: s.position):
        slot_responses = by_slot[slot.id]
        counts = {status: 0 for status in ResponseStatus}
        for response in slot_responses:
            counts[response.status] += 1

        total = len(slot_responses)
        weighted = sum(status.weight * count for status, count in counts.items())
        score = round_half_up(weighted / total) if total else 0.0

        summary = slot.to_dict()
        summary.update({
            "time_slot_id": slot.id,
            "available_count": counts[ResponseStatus.AVAILABLE],
            "maybe_count": counts[ResponseStatus.MAYBE],
            "unavailable_count": counts[ResponseStatus.UNAVAILABLE],
            "total_responses": total,
            "availability_score": score,
            "availability_details": [
                {
                    "user_id": r.user_id,
                    "user_name": names.get(r.user_id),
                    "status": r.status.value,
                }
                for r in slot_responses
            ],
        })
        summaries.append(summary)

    # sorted() is stable, so creation order breaks remaining ties
    return sorted(summaries, key=lambda s: (-s["available_count"], -s["maybe_count"]))


def load_ranked_slots(conn, event_id: str) -> list[dict[str, Any]]:
    """Rank the slots of an event using an open connection."""
    slots = store.list_time_slots(conn, event_id)
    responses = store.list_responses(conn, event_id)
    users = store.get_users(conn, list({r.user_id for r in responses}))
    return rank_time_slots(
        slots,
        responses,
        {user_id: user.name for user_id, user in users.items()},
    )


def find_optimal_time_slots(event_id: str, requester_id: str | None = None) -> dict[str, Any]:
    """
    Rank an event's slots, best first.

    Args:
        event_id: Event to rank
        requester_id: When given, must be the creator or a participant

    Returns:
        Dict with success status and the ordered slot summaries
    """
    with store.reader() as conn:
        try:
            require_event(conn, event_id, requester_id)
        except CoordinationError as e:
            return error_result(e)
        ranked = load_ranked_slots(conn, event_id)

    return {"success": True, "data": ranked, "count": len(ranked)}


__all__ = [
    "find_optimal_time_slots",
    "load_ranked_slots",
    "rank_time_slots",
    "round_half_up",
]
