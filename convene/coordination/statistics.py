"""
Tool: Event Statistics
Purpose: Response rate and most popular slot for an event

Read-only; built on the slot ranking.
"""

from typing import Any

from convene import store
from convene.coordination.engine import require_event
from convene.coordination.ranking import load_ranked_slots, round_half_up
from convene.errors import CoordinationError, error_result


def get_event_statistics(event_id: str, requester_id: str | None = None) -> dict[str, Any]:
    """
    Summarize participation for an event.

    Returns:
        Dict with success status and total_participants, responded_participants,
        response_rate, time_slots_count, most_popular_slot
    """
    with store.reader() as conn:
        try:
            require_event(conn, event_id, requester_id)
        except CoordinationError as e:
            return error_result(e)

        total, responded = store.count_participants(conn, event_id)
        ranked = load_ranked_slots(conn, event_id)

    return {
        "success": True,
        "data": {
            "total_participants": total,
            "responded_participants": responded,
            "response_rate": round_half_up(responded / total) if total else 0,
            "time_slots_count": len(ranked),
            "most_popular_slot": ranked[0] if ranked else None,
        },
    }


__all__ = ["get_event_statistics"]
