"""
Coordination - Event lifecycle, slot ranking and statistics

Components:
    engine.py: create, respond, decline, open, confirm, cancel
    ranking.py: availability scoring and slot ordering
    statistics.py: response rate and most popular slot
"""

from convene.coordination.engine import (
    cancel_event,
    confirm_event,
    create_event,
    decline_event,
    get_event_by_id,
    list_user_events,
    open_event,
    submit_availability_responses,
)
from convene.coordination.ranking import find_optimal_time_slots, rank_time_slots
from convene.coordination.statistics import get_event_statistics

__all__ = [
    "cancel_event",
    "confirm_event",
    "create_event",
    "decline_event",
    "find_optimal_time_slots",
    "get_event_by_id",
    "get_event_statistics",
    "list_user_events",
    "open_event",
    "rank_time_slots",
    "submit_availability_responses",
]
