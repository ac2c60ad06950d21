"""
Tool: Conflict Checker
Purpose: Report which users are busy during a candidate interval

Each user is checked independently and concurrently. Users without a
linked calendar, unknown users, and users whose calendar lookup fails are
all reported as free, and so is everyone when no gateway can be built for
the configured provider: missing information never blocks scheduling.

Usage:
    from convene.calendar.conflicts import check_scheduling_conflicts

    result = await check_scheduling_conflicts(
        ["ab12cd34ef56", "0f9e8d7c6b5a"],
        "2026-03-02T10:00:00Z",
        "2026-03-02T11:30:00Z",
    )
    result["data"]["ab12cd34ef56"]["has_conflict"]
"""

import asyncio
from datetime import datetime
from typing import Any

from convene import store
from convene.calendar.gateway import CalendarGateway, get_gateway
from convene.errors import ExternalServiceError, ValidationError, error_result
from convene.logging_config import get_logger
from convene.models import parse_instant

logger = get_logger(__name__)


def _no_conflict(checked: bool = False) -> dict[str, Any]:
    return {"has_conflict": False, "conflicting_intervals": [], "calendar_checked": checked}


async def _check_user(
    gateway: CalendarGateway,
    user_id: str,
    start: datetime,
    end: datetime,
) -> dict[str, Any]:
    try:
        busy = await gateway.list_busy_intervals(user_id, start, end)
    except ExternalServiceError as e:
        logger.warning("conflict_check_skipped", user_id=user_id, error=e.message)
        return _no_conflict()
    except Exception:
        logger.exception("conflict_check_error", user_id=user_id)
        return _no_conflict()

    conflicting = [interval for interval in busy if interval.overlaps(start, end)]
    return {
        "has_conflict": bool(conflicting),
        "conflicting_intervals": [interval.to_dict() for interval in conflicting],
        "calendar_checked": True,
    }


async def check_scheduling_conflicts(
    user_ids: list[str],
    start_time: datetime | str,
    end_time: datetime | str,
    gateway: CalendarGateway | None = None,
) -> dict[str, Any]:
    """
    Check each user's calendar against [start_time, end_time).

    Args:
        user_ids: Users to check (duplicates are checked once)
        start_time: Interval start (ISO string or datetime)
        end_time: Interval end, must be after start_time
        gateway: CalendarGateway to use (defaults to the configured provider)

    Returns:
        Dict with success status and data mapping user_id to
        {has_conflict, conflicting_intervals, calendar_checked}
    """
    try:
        start = parse_instant(start_time, "start_time")
        end = parse_instant(end_time, "end_time")
        if end <= start:
            raise ValidationError("end_time must be after start_time")
    except ValidationError as e:
        return error_result(e)

    unique_ids = list(dict.fromkeys(user_ids or []))
    with store.reader() as conn:
        users = store.get_users(conn, unique_ids)

    results: dict[str, dict[str, Any]] = {}
    to_check = []
    for user_id in unique_ids:
        user = users.get(user_id)
        if user and user.has_calendar_credential:
            to_check.append(user_id)
        else:
            results[user_id] = _no_conflict()

    if to_check and gateway is None:
        try:
            gateway = get_gateway()
        except ValueError as e:
            logger.warning("calendar_gateway_unavailable", users=len(to_check), error=str(e))
            results.update((user_id, _no_conflict()) for user_id in to_check)
            to_check = []

    if to_check:
        checked = await asyncio.gather(
            *(_check_user(gateway, user_id, start, end) for user_id in to_check)
        )
        results.update(zip(to_check, checked))

    conflicts = sum(1 for r in results.values() if r["has_conflict"])
    logger.debug("conflicts_checked", users=len(unique_ids), busy=conflicts)

    return {
        "success": True,
        "data": {user_id: results[user_id] for user_id in unique_ids},
    }


__all__ = ["check_scheduling_conflicts"]
