"""
Tool: Coordination Engine
Purpose: Event lifecycle - create, respond, decline, open, confirm, cancel

The organizer creates an event with candidate slots and invitee emails,
participants submit availability, and the organizer confirms one slot.
Confirmation has two phases:

1. Scheduling (authoritative): status compare-and-set to confirmed plus the
   ConfirmedEvent insert, committed together.
2. Calendar sync (advisory): one call to the calendar gateway after commit.
   A failure here is reported as a degraded success, never raised and never
   rolled back.

Usage:
    from convene.coordination.engine import create_event, confirm_event

    result = create_event(
        creator_id="ab12cd34ef56",
        title="Kickoff",
        participant_emails=["a@x.com", "b@x.com"],
        time_slots=[{"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T11:00:00Z"}],
    )
    result = await confirm_event(event_id, slot_id, confirmer_id="ab12cd34ef56")

Dependencies:
    - aiohttp (through the Google Calendar gateway)
"""

import sqlite3
from typing import Any

from convene import store
from convene.calendar.gateway import get_gateway
from convene.config import get_config
from convene.errors import (
    AccessDeniedError,
    CoordinationError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    error_result,
)
from convene.logging_config import event_context, get_logger
from convene.models import (
    AvailabilityResponse,
    ConfirmedEvent,
    Event,
    EventParticipant,
    EventStatus,
    ExternalEventRequest,
    ParticipantStatus,
    ResponseStatus,
    TimeSlot,
    generate_id,
    normalize_email,
    parse_instant,
    utc_now,
)
from convene.users import get_or_create_placeholder

logger = get_logger(__name__)


# =============================================================================
# Shared helpers
# =============================================================================


def require_event(
    conn: sqlite3.Connection,
    event_id: str,
    requester_id: str | None = None,
) -> Event:
    """Load an event, enforcing the creator-or-participant rule when a requester is given."""
    event = store.get_event(conn, event_id)
    if not event:
        raise NotFoundError(f"Event not found: {event_id}")
    if requester_id is not None and not store.has_event_access(conn, event_id, requester_id):
        raise AccessDeniedError(f"User {requester_id} has no access to event {event_id}")
    return event


def require_creator(conn: sqlite3.Connection, event_id: str, user_id: str) -> Event:
    event = store.get_event(conn, event_id)
    if not event:
        raise NotFoundError(f"Event not found: {event_id}")
    if event.created_by != user_id:
        raise AccessDeniedError(f"Only the event creator can do this: {event_id}")
    return event


def _slot_bounds(raw: Any, index: int) -> tuple[Any, Any]:
    if isinstance(raw, dict):
        start = raw.get("start", raw.get("start_time"))
        end = raw.get("end", raw.get("end_time"))
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        start, end = raw
    else:
        raise ValidationError(f"Time slot {index} must have a start and an end")
    return start, end


def _parse_slots(time_slots: list[Any]) -> list[tuple[Any, Any]]:
    if not time_slots:
        raise ValidationError("At least one time slot is required")

    max_slots = get_config().events.max_time_slots
    if len(time_slots) > max_slots:
        raise ValidationError(f"Too many time slots: {len(time_slots)} (max {max_slots})")

    parsed = []
    for index, raw in enumerate(time_slots):
        start, end = _slot_bounds(raw, index)
        start = parse_instant(start, f"start of time slot {index}")
        end = parse_instant(end, f"end of time slot {index}")
        if end <= start:
            raise ValidationError(f"Time slot {index} must end after it starts")
        parsed.append((start, end))
    return parsed


def _unique_emails(participant_emails: list[str] | None) -> list[str]:
    seen: dict[str, None] = {}
    for email in participant_emails or []:
        seen.setdefault(normalize_email(email), None)

    max_participants = get_config().events.max_participants
    if len(seen) > max_participants:
        raise ValidationError(
            f"Too many participants: {len(seen)} (max {max_participants})"
        )
    return list(seen)


def _hydrate_event(conn: sqlite3.Connection, event: Event) -> dict[str, Any]:
    """Event with participants, slots (each with responses) and confirmation."""
    participants = []
    names = {}
    for participant, user in store.list_participants(conn, event.id):
        names[user.id] = user.name
        entry = user.to_dict()
        entry["participation_status"] = participant.status.value
        participants.append(entry)

    creator = store.get_user(conn, event.created_by)
    if creator:
        names.setdefault(creator.id, creator.name)

    responses_by_slot: dict[str, list[dict[str, Any]]] = {}
    for response in store.list_responses(conn, event.id):
        responses_by_slot.setdefault(response.time_slot_id, []).append({
            "user_id": response.user_id,
            "user_name": names.get(response.user_id),
            "status": response.status.value,
        })

    slots = sorted(
        store.list_time_slots(conn, event.id),
        key=lambda s: (s.start_time, s.position),
    )
    time_slots = []
    for slot in slots:
        entry = slot.to_dict()
        entry["responses"] = responses_by_slot.get(slot.id, [])
        time_slots.append(entry)

    confirmed = store.get_confirmed_event(conn, event.id)

    data = event.to_dict()
    data["creator_name"] = creator.name if creator else None
    data["participants"] = participants
    data["time_slots"] = time_slots
    data["confirmed_event"] = confirmed.to_dict() if confirmed else None
    return data


# =============================================================================
# Creation and reads
# =============================================================================


def create_event(
    creator_id: str,
    title: str,
    time_slots: list[Any],
    participant_emails: list[str] | None = None,
    description: str | None = None,
    duration_minutes: int | None = None,
    deadline: Any = None,
) -> dict[str, Any]:
    """
    Create a draft event with candidate slots and invited participants.

    Args:
        creator_id: Organizer's user id
        title: Event title (required, non-blank)
        time_slots: Candidate intervals as {"start", "end"} dicts or (start, end) pairs
        participant_emails: Invitee addresses; unknown ones become placeholder users
        description: Optional description
        duration_minutes: Meeting length (defaults to events.default_duration_minutes)
        deadline: Optional response deadline (ISO string or datetime)

    Returns:
        Dict with success status and the hydrated event
    """

    def _create(conn: sqlite3.Connection) -> dict[str, Any]:
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required")

        duration = duration_minutes
        if duration is None:
            duration = get_config().events.default_duration_minutes
        if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
            raise ValidationError(f"Duration must be a positive number of minutes: {duration!r}")

        slots = _parse_slots(time_slots)
        emails = _unique_emails(participant_emails)
        deadline_at = parse_instant(deadline, "deadline") if deadline else None

        creator = store.get_user(conn, creator_id)
        if not creator:
            raise NotFoundError(f"User not found: {creator_id}")

        now = utc_now()
        event = store.insert_event(conn, Event(
            id=generate_id(),
            title=title.strip(),
            description=description,
            duration_minutes=duration,
            created_by=creator_id,
            status=EventStatus.DRAFT,
            deadline=deadline_at,
            created_at=now,
            updated_at=now,
        ))

        for email in emails:
            user = get_or_create_placeholder(conn, email)
            if user.id == creator_id:
                continue
            store.insert_participant(conn, EventParticipant(
                id=generate_id(),
                event_id=event.id,
                user_id=user.id,
                status=ParticipantStatus.INVITED,
                created_at=now,
            ))

        for position, (start, end) in enumerate(slots):
            store.insert_time_slot(conn, TimeSlot(
                id=generate_id(),
                event_id=event.id,
                start_time=start,
                end_time=end,
                created_by=creator_id,
                position=position,
                created_at=now,
            ))

        return _hydrate_event(conn, event)

    try:
        data = store.run_atomic(_create)
    except CoordinationError as e:
        logger.warning("event_create_failed", creator_id=creator_id, error=e.message)
        return error_result(e)

    logger.info(
        "event_created",
        event_id=data["id"],
        slots=len(data["time_slots"]),
        participants=len(data["participants"]),
    )
    return {"success": True, "data": data}


def get_event_by_id(event_id: str, requester_id: str) -> dict[str, Any]:
    """Get an event with participants, slots, responses and confirmation."""
    with store.reader() as conn:
        try:
            event = require_event(conn, event_id, requester_id)
        except CoordinationError as e:
            return error_result(e)
        data = _hydrate_event(conn, event)

    return {"success": True, "data": data}


def list_user_events(
    user_id: str,
    status: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> dict[str, Any]:
    """Events the user created or was invited to, newest first."""
    try:
        status_filter = EventStatus(status) if status else None
    except ValueError:
        return error_result(ValidationError(f"Invalid status: {status}"))

    if limit is not None and limit < 0:
        return error_result(ValidationError(f"Invalid limit: {limit}"))
    if offset < 0:
        return error_result(ValidationError(f"Invalid offset: {offset}"))

    with store.reader() as conn:
        rows = store.list_events_for_user(conn, user_id, status_filter, limit, offset)

    events = []
    for event, creator_name in rows:
        entry = event.to_dict()
        entry["creator_name"] = creator_name
        events.append(entry)

    return {"success": True, "data": events, "count": len(events)}


# =============================================================================
# Responses
# =============================================================================


def submit_availability_responses(
    user_id: str,
    event_id: str,
    responses: list[dict[str, Any]],
) -> dict[str, Any]:
    """
    Replace the user's availability for an event.

    Prior responses on this event's slots are cleared and the given ones
    written, in one transaction. Slots left out count as withdrawn.
    Repeated slot ids collapse, the last one wins.

    Args:
        user_id: Responding user
        event_id: Event being answered
        responses: List of {"time_slot_id", "status"} dicts

    Returns:
        Dict with success status, stored responses and participation status
    """

    def _submit(conn: sqlite3.Connection) -> dict[str, Any]:
        event = require_event(conn, event_id, user_id)

        collapsed: dict[str, ResponseStatus] = {}
        for item in responses or []:
            if not isinstance(item, dict) or "time_slot_id" not in item:
                raise ValidationError("Each response needs a time_slot_id and a status")
            try:
                status = ResponseStatus(item.get("status"))
            except ValueError:
                raise ValidationError(f"Invalid response status: {item.get('status')!r}") from None
            collapsed.pop(item["time_slot_id"], None)
            collapsed[item["time_slot_id"]] = status

        slot_ids = {slot.id for slot in store.list_time_slots(conn, event_id)}
        foreign = [slot_id for slot_id in collapsed if slot_id not in slot_ids]
        if foreign:
            raise ValidationError(
                f"Time slots do not belong to event {event_id}: {', '.join(map(str, foreign))}"
            )

        if event.status.is_closed:
            raise InvalidStateError(f"Event is {event.status.value}, responses are closed")

        store.delete_user_responses(conn, event_id, user_id)

        now = utc_now()
        for slot_id, status in collapsed.items():
            store.upsert_response(conn, AvailabilityResponse(
                id=generate_id(),
                time_slot_id=slot_id,
                user_id=user_id,
                status=status,
                created_at=now,
                updated_at=now,
            ))

        if collapsed:
            store.set_participant_status(
                conn,
                event_id,
                user_id,
                ParticipantStatus.RESPONDED,
                from_statuses=(ParticipantStatus.INVITED, ParticipantStatus.DECLINED),
            )

        participant = store.get_participant(conn, event_id, user_id)
        return {
            "event_id": event_id,
            "user_id": user_id,
            "responses": [
                {"time_slot_id": slot_id, "status": status.value}
                for slot_id, status in collapsed.items()
            ],
            "participation_status": participant.status.value if participant else None,
        }

    try:
        data = store.run_atomic(_submit)
    except CoordinationError as e:
        return error_result(e)

    logger.info(
        "responses_submitted",
        event_id=event_id,
        user_id=user_id,
        count=len(data["responses"]),
    )
    return {"success": True, "data": data}


def decline_event(user_id: str, event_id: str) -> dict[str, Any]:
    """Mark an invited participant as declined. Declined users get no calendar invite."""

    def _decline(conn: sqlite3.Connection) -> None:
        event = require_event(conn, event_id)
        participant = store.get_participant(conn, event_id, user_id)
        if not participant:
            raise AccessDeniedError(f"User {user_id} is not a participant of event {event_id}")
        if event.status.is_closed:
            raise InvalidStateError(f"Event is {event.status.value}")
        changed = store.set_participant_status(
            conn,
            event_id,
            user_id,
            ParticipantStatus.DECLINED,
            from_statuses=(ParticipantStatus.INVITED,),
        )
        if not changed:
            raise InvalidStateError(
                f"Cannot decline with participation status: {participant.status.value}"
            )

    try:
        store.run_atomic(_decline)
    except CoordinationError as e:
        return error_result(e)

    logger.info("event_declined", event_id=event_id, user_id=user_id)
    return {
        "success": True,
        "data": {"event_id": event_id, "user_id": user_id, "participation_status": "declined"},
    }


# =============================================================================
# Lifecycle transitions
# =============================================================================


def _transition(event_id: str, requester_id: str, target: EventStatus) -> dict[str, Any]:
    def _apply(conn: sqlite3.Connection) -> Event:
        event = require_creator(conn, event_id, requester_id)
        if not event.status.can_transition_to(target):
            raise InvalidStateError(
                f"Cannot move event from {event.status.value} to {target.value}"
            )
        if not store.transition_event_status(conn, event_id, target):
            raise InvalidStateError(f"Event {event_id} changed status concurrently")
        return store.get_event(conn, event_id)

    try:
        event = store.run_atomic(_apply)
    except CoordinationError as e:
        return error_result(e)

    logger.info("event_status_changed", event_id=event_id, status=target.value)
    return {"success": True, "data": event.to_dict()}


def open_event(event_id: str, requester_id: str) -> dict[str, Any]:
    """Open a draft event for responses (creator only)."""
    return _transition(event_id, requester_id, EventStatus.OPEN)


def cancel_event(event_id: str, requester_id: str) -> dict[str, Any]:
    """Cancel an open event (creator only)."""
    return _transition(event_id, requester_id, EventStatus.CANCELLED)


# =============================================================================
# Confirmation
# =============================================================================


async def confirm_event(
    event_id: str,
    time_slot_id: str,
    confirmer_id: str,
    location: str | None = None,
    send_calendar_invites: bool = True,
    gateway=None,
) -> dict[str, Any]:
    """
    Confirm one slot of an event and optionally push it to the organizer's calendar.

    Args:
        event_id: Event to confirm
        time_slot_id: Chosen slot (must belong to the event)
        confirmer_id: Must be the event creator
        location: Optional meeting location
        send_calendar_invites: Create the external event with non-declined attendees
        gateway: CalendarGateway to use (defaults to the configured provider)

    Returns:
        Dict with success status, scheduling_result, calendar_sync_result
        and a degraded flag set when scheduling succeeded but sync failed
    """

    def _schedule(conn: sqlite3.Connection) -> tuple[Event, TimeSlot, ConfirmedEvent, list[str]]:
        event = require_creator(conn, event_id, confirmer_id)
        if not event.status.can_transition_to(EventStatus.CONFIRMED):
            raise InvalidStateError(f"Event is already {event.status.value}")

        slot = store.get_time_slot(conn, time_slot_id)
        if not slot or slot.event_id != event_id:
            raise InvalidStateError(f"Time slot {time_slot_id} does not belong to event {event_id}")

        if not store.transition_event_status(conn, event_id, EventStatus.CONFIRMED):
            raise InvalidStateError(f"Event {event_id} was confirmed concurrently")

        try:
            confirmed = store.insert_confirmed_event(conn, ConfirmedEvent(
                id=generate_id(),
                event_id=event_id,
                time_slot_id=time_slot_id,
                location=location,
            ))
        except sqlite3.IntegrityError:
            raise InvalidStateError(f"Event {event_id} is already confirmed") from None

        attendees = [
            user.email
            for participant, user in store.list_participants(conn, event_id)
            if participant.status != ParticipantStatus.DECLINED
        ]
        return store.get_event(conn, event_id), slot, confirmed, attendees

    try:
        event, slot, confirmed, attendees = store.run_atomic(_schedule)
    except CoordinationError as e:
        logger.warning("event_confirm_failed", event_id=event_id, error=e.message)
        return error_result(e)

    logger.info("event_confirmed", event_id=event_id, time_slot_id=time_slot_id)

    if send_calendar_invites:
        with event_context(event_id):
            sync_result, confirmed = await _sync_calendar(event, slot, confirmed, attendees, gateway)
    else:
        sync_result = {"status": "skipped", "reason": "calendar invites not requested"}

    return {
        "success": True,
        "data": {
            "scheduling_result": {
                "status": "confirmed",
                "event": event.to_dict(),
                "time_slot": slot.to_dict(),
                "confirmed_event": confirmed.to_dict(),
            },
            "calendar_sync_result": sync_result,
            "degraded": sync_result["status"] == "failed" or "local_record_error" in sync_result,
        },
    }


def _sync_failed(message: str) -> dict[str, Any]:
    return {"status": "failed", "error": message, "error_code": ExternalServiceError.code}


async def _sync_calendar(
    event: Event,
    slot: TimeSlot,
    confirmed: ConfirmedEvent,
    attendees: list[str],
    gateway=None,
) -> tuple[dict[str, Any], ConfirmedEvent]:
    """
    Create the external event once. Failures are returned, not raised.

    Runs after the confirmation committed, so nothing in here may raise:
    an unusable provider setting or a failed write-back still ends in a
    sync result for the caller.
    """
    try:
        if gateway is None:
            gateway = get_gateway()
    except ValueError as e:
        logger.warning("calendar_gateway_unavailable", error=str(e))
        return _sync_failed(str(e)), confirmed

    request = ExternalEventRequest(
        title=event.title,
        start=slot.start_time,
        end=slot.end_time,
        attendee_emails=attendees,
        description=event.description,
        location=confirmed.location,
    )

    try:
        created = await gateway.create_external_event(event.created_by, request)
    except ExternalServiceError as e:
        logger.warning("calendar_sync_failed", error=e.message, error_code=e.code)
        return {"status": "failed", "error": e.message, "error_code": e.code}, confirmed
    except Exception as e:
        logger.exception("calendar_sync_error", provider=gateway.provider_name)
        return _sync_failed(str(e)), confirmed

    result = {
        "status": "synced",
        "external_event_id": created.external_event_id,
        "calendar_id": created.calendar_id,
        "calendar_url": created.url,
        "attendee_count": len(attendees),
    }

    try:
        updated = store.run_atomic(
            lambda conn: store.record_external_event(
                conn,
                event.id,
                created.external_event_id,
                created.calendar_id,
                created.url,
            )
        )
    except sqlite3.Error as e:
        # The external event exists; hand its id back even though it is not stored.
        logger.error(
            "external_event_not_recorded",
            external_event_id=created.external_event_id,
            error=str(e),
        )
        result["local_record_error"] = str(e)
        return result, confirmed

    logger.info("external_event_created", external_event_id=created.external_event_id)
    return result, updated


__all__ = [
    "cancel_event",
    "confirm_event",
    "create_event",
    "decline_event",
    "get_event_by_id",
    "list_user_events",
    "open_event",
    "require_creator",
    "require_event",
    "submit_availability_responses",
]
