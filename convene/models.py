"""
Tool: Coordination Models
Purpose: Data structures for meeting coordination (users, events, slots, responses)

Usage:
    from convene.models import Event, EventStatus, TimeSlot, parse_instant

All instants are timezone-aware UTC datetimes in memory and ISO-8601 UTC
strings (second precision) in the store. Naive datetimes are read as UTC.
"""

import re
import sqlite3
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from convene.errors import ValidationError


class EventStatus(str, Enum):
    """
    Event lifecycle status.

    - DRAFT: created, not yet opened for responses
    - OPEN: collecting availability
    - CONFIRMED: organizer picked a slot (terminal)
    - CANCELLED: organizer called it off (terminal)
    """

    DRAFT = "draft"
    OPEN = "open"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "EventStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]

    @property
    def is_closed(self) -> bool:
        """Closed events no longer accept responses."""
        return self in (EventStatus.CONFIRMED, EventStatus.CANCELLED)

    @classmethod
    def sources_for(cls, target: "EventStatus") -> tuple["EventStatus", ...]:
        """Statuses from which `target` may be reached."""
        return tuple(s for s in cls if target in ALLOWED_TRANSITIONS[s])


ALLOWED_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.OPEN, EventStatus.CONFIRMED}),
    EventStatus.OPEN: frozenset({EventStatus.CONFIRMED, EventStatus.CANCELLED}),
    EventStatus.CONFIRMED: frozenset(),
    EventStatus.CANCELLED: frozenset(),
}


class ParticipantStatus(str, Enum):
    INVITED = "invited"
    RESPONDED = "responded"
    DECLINED = "declined"


class ResponseStatus(str, Enum):
    AVAILABLE = "available"
    MAYBE = "maybe"
    UNAVAILABLE = "unavailable"

    @property
    def weight(self) -> float:
        """Contribution to a slot's availability score."""
        return {"available": 1.0, "maybe": 0.5, "unavailable": 0.0}[self.value]


# =============================================================================
# Helpers
# =============================================================================

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def generate_id() -> str:
    """Generate a short unique ID."""
    return uuid.uuid4().hex[:12]


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_instant(value: datetime | str, field_name: str = "time") -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid {field_name}: {value!r}") from None
    else:
        raise ValidationError(f"Missing {field_name}")

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def format_instant(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return parse_instant(dt).isoformat(timespec="seconds")


def _optional_instant(value: str | None) -> datetime | None:
    return parse_instant(value) if value else None


def normalize_email(email: str) -> str:
    """Strip and lower-case an address, rejecting malformed ones."""
    if not isinstance(email, str):
        raise ValidationError(f"Invalid email address: {email!r}")
    normalized = email.strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValidationError(f"Invalid email address: {email!r}")
    return normalized


def name_from_email(email: str) -> str:
    """Display name for a placeholder user: the address's local part."""
    return email.split("@")[0]


# =============================================================================
# Entities
# =============================================================================


@dataclass
class User:
    """
    Identity record.

    Placeholder users are created from invitation emails and carry no
    calendar credential until a real sign-in claims them.
    """

    id: str
    identity_key: str
    email: str
    name: str
    avatar_url: str | None = None
    calendar_access_token: str | None = None
    calendar_refresh_token: str | None = None
    is_placeholder: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def has_calendar_credential(self) -> bool:
        return bool(self.calendar_access_token)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict (excludes tokens)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "is_placeholder": self.is_placeholder,
            "has_calendar_credential": self.has_calendar_credential,
            "created_at": format_instant(self.created_at),
            "updated_at": format_instant(self.updated_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        data = dict(row)
        data["is_placeholder"] = bool(data["is_placeholder"])
        data["created_at"] = parse_instant(data["created_at"])
        data["updated_at"] = parse_instant(data["updated_at"])
        return cls(**data)


@dataclass
class Event:
    """A coordination unit: candidate slots plus the people voting on them."""

    id: str
    title: str
    created_by: str
    duration_minutes: int = 60
    description: str | None = None
    status: EventStatus = EventStatus.DRAFT
    deadline: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["deadline"] = format_instant(self.deadline)
        d["created_at"] = format_instant(self.created_at)
        d["updated_at"] = format_instant(self.updated_at)
        return d

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Event":
        data = dict(row)
        data["status"] = EventStatus(data["status"])
        data["deadline"] = _optional_instant(data["deadline"])
        data["created_at"] = parse_instant(data["created_at"])
        data["updated_at"] = parse_instant(data["updated_at"])
        return cls(**data)


@dataclass
class EventParticipant:
    id: str
    event_id: str
    user_id: str
    status: ParticipantStatus = ParticipantStatus.INVITED
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "EventParticipant":
        data = dict(row)
        data["status"] = ParticipantStatus(data["status"])
        data["created_at"] = parse_instant(data["created_at"])
        return cls(**data)


@dataclass
class TimeSlot:
    """One candidate interval. `position` is its creation order in the event."""

    id: str
    event_id: str
    start_time: datetime
    end_time: datetime
    created_by: str
    position: int = 0
    created_at: datetime = field(default_factory=utc_now)

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() / 60)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "start_time": format_instant(self.start_time),
            "end_time": format_instant(self.end_time),
            "created_by": self.created_by,
            "position": self.position,
            "created_at": format_instant(self.created_at),
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "TimeSlot":
        data = dict(row)
        for time_field in ["start_time", "end_time", "created_at"]:
            data[time_field] = parse_instant(data[time_field])
        return cls(**data)


@dataclass
class AvailabilityResponse:
    id: str
    time_slot_id: str
    user_id: str
    status: ResponseStatus
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "AvailabilityResponse":
        data = dict(row)
        data["status"] = ResponseStatus(data["status"])
        data["created_at"] = parse_instant(data["created_at"])
        data["updated_at"] = parse_instant(data["updated_at"])
        return cls(**data)


@dataclass
class ConfirmedEvent:
    """Result of confirmation. External ids are filled once calendar sync succeeds."""

    id: str
    event_id: str
    time_slot_id: str
    location: str | None = None
    external_event_id: str | None = None
    calendar_id: str | None = None
    calendar_url: str | None = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["created_at"] = format_instant(self.created_at)
        return d

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "ConfirmedEvent":
        data = dict(row)
        data["created_at"] = parse_instant(data["created_at"])
        return cls(**data)


# =============================================================================
# Calendar gateway payloads
# =============================================================================


@dataclass
class BusyInterval:
    """A block of time an external calendar reports as busy."""

    start: datetime
    end: datetime
    title: str = ""
    external_event_id: str | None = None

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching boundaries do not count."""
        return self.start < end and self.end > start

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": format_instant(self.start),
            "end": format_instant(self.end),
            "title": self.title,
            "external_event_id": self.external_event_id,
        }


@dataclass
class ExternalEventRequest:
    title: str
    start: datetime
    end: datetime
    attendee_emails: list[str] = field(default_factory=list)
    description: str | None = None
    location: str | None = None


@dataclass
class ExternalEventResult:
    external_event_id: str
    url: str | None = None
    calendar_id: str = "primary"


__all__ = [
    "ALLOWED_TRANSITIONS",
    "AvailabilityResponse",
    "BusyInterval",
    "ConfirmedEvent",
    "Event",
    "EventParticipant",
    "EventStatus",
    "ExternalEventRequest",
    "ExternalEventResult",
    "ParticipantStatus",
    "ResponseStatus",
    "TimeSlot",
    "User",
    "format_instant",
    "generate_id",
    "name_from_email",
    "normalize_email",
    "parse_instant",
    "utc_now",
]
