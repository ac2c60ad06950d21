"""
Tool: Coordination Store
Purpose: SQLite store adapter for users, events, slots, responses, confirmations

Every engine operation opens its own connection and runs its writes inside
one atomic unit:

    with atomic() as conn:
        insert_event(conn, event)
        insert_time_slot(conn, slot)
    # committed here, rolled back if anything above raised

Atomic units start with BEGIN IMMEDIATE, so writers are serialized and the
check-then-write inside a unit cannot interleave with another writer. The
database runs in WAL mode and reader() wraps its block in one deferred
transaction, so a multi-statement read sees a single committed snapshot.

Dependencies:
    - sqlite3 (stdlib)
"""

import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Optional, TypeVar

from convene import DB_PATH
from convene.config import get_config
from convene.models import (
    AvailabilityResponse,
    ConfirmedEvent,
    Event,
    EventParticipant,
    EventStatus,
    ParticipantStatus,
    TimeSlot,
    User,
    format_instant,
    utc_now,
)

T = TypeVar("T")


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        identity_key TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        avatar_url TEXT,
        calendar_access_token TEXT,
        calendar_refresh_token TEXT,
        is_placeholder INTEGER NOT NULL DEFAULT 0,
        created_at DATETIME NOT NULL,
        updated_at DATETIME NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        duration_minutes INTEGER NOT NULL DEFAULT 60 CHECK(duration_minutes > 0),
        created_by TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft' CHECK(status IN ('draft', 'open', 'confirmed', 'cancelled')),
        deadline DATETIME,
        created_at DATETIME NOT NULL,
        updated_at DATETIME NOT NULL,
        FOREIGN KEY(created_by) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_participants (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'invited' CHECK(status IN ('invited', 'responded', 'declined')),
        created_at DATETIME NOT NULL,
        UNIQUE(event_id, user_id),
        FOREIGN KEY(event_id) REFERENCES events(id) ON DELETE CASCADE,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS time_slots (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL,
        position INTEGER NOT NULL,
        start_time DATETIME NOT NULL,
        end_time DATETIME NOT NULL,
        created_by TEXT NOT NULL,
        created_at DATETIME NOT NULL,
        CHECK(end_time > start_time),
        FOREIGN KEY(event_id) REFERENCES events(id) ON DELETE CASCADE,
        FOREIGN KEY(created_by) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS availability_responses (
        id TEXT PRIMARY KEY,
        time_slot_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        status TEXT NOT NULL CHECK(status IN ('available', 'maybe', 'unavailable')),
        created_at DATETIME NOT NULL,
        updated_at DATETIME NOT NULL,
        UNIQUE(time_slot_id, user_id),
        FOREIGN KEY(time_slot_id) REFERENCES time_slots(id) ON DELETE CASCADE,
        FOREIGN KEY(user_id) REFERENCES users(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS confirmed_events (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL UNIQUE,
        time_slot_id TEXT NOT NULL,
        location TEXT,
        external_event_id TEXT,
        calendar_id TEXT,
        calendar_url TEXT,
        created_at DATETIME NOT NULL,
        FOREIGN KEY(event_id) REFERENCES events(id) ON DELETE CASCADE,
        FOREIGN KEY(time_slot_id) REFERENCES time_slots(id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_events_creator ON events(created_by)",
    "CREATE INDEX IF NOT EXISTS idx_events_status ON events(status)",
    "CREATE INDEX IF NOT EXISTS idx_participants_user ON event_participants(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_slots_event ON time_slots(event_id, position)",
    "CREATE INDEX IF NOT EXISTS idx_responses_user ON availability_responses(user_id)",
]


def get_connection() -> sqlite3.Connection:
    """
    Get database connection, creating tables if needed.

    The connection is in autocommit mode; use atomic() for units of work.

    Returns:
        SQLite connection with row_factory set
    """
    settings = get_config().store

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        str(DB_PATH),
        timeout=settings.busy_timeout_seconds,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    if settings.wal_mode:
        conn.execute("PRAGMA journal_mode = WAL")

    for statement in SCHEMA:
        conn.execute(statement)

    return conn


@contextmanager
def atomic(conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """
    Run a block as one serializable transaction.

    Commits on normal exit, rolls back and re-raises on any exception.
    A connection passed in is left open; one opened here is closed.
    """
    owns_connection = conn is None
    if conn is None:
        conn = get_connection()

    try:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        if owns_connection:
            conn.close()


def run_atomic(fn: Callable[[sqlite3.Connection], T]) -> T:
    """Run fn(conn) inside one atomic unit and return its result."""
    with atomic() as conn:
        return fn(conn)


@contextmanager
def reader() -> Iterator[sqlite3.Connection]:
    """
    Connection for read-only operations, closed on exit.

    The block runs in one deferred transaction, so every SELECT in it sees
    the same committed snapshot even while writers commit in between.
    """
    conn = get_connection()
    try:
        conn.execute("BEGIN")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    finally:
        conn.close()


def _now() -> str:
    return format_instant(utc_now())


# =============================================================================
# Users
# =============================================================================


def insert_user(conn: sqlite3.Connection, user: User) -> User:
    conn.execute(
        """
        INSERT INTO users (
            id, identity_key, email, name, avatar_url,
            calendar_access_token, calendar_refresh_token,
            is_placeholder, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            user.id,
            user.identity_key,
            user.email,
            user.name,
            user.avatar_url,
            user.calendar_access_token,
            user.calendar_refresh_token,
            int(user.is_placeholder),
            format_instant(user.created_at),
            format_instant(user.updated_at),
        ),
    )
    return user


def get_user(conn: sqlite3.Connection, user_id: str) -> User | None:
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    return User.from_row(row) if row else None


def get_user_by_email(conn: sqlite3.Connection, email: str) -> User | None:
    row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
    return User.from_row(row) if row else None


def get_user_by_identity(conn: sqlite3.Connection, identity_key: str) -> User | None:
    row = conn.execute(
        "SELECT * FROM users WHERE identity_key = ?", (identity_key,)
    ).fetchone()
    return User.from_row(row) if row else None


def get_users(conn: sqlite3.Connection, user_ids: list[str]) -> dict[str, User]:
    if not user_ids:
        return {}
    placeholders = ", ".join("?" for _ in user_ids)
    rows = conn.execute(
        f"SELECT * FROM users WHERE id IN ({placeholders})", list(user_ids)
    ).fetchall()
    return {row["id"]: User.from_row(row) for row in rows}


USER_UPDATABLE_FIELDS = {
    "identity_key",
    "email",
    "name",
    "avatar_url",
    "calendar_access_token",
    "calendar_refresh_token",
    "is_placeholder",
}


def update_user(conn: sqlite3.Connection, user_id: str, **fields: Any) -> User | None:
    """Update the given columns of a user and return the fresh row."""
    unknown = set(fields) - USER_UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update user fields: {sorted(unknown)}")

    updates = []
    params: list[Any] = []
    for name, value in fields.items():
        updates.append(f"{name} = ?")
        params.append(int(value) if name == "is_placeholder" else value)

    updates.append("updated_at = ?")
    params.append(_now())
    params.append(user_id)

    conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", params)
    return get_user(conn, user_id)


# =============================================================================
# Events
# =============================================================================


def insert_event(conn: sqlite3.Connection, event: Event) -> Event:
    conn.execute(
        """
        INSERT INTO events (
            id, title, description, duration_minutes, created_by,
            status, deadline, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            event.id,
            event.title,
            event.description,
            event.duration_minutes,
            event.created_by,
            event.status.value,
            format_instant(event.deadline),
            format_instant(event.created_at),
            format_instant(event.updated_at),
        ),
    )
    return event


def get_event(conn: sqlite3.Connection, event_id: str) -> Event | None:
    row = conn.execute("SELECT * FROM events WHERE id = ?", (event_id,)).fetchone()
    return Event.from_row(row) if row else None


def has_event_access(conn: sqlite3.Connection, event_id: str, user_id: str) -> bool:
    """True if the user created the event or is listed as a participant."""
    row = conn.execute(
        """
        SELECT 1 FROM events e
        LEFT JOIN event_participants ep ON e.id = ep.event_id AND ep.user_id = ?
        WHERE e.id = ? AND (e.created_by = ? OR ep.user_id IS NOT NULL)
        LIMIT 1
        """,
        (user_id, event_id, user_id),
    ).fetchone()
    return row is not None


def list_events_for_user(
    conn: sqlite3.Connection,
    user_id: str,
    status: EventStatus | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[tuple[Event, str]]:
    """Events the user created or was invited to, newest first, with creator name."""
    query = """
        SELECT e.*, u.name AS creator_name
        FROM events e
        JOIN users u ON e.created_by = u.id
        WHERE (
            e.created_by = ?
            OR e.id IN (SELECT event_id FROM event_participants WHERE user_id = ?)
        )
    """
    params: list[Any] = [user_id, user_id]

    if status is not None:
        query += " AND e.status = ?"
        params.append(status.value)

    query += " ORDER BY e.created_at DESC, e.rowid DESC"

    if limit is not None:
        query += " LIMIT ? OFFSET ?"
        params.extend([limit, offset])
    elif offset:
        # SQLite only accepts OFFSET after LIMIT; -1 means no limit
        query += " LIMIT -1 OFFSET ?"
        params.append(offset)

    results = []
    for row in conn.execute(query, params).fetchall():
        data = dict(row)
        creator_name = data.pop("creator_name")
        results.append((Event.from_row(data), creator_name))
    return results


def transition_event_status(
    conn: sqlite3.Connection,
    event_id: str,
    target: EventStatus,
) -> bool:
    """
    Compare-and-set the event status.

    The update only matches when the current status is one the transition
    table allows to reach `target`. Returns False when nothing matched.
    """
    sources = EventStatus.sources_for(target)
    if not sources:
        return False

    placeholders = ", ".join("?" for _ in sources)
    cursor = conn.execute(
        f"""
        UPDATE events SET status = ?, updated_at = ?
        WHERE id = ? AND status IN ({placeholders})
        """,
        (target.value, _now(), event_id, *[s.value for s in sources]),
    )
    return cursor.rowcount == 1


# =============================================================================
# Participants
# =============================================================================


def insert_participant(conn: sqlite3.Connection, participant: EventParticipant) -> EventParticipant:
    conn.execute(
        """
        INSERT INTO event_participants (id, event_id, user_id, status, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            participant.id,
            participant.event_id,
            participant.user_id,
            participant.status.value,
            format_instant(participant.created_at),
        ),
    )
    return participant


def get_participant(
    conn: sqlite3.Connection, event_id: str, user_id: str
) -> EventParticipant | None:
    row = conn.execute(
        "SELECT * FROM event_participants WHERE event_id = ? AND user_id = ?",
        (event_id, user_id),
    ).fetchone()
    return EventParticipant.from_row(row) if row else None


def list_participants(
    conn: sqlite3.Connection, event_id: str
) -> list[tuple[EventParticipant, User]]:
    """Participants of an event in invitation order, each with its user."""
    rows = conn.execute(
        """
        SELECT ep.id AS participant_id, ep.status AS participation_status,
               ep.created_at AS participant_created_at, u.*
        FROM event_participants ep
        JOIN users u ON ep.user_id = u.id
        WHERE ep.event_id = ?
        ORDER BY ep.rowid
        """,
        (event_id,),
    ).fetchall()

    results = []
    for row in rows:
        data = dict(row)
        participant = EventParticipant.from_row({
            "id": data.pop("participant_id"),
            "event_id": event_id,
            "user_id": data["id"],
            "status": data.pop("participation_status"),
            "created_at": data.pop("participant_created_at"),
        })
        results.append((participant, User.from_row(data)))
    return results


def set_participant_status(
    conn: sqlite3.Connection,
    event_id: str,
    user_id: str,
    status: ParticipantStatus,
    from_statuses: tuple[ParticipantStatus, ...] | None = None,
) -> bool:
    """Set a participant's status, optionally only from the given statuses."""
    query = "UPDATE event_participants SET status = ? WHERE event_id = ? AND user_id = ?"
    params: list[Any] = [status.value, event_id, user_id]

    if from_statuses:
        placeholders = ", ".join("?" for _ in from_statuses)
        query += f" AND status IN ({placeholders})"
        params.extend(s.value for s in from_statuses)

    return conn.execute(query, params).rowcount == 1


def count_participants(conn: sqlite3.Connection, event_id: str) -> tuple[int, int]:
    """Return (total, responded) participant counts for an event."""
    row = conn.execute(
        """
        SELECT COUNT(*) AS total,
               COALESCE(SUM(CASE WHEN status = 'responded' THEN 1 ELSE 0 END), 0) AS responded
        FROM event_participants
        WHERE event_id = ?
        """,
        (event_id,),
    ).fetchone()
    return row["total"], row["responded"]


# =============================================================================
# Time slots
# =============================================================================


def insert_time_slot(conn: sqlite3.Connection, slot: TimeSlot) -> TimeSlot:
    conn.execute(
        """
        INSERT INTO time_slots (id, event_id, position, start_time, end_time, created_by, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            slot.id,
            slot.event_id,
            slot.position,
            format_instant(slot.start_time),
            format_instant(slot.end_time),
            slot.created_by,
            format_instant(slot.created_at),
        ),
    )
    return slot


def list_time_slots(conn: sqlite3.Connection, event_id: str) -> list[TimeSlot]:
    """Slots of an event in creation order."""
    rows = conn.execute(
        "SELECT * FROM time_slots WHERE event_id = ? ORDER BY position",
        (event_id,),
    ).fetchall()
    return [TimeSlot.from_row(row) for row in rows]


def get_time_slot(conn: sqlite3.Connection, time_slot_id: str) -> TimeSlot | None:
    row = conn.execute(
        "SELECT * FROM time_slots WHERE id = ?", (time_slot_id,)
    ).fetchone()
    return TimeSlot.from_row(row) if row else None


# =============================================================================
# Availability responses
# =============================================================================


def delete_user_responses(conn: sqlite3.Connection, event_id: str, user_id: str) -> int:
    """Remove every response the user gave on this event's slots."""
    cursor = conn.execute(
        """
        DELETE FROM availability_responses
        WHERE user_id = ? AND time_slot_id IN (
            SELECT id FROM time_slots WHERE event_id = ?
        )
        """,
        (user_id, event_id),
    )
    return cursor.rowcount


def upsert_response(conn: sqlite3.Connection, response: AvailabilityResponse) -> None:
    conn.execute(
        """
        INSERT INTO availability_responses (id, time_slot_id, user_id, status, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(time_slot_id, user_id)
        DO UPDATE SET status = excluded.status, updated_at = excluded.updated_at
        """,
        (
            response.id,
            response.time_slot_id,
            response.user_id,
            response.status.value,
            format_instant(response.created_at),
            format_instant(response.updated_at),
        ),
    )


def list_responses(conn: sqlite3.Connection, event_id: str) -> list[AvailabilityResponse]:
    """All responses on an event's slots, oldest first."""
    rows = conn.execute(
        """
        SELECT ar.* FROM availability_responses ar
        JOIN time_slots ts ON ar.time_slot_id = ts.id
        WHERE ts.event_id = ?
        ORDER BY ar.rowid
        """,
        (event_id,),
    ).fetchall()
    return [AvailabilityResponse.from_row(row) for row in rows]


# =============================================================================
# Confirmations
# =============================================================================


def insert_confirmed_event(conn: sqlite3.Connection, confirmed: ConfirmedEvent) -> ConfirmedEvent:
    conn.execute(
        """
        INSERT INTO confirmed_events (
            id, event_id, time_slot_id, location,
            external_event_id, calendar_id, calendar_url, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            confirmed.id,
            confirmed.event_id,
            confirmed.time_slot_id,
            confirmed.location,
            confirmed.external_event_id,
            confirmed.calendar_id,
            confirmed.calendar_url,
            format_instant(confirmed.created_at),
        ),
    )
    return confirmed


def get_confirmed_event(conn: sqlite3.Connection, event_id: str) -> ConfirmedEvent | None:
    row = conn.execute(
        "SELECT * FROM confirmed_events WHERE event_id = ?", (event_id,)
    ).fetchone()
    return ConfirmedEvent.from_row(row) if row else None


def record_external_event(
    conn: sqlite3.Connection,
    event_id: str,
    external_event_id: str,
    calendar_id: str,
    calendar_url: str | None,
) -> ConfirmedEvent | None:
    conn.execute(
        """
        UPDATE confirmed_events
        SET external_event_id = ?, calendar_id = ?, calendar_url = ?
        WHERE event_id = ?
        """,
        (external_event_id, calendar_id, calendar_url, event_id),
    )
    return get_confirmed_event(conn, event_id)


__all__ = [
    "atomic",
    "count_participants",
    "delete_user_responses",
    "get_confirmed_event",
    "get_connection",
    "get_event",
    "get_participant",
    "get_time_slot",
    "get_user",
    "get_user_by_email",
    "get_user_by_identity",
    "get_users",
    "has_event_access",
    "insert_confirmed_event",
    "insert_event",
    "insert_participant",
    "insert_time_slot",
    "insert_user",
    "list_events_for_user",
    "list_participants",
    "list_responses",
    "list_time_slots",
    "reader",
    "record_external_event",
    "run_atomic",
    "set_participant_status",
    "transition_event_status",
    "update_user",
    "upsert_response",
]
