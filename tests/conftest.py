"""Shared test fixtures for Convene tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files (patched into convene.store)
- Standard users and a ready-made event
- A fake calendar gateway

Usage:
    def test_something(organizer, make_user):
        # every test gets its own empty database
        ...
"""

from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from convene import store
from convene.calendar.gateway import CalendarGateway
from convene.coordination.engine import create_event
from convene.errors import CalendarUnavailableError, ExternalServiceError
from convene.models import (
    BusyInterval,
    ExternalEventRequest,
    ExternalEventResult,
    User,
    generate_id,
    name_from_email,
)


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db(tmp_path: Path) -> Path:
    """Path to a fresh database file (WAL side files live next to it in tmp_path)."""
    return tmp_path / "convene.db"


@pytest.fixture(autouse=True)
def isolated_store(temp_db: Path) -> Generator[Path, None, None]:
    """Point the store at the temporary database for every test."""
    with patch.object(store, "DB_PATH", temp_db):
        yield temp_db


# ─────────────────────────────────────────────────────────────────────────────
# User Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def make_user() -> Callable[..., User]:
    """Factory inserting a signed-in user.

    Returns:
        make_user(email, name=None, access_token=None) -> User
    """

    def _make(email: str, name: str | None = None, access_token: str | None = None) -> User:
        user = User(
            id=generate_id(),
            identity_key=f"test:{email}",
            email=email,
            name=name or name_from_email(email).title(),
            calendar_access_token=access_token,
        )
        return store.run_atomic(lambda conn: store.insert_user(conn, user))

    return _make


@pytest.fixture
def organizer(make_user) -> User:
    """Organizer with a linked calendar."""
    return make_user("olivia@example.com", "Olivia", access_token="token-olivia")


@pytest.fixture
def outsider(make_user) -> User:
    """Signed-in user who is not part of any event."""
    return make_user("mallory@example.com", "Mallory")


# ─────────────────────────────────────────────────────────────────────────────
# Event Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def kickoff(organizer) -> dict:
    """Draft event "Kickoff" with S1 10:00-11:00, S2 14:00-15:00 and two invitees.

    Returns:
        Hydrated event dict plus "slots" = {"S1": id, "S2": id}
        and "users" = {email: user_id}
    """
    result = create_event(
        creator_id=organizer.id,
        title="Kickoff",
        participant_emails=["a@x.com", "b@x.com"],
        time_slots=[
            {"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T11:00:00Z"},
            {"start": "2026-03-02T14:00:00Z", "end": "2026-03-02T15:00:00Z"},
        ],
    )
    assert result["success"], result
    data = result["data"]
    data["slots"] = {
        "S1": data["time_slots"][0]["id"],
        "S2": data["time_slots"][1]["id"],
    }
    data["users"] = {p["email"]: p["id"] for p in data["participants"]}
    return data


# ─────────────────────────────────────────────────────────────────────────────
# Calendar Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeCalendarGateway(CalendarGateway):
    """In-memory gateway recording calls.

    busy: user_id -> busy intervals
    failing_users: user_ids whose lookups raise ExternalServiceError
    fail_create: make create_external_event raise
    """

    def __init__(self):
        self.busy: dict[str, list[BusyInterval]] = {}
        self.failing_users: set[str] = set()
        self.fail_create = False
        self.busy_calls: list[tuple[str, datetime, datetime]] = []
        self.created: list[tuple[str, ExternalEventRequest]] = []

    @property
    def provider_name(self) -> str:
        return "fake"

    async def list_busy_intervals(self, user_id, start, end):
        self.busy_calls.append((user_id, start, end))
        if user_id in self.failing_users:
            raise ExternalServiceError(f"calendar down for {user_id}")
        return list(self.busy.get(user_id, []))

    async def create_external_event(self, user_id, request):
        if self.fail_create:
            raise CalendarUnavailableError("token expired")
        self.created.append((user_id, request))
        return ExternalEventResult(
            external_event_id=f"ext-{len(self.created)}",
            url=f"https://calendar.example.com/ext-{len(self.created)}",
            calendar_id="primary",
        )


@pytest.fixture
def fake_gateway() -> FakeCalendarGateway:
    return FakeCalendarGateway()
