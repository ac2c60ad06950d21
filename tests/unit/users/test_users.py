"""Tests for convene/users.py

Covers placeholder creation from invitations, sign-in (including claiming a
placeholder) and calendar credential linking.
"""

from convene import store
from convene.users import (
    find_user_by_email,
    get_or_create_placeholder,
    get_user,
    link_calendar_credential,
    sign_in,
)


# ─────────────────────────────────────────────────────────────────────────────
# Placeholders
# ─────────────────────────────────────────────────────────────────────────────


class TestPlaceholders:
    """Tests for get_or_create_placeholder."""

    def test_creates_placeholder_with_local_part_name(self):
        user = store.run_atomic(lambda conn: get_or_create_placeholder(conn, " Ana.Lima@Example.com "))

        assert user.email == "ana.lima@example.com"
        assert user.name == "ana.lima"
        assert user.is_placeholder is True
        assert user.identity_key == "placeholder:ana.lima@example.com"
        assert user.has_calendar_credential is False

    def test_returns_existing_user(self, organizer):
        user = store.run_atomic(lambda conn: get_or_create_placeholder(conn, "OLIVIA@example.com"))

        assert user.id == organizer.id
        assert user.is_placeholder is False


# ─────────────────────────────────────────────────────────────────────────────
# Lookups
# ─────────────────────────────────────────────────────────────────────────────


class TestLookups:
    """Tests for get_user and find_user_by_email."""

    def test_get_user_excludes_tokens(self, organizer):
        result = get_user(organizer.id)

        assert result["success"] is True
        assert result["data"]["has_calendar_credential"] is True
        assert "calendar_access_token" not in result["data"]

    def test_get_missing_user(self):
        result = get_user("nope")

        assert result["success"] is False
        assert result["error_code"] == "not_found"

    def test_find_by_email_normalizes(self, organizer):
        result = find_user_by_email("  Olivia@EXAMPLE.com")

        assert result["success"] is True
        assert result["data"]["id"] == organizer.id

    def test_find_by_malformed_email(self):
        result = find_user_by_email("not-an-email")

        assert result["success"] is False
        assert result["error_code"] == "validation_error"


# ─────────────────────────────────────────────────────────────────────────────
# Sign-in
# ─────────────────────────────────────────────────────────────────────────────


class TestSignIn:
    """Tests for sign_in."""

    def test_creates_new_user(self):
        result = sign_in("google:1", "new@example.com", "New Person", access_token="tok")

        assert result["success"] is True
        assert result["data"]["email"] == "new@example.com"
        assert result["data"]["is_placeholder"] is False
        assert result["data"]["has_calendar_credential"] is True
        assert result["data"]["claimed_placeholder"] is False

    def test_repeat_sign_in_returns_same_user(self):
        first = sign_in("google:1", "new@example.com", "New Person")
        second = sign_in("google:1", "new@example.com", "Renamed")

        assert first["data"]["id"] == second["data"]["id"]
        assert second["data"]["name"] == "Renamed"

    def test_claims_placeholder_in_place(self, kickoff):
        placeholder_id = kickoff["users"]["a@x.com"]

        result = sign_in("google:a", "A@x.com", "Alice", access_token="tok-a")

        assert result["success"] is True
        assert result["data"]["id"] == placeholder_id
        assert result["data"]["is_placeholder"] is False
        assert result["data"]["name"] == "Alice"
        assert result["data"]["claimed_placeholder"] is True

        with store.reader() as conn:
            user = store.get_user(conn, placeholder_id)
            participant = store.get_participant(conn, kickoff["id"], placeholder_id)

        assert user.identity_key == "google:a"
        assert user.calendar_access_token == "tok-a"
        assert participant is not None

    def test_rejects_email_owned_by_other_identity(self, organizer):
        result = sign_in("github:99", organizer.email, "Impostor")

        assert result["success"] is False
        assert result["error_code"] == "invalid_state"

        with store.reader() as conn:
            assert store.get_user(conn, organizer.id).identity_key == organizer.identity_key

    def test_rejects_placeholder_identity_key(self):
        result = sign_in("placeholder:x@example.com", "x@example.com", "X")

        assert result["success"] is False
        assert result["error_code"] == "validation_error"

    def test_rejects_blank_name(self):
        result = sign_in("google:2", "blank@example.com", "  ")

        assert result["error_code"] == "validation_error"


# ─────────────────────────────────────────────────────────────────────────────
# Calendar Credentials
# ─────────────────────────────────────────────────────────────────────────────


class TestLinkCalendarCredential:
    """Tests for link_calendar_credential."""

    def test_links_tokens(self, outsider):
        result = link_calendar_credential(outsider.id, "access-1", "refresh-1")

        assert result["success"] is True
        assert result["data"]["has_calendar_credential"] is True

    def test_keeps_refresh_token_when_omitted(self, outsider):
        link_calendar_credential(outsider.id, "access-1", "refresh-1")
        link_calendar_credential(outsider.id, "access-2")

        with store.reader() as conn:
            user = store.get_user(conn, outsider.id)

        assert user.calendar_access_token == "access-2"
        assert user.calendar_refresh_token == "refresh-1"

    def test_unknown_user(self):
        result = link_calendar_credential("missing", "access")

        assert result["error_code"] == "not_found"
