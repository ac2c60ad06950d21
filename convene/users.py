"""
Tool: User Directory
Purpose: Users, placeholder users created by invitation, calendar credentials

Invited addresses that have never signed in become placeholder users so
they can be listed as participants straight away. When the real person
signs in with that email, the placeholder is promoted in place and keeps
every participation and response it already has.

Usage:
    from convene.users import sign_in, link_calendar_credential

    result = sign_in("google:1234", "ana@example.com", "Ana")
    link_calendar_credential(result["data"]["id"], access_token="ya29...")
"""

import sqlite3
from typing import Any

from convene import store
from convene.errors import (
    CoordinationError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    error_result,
)
from convene.logging_config import get_logger
from convene.models import User, generate_id, name_from_email, normalize_email, utc_now

logger = get_logger(__name__)

PLACEHOLDER_PREFIX = "placeholder:"


def placeholder_identity(email: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{email}"


def get_or_create_placeholder(conn: sqlite3.Connection, email: str) -> User:
    """
    Resolve an email to a user, creating a placeholder if none exists.

    Must be called inside an atomic unit; the caller owns the transaction.
    """
    normalized = normalize_email(email)
    existing = store.get_user_by_email(conn, normalized)
    if existing:
        return existing

    now = utc_now()
    user = User(
        id=generate_id(),
        identity_key=placeholder_identity(normalized),
        email=normalized,
        name=name_from_email(normalized),
        is_placeholder=True,
        created_at=now,
        updated_at=now,
    )
    store.insert_user(conn, user)
    logger.debug("placeholder_created", user_id=user.id, email=normalized)
    return user


def get_user(user_id: str) -> dict[str, Any]:
    with store.reader() as conn:
        user = store.get_user(conn, user_id)

    if not user:
        return error_result(NotFoundError(f"User not found: {user_id}"))
    return {"success": True, "data": user.to_dict()}


def find_user_by_email(email: str) -> dict[str, Any]:
    try:
        normalized = normalize_email(email)
    except ValidationError as e:
        return error_result(e)

    with store.reader() as conn:
        user = store.get_user_by_email(conn, normalized)

    if not user:
        return error_result(NotFoundError(f"No user with email: {normalized}"))
    return {"success": True, "data": user.to_dict()}


def sign_in(
    identity_key: str,
    email: str,
    name: str,
    avatar_url: str | None = None,
    access_token: str | None = None,
    refresh_token: str | None = None,
) -> dict[str, Any]:
    """
    Record a verified sign-in and return the user.

    Lookup order is identity key, then email. A placeholder found by email
    is claimed by this identity. A real user found by email under another
    identity is left untouched and the call fails with invalid_state.

    Args:
        identity_key: Stable id from the identity provider
        email: Address reported by the identity provider
        name: Display name
        avatar_url: Optional profile picture
        access_token: Optional calendar access token
        refresh_token: Optional calendar refresh token (kept if omitted)

    Returns:
        Dict with success status and user data (tokens excluded)
    """

    def _sign_in(conn: sqlite3.Connection) -> tuple[User, bool]:
        if not identity_key or not identity_key.strip():
            raise ValidationError("Identity key is required")
        if identity_key.startswith(PLACEHOLDER_PREFIX):
            raise ValidationError(f"Reserved identity key: {identity_key}")
        if not name or not name.strip():
            raise ValidationError("Name is required")
        normalized = normalize_email(email)

        fields: dict[str, Any] = {"name": name.strip(), "avatar_url": avatar_url}
        if access_token:
            fields["calendar_access_token"] = access_token
        if refresh_token:
            fields["calendar_refresh_token"] = refresh_token

        user = store.get_user_by_identity(conn, identity_key)
        if user:
            if user.email != normalized:
                other = store.get_user_by_email(conn, normalized)
                if other and other.id != user.id:
                    raise InvalidStateError(
                        f"Email {normalized} already belongs to another user"
                    )
                fields["email"] = normalized
            return store.update_user(conn, user.id, **fields), False

        user = store.get_user_by_email(conn, normalized)
        if user:
            if not user.is_placeholder:
                raise InvalidStateError(
                    f"Email {normalized} already belongs to another user",
                    detail="sign in with the original identity",
                )
            promoted = store.update_user(
                conn,
                user.id,
                identity_key=identity_key,
                is_placeholder=False,
                **fields,
            )
            return promoted, True

        now = utc_now()
        created = User(
            id=generate_id(),
            identity_key=identity_key,
            email=normalized,
            name=fields["name"],
            avatar_url=avatar_url,
            calendar_access_token=access_token,
            calendar_refresh_token=refresh_token,
            created_at=now,
            updated_at=now,
        )
        return store.insert_user(conn, created), False

    try:
        user, promoted = store.run_atomic(_sign_in)
    except CoordinationError as e:
        logger.warning("sign_in_failed", email=email, error=e.message)
        return error_result(e)

    if promoted:
        logger.info("placeholder_claimed", user_id=user.id, identity_key=identity_key)

    data = user.to_dict()
    data["claimed_placeholder"] = promoted
    return {"success": True, "data": data}


def link_calendar_credential(
    user_id: str,
    access_token: str,
    refresh_token: str | None = None,
) -> dict[str, Any]:
    """Attach calendar tokens to a user. A missing refresh token keeps the stored one."""

    def _link(conn: sqlite3.Connection) -> User:
        if not access_token:
            raise ValidationError("Access token is required")
        if not store.get_user(conn, user_id):
            raise NotFoundError(f"User not found: {user_id}")

        fields = {"calendar_access_token": access_token}
        if refresh_token:
            fields["calendar_refresh_token"] = refresh_token
        return store.update_user(conn, user_id, **fields)

    try:
        user = store.run_atomic(_link)
    except CoordinationError as e:
        return error_result(e)

    logger.info("calendar_credential_linked", user_id=user_id)
    return {"success": True, "data": user.to_dict()}


__all__ = [
    "find_user_by_email",
    "get_or_create_placeholder",
    "get_user",
    "link_calendar_credential",
    "placeholder_identity",
    "sign_in",
]
