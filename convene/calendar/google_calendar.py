"""
Tool: Google Calendar Gateway
Purpose: Busy intervals and event creation via the Google Calendar v3 API

Uses the calendar access token stored on the user. Token refresh is the
identity layer's job; an expired token surfaces as ExternalServiceError.

Usage:
    from convene.calendar.google_calendar import GoogleCalendarGateway

    gateway = GoogleCalendarGateway()
    busy = await gateway.list_busy_intervals(user_id, start, end)
    created = await gateway.create_external_event(user_id, request)

Dependencies:
    - aiohttp (pip install aiohttp)
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

import aiohttp

from convene import store
from convene.calendar.gateway import CalendarGateway
from convene.config import CalendarConfig, get_config
from convene.errors import CalendarUnavailableError, ExternalServiceError
from convene.logging_config import get_logger
from convene.models import BusyInterval, ExternalEventRequest, ExternalEventResult, parse_instant

logger = get_logger(__name__)

# Google API endpoints
CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"


def _rfc3339(dt: datetime) -> str:
    return parse_instant(dt).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class GoogleCalendarGateway(CalendarGateway):
    """Google Calendar implementation of the calendar gateway."""

    def __init__(self, settings: CalendarConfig | None = None):
        self.settings = settings or get_config().calendar

    @property
    def provider_name(self) -> str:
        return "google"

    def _get_access_token(self, user_id: str) -> str:
        """Look up the user's calendar token or raise CalendarUnavailableError."""
        with store.reader() as conn:
            user = store.get_user(conn, user_id)

        if not user:
            raise CalendarUnavailableError(f"User not found: {user_id}")
        if not user.has_calendar_credential:
            raise CalendarUnavailableError(f"User {user_id} has not linked a calendar")
        return user.calendar_access_token

    def _get_headers(self, access_token: str) -> dict[str, str]:
        """Get authorization headers for API requests."""
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _make_request(
        self,
        method: str,
        url: str,
        access_token: str,
        data: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        """
        Make an authenticated API request.

        Args:
            method: HTTP method (GET or POST)
            url: Full API URL
            access_token: Bearer token
            data: Request body (for POST)
            params: Query parameters

        Returns:
            dict with response data or error
        """
        headers = self._get_headers(access_token)
        timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                if method == "GET":
                    async with session.get(url, headers=headers, params=params) as resp:
                        return await self._handle_response(resp)
                elif method == "POST":
                    async with session.post(url, headers=headers, json=data, params=params) as resp:
                        return await self._handle_response(resp)
                else:
                    return {"success": False, "error": f"Unknown method: {method}"}

        except asyncio.TimeoutError:
            return {"success": False, "error": "Request timed out"}
        except aiohttp.ClientError as e:
            return {"success": False, "error": f"Request failed: {e!s}"}

    async def _handle_response(self, resp) -> dict[str, Any]:
        """Handle API response."""
        try:
            data = await resp.json()
        except (aiohttp.ContentTypeError, ValueError):
            data = {}

        if resp.status in (200, 201):
            return {"success": True, "data": data}
        elif resp.status == 401:
            return {"success": False, "error": "Authentication failed - token may be expired"}
        elif resp.status == 403:
            return {"success": False, "error": "Permission denied - insufficient scopes"}
        elif resp.status == 404:
            return {"success": False, "error": "Calendar not found"}
        else:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            return {"success": False, "error": message or f"HTTP {resp.status}"}

    def _events_url(self) -> str:
        return f"{CALENDAR_API_BASE}/calendars/{self.settings.calendar_id}/events"

    # =========================================================================
    # Gateway operations
    # =========================================================================

    async def list_busy_intervals(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        """List opaque, timed events intersecting [start, end)."""
        access_token = self._get_access_token(user_id)

        params = {
            "timeMin": _rfc3339(start),
            "timeMax": _rfc3339(end),
            "maxResults": self.settings.max_results,
            "singleEvents": "true",
            "orderBy": "startTime",
        }

        intervals: list[BusyInterval] = []
        while True:
            result = await self._make_request("GET", self._events_url(), access_token, params=params)
            if not result.get("success"):
                raise ExternalServiceError(
                    f"Could not read calendar for user {user_id}",
                    detail=result.get("error"),
                )

            data = result.get("data", {})
            for item in data.get("items", []):
                interval = self._parse_busy_interval(item)
                if interval:
                    intervals.append(interval)

            page_token = data.get("nextPageToken")
            if not page_token:
                break
            params = {**params, "pageToken": page_token}

        return intervals

    def _parse_busy_interval(self, item: dict) -> BusyInterval | None:
        """Parse a Google event into a busy interval, or None if it does not block time."""
        if item.get("status") == "cancelled" or item.get("transparency") == "transparent":
            return None

        start_data = item.get("start", {})
        end_data = item.get("end", {})
        # All-day entries carry "date" instead of "dateTime"
        if "dateTime" not in start_data or "dateTime" not in end_data:
            return None

        return BusyInterval(
            start=parse_instant(start_data["dateTime"]),
            end=parse_instant(end_data["dateTime"]),
            title=item.get("summary", ""),
            external_event_id=item.get("id"),
        )

    async def create_external_event(
        self,
        user_id: str,
        request: ExternalEventRequest,
    ) -> ExternalEventResult:
        """Insert the event with attendees, reminder overrides and invitation emails."""
        access_token = self._get_access_token(user_id)
        tz = self.settings.timezone

        body: dict[str, Any] = {
            "summary": request.title,
            "start": {"dateTime": _rfc3339(request.start), "timeZone": tz},
            "end": {"dateTime": _rfc3339(request.end), "timeZone": tz},
            "attendees": [{"email": email} for email in request.attendee_emails],
            "reminders": {
                "useDefault": False,
                "overrides": [
                    {"method": r.method, "minutes": r.minutes}
                    for r in self.settings.reminders
                ],
            },
        }
        if request.description:
            body["description"] = request.description
        if request.location:
            body["location"] = request.location

        result = await self._make_request(
            "POST",
            self._events_url(),
            access_token,
            data=body,
            params={"sendUpdates": self.settings.send_updates},
        )
        if not result.get("success"):
            raise ExternalServiceError(
                f"Could not create calendar event for user {user_id}",
                detail=result.get("error"),
            )

        data = result.get("data", {})
        if not data.get("id"):
            raise ExternalServiceError("Calendar API returned no event id")

        logger.debug("google_event_created", external_event_id=data["id"], attendees=len(request.attendee_emails))
        return ExternalEventResult(
            external_event_id=data["id"],
            url=data.get("htmlLink"),
            calendar_id=self.settings.calendar_id,
        )


__all__ = ["CALENDAR_API_BASE", "GoogleCalendarGateway"]
