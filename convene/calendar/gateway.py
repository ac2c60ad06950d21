"""
Tool: Calendar Gateway
Purpose: Abstract interface for external calendar providers

The engine and the conflict checker only talk to this interface, so a
provider can be swapped (or faked in tests) without touching them.

Usage:
    from convene.calendar.gateway import get_gateway

    gateway = get_gateway()
    busy = await gateway.list_busy_intervals(user_id, start, end)
"""

from abc import ABC, abstractmethod
from datetime import datetime

from convene.config import get_config
from convene.models import BusyInterval, ExternalEventRequest, ExternalEventResult


class CalendarGateway(ABC):
    """
    Abstract base class for calendar providers.

    Implementations raise ExternalServiceError on provider failure and
    CalendarUnavailableError when the user has no usable credential.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'google')."""
        pass

    @abstractmethod
    async def list_busy_intervals(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        """
        List the user's busy intervals intersecting [start, end).

        Args:
            user_id: User whose calendar is read
            start: Window start (UTC)
            end: Window end (UTC)

        Returns:
            Busy intervals reported by the provider
        """
        pass

    @abstractmethod
    async def create_external_event(
        self,
        user_id: str,
        request: ExternalEventRequest,
    ) -> ExternalEventResult:
        """
        Create an event on the user's calendar and invite the attendees.

        Args:
            user_id: Calendar owner (the organizer)
            request: Title, interval, attendees, description, location

        Returns:
            External event id, calendar id and link
        """
        pass


def get_gateway(provider: str | None = None) -> CalendarGateway:
    """Build the gateway for a provider name (defaults to calendar.provider)."""
    name = provider or get_config().calendar.provider

    if name == "google":
        from convene.calendar.google_calendar import GoogleCalendarGateway

        return GoogleCalendarGateway()
    raise ValueError(f"Unknown calendar provider: {name}")


__all__ = ["CalendarGateway", "get_gateway"]
