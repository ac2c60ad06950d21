"""
Calendar - External calendar gateway and conflict checks

Components:
    gateway.py: CalendarGateway interface and provider factory
    google_calendar.py: Google Calendar v3 implementation (aiohttp)
    conflicts.py: Concurrent per-user conflict detection
"""

from convene.calendar.conflicts import check_scheduling_conflicts
from convene.calendar.gateway import CalendarGateway, get_gateway

__all__ = ["CalendarGateway", "check_scheduling_conflicts", "get_gateway"]
