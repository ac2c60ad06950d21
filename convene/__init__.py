"""Convene - Meeting coordination engine

Philosophy:
    Picking a meeting time is a group decision, not a calendar lookup.
    The organizer proposes a handful of candidate slots, everybody says
    what works for them, and the organizer commits to one. The commitment
    is local and final; pushing it to an external calendar is a courtesy
    that is allowed to fail.

Components:
    store.py: SQLite store adapter (atomic units, CRUD, status compare-and-set)
    models.py: Data structures (User, Event, TimeSlot, responses, confirmations)
    users.py: User directory (placeholder users, sign-in, calendar credentials)
    coordination/: Event lifecycle, slot ranking, statistics
    calendar/: Calendar gateway interface, Google Calendar, conflict checks
    config.py: args/convene.yaml validation
    logging_config.py: structlog setup
    cli.py: Command line entry point

Usage:
    from convene.coordination.engine import create_event, confirm_event
    from convene.coordination.ranking import find_optimal_time_slots

    result = create_event(
        creator_id=organizer["id"],
        title="Kickoff",
        participant_emails=["a@x.com", "b@x.com"],
        time_slots=[{"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T11:00:00Z"}],
    )
"""

import os
from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
ARGS_DIR = PROJECT_ROOT / "args"
CONFIG_PATH = ARGS_DIR / "convene.yaml"
DB_PATH = Path(os.environ.get("CONVENE_DB_PATH", str(DATA_DIR / "convene.db")))

__version__ = "0.1.0"

__all__ = [
    "PROJECT_ROOT",
    "DATA_DIR",
    "ARGS_DIR",
    "CONFIG_PATH",
    "DB_PATH",
]
