"""
Convene Command Line Interface

Main entry point for the `convene` command. Every action prints its result
dict as JSON and exits non-zero when the result is a failure.

Usage:
    # Sign in (creates or claims a user)
    convene --action sign-in --identity google:123 --email ana@x.com --name Ana

    # Propose a meeting
    convene --action create --user <id> --title "Kickoff" \\
        --slot 2026-03-02T10:00:00Z/2026-03-02T11:00:00Z \\
        --slot 2026-03-02T14:00:00Z/2026-03-02T15:00:00Z \\
        --participants a@x.com,b@x.com

    # Respond
    convene --action respond --user <id> --event <id> \\
        --response <slot-id>=available --response <slot-id>=maybe

    # Rank, inspect, confirm
    convene --action rank --event <id>
    convene --action stats --event <id>
    convene --action confirm --user <id> --event <id> --slot-id <slot-id> --no-invites

    # Conflicts
    convene --action conflicts --users <id>,<id> --start ... --end ...
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from convene import __version__
from convene.calendar.conflicts import check_scheduling_conflicts
from convene.coordination.engine import (
    cancel_event,
    confirm_event,
    create_event,
    decline_event,
    get_event_by_id,
    list_user_events,
    open_event,
    submit_availability_responses,
)
from convene.coordination.ranking import find_optimal_time_slots
from convene.coordination.statistics import get_event_statistics
from convene.logging_config import setup_logging
from convene.users import find_user_by_email, get_user, link_calendar_credential, sign_in

ACTIONS = [
    "sign-in",
    "link-calendar",
    "user",
    "find-user",
    "create",
    "get",
    "list",
    "respond",
    "decline",
    "open",
    "cancel",
    "rank",
    "stats",
    "confirm",
    "conflicts",
]

# Arguments each action cannot run without
REQUIRED = {
    "sign-in": ["identity", "email", "name"],
    "link-calendar": ["user", "access_token"],
    "user": ["user"],
    "find-user": ["email"],
    "create": ["user", "title", "slot"],
    "get": ["user", "event"],
    "list": ["user"],
    "respond": ["user", "event"],
    "decline": ["user", "event"],
    "open": ["user", "event"],
    "cancel": ["user", "event"],
    "rank": ["event"],
    "stats": ["event"],
    "confirm": ["user", "event", "slot_id"],
    "conflicts": ["users", "start", "end"],
}


def _split_csv(value: str | None) -> list[str]:
    return [x.strip() for x in value.split(",") if x.strip()] if value else []


def _parse_slot(value: str) -> dict[str, str]:
    start, sep, end = value.partition("/")
    if not sep:
        raise argparse.ArgumentTypeError(f"Slot must be START/END: {value}")
    return {"start": start, "end": end}


def _parse_response(value: str) -> dict[str, str]:
    slot_id, sep, status = value.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"Response must be SLOT_ID=STATUS: {value}")
    return {"time_slot_id": slot_id, "status": status}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="convene",
        description="Convene - meeting coordination engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", "-V", action="version", version=f"convene {__version__}")
    parser.add_argument("--action", required=True, choices=ACTIONS, help="Operation to run")

    # Identity
    parser.add_argument("--user", help="Acting user ID")
    parser.add_argument("--identity", help="Identity key from the identity provider")
    parser.add_argument("--email", help="Email address")
    parser.add_argument("--name", help="Display name")
    parser.add_argument("--avatar-url", help="Avatar URL")
    parser.add_argument("--access-token", help="Calendar access token")
    parser.add_argument("--refresh-token", help="Calendar refresh token")

    # Events
    parser.add_argument("--event", help="Event ID")
    parser.add_argument("--title", help="Event title")
    parser.add_argument("--description", help="Event description")
    parser.add_argument("--duration", type=int, help="Duration in minutes")
    parser.add_argument("--deadline", help="Response deadline (ISO format)")
    parser.add_argument("--participants", help="Participant emails (comma-separated)")
    parser.add_argument(
        "--slot", action="append", type=_parse_slot, help="Candidate slot START/END (repeatable)"
    )
    parser.add_argument("--status", help="Status filter for list")
    parser.add_argument("--limit", type=int, help="Max results")
    parser.add_argument("--offset", type=int, default=0, help="Results to skip")

    # Responses and confirmation
    parser.add_argument(
        "--response", action="append", type=_parse_response,
        help="Availability SLOT_ID=STATUS (repeatable)",
    )
    parser.add_argument("--slot-id", help="Time slot ID to confirm")
    parser.add_argument("--location", help="Meeting location")
    parser.add_argument("--no-invites", action="store_true", help="Skip calendar invites")

    # Conflicts
    parser.add_argument("--users", help="User IDs (comma-separated)")
    parser.add_argument("--start", help="Interval start (ISO format)")
    parser.add_argument("--end", help="Interval end (ISO format)")

    parser.add_argument("--log-level", help="Log level (default from config)")
    return parser


def run_action(args: argparse.Namespace) -> dict[str, Any]:
    """Dispatch parsed arguments to the matching operation."""
    action = args.action

    if action == "sign-in":
        return sign_in(
            identity_key=args.identity,
            email=args.email,
            name=args.name,
            avatar_url=args.avatar_url,
            access_token=args.access_token,
            refresh_token=args.refresh_token,
        )
    elif action == "link-calendar":
        return link_calendar_credential(args.user, args.access_token, args.refresh_token)
    elif action == "user":
        return get_user(args.user)
    elif action == "find-user":
        return find_user_by_email(args.email)
    elif action == "create":
        return create_event(
            creator_id=args.user,
            title=args.title,
            time_slots=args.slot,
            participant_emails=_split_csv(args.participants),
            description=args.description,
            duration_minutes=args.duration,
            deadline=args.deadline,
        )
    elif action == "get":
        return get_event_by_id(args.event, args.user)
    elif action == "list":
        return list_user_events(args.user, status=args.status, limit=args.limit, offset=args.offset)
    elif action == "respond":
        return submit_availability_responses(args.user, args.event, args.response or [])
    elif action == "decline":
        return decline_event(args.user, args.event)
    elif action == "open":
        return open_event(args.event, args.user)
    elif action == "cancel":
        return cancel_event(args.event, args.user)
    elif action == "rank":
        return find_optimal_time_slots(args.event, requester_id=args.user)
    elif action == "stats":
        return get_event_statistics(args.event, requester_id=args.user)
    elif action == "confirm":
        return asyncio.run(confirm_event(
            args.event,
            args.slot_id,
            args.user,
            location=args.location,
            send_calendar_invites=not args.no_invites,
        ))
    elif action == "conflicts":
        return asyncio.run(check_scheduling_conflicts(
            _split_csv(args.users), args.start, args.end
        ))

    return {"success": False, "error": f"Unknown action: {action}"}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    missing = [
        "--" + name.replace("_", "-")
        for name in REQUIRED[args.action]
        if getattr(args, name) in (None, [])
    ]
    if missing:
        parser.error(f"--action {args.action} requires {', '.join(missing)}")

    setup_logging(level=args.log_level)

    result = run_action(args)
    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
