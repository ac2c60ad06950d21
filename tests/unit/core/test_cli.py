"""Tests for convene/cli.py

Runs main() in-process against the temporary database and checks the
JSON printed and the exit code.
"""

import json
import logging

import pytest
import structlog

from convene.cli import main


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures logging; put the root handlers back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level

    yield

    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()


def _run(capsys, *argv) -> tuple[int, dict]:
    code = main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out)


class TestCli:
    """Tests for the convene command."""

    def test_sign_in_create_and_rank(self, capsys):
        code, signed_in = _run(
            capsys,
            "--action", "sign-in",
            "--identity", "google:1",
            "--email", "olivia@example.com",
            "--name", "Olivia",
        )
        assert code == 0
        user_id = signed_in["data"]["id"]

        code, created = _run(
            capsys,
            "--action", "create",
            "--user", user_id,
            "--title", "Kickoff",
            "--slot", "2026-03-02T10:00:00Z/2026-03-02T11:00:00Z",
            "--slot", "2026-03-02T14:00:00Z/2026-03-02T15:00:00Z",
            "--participants", "a@x.com,b@x.com",
        )
        assert code == 0
        assert len(created["data"]["time_slots"]) == 2

        code, ranked = _run(capsys, "--action", "rank", "--event", created["data"]["id"])
        assert code == 0
        assert ranked["count"] == 2

    def test_confirm_without_invites(self, capsys, kickoff, organizer):
        code, result = _run(
            capsys,
            "--action", "confirm",
            "--user", organizer.id,
            "--event", kickoff["id"],
            "--slot-id", kickoff["slots"]["S1"],
            "--no-invites",
        )

        assert code == 0
        assert result["data"]["calendar_sync_result"]["status"] == "skipped"

    def test_failure_exits_non_zero(self, capsys, outsider):
        code, result = _run(capsys, "--action", "get", "--user", outsider.id, "--event", "missing")

        assert code == 1
        assert result["error_code"] == "not_found"

    def test_missing_required_argument(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["--action", "create", "--user", "u1"])

        assert exc_info.value.code == 2
        assert "--title" in capsys.readouterr().err

    def test_malformed_slot(self, capsys):
        with pytest.raises(SystemExit):
            main(["--action", "create", "--user", "u1", "--title", "T", "--slot", "2026-03-02"])
