"""Unit tests for the command-line interface."""

import json
from pathlib import Path

import pytest

from email_triage.cli import main
from email_triage.config import get_settings


def _line(output: str, prefix: str) -> str:
    return next(line for line in output.splitlines() if line.startswith(prefix))


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Point the CLI at a throwaway database with the language model off."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("EMAIL_TRIAGE_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.sqlite3'}")
    monkeypatch.setenv("EMAIL_TRIAGE_LLM_ENABLED", "false")
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def email_file(cli_env: Path, email_payload) -> Path:
    path = cli_env / "email.json"
    path.write_text(json.dumps(email_payload), encoding="utf-8")
    return path


class TestCli:
    """Test suite for the email-triage command."""

    def test_init_db(self, cli_env, capsys) -> None:
        assert main(["init-db"]) == 0
        assert "Database schema is up to date" in capsys.readouterr().out

    def test_database_url_flag_wins(self, cli_env, capsys) -> None:
        other = cli_env / "other.sqlite3"

        assert main(["--database-url", f"sqlite:///{other}", "init-db"]) == 0
        assert other.exists()

    def test_rule_lifecycle(self, cli_env, capsys) -> None:
        """Test adding, listing and deleting a rule."""
        assert main(["rules", "add", "--tenant", "t1", "--condition", "category", "--value", "complaint",
                     "--action", "create_ticket", "--priority", "6"]) == 0
        rule_id = _line(capsys.readouterr().out, "Created rule ").split()[-1]

        assert main(["rules", "list", "--tenant", "t1"]) == 0
        listing = _line(capsys.readouterr().out, rule_id)
        assert "category=complaint" in listing
        assert "create_ticket" in listing

        assert main(["rules", "delete", rule_id, "--tenant", "t1"]) == 0
        assert main(["rules", "delete", rule_id, "--tenant", "t1"]) == 1
        assert "Rule not found" in capsys.readouterr().err

    def test_invalid_rule_is_rejected(self, cli_env, capsys) -> None:
        code = main(["rules", "add", "--tenant", "t1", "--condition", "high_urgency", "--action", "teleport"])

        assert code == 2
        assert "Invalid input" in capsys.readouterr().err

    def test_templates(self, cli_env, capsys) -> None:
        assert main(["templates", "add", "--tenant", "t1", "--name", "Signed",
                     "--body", "{response}\n-- {business_name}", "--default"]) == 0
        template_id = _line(capsys.readouterr().out, "Created template ").split()[-1]

        assert main(["templates", "list", "--tenant", "t1"]) == 0
        assert _line(capsys.readouterr().out, template_id).endswith("Signed\tdefault")

    def test_process_then_inspect(self, cli_env, email_file, capsys) -> None:
        assert main(["process", str(email_file), "--tenant", "t1"]) == 0
        out = capsys.readouterr().out
        assert '"pipeline": "complete"' in out
        assert '"category": "appointment"' in out

        assert main(["queue", "stats", "--tenant", "t1"]) == 0
        assert '"total": 1' in capsys.readouterr().out

        assert main(["stats", "--tenant", "t1", "--timeframe", "7d"]) == 0
        assert '"processed": 1' in capsys.readouterr().out

        assert main(["worker", "--once", "--tenant", "t1"]) == 0
        assert "Processed 0 queue items" in capsys.readouterr().out

    def test_process_reports_rejected_emails(self, cli_env, email_payload, capsys) -> None:
        path = cli_env / "batch.json"
        path.write_text(json.dumps([email_payload, {"from": "x@example.com"}]), encoding="utf-8")

        assert main(["process", str(path), "--tenant", "t1"]) == 1
        assert '"pipeline": "rejected"' in capsys.readouterr().out

    @pytest.mark.parametrize("content", ["not json", "42", '[{"from": 7, "received_at": "yesterday"}]'])
    def test_unreadable_email_file(self, cli_env, content, capsys) -> None:
        path = cli_env / "bad.json"
        path.write_text(content, encoding="utf-8")

        assert main(["process", str(path), "--tenant", "t1"]) == 2
        assert "Invalid input" in capsys.readouterr().err

    def test_missing_email_file(self, cli_env, capsys) -> None:
        assert main(["process", str(cli_env / "missing.json"), "--tenant", "t1"]) == 2

    def test_manual_escalation(self, cli_env, email_file, capsys) -> None:
        code = main(
            ["escalate", str(email_file), "--tenant", "t1", "--reason", "Asked for the owner", "--priority", "7"]
        )

        assert code == 0
        assert '"escalated": true' in capsys.readouterr().out

    def test_queue_maintenance(self, cli_env, capsys) -> None:
        assert main(["queue", "cleanup", "--days", "7"]) == 0
        assert "Deleted 0 old queue items" in capsys.readouterr().out

        assert main(["queue", "retry-failed"]) == 0
        assert "Resubmitted 0 failed queue items" in capsys.readouterr().out
