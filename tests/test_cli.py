"""
Tests for the command line interface.

Commands run through main() against a temporary facts file.
"""

import json

import pytest
from unittest.mock import patch

from cohost.cli import create_parser, main
from cohost.config import settings


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep main() from reconfiguring the root logger during tests."""
    with patch("cohost.cli.init_logging"):
        yield


def facts_cmd(facts_file, *args) -> int:
    return main(["facts", "--file", str(facts_file), *args])


class TestParser:
    """Tests for argument parsing."""

    def test_run_stream_url(self):
        args = create_parser().parse_args(["run", "--stream-url", "https://example.com/a.m3u8"])
        assert args.stream_url == "https://example.com/a.m3u8"

    def test_remove_requires_numbers(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["facts", "remove", "first"])

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: cohost" in capsys.readouterr().out


class TestFactsCommands:
    """Tests for facts list/add/remove/clear."""

    def test_list_empty(self, facts_file, capsys):
        assert facts_cmd(facts_file, "list") == 0
        assert "Facts (0)" in capsys.readouterr().out

    def test_add_then_list(self, facts_file, capsys):
        assert facts_cmd(facts_file, "add", "likes CS", "lives in Moscow", "likes CS") == 0
        assert json.loads(facts_file.read_text(encoding="utf-8")) == ["likes CS", "lives in Moscow"]

        capsys.readouterr()
        facts_cmd(facts_file, "list")
        out = capsys.readouterr().out
        assert "1 - likes CS" in out
        assert "2 - lives in Moscow" in out

    def test_add_duplicate_reports_nothing_new(self, facts_file, capsys):
        facts_cmd(facts_file, "add", "likes CS")
        capsys.readouterr()

        assert facts_cmd(facts_file, "add", "likes CS") == 0
        assert "Nothing new" in capsys.readouterr().out

    def test_remove_by_number(self, facts_file, capsys):
        facts_cmd(facts_file, "add", "likes CS", "lives in Moscow")

        assert facts_cmd(facts_file, "remove", "1") == 0
        assert json.loads(facts_file.read_text(encoding="utf-8")) == ["lives in Moscow"]
        assert "Removed: likes CS" in capsys.readouterr().out

    def test_remove_out_of_range_changes_nothing(self, facts_file, capsys):
        facts_cmd(facts_file, "add", "likes CS", "lives in Moscow")
        capsys.readouterr()

        assert facts_cmd(facts_file, "remove", "1", "5") == 1
        assert "out of range" in capsys.readouterr().out
        assert json.loads(facts_file.read_text(encoding="utf-8")) == ["likes CS", "lives in Moscow"]

    def test_clear_forced(self, facts_file):
        facts_cmd(facts_file, "add", "likes CS")

        assert facts_cmd(facts_file, "clear", "--force") == 0
        assert json.loads(facts_file.read_text(encoding="utf-8")) == []

    def test_clear_cancelled(self, facts_file, capsys):
        facts_cmd(facts_file, "add", "likes CS")

        with patch("builtins.input", return_value="n"):
            assert facts_cmd(facts_file, "clear") == 0

        assert "Cancelled" in capsys.readouterr().out
        assert json.loads(facts_file.read_text(encoding="utf-8")) == ["likes CS"]


class TestCheckCommand:
    """Tests for configuration validation."""

    def test_valid_environment(self, capsys):
        assert main(["check"]) == 0
        assert "❌" not in capsys.readouterr().out

    def test_missing_channel(self, capsys):
        with patch.object(settings.twitch, "channel", ""):
            assert main(["check"]) == 1
        assert "TWITCH_CHANNEL is required" in capsys.readouterr().out


class TestRunCommand:
    """Tests for starting the co-host."""

    def test_missing_stream_url(self, capsys):
        with patch.object(settings.engine, "stream_url", ""):
            assert main(["run"]) == 1
        assert "STREAM_URL is required" in capsys.readouterr().out
