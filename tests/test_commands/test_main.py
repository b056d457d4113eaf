"""Tests for slipstream_tools.__main__ module."""

import json
import re
import sys
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from slipstream_tools.__main__ import handle_exception, main, run


class TestMainCLI:
    """Tests for main CLI functionality."""

    def test_main_help(self) -> None:
        """Test main command help output."""
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Build slipstreamed SharePoint installation sources" in result.output
        assert "build" in result.output
        assert "catalog" in result.output

    def test_version_command(self) -> None:
        """Test version command."""
        runner = CliRunner()
        result = runner.invoke(main, ["version"])
        assert result.exit_code == 0
        # Remove ANSI color codes for testing
        clean_output = re.sub(r"\x1b\[[0-9;]*m", "", result.output)
        assert "slipstream-tools 0.1.0" in clean_output

    def test_version_json(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--output", "json", "version"])
        assert result.exit_code == 0
        info = json.loads(result.output)
        assert info["name"] == "slipstream-tools"
        assert info["version"] == "0.1.0"

    def test_version_option(self) -> None:
        """Test --version option."""
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_verbose_flag(self) -> None:
        """Test verbose flag is accepted."""
        runner = CliRunner()
        result = runner.invoke(main, ["--verbose", "version"])
        assert result.exit_code == 0

    def test_debug_flag(self) -> None:
        """Test debug flag is accepted."""
        runner = CliRunner()
        result = runner.invoke(main, ["--debug", "version"])
        assert result.exit_code == 0

    def test_missing_config_file(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["--config", "/nonexistent/config.json", "version"])
        assert result.exit_code != 0


class TestEntryPoint:
    """Tests for the console script entry point."""

    def test_run_installs_exception_hook(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "excepthook", sys.excepthook)
        with patch("slipstream_tools.__main__.main") as cli:
            run()

        cli.assert_called_once_with()
        assert sys.excepthook is handle_exception

    def test_run_exits_on_failure(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(sys, "excepthook", sys.excepthook)
        with (
            patch("slipstream_tools.__main__.main", side_effect=RuntimeError("boom")),
            pytest.raises(SystemExit) as exc_info,
        ):
            run()

        assert exc_info.value.code == 1

    def test_handle_exception_exits(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            handle_exception(ValueError, ValueError("bad"), None)
        assert exc_info.value.code == 1

    def test_handle_keyboard_interrupt(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            handle_exception(KeyboardInterrupt, KeyboardInterrupt(), None)
        assert exc_info.value.code == 1
