"""Tests for the command-line interface."""

from unittest.mock import Mock, patch

import pytest

from turbodelete import __version__
from turbodelete.cli import async_main, main, parse_args


def test_parse_args_defaults(monkeypatch):
    """Test defaults when no environment overrides are present."""
    for name in ("TURBODELETE_WORKERS", "TURBODELETE_BATCH_SIZE", "TURBODELETE_PROGRESS_INTERVAL", "TURBODELETE_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    args = parse_args(["a", "b"])

    assert args.paths == ["a", "b"]
    assert args.workers is None
    assert args.batch_size == 5000
    assert args.progress_interval == 30.0
    assert args.log_level == "INFO"


def test_parse_args_environment(monkeypatch):
    """Test that environment variables provide defaults."""
    monkeypatch.setenv("TURBODELETE_WORKERS", "3")
    monkeypatch.setenv("TURBODELETE_BATCH_SIZE", "10")
    monkeypatch.setenv("TURBODELETE_PROGRESS_INTERVAL", "1.5")
    monkeypatch.setenv("TURBODELETE_LOG_LEVEL", "DEBUG")

    args = parse_args(["target"])

    assert args.workers == 3
    assert args.batch_size == 10
    assert args.progress_interval == 1.5
    assert args.log_level == "DEBUG"


def test_parse_args_flags_override_environment(monkeypatch):
    """Test that command-line flags win over the environment."""
    monkeypatch.setenv("TURBODELETE_WORKERS", "3")

    args = parse_args(["--workers", "5", "target"])

    assert args.workers == 5


def test_parse_args_requires_a_path():
    """Test that at least one path is required."""
    with pytest.raises(SystemExit) as exc_info:
        parse_args([])

    assert exc_info.value.code == 2


def test_version_flag(capsys):
    """Test --version output."""
    with pytest.raises(SystemExit):
        parse_args(["--version"])

    assert __version__ in capsys.readouterr().out


@pytest.mark.asyncio
async def test_async_main(sample_tree):
    """Test the async entry point end to end."""
    report = await async_main([str(sample_tree)], workers=2, batch_size=3)

    assert report.exit_code == 0
    assert not sample_tree.exists()


def test_main_exits_zero_on_success(sample_tree):
    """Test the process exit status after a clean run."""
    with pytest.raises(SystemExit) as exc_info:
        main([str(sample_tree), "--workers", "2"])

    assert exc_info.value.code == 0
    assert not sample_tree.exists()


def test_main_exits_one_on_missing_path(temp_dir):
    """Test the process exit status when a target does not exist."""
    with pytest.raises(SystemExit) as exc_info:
        main([str(temp_dir / "missing")])

    assert exc_info.value.code == 1


def test_main_reports_fatal_errors(capsys):
    """Test that unexpected failures exit 1 with a message."""
    with patch("turbodelete.cli.async_main", side_effect=RuntimeError("boom")):
        with pytest.raises(SystemExit) as exc_info:
            main(["target"])

    assert exc_info.value.code == 1
    assert "Fatal error: boom" in capsys.readouterr().err


def test_main_handles_keyboard_interrupt(capsys):
    """Test the exit status on Ctrl-C."""
    with patch("turbodelete.cli.async_main", new=Mock()), patch("turbodelete.cli.asyncio.run", side_effect=KeyboardInterrupt):
        with pytest.raises(SystemExit) as exc_info:
            main(["target"])

    assert exc_info.value.code == 130
    assert "cancelled" in capsys.readouterr().err
