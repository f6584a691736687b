"""Tests for reminder_cmd.py and main.py CLI handlers."""

import io
import os
import sys

import pytest

from dose_bot import main as main_mod
from dose_bot.reminder_cmd import run_reminder_command, run_stats_command


def _capture_stdout(fn, *args):
    old = sys.stdout
    sys.stdout = buf = io.StringIO()
    try:
        fn(*args)
    finally:
        sys.stdout = old
    return buf.getvalue()


def test_reminder_add_and_list(data_dir):
    output = _capture_stdout(
        run_reminder_command,
        ["add", "--user", "42", "-m", "Vitamin D", "--at", "09:00", "--course", "30"],
    )
    assert "added 1" in output
    assert "Vitamin D" in output
    assert "30 days" in output

    output = _capture_stdout(run_reminder_command, ["list", "--user", "42"])
    assert "09:00" in output
    assert "Vitamin D" in output
    assert "0/30" in output


def test_reminder_add_unbounded(data_dir):
    output = _capture_stdout(
        run_reminder_command, ["add", "--user", "42", "-m", "Iron", "--at", "21:45"]
    )
    assert "unbounded" in output


def test_reminder_add_rejects_off_quarter_time(data_dir):
    with pytest.raises(SystemExit):
        _capture_stdout(
            run_reminder_command, ["add", "--user", "42", "-m", "A", "--at", "09:10"]
        )


def test_reminder_add_rejects_malformed_time(data_dir):
    with pytest.raises(SystemExit):
        run_reminder_command(["add", "--user", "42", "-m", "A", "--at", "nine"])


def test_reminder_delete(data_dir):
    _capture_stdout(run_reminder_command, ["add", "--user", "42", "-m", "A", "--at", "08:00"])

    output = _capture_stdout(run_reminder_command, ["delete", "--user", "42", "1"])
    assert "deleted 1" in output

    output = _capture_stdout(run_reminder_command, ["list", "--user", "42"])
    assert "no reminders" in output


def test_reminder_delete_missing(data_dir):
    with pytest.raises(SystemExit):
        _capture_stdout(run_reminder_command, ["delete", "--user", "42", "9"])


def test_reminder_no_action_exits(data_dir):
    with pytest.raises(SystemExit):
        _capture_stdout(run_reminder_command, [])


def test_stats(data_dir):
    _capture_stdout(run_reminder_command, ["add", "--user", "1", "-m", "A", "--at", "08:00"])
    _capture_stdout(
        run_reminder_command, ["add", "--user", "2", "-m", "B", "--at", "08:00", "--course", "7"]
    )

    output = _capture_stdout(run_stats_command, [])

    assert "Total users: 2" in output
    assert "Finite courses: 1" in output
    assert "Doses planned: 7" in output


def test_help_subcommand(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["dose-bot", "help"])

    output = _capture_stdout(main_mod._dispatch_subcommand)

    assert "dose-bot reminder add" in output


def test_dispatch_routes_reminder(data_dir, monkeypatch):
    monkeypatch.setattr(sys, "argv", ["dose-bot", "reminder", "list", "--user", "5"])

    output = _capture_stdout(main_mod._dispatch_subcommand)

    assert "no reminders" in output


def test_no_subcommand_runs_bot(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["dose-bot"])

    assert main_mod._dispatch_subcommand() is False


def test_pid_file_written(data_dir):
    main_mod._check_already_running()

    assert (data_dir / "state" / "bot.pid").exists()


def test_stale_pid_file_is_replaced(data_dir, monkeypatch):
    monkeypatch.setattr(main_mod, "_pid_alive", lambda pid: False)
    pid_file = data_dir / "state" / "bot.pid"
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text("424242")

    main_mod._check_already_running()

    assert pid_file.read_text() == str(os.getpid())


def test_garbled_pid_file_is_replaced(data_dir):
    pid_file = data_dir / "state" / "bot.pid"
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text("not a pid")

    main_mod._check_already_running()

    assert pid_file.read_text() == str(os.getpid())


def test_live_bot_blocks_second_start(data_dir, monkeypatch):
    monkeypatch.setattr(main_mod, "_pid_alive", lambda pid: True)
    pid_file = data_dir / "state" / "bot.pid"
    pid_file.parent.mkdir(parents=True, exist_ok=True)
    pid_file.write_text("424242")

    with pytest.raises(SystemExit):
        main_mod._check_already_running()

    assert pid_file.read_text() == "424242"
