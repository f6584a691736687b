"""CLI handlers for `dose-bot reminder` and `dose-bot stats` subcommands."""

import argparse
import sys

from dose_bot import engine
from dose_bot.reminders import MAX_COURSE_DAYS, Reminder, course_label
from dose_bot.repository import open_repository
from dose_bot.storage import StorageError


def _parse_time(value: str) -> tuple[int, int]:
    hour, sep, minute = value.partition(":")
    if not sep or not hour.isdigit() or not minute.isdigit():
        raise argparse.ArgumentTypeError(f"expected HH:MM, got {value!r}")
    return int(hour), int(minute)


def _fmt(r: Reminder) -> str:
    return f"{r.time_label}  {r.medicine}  [{r.progress}]"


def run_reminder_command(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(prog="dose-bot reminder")
    sub = parser.add_subparsers(dest="action")

    add_p = sub.add_parser("add", help="Add a reminder for a user")
    add_p.add_argument("--user", type=int, required=True, help="Discord user ID")
    add_p.add_argument("--medicine", "-m", required=True, help="Medicine name")
    add_p.add_argument(
        "--at", type=_parse_time, required=True, help="Time of day, HH:MM on a quarter hour"
    )
    add_p.add_argument(
        "--course",
        type=int,
        default=0,
        help=f"Course length in days, 1..{MAX_COURSE_DAYS} (default: unbounded)",
    )

    list_p = sub.add_parser("list", help="Show a user's reminders")
    list_p.add_argument("--user", type=int, required=True, help="Discord user ID")

    delete_p = sub.add_parser("delete", help="Delete a reminder by ID")
    delete_p.add_argument("--user", type=int, required=True, help="Discord user ID")
    delete_p.add_argument("id", type=int, help="Reminder ID")

    args = parser.parse_args(argv)

    try:
        if args.action == "add":
            _handle_add(args)
        elif args.action == "list":
            _handle_list(args.user)
        elif args.action == "delete":
            _handle_delete(args.user, args.id)
        else:
            parser.print_help()
            sys.exit(1)
    except StorageError as e:
        print(f"storage error: {e}")
        sys.exit(1)


def _handle_add(args: argparse.Namespace) -> None:
    hour, minute = args.at
    try:
        rid = open_repository().add_reminder(
            args.user, args.medicine, hour, minute, args.course
        )
    except ValueError as e:
        print(f"invalid reminder: {e}")
        sys.exit(1)
    print(
        f"added {rid}: {hour:02d}:{minute:02d} {args.medicine.strip()} "
        f"({course_label(args.course)})"
    )


def _handle_list(user_id: int) -> None:
    reminders = open_repository().list_reminders(user_id)
    if not reminders:
        print("no reminders")
        return
    for r in reminders:
        print(f"  {r.id:<5d} {_fmt(r)}")


def _handle_delete(user_id: int, reminder_id: int) -> None:
    if open_repository().delete_reminder(user_id, reminder_id):
        print(f"deleted {reminder_id}")
    else:
        print(f"reminder {reminder_id} not found")
        sys.exit(1)


def run_stats_command(argv: list[str]) -> None:
    parser = argparse.ArgumentParser(prog="dose-bot stats")
    parser.parse_args(argv)
    try:
        stats = open_repository().stats()
    except StorageError as e:
        print(f"storage error: {e}")
        sys.exit(1)
    print(engine.stats_text(stats))
