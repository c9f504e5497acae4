"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/core/main.py
Command line entry point for EpiCheck.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import replace
from datetime import date, datetime
from typing import AsyncIterator, List, Optional

from ..config.config_wizard import ConfigWizard
from ..config.settings import Settings
from ..intra.activities import activities_for_date
from ..intra.client import IntraClient
from ..intra.rdv import roster_from_registrations
from ..relay.server import run_relay
from ..utils.console import EpiCheckConsole
from ..utils.env_utils import load_env
from ..utils.logger import set_log_profile, spinner, step, success
from ..utils.session import TokenSession, TokenStore
from .errors import EpiCheckError
from .login import LoginTimeout, run_login
from .models import Event, PresenceStatus, Roster
from .runner import ScanRunner
from .sources import ScanSubscription, StreamScanSource

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REAUTH = 2

REAUTH_HINT = "Your intranet session is missing or expired. Run `epicheck login` and try again."
REFRESH_COMMAND = "/refresh"


def _event_arg(value: str) -> Event:
    try:
        return Event.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def _date_arg(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epicheck",
        description="EpiCheck: scan student QR codes or NFC cards and mark presence on the intranet",
    )
    parser.add_argument("--setup", action="store_true", help="Run configuration wizard")
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    login = sub.add_parser("login", help="Sign in through the browser and store the session token")
    login.add_argument("--force", action="store_true", help="Open the browser even if the stored session still works")
    sub.add_parser("logout", help="Forget the stored session token")
    sub.add_parser("whoami", help="Show the intranet account behind the stored token")

    activities = sub.add_parser("activities", help="List the day's activities at your campus")
    activities.add_argument("--date", type=_date_arg, default=None, help="Day to list (YYYY-MM-DD, default today)")
    activities.add_argument("--mine", action="store_true", help="Only activities where you are teacher or assistant")

    students = sub.add_parser("students", help="List the active students of your campus")
    students.add_argument("--year", type=int, default=None, help="Scholar year (default: the current one)")

    roster = sub.add_parser("roster", help="Show the registered students of an event")
    roster.add_argument("event", type=_event_arg, help="YEAR/MODULE/INSTANCE/ACTI/EVENT")

    scan = sub.add_parser(
        "scan",
        help=f"Read scans from stdin (one per line) and mark students present; type {REFRESH_COMMAND} to reload the roster",
    )
    scan.add_argument("event", type=_event_arg, help="YEAR/MODULE/INSTANCE/ACTI/EVENT")
    scan.add_argument("--cooldown", type=float, default=None, help="Seconds to ignore scans after each result")
    scan.add_argument("--lenient", action="store_true", help="Accept the first matching rule instead of rejecting ambiguous scans")

    mark = sub.add_parser("mark", help="Set presence for one registered login")
    mark.add_argument("event", type=_event_arg, help="YEAR/MODULE/INSTANCE/ACTI/EVENT")
    mark.add_argument("login", help="Login or e-mail of a registered student")
    mark.add_argument("--absent", action="store_true", help="Mark absent instead of present")

    rdv = sub.add_parser("rdv", help="List appointment registrations of an activity")
    rdv.add_argument("event", type=_event_arg, help="YEAR/MODULE/INSTANCE/ACTI/EVENT")

    relay = sub.add_parser("relay", help="Run the CORS relay used by browser front-ends")
    relay.add_argument("--host", default=None, help="Bind address (default RELAY_HOST or 0.0.0.0)")
    relay.add_argument("--port", type=int, default=None, help="Port (default RELAY_PORT or 3001)")
    return parser


class CommandContext:
    """Everything a subcommand needs, built once from settings."""

    def __init__(self, settings: Settings, console: Optional[EpiCheckConsole] = None):
        self.settings = settings
        self.console = console or EpiCheckConsole()
        self.store = TokenStore(settings.token_file)
        self.session = TokenSession(self.store)

    def client(self) -> IntraClient:
        return IntraClient(
            self.session,
            base_url=self.settings.intra_url,
            relay_url=self.settings.relay_url,
            timeout=self.settings.request_timeout,
        )


async def _cmd_login(ctx: CommandContext, args: argparse.Namespace) -> int:
    if not args.force and ctx.session.get_token():
        async with ctx.client() as client:
            if await client.check_session():
                success("Stored session is still valid (use --force to sign in again)")
                return await _cmd_whoami(ctx, args)
    step("Opening the intranet login")
    ctx.session.set_token(await run_login(ctx.settings, ctx.store))
    return await _cmd_whoami(ctx, args)


async def _cmd_logout(ctx: CommandContext, args: argparse.Namespace) -> int:
    ctx.session.clear()
    success(f"Removed stored session {ctx.store.path}")
    return EXIT_OK


async def _cmd_whoami(ctx: CommandContext, args: argparse.Namespace) -> int:
    async with ctx.client() as client:
        user = await client.get_current_user()
    ctx.console.user_panel(user or {})
    return EXIT_OK


def _scholar_year(day: date) -> int:
    # the intranet's scholar year starts in September
    return day.year if day.month >= 9 else day.year - 1


async def _cmd_activities(ctx: CommandContext, args: argparse.Namespace) -> int:
    day = args.date or date.today()
    async with ctx.client() as client:
        async with spinner(f"Loading activities for {day:%Y-%m-%d}"):
            user = await client.get_current_user()
            activities = await activities_for_date(client, day, user=user)
    if args.mine:
        login = (user or {}).get("login", "")
        activities = [activity for activity in activities if activity.is_staff(login)]
    ctx.console.activities_table(activities, title=f"Activities · {day:%A %d %B %Y}")
    return EXIT_OK


async def _cmd_students(ctx: CommandContext, args: argparse.Namespace) -> int:
    year = args.year or _scholar_year(date.today())
    async with ctx.client() as client:
        user = await client.get_current_user()
        location = (user or {}).get("location")
        if not location:
            raise EpiCheckError("User location not found on the intranet profile")
        students = await client.get_students_by_location(location, year)
    ctx.console.students_table(students, title=f"Students · {location} · {year}")
    return EXIT_OK


async def _titled(client: IntraClient, event: Event) -> Event:
    """Give an event typed on the command line its module title."""
    if event.title:
        return event
    info = await client.get_module_info(event.year, event.module, event.instance)
    title = (info or {}).get("title")
    if not title:
        return event
    return replace(event, title=f"{title} · {event.activity}/{event.occurrence}")


async def _cmd_roster(ctx: CommandContext, args: argparse.Namespace) -> int:
    async with ctx.client() as client:
        event = await _titled(client, args.event)
        roster = await client.fetch_roster(event)
    ctx.console.roster_table(roster)
    return EXIT_OK


def _runner(ctx: CommandContext, client: IntraClient, event: Event, *, cooldown: Optional[float] = None, lenient: bool = False) -> ScanRunner:
    return ScanRunner(
        client,
        event,
        domain=ctx.settings.intra_domain,
        strict=ctx.settings.strict_matching and not lenient,
        cooldown=ctx.settings.scan_cooldown if cooldown is None else cooldown,
        logger=logging.getLogger("epicheck.scan"),
    )


async def _scans_with_refresh(
    source: ScanSubscription,
    runner: ScanRunner,
    console: EpiCheckConsole,
) -> AsyncIterator[str]:
    """Yield scans from ``source``, reloading the roster when the operator asks for it."""
    async for raw in source:
        if raw != REFRESH_COMMAND:
            yield raw
            continue
        try:
            console.roster_table(await runner.refresh_roster())
        except EpiCheckError as exc:
            console.error(exc.message)
            if exc.requires_reauth:
                source.cancel()
                raise


async def _cmd_scan(ctx: CommandContext, args: argparse.Namespace) -> int:
    async with ctx.client() as client:
        event = await _titled(client, args.event)
        runner = _runner(ctx, client, event, cooldown=args.cooldown, lenient=args.lenient)
        roster = await runner.load_roster()
        ctx.console.banner(event.label)
        ctx.console.roster_table(roster)
        step(f"Ready: scan QR codes or NFC cards (one per line), {REFRESH_COMMAND} to reload, Ctrl-D to stop")

        source = StreamScanSource(sys.stdin, name="stdin")
        needs_login = False

        def _on_result(result) -> None:
            nonlocal needs_login
            ctx.console.scan_result(result)
            if result.requires_reauth:
                needs_login = True
                source.cancel()

        source.start()
        try:
            await runner.consume(_scans_with_refresh(source, runner, ctx.console), _on_result)
        finally:
            source.cancel()

        ctx.console.roster_table(Roster(runner.event, runner.get_roster_snapshot()))
    return EXIT_REAUTH if needs_login else EXIT_OK


async def _cmd_mark(ctx: CommandContext, args: argparse.Namespace) -> int:
    status = PresenceStatus.ABSENT if args.absent else PresenceStatus.PRESENT
    async with ctx.client() as client:
        ack = await _runner(ctx, client, args.event).mark(args.login, status)
    if ack is None or not ack.ok:
        error = ack.error if ack is not None else None
        ctx.console.error(error.message if error is not None else "Another update is in progress")
        return EXIT_REAUTH if ack is not None and ack.requires_reauth else EXIT_FAILURE
    success(f"{ack.login} marked {ack.status.value} for {args.event.label}")
    return EXIT_OK


async def _cmd_rdv(ctx: CommandContext, args: argparse.Namespace) -> int:
    async with ctx.client() as client:
        event = await _titled(client, args.event)
        registrations = await client.get_rdv_registrations(event)
    ctx.console.registrations_table(registrations)
    if registrations:
        ctx.console.presence_summary(roster_from_registrations(event, registrations))
    return EXIT_OK


COMMANDS = {
    "login": _cmd_login,
    "logout": _cmd_logout,
    "whoami": _cmd_whoami,
    "activities": _cmd_activities,
    "students": _cmd_students,
    "roster": _cmd_roster,
    "scan": _cmd_scan,
    "mark": _cmd_mark,
    "rdv": _cmd_rdv,
}


def _maybe_run_wizard(args: argparse.Namespace) -> None:
    if args.setup:
        step("Launching configuration wizard")
        ConfigWizard().run()
    elif sys.stdin.isatty() and ConfigWizard.should_run_wizard() and args.command not in ("relay", "scan"):
        if ConfigWizard.prompt_user_for_wizard():
            ConfigWizard().run()
        else:
            ConfigWizard.mark_setup_complete()
    load_env(os.getenv("ENV_FILE", ".env"))


def run_command(ctx: CommandContext, args: argparse.Namespace) -> int:
    handler = COMMANDS[args.command]
    try:
        return asyncio.run(handler(ctx, args))
    except EpiCheckError as exc:
        ctx.console.error(exc.message)
        if exc.requires_reauth:
            ctx.console.console.print(REAUTH_HINT)
            return EXIT_REAUTH
        return EXIT_FAILURE
    except LoginTimeout as exc:
        ctx.console.error(str(exc))
        return EXIT_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    load_env(os.getenv("ENV_FILE", ".env"))
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.debug:
        set_log_profile("debug")
    _maybe_run_wizard(args)

    if args.command is None:
        if not args.setup:
            parser.print_help()
        return EXIT_OK

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        parser.error(str(exc))

    if args.command == "relay":
        run_relay(
            host=args.host or settings.relay_host,
            port=args.port or settings.relay_port,
            intra_url=settings.intra_url,
            timeout=settings.request_timeout,
        )
        return EXIT_OK

    ctx = CommandContext(settings)
    try:
        return run_command(ctx, args)
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
