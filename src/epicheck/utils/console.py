#!/usr/bin/env python3
"""
███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗
██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝
█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝
██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗
███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗
╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝
src/epicheck/utils/console.py
Rich rendering for the EpiCheck CLI.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.models import PresenceStatus, Roster, ScanOutcome, ScanResult

__all__ = ["EpiCheckConsole", "STATUS_STYLES"]

STATUS_STYLES: Dict[PresenceStatus, str] = {
    PresenceStatus.PRESENT: "bold green",
    PresenceStatus.ABSENT: "bold red",
    PresenceStatus.UNKNOWN: "dim",
}

_OUTCOME_STYLES: Dict[ScanOutcome, str] = {
    ScanOutcome.MATCHED: "green",
    ScanOutcome.NOT_FOUND: "yellow",
    ScanOutcome.AMBIGUOUS: "yellow",
    ScanOutcome.DROPPED: "dim",
    ScanOutcome.ERROR: "red",
}


def _mark_cell(activity: Any) -> Text:
    if activity.can_mark_presence:
        return Text("✓", style="green")
    if activity.is_rdv:
        return Text("rdv", style="magenta")
    return Text("·", style="dim")


class EpiCheckConsole:
    """Tables and panels shown by the CLI commands."""

    _BANNER = [
        "███████╗██████╗ ██╗ ██████╗██╗  ██╗███████╗ ██████╗██╗  ██╗",
        "██╔════╝██╔══██╗██║██╔════╝██║  ██║██╔════╝██╔════╝██║ ██╔╝",
        "█████╗  ██████╔╝██║██║     ███████║█████╗  ██║     █████╔╝ ",
        "██╔══╝  ██╔═══╝ ██║██║     ██╔══██║██╔══╝  ██║     ██╔═██╗ ",
        "███████╗██║     ██║╚██████╗██║  ██║███████╗╚██████╗██║  ██╗",
        "╚══════╝╚═╝     ╚═╝ ╚═════╝╚═╝  ╚═╝╚══════╝ ╚═════╝╚═╝  ╚═╝",
    ]

    _GRADIENT = ["#1f6feb", "#2f81f7", "#4c9aff", "#6cb6ff", "#4c9aff", "#2f81f7"]

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def banner(self, subtitle: Optional[str] = None) -> None:
        for index, line in enumerate(self._BANNER):
            self.console.print(Text(line, style=f"bold {self._GRADIENT[index % len(self._GRADIENT)]}"), justify="center")
        if subtitle:
            self.console.rule(subtitle)

    def user_panel(self, user: Dict[str, Any]) -> None:
        lines = [
            f"[bold]{user.get('title') or user.get('login', '?')}[/bold]",
            f"Login: {user.get('login', '?')}",
            f"Campus: {user.get('location') or 'unknown'}",
        ]
        if user.get("promo"):
            lines.append(f"Promo: {user['promo']}")
        self.console.print(Panel("\n".join(lines), title="Intranet session", border_style="blue"))

    def roster_table(self, roster: Roster) -> None:
        counts = roster.counts()
        table = Table(
            title=roster.event.label,
            caption=(
                f"{len(roster)} registered · "
                f"{counts[PresenceStatus.PRESENT]} present · "
                f"{counts[PresenceStatus.ABSENT]} absent · "
                f"{counts[PresenceStatus.UNKNOWN]} not marked"
            ),
            box=box.SIMPLE_HEAVY,
        )
        table.add_column("Login", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Status", justify="center")
        for student in sorted(roster, key=lambda s: (s.display_name or s.login).lower()):
            table.add_row(
                student.login,
                student.display_name or "",
                Text(student.presence_status.value, style=STATUS_STYLES[student.presence_status]),
            )
        self.console.print(table)

    def activities_table(self, activities: Sequence[Any], title: str = "Activities") -> None:
        table = Table(title=title, box=box.SIMPLE_HEAVY)
        table.add_column("Time", no_wrap=True)
        table.add_column("Activity")
        table.add_column("Module", style="dim")
        table.add_column("Room")
        table.add_column("Event", style="cyan", no_wrap=True)
        table.add_column("Mark", justify="center")
        for activity in activities:
            table.add_row(
                activity.time_range,
                activity.title,
                activity.module_title,
                activity.room_display,
                activity.event.path[len("/module/"):],
                _mark_cell(activity),
            )
        if not activities:
            self.console.print("[dim]No activities for this day.[/dim]")
            return
        self.console.print(table)

    def registrations_table(self, registrations: Iterable[Any]) -> None:
        table = Table(title="Appointments", box=box.SIMPLE_HEAVY)
        table.add_column("Slot", no_wrap=True)
        table.add_column("Date")
        table.add_column("Kind")
        table.add_column("Members")
        table.add_column("Status")
        count = 0
        for registration in registrations:
            count += 1
            members = ", ".join(
                f"{member.display_name or member.login} ({member.presence_status.value})"
                for member in registration.members
            )
            table.add_row(registration.id, registration.date or "", registration.kind, members, registration.status or "")
        if count == 0:
            self.console.print("[dim]No booked appointment slots.[/dim]")
            return
        self.console.print(table)

    def students_table(self, students: Sequence[Dict[str, Any]], title: str = "Students") -> None:
        if not students:
            self.console.print("[dim]No active students found.[/dim]")
            return
        table = Table(title=title, caption=f"{len(students)} students", box=box.SIMPLE_HEAVY)
        table.add_column("Login", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Promo", justify="right")
        for student in sorted(students, key=lambda s: str(s.get("login", "")).lower()):
            table.add_row(
                str(student.get("login", "")),
                str(student.get("title") or ""),
                str(student.get("promo") or ""),
            )
        self.console.print(table)

    def presence_summary(self, roster: Roster) -> None:
        counts = roster.counts()
        self.console.print(
            f"{len(roster)} booked · "
            f"[green]{counts[PresenceStatus.PRESENT]} present[/green] · "
            f"[red]{counts[PresenceStatus.ABSENT]} absent[/red] · "
            f"{counts[PresenceStatus.UNKNOWN]} not marked"
        )

    def scan_result(self, result: ScanResult) -> None:
        style = _OUTCOME_STYLES.get(result.outcome, "")
        if result.outcome is ScanOutcome.MATCHED and not result.succeeded:
            style = "red"
        label = result.normalized_login or result.raw_input
        if result.matched_student is not None:
            label = result.matched_student.display_name or result.matched_student.login
        self.console.print(Text(f"{label}: {result.message}", style=style))
        if result.requires_reauth:
            self.console.print("[bold red]Session expired. Run `epicheck login` and restart the scan.[/bold red]")

    def error(self, message: str) -> None:
        self.console.print(Panel(message, title="Error", border_style="red"))
