"""Appointment (``rdv``) registrations scraped from the activity page.

The intranet has no JSON endpoint for appointment slots; the page embeds
them in a ``launchApp('module.activite.rdv', {...});`` call instead.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..core.models import Event, PresenceStatus, Roster, StudentRecord
from ..utils.logger import get_logger

LOGGER = get_logger("rdv")

_LAUNCH_APP = re.compile(
    r"launchApp\(\s*['\"]module\.activite\.rdv['\"]\s*,\s*(\{.*?\})\s*\)\s*;",
    re.DOTALL,
)


@dataclass(frozen=True)
class Registration:
    """One booked slot: a single student or a whole group."""

    id: str
    kind: str
    members: Tuple[StudentRecord, ...]
    date: Optional[str] = None
    note: Optional[str] = None
    status: Optional[str] = None

    @property
    def logins(self) -> Tuple[str, ...]:
        return tuple(member.login for member in self.members)


def extract_rdv_payload(html: str) -> Optional[Dict[str, Any]]:
    match = _LAUNCH_APP.search(html or "")
    if not match:
        LOGGER.debug("No appointment data found in page")
        return None
    try:
        payload = json.loads(match.group(1))
    except ValueError as exc:
        LOGGER.warning("Could not decode appointment data: %s", exc)
        return None
    return payload if isinstance(payload, dict) else None


def _member(entry: Dict[str, Any]) -> Optional[StudentRecord]:
    login = entry.get("login")
    if not login:
        return None
    return StudentRecord(
        login=str(login),
        display_name=entry.get("title") or str(login),
        picture=entry.get("picture") or None,
        presence_status=PresenceStatus.from_wire(entry.get("present")),
    )


def _slot_members(slot: Dict[str, Any]) -> List[StudentRecord]:
    members: List[StudentRecord] = []
    seen = set()
    sources: List[Any] = list(slot.get("members") or [])
    for key in ("master", "user"):
        if isinstance(slot.get(key), dict):
            sources.append(slot[key])
    for entry in sources:
        if not isinstance(entry, dict):
            continue
        member = _member(entry)
        if member is None or member.login in seen:
            continue
        seen.add(member.login)
        members.append(member)
    return members


def parse_rdv_data(payload: Optional[Dict[str, Any]]) -> List[Registration]:
    """Flatten ``slots -> block.slots -> slot`` into booked registrations.

    Empty slots are skipped.
    """
    if not payload:
        return []
    registrations: List[Registration] = []
    for block_index, block in enumerate(payload.get("slots") or []):
        if not isinstance(block, dict):
            continue
        for slot_index, slot in enumerate(block.get("slots") or []):
            if not isinstance(slot, dict):
                continue
            members = _slot_members(slot)
            if not members:
                continue
            slot_id = slot.get("id")
            registrations.append(
                Registration(
                    id=str(slot_id) if slot_id is not None else f"slot-{block_index}-{slot_index}",
                    kind="group" if len(members) > 1 else "individual",
                    members=tuple(members),
                    date=slot.get("date"),
                    note=slot.get("note"),
                    status=slot.get("status"),
                )
            )
    return registrations


def roster_from_registrations(event: Event, registrations: List[Registration]) -> Roster:
    """Collapse appointment slots into a roster usable by the matcher."""
    students: List[StudentRecord] = []
    seen = set()
    for registration in registrations:
        for member in registration.members:
            if member.login in seen:
                continue
            seen.add(member.login)
            students.append(member)
    return Roster(event, students)


__all__ = ["Registration", "extract_rdv_payload", "parse_rdv_data", "roster_from_registrations"]
