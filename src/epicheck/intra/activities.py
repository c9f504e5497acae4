"""Planning entries and the rules deciding which ones a user may mark."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..core.errors import EpiCheckError
from ..core.models import Event
from ..utils.logger import get_logger

LOGGER = get_logger("activities")

_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_STAFF_RIGHTS = ("prof_inst", "assistant")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value)
    try:
        return datetime.strptime(text, _DATETIME_FORMAT)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _logins(entries: Any) -> Tuple[str, ...]:
    # the intranet sends "" or null instead of an empty list
    if not isinstance(entries, list):
        return ()
    return tuple(str(entry["login"]) for entry in entries if isinstance(entry, dict) and entry.get("login"))


@dataclass(frozen=True)
class Activity:
    event: Event
    title: str
    module_title: str = ""
    type_code: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    room_code: Optional[str] = None
    room_type: Optional[str] = None
    rights: Tuple[str, ...] = ()
    prof_logins: Tuple[str, ...] = field(default=(), repr=False)
    assistant_logins: Tuple[str, ...] = field(default=(), repr=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Activity":
        room = payload.get("room") if isinstance(payload.get("room"), dict) else {}
        rights = payload.get("rights") if isinstance(payload.get("rights"), list) else []
        return cls(
            event=Event.from_activity(payload),
            title=str(payload.get("acti_title") or ""),
            module_title=str(payload.get("titlemodule") or ""),
            type_code=str(payload.get("type_code") or ""),
            start=_parse_datetime(payload.get("start")),
            end=_parse_datetime(payload.get("end")),
            room_code=room.get("code") or None,
            room_type=room.get("type") or None,
            rights=tuple(str(right) for right in rights),
            prof_logins=_logins(payload.get("prof_inst")),
            assistant_logins=_logins(payload.get("assistants")),
        )

    @property
    def can_mark_presence(self) -> bool:
        if self.type_code == "rdv":
            return False
        return "force_register" in self.rights and any(right in self.rights for right in _STAFF_RIGHTS)

    @property
    def is_rdv(self) -> bool:
        return self.type_code == "rdv"

    def is_staff(self, login: str) -> bool:
        return login in self.prof_logins or login in self.assistant_logins

    @property
    def room_display(self) -> str:
        if self.room_code:
            return self.room_code.split("/")[-1].replace("-", " ")
        if self.room_type:
            return self.room_type
        return "No room"

    @property
    def time_range(self) -> str:
        if self.start is None:
            return "--:--"
        if self.end is None:
            return self.start.strftime("%H:%M")
        return f"{self.start:%H:%M} - {self.end:%H:%M}"


def sort_activities(activities: Iterable[Activity]) -> List[Activity]:
    return sorted(activities, key=lambda activity: (activity.start is None, activity.start or datetime.min))


def parse_activities(payload: Iterable[Dict[str, Any]]) -> List[Activity]:
    activities = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        try:
            activities.append(Activity.from_payload(entry))
        except ValueError as exc:
            # personal planning entries have no module key
            LOGGER.debug("Skipping planning entry: %s", exc)
    return sort_activities(activities)


async def activities_for_date(client, day: date, user: Optional[Dict[str, Any]] = None) -> List[Activity]:
    """Return the day's activities at the logged-in user's campus, sorted by start."""
    if user is None:
        user = await client.get_current_user()
    location = (user or {}).get("location")
    if not location:
        raise EpiCheckError("User location not found on the intranet profile")
    stamp = day.strftime("%Y-%m-%d")
    payload = await client.get_activities(location, stamp, stamp)
    return parse_activities(payload)


def markable(activities: Iterable[Activity]) -> List[Activity]:
    return [activity for activity in activities if activity.can_mark_presence]


__all__ = [
    "Activity",
    "sort_activities",
    "parse_activities",
    "activities_for_date",
    "markable",
]
