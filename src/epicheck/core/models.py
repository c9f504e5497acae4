"""Domain objects shared by the matcher, submitter and scan runner."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Iterator, List, Optional, Tuple

from .errors import EpiCheckError


class PresenceStatus(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, value: Any) -> "PresenceStatus":
        text = str(value or "").strip().lower()
        if text == "present":
            return cls.PRESENT
        if text == "absent":
            return cls.ABSENT
        return cls.UNKNOWN


@dataclass(frozen=True)
class Event:
    """One scheduled occurrence, identified by the intranet's composite key."""

    year: str
    module: str
    instance: str
    activity: str
    occurrence: str
    title: str = field(default="", compare=False)

    @property
    def path(self) -> str:
        return f"/module/{self.year}/{self.module}/{self.instance}/{self.activity}/{self.occurrence}"

    @property
    def label(self) -> str:
        return self.title or f"{self.module} {self.activity}/{self.occurrence}"

    @classmethod
    def parse(cls, text: str) -> "Event":
        """Build an event from ``year/module/instance/acti-X/event-Y``."""
        cleaned = text.strip().strip("/")
        if cleaned.startswith("module/"):
            cleaned = cleaned[len("module/"):]
        parts = [part for part in cleaned.split("/") if part]
        if len(parts) != 5:
            raise ValueError(
                f"Event must look like YEAR/MODULE/INSTANCE/ACTI/EVENT, got {text!r}"
            )
        return cls(*parts)

    @classmethod
    def from_activity(cls, payload: dict) -> "Event":
        """Build an event from a ``/planning/load`` entry."""
        try:
            return cls(
                year=str(payload["scolaryear"]),
                module=str(payload["codemodule"]),
                instance=str(payload["codeinstance"]),
                activity=str(payload["codeacti"]),
                occurrence=str(payload["codeevent"]),
                title=str(payload.get("acti_title") or ""),
            )
        except KeyError as exc:
            raise ValueError(f"Activity entry missing field: {exc.args[0]}") from exc


@dataclass
class StudentRecord:
    """A registered student as returned by the intranet.

    ``login`` is kept exactly as the intranet sent it: sometimes bare,
    sometimes with the ``@domain`` suffix.
    """

    login: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    presence_status: PresenceStatus = PresenceStatus.UNKNOWN
    picture: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: dict) -> "StudentRecord":
        login = payload.get("login")
        if not login:
            raise ValueError("Student entry missing field: login")
        return cls(
            login=str(login),
            email=payload.get("email") or None,
            display_name=payload.get("title") or None,
            presence_status=PresenceStatus.from_wire(payload.get("present")),
            picture=payload.get("picture") or None,
        )


class Roster:
    """Point-in-time list of the students registered for one event."""

    def __init__(self, event: Event, students: Iterable[StudentRecord] = ()) -> None:
        self.event = event
        self._students: List[StudentRecord] = list(students)

    @classmethod
    def from_payload(cls, event: Event, payload: Any) -> "Roster":
        if isinstance(payload, dict):
            payload = payload.get("items", [])
        if not isinstance(payload, list):
            raise ValueError("Registered students payload must be a list")
        students = []
        for entry in payload:
            if not isinstance(entry, dict):
                raise ValueError("Registered student entry must be an object")
            if not entry.get("login"):
                continue
            students.append(StudentRecord.from_payload(entry))
        return cls(event, students)

    def __len__(self) -> int:
        return len(self._students)

    def __iter__(self) -> Iterator[StudentRecord]:
        return iter(self._students)

    def __repr__(self) -> str:
        return f"Roster(event={self.event.label!r}, students={len(self._students)})"

    def find_by_login(self, login: str) -> Optional[StudentRecord]:
        for student in self._students:
            if student.login == login:
                return student
        return None

    def set_status(self, login: str, status: PresenceStatus) -> bool:
        student = self.find_by_login(login)
        if student is None:
            return False
        student.presence_status = status
        return True

    def snapshot(self) -> Tuple[StudentRecord, ...]:
        return tuple(replace(student) for student in self._students)

    def counts(self) -> dict:
        totals = {status: 0 for status in PresenceStatus}
        for student in self._students:
            totals[student.presence_status] += 1
        return totals


@dataclass(frozen=True)
class NormalizedLogin:
    """Comparable forms of one raw scan.

    ``identifier`` is the scanned text after payload decoding (an e-mail
    extracted from a JSON QR code, or the raw text itself); ``bare_login``
    is the part before ``@``.
    """

    raw: str
    identifier: str
    bare_login: str
    email: Optional[str] = None
    from_payload: bool = False
    fallback_used: bool = False


class ScanOutcome(str, Enum):
    MATCHED = "matched"
    NOT_FOUND = "not_found"
    AMBIGUOUS = "ambiguous"
    DROPPED = "dropped"
    # roster could not be loaded, so matching never ran
    ERROR = "error"


@dataclass(frozen=True)
class Ack:
    """Result of one presence update request."""

    event: Event
    login: str
    status: PresenceStatus
    ok: bool
    error: Optional[EpiCheckError] = None

    @property
    def requires_reauth(self) -> bool:
        return self.error is not None and self.error.requires_reauth


@dataclass(frozen=True)
class ScanResult:
    raw_input: str
    normalized_login: str
    outcome: ScanOutcome
    matched_student: Optional[StudentRecord] = None
    rule: Optional[int] = None
    candidates: Tuple[StudentRecord, ...] = ()
    ack: Optional[Ack] = None
    error: Optional[EpiCheckError] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is ScanOutcome.MATCHED and self.ack is not None and self.ack.ok

    @property
    def requires_reauth(self) -> bool:
        return self.error is not None and self.error.requires_reauth

    @property
    def message(self) -> str:
        if self.outcome is ScanOutcome.DROPPED:
            return "Scan ignored (scanner busy)"
        if self.error is not None:
            return self.error.message
        if self.ack is not None and self.matched_student is not None:
            return f"Marked {self.ack.login} {self.ack.status.value}"
        return self.outcome.value


__all__ = [
    "PresenceStatus",
    "Event",
    "StudentRecord",
    "Roster",
    "NormalizedLogin",
    "ScanOutcome",
    "Ack",
    "ScanResult",
]
