"""Classified failures raised by the intranet client and reported by scans."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    NORMALIZATION_AMBIGUOUS = "normalization_ambiguous"
    NOT_FOUND_IN_ROSTER = "not_found_in_roster"
    AMBIGUOUS_MATCH = "ambiguous_match"
    AUTH_EXPIRED = "auth_expired"
    EVENT_NOT_FOUND = "event_not_found"
    NOT_REGISTERED = "not_registered"
    TRANSIENT_NETWORK = "transient_network"


class EpiCheckError(Exception):
    """Base class for every failure EpiCheck reports to its caller."""

    kind: ErrorKind = ErrorKind.TRANSIENT_NETWORK
    default_message = "EpiCheck operation failed"

    def __init__(self, message: Optional[str] = None, *, status: Optional[int] = None) -> None:
        self.message = message or self.default_message
        self.status = status
        super().__init__(self.message)

    @property
    def requires_reauth(self) -> bool:
        return self.kind is ErrorKind.AUTH_EXPIRED


class NormalizationAmbiguous(EpiCheckError):
    """Raw scan could not be decoded as intended; a literal fallback was used."""

    kind = ErrorKind.NORMALIZATION_AMBIGUOUS
    default_message = "Scanned payload could not be decoded; using it literally"


class NotFoundInRoster(EpiCheckError):
    kind = ErrorKind.NOT_FOUND_IN_ROSTER
    default_message = "Student not found in registered list"


class AmbiguousMatch(EpiCheckError):
    kind = ErrorKind.AMBIGUOUS_MATCH
    default_message = "Scanned identifier matches several registered students"


class AuthExpired(EpiCheckError):
    kind = ErrorKind.AUTH_EXPIRED
    default_message = "Session expired or unauthorized. Please log in again."


class EventNotFound(EpiCheckError):
    kind = ErrorKind.EVENT_NOT_FOUND
    default_message = "Event not found or you don't have permission to mark presence for this event."


class NotRegisteredForEvent(EpiCheckError):
    kind = ErrorKind.NOT_REGISTERED
    default_message = "Student is not registered for this event"


class TransientNetworkError(EpiCheckError):
    kind = ErrorKind.TRANSIENT_NETWORK
    default_message = "Intranet unreachable; scan again to retry"


__all__ = [
    "ErrorKind",
    "EpiCheckError",
    "NormalizationAmbiguous",
    "NotFoundInRoster",
    "AmbiguousMatch",
    "AuthExpired",
    "EventNotFound",
    "NotRegisteredForEvent",
    "TransientNetworkError",
]
