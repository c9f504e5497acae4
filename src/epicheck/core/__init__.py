"""Scan pipeline: normalize, match, submit."""

from .errors import (
    AmbiguousMatch,
    AuthExpired,
    EpiCheckError,
    ErrorKind,
    EventNotFound,
    NormalizationAmbiguous,
    NotFoundInRoster,
    NotRegisteredForEvent,
    TransientNetworkError,
)
from .matcher import match
from .models import Ack, Event, NormalizedLogin, PresenceStatus, Roster, ScanOutcome, ScanResult, StudentRecord
from .normalizer import normalize
from .runner import ScanRunner, ScanState
from .submitter import PresenceSubmitter, RosterSource

__all__ = [
    "AmbiguousMatch",
    "AuthExpired",
    "EpiCheckError",
    "ErrorKind",
    "EventNotFound",
    "NormalizationAmbiguous",
    "NotFoundInRoster",
    "NotRegisteredForEvent",
    "TransientNetworkError",
    "match",
    "Ack",
    "Event",
    "NormalizedLogin",
    "PresenceStatus",
    "Roster",
    "ScanOutcome",
    "ScanResult",
    "StudentRecord",
    "normalize",
    "ScanRunner",
    "ScanState",
    "PresenceSubmitter",
    "RosterSource",
]
