"""Send presence updates for matched students."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .errors import EpiCheckError
from .models import Ack, Event, PresenceStatus, Roster


class RosterSource(Protocol):
    """Remote system that owns registrations and presence for an event."""

    async def fetch_roster(self, event: Event) -> Roster:
        """Return the full list of students registered for ``event``."""

    async def submit_presence(self, event: Event, login: str, status: PresenceStatus) -> None:
        """Overwrite the presence of ``login`` for ``event``."""


class PresenceSubmitter:
    """Issue presence updates and keep the local roster in step.

    The login is sent exactly as given; callers pass the value stored in the
    roster entry, which the intranet expects back byte for byte. Failures are
    returned inside the :class:`Ack`, never raised, and leave the roster
    untouched.
    """

    def __init__(
        self,
        source: RosterSource,
        roster: Optional[Roster] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._source = source
        self.roster = roster
        self._logger = logger or logging.getLogger("epicheck.submitter")

    async def mark_present(self, event: Event, login: str) -> Ack:
        return await self.submit(event, login, PresenceStatus.PRESENT)

    async def mark_absent(self, event: Event, login: str) -> Ack:
        return await self.submit(event, login, PresenceStatus.ABSENT)

    async def submit(self, event: Event, login: str, status: PresenceStatus) -> Ack:
        if status is PresenceStatus.UNKNOWN:
            raise ValueError("Presence can only be set to present or absent")
        try:
            await self._source.submit_presence(event, login, status)
        except EpiCheckError as exc:
            self._logger.warning("Failed to mark %s %s for %s: %s", login, status.value, event.label, exc.message)
            return Ack(event=event, login=login, status=status, ok=False, error=exc)

        if self.roster is not None and self.roster.event == event:
            self.roster.set_status(login, status)
        self._logger.info("Marked %s %s for %s", login, status.value, event.label)
        return Ack(event=event, login=login, status=status, ok=True)


__all__ = ["RosterSource", "PresenceSubmitter"]
