"""Per-screen scan workflow: normalize, match, submit, cool down."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import replace
from enum import Enum
from time import perf_counter
from typing import AsyncIterable, Callable, Deque, Optional, Set, Tuple

from .errors import EpiCheckError, NotFoundInRoster
from .matcher import DEFAULT_DOMAIN, match
from .models import Ack, Event, PresenceStatus, Roster, ScanOutcome, ScanResult, StudentRecord
from .normalizer import normalize
from .submitter import PresenceSubmitter, RosterSource

DEFAULT_COOLDOWN_SECONDS = 5.0


class ScanState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    MATCHING = "matching"
    SUBMITTING = "submitting"
    RESOLVED = "resolved"


class ScanRunner:
    """Coordinate scans against the roster of one event.

    One scan is processed at a time; anything arriving while a scan is in
    flight, or during the cool-down that follows it, is dropped rather than
    queued. The roster is fetched once and then updated locally as presence
    is confirmed.
    """

    def __init__(
        self,
        source: RosterSource,
        event: Event,
        *,
        domain: str = DEFAULT_DOMAIN,
        strict: bool = True,
        cooldown: float = DEFAULT_COOLDOWN_SECONDS,
        history_size: int = 50,
        logger: logging.Logger | None = None,
        timer: Callable[[], float] = perf_counter,
    ) -> None:
        self.event = event
        self._source = source
        self._domain = domain
        self._strict = strict
        self._cooldown = max(cooldown, 0.0)
        self._logger = logger or logging.getLogger(self.__class__.__name__)
        self._timer = timer
        self._submitter = PresenceSubmitter(source, logger=self._logger)
        self._roster: Optional[Roster] = None
        self._state = ScanState.IDLE
        self._busy = False
        self._resolved_at: Optional[float] = None
        self.history: Deque[ScanResult] = deque(maxlen=history_size)

    # ------------------------------------------------------------------
    # State

    @property
    def state(self) -> ScanState:
        if self._state is ScanState.RESOLVED and self._cooldown_elapsed():
            return ScanState.IDLE
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def roster(self) -> Optional[Roster]:
        return self._roster

    def _cooldown_elapsed(self) -> bool:
        if self._resolved_at is None:
            return True
        return self._timer() - self._resolved_at >= self._cooldown

    # ------------------------------------------------------------------
    # Roster

    async def load_roster(self) -> Roster:
        if self._roster is None or self._roster.event != self.event:
            roster = await self._source.fetch_roster(self.event)
            self._logger.info("Loaded %d registered students for %s", len(roster), self.event.label)
            self._roster = roster
            self._submitter.roster = roster
        return self._roster

    async def refresh_roster(self) -> Roster:
        self._roster = None
        return await self.load_roster()

    def get_roster_snapshot(self) -> Tuple[StudentRecord, ...]:
        if self._roster is None:
            return ()
        return self._roster.snapshot()

    # ------------------------------------------------------------------
    # Scanning

    async def scan(
        self,
        raw: str,
        event: Optional[Event] = None,
        *,
        respect_cooldown: bool = True,
    ) -> ScanResult:
        if self._busy or (respect_cooldown and not self._cooldown_elapsed()):
            self._logger.debug("Dropped scan %r (state %s)", raw, self.state.value)
            return ScanResult(raw_input=raw, normalized_login="", outcome=ScanOutcome.DROPPED)

        self._busy = True
        self._state = ScanState.SCANNING
        start = self._timer()
        try:
            result = await self._process(raw, event)
        finally:
            self._busy = False
            self._state = ScanState.RESOLVED
            self._resolved_at = self._timer()

        elapsed = self._resolved_at - start
        self.history.appendleft(result)
        if result.succeeded:
            self._logger.info(
                "Scan %s resolved to %s via rule %s (elapsed %.2fs)",
                result.raw_input,
                result.ack.login,
                result.rule,
                elapsed,
            )
        else:
            self._logger.warning(
                "Scan %s failed: %s (elapsed %.2fs)",
                result.raw_input,
                result.outcome.value if result.error is None else result.error.kind.value,
                elapsed,
            )
        return result

    async def _process(self, raw: str, event: Optional[Event]) -> ScanResult:
        if event is not None and event != self.event:
            self.event = event
            self._roster = None

        candidate = normalize(raw)
        try:
            roster = await self.load_roster()
        except EpiCheckError as exc:
            return ScanResult(
                raw_input=raw,
                normalized_login=candidate.bare_login,
                outcome=ScanOutcome.ERROR,
                error=exc,
            )

        self._state = ScanState.MATCHING
        result = match(candidate, roster, domain=self._domain, strict=self._strict)
        if result.outcome is not ScanOutcome.MATCHED or result.matched_student is None:
            return result

        self._state = ScanState.SUBMITTING
        ack = await self._submitter.mark_present(self.event, result.matched_student.login)
        return replace(result, ack=ack, error=ack.error)

    async def mark(self, login: str, status: PresenceStatus) -> Optional[Ack]:
        """Set presence for a typed login or e-mail (manual attendance).

        The text goes through the same matching rules as a scan, and the
        update uses the login exactly as the roster lists it. Manual entry
        ignores the scan cool-down. Returns ``None`` when another update is
        already in flight.
        """
        if self._busy:
            return None
        self._busy = True
        try:
            roster = await self.load_roster()
            result = match(normalize(login), roster, domain=self._domain, strict=self._strict)
            if result.matched_student is None:
                error = result.error or NotFoundInRoster(
                    f"{login} is not in the registered list of {self.event.label}"
                )
                return Ack(event=self.event, login=login, status=status, ok=False, error=error)
            return await self._submitter.submit(self.event, result.matched_student.login, status)
        except EpiCheckError as exc:
            return Ack(event=self.event, login=login, status=status, ok=False, error=exc)
        finally:
            self._busy = False

    async def consume(
        self,
        scans: AsyncIterable[str],
        on_result: Optional[Callable[[ScanResult], None]] = None,
    ) -> None:
        """Dispatch every raw scan from ``scans`` until the source ends.

        Each scan runs as its own task so the busy flag, not a queue, decides
        what happens to scans that arrive mid-submission.
        """
        pending: Set[asyncio.Task[None]] = set()

        async def _handle(raw: str) -> None:
            result = await self.scan(raw)
            if on_result is not None:
                on_result(result)

        async for raw in scans:
            task = asyncio.create_task(_handle(raw))
            pending.add(task)
            task.add_done_callback(pending.discard)

        if pending:
            await asyncio.gather(*pending)


__all__ = ["ScanRunner", "ScanState", "DEFAULT_COOLDOWN_SECONDS"]
