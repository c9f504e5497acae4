import asyncio
import logging
import pathlib
import sys

import pytest

SYS_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = SYS_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from epicheck.core.errors import AuthExpired, ErrorKind, EventNotFound
from epicheck.core.models import Event, PresenceStatus, Roster, ScanOutcome, StudentRecord
from epicheck.core.runner import ScanRunner, ScanState
from epicheck.core.sources import ScanSubscription

EVENT = Event.parse("2024/B-PRO-100/PAR-1-1/acti-100/event-200")


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class FakeSource:
    def __init__(self, students=None, *, roster_error=None, submit_error=None):
        self.students = students if students is not None else [
            {"login": "jean.dupont@epitech.eu", "email": "jean.dupont@epitech.eu", "title": "Jean Dupont"},
            {"login": "marie.curie", "title": "Marie Curie"},
        ]
        self.roster_error = roster_error
        self.submit_error = submit_error
        self.fetches = 0
        self.submitted = []
        self.gate = None

    async def fetch_roster(self, event):
        self.fetches += 1
        if self.roster_error is not None:
            raise self.roster_error
        return Roster.from_payload(event, [dict(entry) for entry in self.students])

    async def submit_presence(self, event, login, status):
        if self.gate is not None:
            await self.gate.wait()
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append((event, login, status))


def _runner(source, clock=None, **kwargs):
    kwargs.setdefault("cooldown", 5.0)
    return ScanRunner(source, EVENT, domain="epitech.eu", timer=clock or FakeClock(), **kwargs)


def test_scan_matches_and_marks_present_with_roster_login(caplog):
    source = FakeSource()
    runner = _runner(source)

    with caplog.at_level(logging.INFO):
        result = asyncio.run(runner.scan("jean.dupont@epitech.eu"))

    assert result.outcome is ScanOutcome.MATCHED
    assert result.succeeded
    assert source.submitted == [(EVENT, "jean.dupont@epitech.eu", PresenceStatus.PRESENT)]
    snapshot = {s.login: s.presence_status for s in runner.get_roster_snapshot()}
    assert snapshot["jean.dupont@epitech.eu"] is PresenceStatus.PRESENT
    messages = [record.getMessage() for record in caplog.records]
    assert any("jean.dupont@epitech.eu" in m and "elapsed" in m for m in messages)


def test_roster_is_fetched_once_per_event():
    source = FakeSource()
    clock = FakeClock()
    runner = _runner(source, clock)

    async def _two_scans():
        await runner.scan("marie.curie")
        clock.now += 10
        await runner.scan("jean.dupont")

    asyncio.run(_two_scans())
    assert source.fetches == 1
    assert len(source.submitted) == 2


def test_scan_during_cooldown_is_dropped():
    source = FakeSource()
    clock = FakeClock()
    runner = _runner(source, clock, cooldown=3.0)

    async def _scans():
        first = await runner.scan("marie.curie")
        clock.now += 1.0
        second = await runner.scan("marie.curie")
        clock.now += 3.0
        third = await runner.scan("marie.curie")
        return first, second, third

    first, second, third = asyncio.run(_scans())
    assert first.outcome is ScanOutcome.MATCHED
    assert second.outcome is ScanOutcome.DROPPED
    assert third.outcome is ScanOutcome.MATCHED
    assert len(runner.history) == 2


def test_manual_entry_can_skip_cooldown():
    source = FakeSource()
    runner = _runner(source)

    async def _scans():
        await runner.scan("marie.curie")
        return await runner.scan("jean.dupont", respect_cooldown=False)

    assert asyncio.run(_scans()).outcome is ScanOutcome.MATCHED


def test_scan_while_submitting_is_dropped():
    source = FakeSource()
    runner = _runner(source, cooldown=0.0)

    async def _overlap():
        source.gate = asyncio.Event()
        first = asyncio.create_task(runner.scan("marie.curie"))
        while runner.state is not ScanState.SUBMITTING:
            await asyncio.sleep(0)
        assert runner.busy
        second = await runner.scan("jean.dupont")
        source.gate.set()
        return await first, second

    first, second = asyncio.run(_overlap())
    assert first.outcome is ScanOutcome.MATCHED
    assert second.outcome is ScanOutcome.DROPPED
    assert source.submitted == [(EVENT, "marie.curie", PresenceStatus.PRESENT)]
    assert runner.busy is False


def test_state_returns_to_idle_after_cooldown():
    clock = FakeClock()
    runner = _runner(FakeSource(), clock, cooldown=2.0)
    asyncio.run(runner.scan("marie.curie"))
    assert runner.state is ScanState.RESOLVED
    clock.now += 2.0
    assert runner.state is ScanState.IDLE


def test_unknown_student_is_not_found_and_nothing_is_submitted():
    source = FakeSource()
    result = asyncio.run(_runner(source).scan("nobody@epitech.eu"))
    assert result.outcome is ScanOutcome.NOT_FOUND
    assert result.error.kind is ErrorKind.NOT_FOUND_IN_ROSTER
    assert source.submitted == []


def test_roster_failure_becomes_error_result():
    source = FakeSource(roster_error=EventNotFound(status=404))
    result = asyncio.run(_runner(source).scan("marie.curie"))
    assert result.outcome is ScanOutcome.ERROR
    assert result.error.kind is ErrorKind.EVENT_NOT_FOUND


def test_auth_failure_on_submit_requires_reauth_and_keeps_roster():
    source = FakeSource(submit_error=AuthExpired(status=401))
    runner = _runner(source)
    result = asyncio.run(runner.scan("marie.curie"))
    assert result.outcome is ScanOutcome.MATCHED
    assert result.succeeded is False
    assert result.requires_reauth is True
    assert all(s.presence_status is PresenceStatus.UNKNOWN for s in runner.get_roster_snapshot())
    assert runner.busy is False


def test_mark_sets_status_and_reports_unknown_login():
    source = FakeSource()
    runner = _runner(source)

    async def _marks():
        ok = await runner.mark("marie.curie", PresenceStatus.ABSENT)
        missing = await runner.mark("ghost", PresenceStatus.PRESENT)
        return ok, missing

    ok, missing = asyncio.run(_marks())
    assert ok.ok is True
    assert runner.roster.find_by_login("marie.curie").presence_status is PresenceStatus.ABSENT
    assert missing.ok is False
    assert missing.error.kind is ErrorKind.NOT_FOUND_IN_ROSTER


def test_consume_processes_subscription_until_cancelled():
    source = FakeSource()
    runner = _runner(source, cooldown=0.0)
    results = []

    async def _feed():
        subscription = ScanSubscription("test")
        subscription.push("marie.curie")
        consumer = asyncio.create_task(runner.consume(subscription, results.append))
        while not results:
            await asyncio.sleep(0)
        subscription.push('{"email": "jean.dupont@epitech.eu"}')
        while len(results) < 2:
            await asyncio.sleep(0)
        subscription.cancel()
        await consumer

    asyncio.run(_feed())
    assert [r.outcome for r in results] == [ScanOutcome.MATCHED, ScanOutcome.MATCHED]
    assert [login for _, login, _ in source.submitted] == ["marie.curie", "jean.dupont@epitech.eu"]


DEEP_QR_PAYLOAD = '{"a":' + "[" * 50000


@pytest.mark.parametrize("raw", ["{not valid", "", DEEP_QR_PAYLOAD])
def test_odd_input_never_raises(raw):
    result = asyncio.run(_runner(FakeSource()).scan(raw))
    assert result.outcome is ScanOutcome.NOT_FOUND
    assert result.error.kind is ErrorKind.NOT_FOUND_IN_ROSTER


def test_deeply_nested_payload_leaves_runner_ready():
    runner = _runner(FakeSource(), cooldown=0.0)
    results = []

    async def _feed():
        subscription = ScanSubscription("test")
        subscription.push(DEEP_QR_PAYLOAD)
        subscription.push("marie.curie")
        subscription.close()
        await runner.consume(subscription, results.append)
        return await runner.scan("marie.curie")

    last = asyncio.run(_feed())
    assert results[0].outcome is ScanOutcome.NOT_FOUND
    assert last.outcome is ScanOutcome.MATCHED
    assert runner.busy is False


def test_mark_resolves_typed_email_through_matching_rules():
    source = FakeSource()
    runner = _runner(source)

    async def _marks():
        scanned = await runner.scan("jean.dupont")
        # still cooling down after the scan; manual entry is not
        typed = await runner.mark(" marie.curie@epitech.eu ", PresenceStatus.PRESENT)
        return scanned, typed

    scanned, typed = asyncio.run(_marks())
    assert scanned.succeeded is True
    assert typed.ok is True
    assert typed.login == "marie.curie"
    assert [login for _, login, _ in source.submitted] == ["jean.dupont@epitech.eu", "marie.curie"]


def test_mark_refuses_ambiguous_text():
    source = FakeSource(
        students=[
            {"login": "kim@epitech.eu"},
            {"login": "kim@other.domain"},
        ]
    )
    ack = asyncio.run(_runner(source).mark("kim", PresenceStatus.PRESENT))
    assert ack.ok is False
    assert ack.error.kind is ErrorKind.AMBIGUOUS_MATCH
    assert source.submitted == []
