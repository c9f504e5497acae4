import asyncio
import pathlib
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

SYS_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = SYS_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from epicheck.core.errors import AuthExpired, ErrorKind, NotRegisteredForEvent
from epicheck.core.models import Event, PresenceStatus, Roster, StudentRecord
from epicheck.core.submitter import PresenceSubmitter

EVENT = Event.parse("2024/B-PRO-100/PAR-1-1/acti-100/event-200")


def _roster():
    return Roster(EVENT, [StudentRecord(login="jean.dupont@epitech.eu"), StudentRecord(login="marie.curie")])


def test_mark_present_sends_stored_login_and_updates_roster():
    source = MagicMock()
    source.submit_presence = AsyncMock(return_value=None)
    roster = _roster()
    submitter = PresenceSubmitter(source, roster=roster)

    ack = asyncio.run(submitter.mark_present(EVENT, "jean.dupont@epitech.eu"))

    assert ack.ok is True
    source.submit_presence.assert_awaited_once_with(EVENT, "jean.dupont@epitech.eu", PresenceStatus.PRESENT)
    assert roster.find_by_login("jean.dupont@epitech.eu").presence_status is PresenceStatus.PRESENT


def test_repeated_submission_is_idempotent():
    source = MagicMock()
    source.submit_presence = AsyncMock(return_value=None)
    roster = _roster()
    submitter = PresenceSubmitter(source, roster=roster)

    async def _twice():
        first = await submitter.mark_absent(EVENT, "marie.curie")
        second = await submitter.mark_absent(EVENT, "marie.curie")
        return first, second

    first, second = asyncio.run(_twice())

    assert first.ok and second.ok
    assert source.submit_presence.await_count == 2
    assert roster.find_by_login("marie.curie").presence_status is PresenceStatus.ABSENT


def test_auth_failure_reports_reauth_and_leaves_roster_untouched():
    source = MagicMock()
    source.submit_presence = AsyncMock(side_effect=AuthExpired(status=401))
    roster = _roster()
    before = roster.snapshot()
    submitter = PresenceSubmitter(source, roster=roster)

    ack = asyncio.run(submitter.mark_present(EVENT, "marie.curie"))

    assert ack.ok is False
    assert ack.requires_reauth is True
    assert ack.error.kind is ErrorKind.AUTH_EXPIRED
    assert roster.snapshot() == before


def test_not_registered_is_distinct_from_not_found():
    source = MagicMock()
    source.submit_presence = AsyncMock(side_effect=NotRegisteredForEvent())
    ack = asyncio.run(PresenceSubmitter(source).mark_present(EVENT, "marie.curie"))
    assert ack.error.kind is ErrorKind.NOT_REGISTERED
    assert ack.requires_reauth is False


def test_unknown_status_is_rejected():
    submitter = PresenceSubmitter(MagicMock())
    with pytest.raises(ValueError):
        asyncio.run(submitter.submit(EVENT, "marie.curie", PresenceStatus.UNKNOWN))


def test_other_event_roster_is_not_updated():
    source = MagicMock()
    source.submit_presence = AsyncMock(return_value=None)
    roster = _roster()
    other = Event.parse("2024/B-PRO-100/PAR-1-1/acti-100/event-999")

    asyncio.run(PresenceSubmitter(source, roster=roster).mark_present(other, "marie.curie"))

    assert roster.find_by_login("marie.curie").presence_status is PresenceStatus.UNKNOWN
