import asyncio
import os
import time
import io
import pathlib
import sys

SYS_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_PATH = SYS_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from epicheck.core.sources import ScanSubscription, StreamScanSource


async def _collect(iterable):
    return [item async for item in iterable]


def test_subscription_yields_pushed_scans_until_cancel():
    async def _run():
        subscription = ScanSubscription()
        assert subscription.push("  marie.curie \n") is True
        assert subscription.push("   ") is False
        subscription.push("jean.dupont")
        iterator = subscription.__aiter__()
        first = await iterator.__anext__()
        subscription.cancel()
        rest = await _collect(subscription)
        return first, rest

    first, rest = asyncio.run(_run())
    assert first == "marie.curie"
    # cancel drops whatever was not consumed yet
    assert rest == []


def test_cancelled_subscription_rejects_pushes_until_restart():
    async def _run():
        subscription = ScanSubscription()
        subscription.cancel()
        rejected = subscription.push("marie.curie")
        subscription.restart()
        accepted = subscription.push("marie.curie")
        subscription.cancel()
        return rejected, accepted, subscription.cancelled

    rejected, accepted, cancelled = asyncio.run(_run())
    assert rejected is False
    assert accepted is True
    assert cancelled is True


def test_restarted_subscription_is_a_fresh_sequence():
    async def _run():
        subscription = ScanSubscription()
        subscription.push("old")
        subscription.cancel()
        subscription.restart()
        subscription.push("new")
        subscription.cancel()
        subscription.restart()
        subscription.push("newer")
        iterator = subscription.__aiter__()
        return await iterator.__anext__()

    assert asyncio.run(_run()) == "newer"


def test_stream_source_reads_lines_and_stops_at_eof():
    stream = io.StringIO("marie.curie\n\njean.dupont@epitech.eu\n")

    async def _run():
        source = StreamScanSource(stream)
        source.start()
        return await _collect(source)

    assert asyncio.run(_run()) == ["marie.curie", "jean.dupont@epitech.eu"]


def test_close_lets_queued_scans_drain():
    async def _run():
        subscription = ScanSubscription()
        subscription.push("marie.curie")
        subscription.push("jean.dupont")
        subscription.close()
        return await _collect(subscription)

    assert asyncio.run(_run()) == ["marie.curie", "jean.dupont"]


def test_cancel_returns_while_read_is_blocked():
    read_fd, write_fd = os.pipe()
    stream = os.fdopen(read_fd, "r", encoding="utf-8")
    holder = {}

    async def _run():
        source = StreamScanSource(stream, name="pipe")
        holder["source"] = source
        source.start()
        await asyncio.sleep(0.05)
        source.cancel()
        return await _collect(source)

    started = time.monotonic()
    try:
        assert asyncio.run(_run()) == []
        assert time.monotonic() - started < 2.0
    finally:
        os.close(write_fd)
        holder["source"]._thread.join(timeout=2.0)
        stream.close()
    assert not holder["source"]._thread.is_alive()


def test_stream_source_decodes_nfc_lines():
    record = bytes([0x02]) + b"en" + b"marie.curie@epitech.eu"
    stream = io.StringIO(
        f"ndef:{record.hex()}\n"
        "uid:04:A2:3B:1C\n"
        "ndef:zz\n"
        "jean.dupont\n"
    )

    async def _run():
        source = StreamScanSource(stream)
        source.start()
        return await _collect(source)

    assert asyncio.run(_run()) == ["marie.curie@epitech.eu", "04a23b1c", "ndef:zz", "jean.dupont"]


def test_push_tag_falls_back_to_uid():
    async def _run():
        subscription = ScanSubscription("nfc")
        assert subscription.push_tag(ndef_payload=b"", tag_id=[0x04, 0xA2]) is True
        assert subscription.push_tag() is False
        subscription.close()
        return await _collect(subscription)

    assert asyncio.run(_run()) == ["04a2"]
