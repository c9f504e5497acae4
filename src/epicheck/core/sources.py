"""Scan sources: cancellable async streams of raw scanner strings."""

from __future__ import annotations

import asyncio
import threading
from typing import Optional, TextIO, Union

from ..utils.logger import get_logger
from .normalizer import ByteLike, identifier_from_tag

LOGGER = get_logger("sources")

_CLOSED = object()


class ScanSubscription:
    """Lazy, restartable sequence of raw scans.

    Hardware callbacks (camera, NFC reader) call :meth:`push`; consumers use
    ``async for``. :meth:`cancel` drops anything not yet consumed and ends the
    iteration; :meth:`restart` opens a fresh sequence on the same object.
    """

    def __init__(self, name: str = "scanner") -> None:
        self.name = name
        self._queue: asyncio.Queue = asyncio.Queue()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def push(self, raw: Optional[str]) -> bool:
        if self._cancelled or raw is None:
            return False
        text = str(raw).strip()
        if not text:
            return False
        self._queue.put_nowait(text)
        return True

    def push_tag(
        self,
        ndef_payload: Optional[ByteLike] = None,
        tag_id: Optional[Union[str, ByteLike]] = None,
    ) -> bool:
        """Push an NFC read: the card's text record, or its UID when the card holds none."""
        return self.push(identifier_from_tag(ndef_payload, tag_id))

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        LOGGER.debug("Scan subscription '%s' cancelled", self.name)

    def close(self) -> None:
        """End the sequence once the scans already queued are consumed."""
        if self._cancelled:
            return
        self._cancelled = True
        self._queue.put_nowait(_CLOSED)

    def restart(self) -> None:
        if not self._cancelled:
            return
        self._queue = asyncio.Queue()
        self._cancelled = False
        LOGGER.debug("Scan subscription '%s' restarted", self.name)

    def __aiter__(self) -> "ScanSubscription":
        return self

    async def __anext__(self) -> str:
        if self._cancelled and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class StreamScanSource(ScanSubscription):
    """Feed scans from a text stream, one per line.

    USB QR and NFC readers in keyboard mode type the scanned value followed
    by Enter, so stdin works as a scanner. Serial NFC bridges can write
    ``ndef:<hex>`` (a text record payload) or ``uid:<hex>`` lines instead,
    which go through :meth:`push_tag`. End of stream closes the source.

    Lines are read on a daemon thread so that :meth:`cancel` returns at once
    even while a read is blocked; the thread ends at the next line or EOF.
    """

    def __init__(self, stream: TextIO, name: str = "stream") -> None:
        super().__init__(name=name)
        self._stream = stream
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        self.restart()
        if self._thread is not None and self._thread.is_alive():
            return
        loop = asyncio.get_running_loop()
        self._thread = threading.Thread(
            target=self._read_lines,
            args=(loop,),
            name=f"{self.name}-reader",
            daemon=True,
        )
        self._thread.start()

    def _read_lines(self, loop: asyncio.AbstractEventLoop) -> None:
        try:
            for line in iter(self._stream.readline, ""):
                if not _post(loop, self.push_line, line):
                    return
        except (OSError, ValueError) as exc:
            LOGGER.warning("Stopped reading %s: %s", self.name, exc)
        _post(loop, self.close)

    def push_line(self, line: str) -> bool:
        text = line.strip()
        prefix, _, value = text.partition(":")
        kind = prefix.lower()
        if value and kind in ("ndef", "uid"):
            try:
                data = bytes.fromhex(value.replace(":", "").replace(" ", ""))
            except ValueError:
                LOGGER.debug("Line %r is not hex; using it literally", text)
                return self.push(text)
            if kind == "ndef":
                return self.push_tag(ndef_payload=data)
            return self.push_tag(tag_id=data)
        return self.push(text)


def _post(loop: asyncio.AbstractEventLoop, callback, *args) -> bool:
    """Schedule ``callback`` on ``loop`` from a reader thread; False once the loop is gone."""
    if loop.is_closed():
        return False
    try:
        loop.call_soon_threadsafe(callback, *args)
    except RuntimeError:
        return False
    return True


__all__ = ["ScanSubscription", "StreamScanSource"]
