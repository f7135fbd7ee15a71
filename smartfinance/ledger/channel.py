"""
Snapshot Channel

Carries CollectionSnapshots from a backend's subscription feed into the
ledger store's event loop.

Backends may publish from any thread (the Google Sheets watchers run in
their own threads). Snapshots published off-loop are handed over with
call_soon_threadsafe, so the queue itself is only ever touched by the
loop that owns the store.
"""

import asyncio
import threading
from typing import Optional

from smartfinance.models.sync import CollectionSnapshot


class SnapshotChannel:
    """Single-consumer queue of pushed snapshots."""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[CollectionSnapshot]] = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._closed = False

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach the channel to the consuming event loop."""
        self._loop = loop
        self._loop_thread = threading.get_ident()

    @property
    def closed(self) -> bool:
        return self._closed

    def publish(self, snapshot: CollectionSnapshot) -> None:
        """Deliver a snapshot. Safe to call from any thread."""
        if self._closed:
            return
        self._put(snapshot)

    def close(self) -> None:
        """Stop delivery and wake the consumer."""
        if self._closed:
            return
        self._closed = True
        self._put(None)

    def drain(self) -> list[CollectionSnapshot]:
        """Take every snapshot queued so far without waiting."""
        pending = []
        while True:
            try:
                snapshot = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if snapshot is None:
                # Keep the close marker for the pump
                self._queue.put_nowait(None)
                break
            pending.append(snapshot)
        return pending

    async def receive(self) -> Optional[CollectionSnapshot]:
        """Wait for the next snapshot. Returns None once the channel is closed."""
        snapshot = await self._queue.get()
        if snapshot is None:
            self._queue.put_nowait(None)
        return snapshot

    def _put(self, item: Optional[CollectionSnapshot]) -> None:
        on_loop_thread = (
            self._loop is None
            or threading.get_ident() == self._loop_thread
        )
        if on_loop_thread:
            self._queue.put_nowait(item)
        elif not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
