from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass

from loguru import logger

from miniopencode.stream.events import ContentDelta, FeedRecord, SessionIdle
from miniopencode.stream.feed import EventSource
from miniopencode.stream.reconciler import StreamReconciler


@dataclass(frozen=True)
class StreamEnd:
    """Terminal item of a stream; ``error`` is set when the feed failed."""

    error: Exception | None = None


StreamItem = ContentDelta | SessionIdle | StreamEnd


class Streamer:
    """Feed reader and reconciler tasks joined by bounded queues.

    The consumer pulls with ``get()``. Exactly one ``StreamEnd`` is delivered
    per ``start()``; after it, ``get()`` keeps returning a clean ``StreamEnd``.
    """

    def __init__(
        self,
        source: EventSource,
        *,
        session_id: str | None = None,
        queue_size: int = 64,
        raw_queue_size: int = 32,
    ):
        self._source = source
        self._session_id = session_id
        self._queue_size = max(1, queue_size)
        self._raw_queue_size = max(1, raw_queue_size)
        self._reconciler = StreamReconciler(session_id=session_id)
        self._raw: asyncio.Queue[FeedRecord | StreamEnd] = asyncio.Queue(self._raw_queue_size)
        self._out: asyncio.Queue[StreamItem] = asyncio.Queue(self._queue_size)
        self._producer_task: asyncio.Task | None = None
        self._reconcile_task: asyncio.Task | None = None
        self._closed = False
        self._end_queued = False

    @property
    def reconciler(self) -> StreamReconciler:
        return self._reconciler

    @property
    def is_running(self) -> bool:
        return self._producer_task is not None and not self._closed

    def start(self) -> None:
        if self.is_running:
            return
        self._reconciler = StreamReconciler(session_id=self._session_id)
        self._raw = asyncio.Queue(self._raw_queue_size)
        self._out = asyncio.Queue(self._queue_size)
        self._closed = False
        self._end_queued = False
        self._producer_task = asyncio.create_task(self._produce(self._raw))
        self._reconcile_task = asyncio.create_task(self._reconcile(self._raw, self._out))

    async def get(self) -> StreamItem:
        if self._closed and self._out.empty():
            return StreamEnd()
        item = await self._out.get()
        if isinstance(item, StreamEnd):
            self._closed = True
        return item

    async def stop(self) -> None:
        tasks = [t for t in (self._producer_task, self._reconcile_task) if t is not None]
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._producer_task = None
        self._reconcile_task = None
        if not self._end_queued:
            # Wake a consumer blocked in get(); a full queue means nobody is waiting.
            with contextlib.suppress(asyncio.QueueFull):
                self._out.put_nowait(StreamEnd())
                self._end_queued = True

    async def _produce(self, raw: asyncio.Queue[FeedRecord | StreamEnd]) -> None:
        try:
            async for record in self._source.records():
                if not record.data:
                    continue
                await raw.put(record)
        except asyncio.CancelledError:
            logger.debug("stream: feed reader cancelled")
            raise
        except Exception as ex:
            logger.warning(f"stream: sse error: {ex}")
            await raw.put(StreamEnd(error=ex))
            return
        logger.info("stream: feed closed")
        await raw.put(StreamEnd())

    async def _reconcile(
        self,
        raw: asyncio.Queue[FeedRecord | StreamEnd],
        out: asyncio.Queue[StreamItem],
    ) -> None:
        while True:
            item = await raw.get()
            if isinstance(item, StreamEnd):
                await out.put(item)
                self._end_queued = True
                return
            delta = self._reconciler.reconcile(item)
            if delta is not None:
                await out.put(delta)
