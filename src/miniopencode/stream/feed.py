from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from typing import Protocol

import httpx
from loguru import logger

from miniopencode.errors import FeedError
from miniopencode.logging_config import preview
from miniopencode.stream.events import FeedRecord


class EventSource(Protocol):
    def records(self) -> AsyncIterator[FeedRecord]: ...


async def parse_sse(lines: AsyncIterable[str]) -> AsyncIterator[FeedRecord]:
    """Frame server-sent-event lines into records; a blank line dispatches."""
    event = ""
    data: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield FeedRecord(event=event, data="\n".join(data))
            event = ""
            data = []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield FeedRecord(event=event, data="\n".join(data))


class EventFeed:
    def __init__(self, url: str, *, transport: httpx.AsyncBaseTransport | None = None):
        self._url = url
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    async def records(self) -> AsyncIterator[FeedRecord]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        logger.info(f"feed: connecting url={self._url}")
        async with httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None), transport=self._transport) as client:
            try:
                async with client.stream("GET", self._url, headers=headers) as resp:
                    logger.info(f"feed: connected url={self._url} status={resp.status_code}")
                    if resp.status_code != 200:
                        raise FeedError(
                            f"unexpected HTTP status {resp.status_code}",
                            status_code=resp.status_code,
                        )
                    async for record in parse_sse(resp.aiter_lines()):
                        logger.debug(
                            f"feed: event={record.event!r} size={len(record.data)} "
                            f"preview={preview(record.data)}"
                        )
                        yield record
            except httpx.HTTPError as ex:
                logger.warning(f"feed: read error url={self._url}: {ex}")
                raise FeedError(f"feed read failed: {ex}") from ex
        logger.info(f"feed: disconnected url={self._url}")
