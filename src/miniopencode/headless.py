from __future__ import annotations

import asyncio
import contextlib
import json
import sys
from collections.abc import AsyncIterator, Callable
from typing import Any, TextIO

import httpx
from loguru import logger

from miniopencode.catalog_client import CatalogClient
from miniopencode.errors import MiniOpencodeError
from miniopencode.models import ModelRef
from miniopencode.stream.feed import EventSource


async def stdin_lines() -> AsyncIterator[str]:
    while True:
        line = await asyncio.to_thread(sys.stdin.readline)
        if not line:
            return
        yield line.rstrip("\n")


class HeadlessProxy:
    """JSON-lines bridge: commands on stdin, results and feed events on stdout.

    Every output line is ``{"type": ..., "data": ...}``.
    """

    def __init__(
        self,
        catalog: CatalogClient,
        *,
        feed_factory: Callable[[], EventSource],
        host: str,
        port: int,
        out: TextIO | None = None,
        session_id: str = "",
    ) -> None:
        self._catalog = catalog
        self._feed_factory = feed_factory
        self._host = host
        self._port = port
        self._out = out or sys.stdout
        self._session_id = session_id
        self._sse_task: asyncio.Task | None = None
        self._handlers = {
            "health": self._cmd_health,
            "session.create": self._cmd_session_create,
            "session.list": self._cmd_session_list,
            "session.select": self._cmd_session_select,
            "prompt": self._cmd_prompt,
            "sse.start": self._cmd_sse_start,
            "sse.stop": self._cmd_sse_stop,
        }

    @property
    def session_id(self) -> str:
        return self._session_id

    def output(self, event_type: str, data: Any) -> None:
        self._out.write(json.dumps({"type": event_type, "data": data}) + "\n")
        self._out.flush()

    def output_error(self, message: str) -> None:
        self.output("error", {"message": message})

    async def run(self, lines: AsyncIterator[str] | None = None) -> None:
        self.output("ready", {"host": self._host, "port": str(self._port)})
        try:
            async for line in lines if lines is not None else stdin_lines():
                if not line.strip():
                    continue
                await self.handle_line(line)
        finally:
            await self._stop_sse()

    async def handle_line(self, line: str) -> None:
        try:
            command = json.loads(line)
        except json.JSONDecodeError as ex:
            self.output_error(f"invalid JSON: {ex}")
            return
        if not isinstance(command, dict):
            self.output_error("invalid JSON: expected an object")
            return

        command_type = str(command.get("type", ""))
        payload = command.get("payload") or {}
        handler = self._handlers.get(command_type)
        if handler is None:
            self.output_error(f"unknown command: {command_type}")
            return
        if not isinstance(payload, dict):
            self.output_error(f"invalid payload for {command_type}")
            return
        try:
            await handler(payload)
        except (MiniOpencodeError, httpx.HTTPError) as ex:
            logger.warning(f"headless: {command_type} failed: {ex}")
            self.output_error(str(ex))

    async def _cmd_health(self, payload: dict) -> None:
        self.output("health", {"healthy": await self._catalog.check_health()})

    async def _cmd_session_create(self, payload: dict) -> None:
        session_id = await self._catalog.create_session(str(payload.get("title", "")))
        self._session_id = session_id
        self.output("session.created", {"id": session_id})

    async def _cmd_session_list(self, payload: dict) -> None:
        sessions = await self._catalog.list_sessions()
        self.output("session.list", [{"id": s.id, "title": s.title} for s in sessions])

    async def _cmd_session_select(self, payload: dict) -> None:
        self._session_id = str(payload.get("id", ""))
        self.output("session.selected", {"id": self._session_id})

    async def _cmd_prompt(self, payload: dict) -> None:
        if not self._session_id:
            self.output_error("no session selected")
            return
        provider_id = str(payload.get("provider_id", ""))
        model_id = str(payload.get("model_id", ""))
        model = ModelRef(provider_id, model_id) if provider_id and model_id else None
        await self._catalog.send_prompt(self._session_id, str(payload.get("text", "")), model=model)
        self.output("prompt.sent", {"session_id": self._session_id})

    async def _cmd_sse_start(self, payload: dict) -> None:
        if self._sse_task is None or self._sse_task.done():
            self._sse_task = asyncio.create_task(self._forward_sse(self._feed_factory()))
        self.output("sse.started", None)

    async def _cmd_sse_stop(self, payload: dict) -> None:
        await self._stop_sse()
        self.output("sse.stopped", None)

    async def _stop_sse(self) -> None:
        if self._sse_task is not None:
            self._sse_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sse_task
            self._sse_task = None

    async def _forward_sse(self, feed: EventSource) -> None:
        try:
            async for record in feed.records():
                try:
                    event = json.loads(record.data)
                except json.JSONDecodeError:
                    continue
                self.output("sse", event)
        except MiniOpencodeError as ex:
            self.output_error(f"SSE read error: {ex}")
