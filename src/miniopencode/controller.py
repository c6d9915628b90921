from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Protocol

import httpx
from loguru import logger

from miniopencode.errors import CatalogError
from miniopencode.models import ModelRef
from miniopencode.pacing import PacingBuffer, Reveal
from miniopencode.stream.events import ContentDelta, ContentKind, DeltaOp, SessionIdle
from miniopencode.stream.streamer import StreamEnd, StreamItem
from miniopencode.transcript import Transcript


class DeltaStream(Protocol):
    async def get(self) -> StreamItem: ...


class PromptSender(Protocol):
    async def send_prompt(
        self,
        session_id: str,
        text: str,
        *,
        model: ModelRef | None = None,
        agent: str | None = None,
    ) -> None: ...


class RenderSink(Protocol):
    def update(self, document: str, *, busy: bool) -> None: ...


@dataclass
class ViewOptions:
    show_thinking: bool = True
    show_tools: bool = True
    pacing_interval_seconds: float = 0.02
    pacing_chunk_size: int = 3


@dataclass
class PromptDefaults:
    agent: str = ""
    provider_id: str = ""
    model_id: str = ""

    def model_ref(self) -> ModelRef | None:
        if self.provider_id and self.model_id:
            return ModelRef(provider_id=self.provider_id, model_id=self.model_id)
        return None


class ChatController:
    """Render loop: the only writer of the transcript.

    Answer text is typed out through the pacing buffer on a fixed interval;
    reasoning, tool and meta deltas are applied at once after flushing any
    backlog, so typed prose never interleaves with other fragments.
    """

    def __init__(
        self,
        *,
        stream: DeltaStream,
        sender: PromptSender,
        session_id: str,
        sink: RenderSink,
        options: ViewOptions | None = None,
        prompt_defaults: PromptDefaults | None = None,
        transcript: Transcript | None = None,
    ) -> None:
        self._stream = stream
        self._sender = sender
        self._session_id = session_id
        self._sink = sink
        self._options = options or ViewOptions()
        self._prompt_defaults = prompt_defaults or PromptDefaults()
        self._transcript = transcript or Transcript()
        self._pacing = PacingBuffer(self._options.pacing_chunk_size)
        self._final_after_reveal: set[str] = set()
        self._busy = False
        self._turn_ended = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def options(self) -> ViewOptions:
        return self._options

    @property
    def busy(self) -> bool:
        return self._busy

    async def send(self, text: str) -> bool:
        if not text.strip() or self._busy:
            return False

        self._flush_pacing()
        self._transcript.add_user_message(text)
        self._transcript.ensure_pending_assistant()
        self._busy = True
        self._turn_ended = False
        self._idle.clear()
        self._refresh()

        logger.info(f"controller: send prompt start session={self._session_id} len={len(text)}")
        try:
            await self._sender.send_prompt(
                self._session_id,
                text,
                model=self._prompt_defaults.model_ref(),
                agent=self._prompt_defaults.agent or None,
            )
        except (CatalogError, httpx.HTTPError) as ex:
            logger.warning(f"controller: send prompt error session={self._session_id} err={ex}")
            self._transcript.add_system_line(f"[Error] {ex}")
            self._set_idle()
            self._refresh()
            return False
        logger.info(f"controller: send prompt accepted session={self._session_id}")
        return True

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def run(self) -> StreamEnd:
        """Consume the stream until it ends, revealing paced text between items."""
        loop = asyncio.get_running_loop()
        getter: asyncio.Future | None = None
        next_tick: float | None = None
        try:
            while True:
                if self._pacing.has_backlog and next_tick is None:
                    next_tick = loop.time() + self._options.pacing_interval_seconds
                timeout = None if next_tick is None else max(0.0, next_tick - loop.time())

                if getter is None:
                    getter = asyncio.ensure_future(self._stream.get())
                done, _ = await asyncio.wait({getter}, timeout=timeout)
                if not done:
                    next_tick = None
                    self.tick()
                    continue

                item = getter.result()
                getter = None
                if isinstance(item, StreamEnd):
                    self._on_end(item)
                    return item
                if isinstance(item, SessionIdle):
                    self.handle_idle(item)
                    continue
                self.handle_delta(item)
        finally:
            if getter is not None:
                getter.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await getter

    def handle_delta(self, delta: ContentDelta) -> None:
        if delta.is_meta:
            self._flush_pacing()
            self._transcript.apply_delta(delta)
            self._refresh()
            return

        if delta.kind is ContentKind.ANSWER and delta.op is DeltaOp.APPEND and delta.text:
            flushed = self._pacing.offer(delta.fragment_id, delta.message_id, delta.text)
            if delta.is_final:
                self._final_after_reveal.add(delta.fragment_id)
            if flushed is not None:
                self._apply_reveal(flushed)
                self._refresh()
            return

        self._flush_pacing()
        self._transcript.apply_delta(delta)
        self._refresh()

    def handle_idle(self, idle: SessionIdle) -> None:
        """End the turn; paced text still in the backlog is typed out first."""
        if not self._busy:
            return
        logger.info(f"controller: turn ended session={idle.session_id or self._session_id}")
        self._turn_ended = True
        self._refresh()

    def tick(self) -> None:
        reveal = self._pacing.drain(self._options.pacing_chunk_size)
        if reveal.text:
            self._apply_reveal(reveal)
            self._refresh()

    def set_show_thinking(self, value: bool) -> None:
        self._options.show_thinking = value
        self._refresh()

    def set_show_tools(self, value: bool) -> None:
        self._options.show_tools = value
        self._refresh()

    def render(self, *, max_lines: int = 0) -> str:
        return self._transcript.render(
            show_thinking=self._options.show_thinking,
            show_tools=self._options.show_tools,
            max_lines=max_lines,
        )

    def _on_end(self, end: StreamEnd) -> None:
        self._flush_pacing()
        if end.error is not None:
            self._transcript.add_system_line(f"[Error] sse stream error: {end.error}")
        self._set_idle()
        self._refresh()

    def _apply_reveal(self, reveal: Reveal) -> None:
        is_final = not reveal.remaining and reveal.fragment_id in self._final_after_reveal
        if is_final:
            self._final_after_reveal.discard(reveal.fragment_id)
        self._transcript.apply_delta(
            ContentDelta(
                message_id=reveal.message_id,
                fragment_id=reveal.fragment_id,
                kind=ContentKind.ANSWER,
                op=DeltaOp.APPEND,
                text=reveal.text,
                is_final=is_final,
            )
        )

    def _flush_pacing(self) -> None:
        flushed = self._pacing.flush()
        if flushed is not None:
            self._apply_reveal(flushed)

    def _set_idle(self) -> None:
        self._busy = False
        self._turn_ended = False
        self._idle.set()

    def _refresh(self) -> None:
        if self._turn_ended and not self._pacing.has_backlog:
            self._set_idle()
        self._sink.update(self.render(), busy=self._busy)
