from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_session: Callable[[], Awaitable[None]],
        on_sessions: Callable[[], Awaitable[None]],
        on_thinking: Callable[[], Awaitable[None]],
        on_tools: Callable[[], Awaitable[None]],
        on_transcript: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_session = on_session
        self._on_sessions = on_sessions
        self._on_thinking = on_thinking
        self._on_tools = on_tools
        self._on_transcript = on_transcript
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command = trimmed.split(maxsplit=1)[0]
        handlers = {
            "/help": self._on_help,
            "/session": self._on_session,
            "/sessions": self._on_sessions,
            "/thinking": self._on_thinking,
            "/tools": self._on_tools,
            "/transcript": self._on_transcript,
        }
        handler = handlers.get(command)
        if handler is None:
            self._on_unknown(trimmed)
            return True
        await handler()
        return True
