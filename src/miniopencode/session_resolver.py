from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from loguru import logger

from miniopencode.app_config import (
    DAILY_SESSION,
    DEFAULT_DAILY_MAX_MESSAGES,
    DEFAULT_DAILY_MAX_TOKENS,
    DEFAULT_DAILY_TITLE_FORMAT,
)
from miniopencode.errors import ResolutionError
from miniopencode.models import MessageSummary, SessionSummary

_DATE_FORMAT = "%Y-%m-%d"


class SessionCatalog(Protocol):
    async def list_sessions(self) -> list[SessionSummary]: ...

    async def list_messages(self, session_id: str) -> list[MessageSummary]: ...

    async def create_session(self, title: str) -> str: ...


class DailyTitle:
    """Builds and parses rollover titles such as ``2026-01-17-daily-3``.

    The format holds a ``{date}`` and a ``{part}`` token. The older
    ``2006-01-02-daily-%d`` layout is accepted and translated.
    """

    def __init__(self, title_format: str = DEFAULT_DAILY_TITLE_FORMAT):
        fmt = (title_format or DEFAULT_DAILY_TITLE_FORMAT).replace("2006-01-02", "{date}").replace("%d", "{part}")
        if "{date}" not in fmt or "{part}" not in fmt:
            logger.warning(f"Daily title format {title_format!r} lacks {{date}}/{{part}}; using default")
            fmt = DEFAULT_DAILY_TITLE_FORMAT
        self._format = fmt
        pattern = re.escape(fmt)
        pattern = pattern.replace(re.escape("{date}"), r"(?P<date>\d{4}-\d{2}-\d{2})", 1)
        pattern = pattern.replace(re.escape("{part}"), r"(?P<part>\d+)", 1)
        self._regex = re.compile(f"^{pattern}$")

    def build(self, date_prefix: str, part: int) -> str:
        return self._format.replace("{date}", date_prefix, 1).replace("{part}", str(part), 1)

    def parse(self, title: str) -> tuple[str, int] | None:
        match = self._regex.match(title)
        if match is None:
            return None
        return match.group("date"), int(match.group("part"))


@dataclass
class DailyLimits:
    max_tokens: int = DEFAULT_DAILY_MAX_TOKENS
    max_messages: int = DEFAULT_DAILY_MAX_MESSAGES

    def effective(self) -> tuple[int, int]:
        # 0 means "unlimited" in config; a bounded default keeps parts from growing forever.
        max_tokens = self.max_tokens if self.max_tokens > 0 else DEFAULT_DAILY_MAX_TOKENS
        max_messages = self.max_messages if self.max_messages > 0 else DEFAULT_DAILY_MAX_MESSAGES
        return max_tokens, max_messages


@dataclass
class SessionResolver:
    catalog: SessionCatalog
    title_format: str = DEFAULT_DAILY_TITLE_FORMAT
    limits: DailyLimits = field(default_factory=DailyLimits)
    now: Callable[[], datetime] = datetime.now

    async def resolve(self, request: str) -> str:
        """Return a concrete session id for a literal id/title or the rolling daily session."""
        request = (request or "").strip()
        if not request:
            raise ResolutionError("no default session configured")
        if request != DAILY_SESSION:
            return await self._resolve_literal(request)
        return await self._resolve_daily()

    async def _resolve_literal(self, target: str) -> str:
        sessions = await self.catalog.list_sessions()
        for session in sessions:
            if session.id == target:
                logger.info(f"session: reusing {session.id}")
                return session.id
        logger.info(f"session: no session with id {target!r}, creating one with that title")
        return await self.catalog.create_session(target)

    async def _resolve_daily(self) -> str:
        date_prefix = self.now().strftime(_DATE_FORMAT)
        titles = DailyTitle(self.title_format)

        todays: list[SessionSummary] = []
        for session in await self.catalog.list_sessions():
            parsed = titles.parse(session.title)
            if parsed is None or parsed[0] != date_prefix:
                continue
            todays.append(SessionSummary(id=session.id, title=session.title, part=parsed[1]))

        if not todays:
            title = titles.build(date_prefix, 1)
            logger.info(f"session: no daily session for {date_prefix}, creating {title}")
            return await self.catalog.create_session(title)

        latest = max(todays, key=lambda s: s.part or 0)
        if await self._under_limits(latest.id):
            logger.info(f"session: reusing daily session {latest.title} ({latest.id})")
            return latest.id

        title = titles.build(date_prefix, (latest.part or 0) + 1)
        logger.info(f"session: {latest.title} is over its limits, rolling over to {title}")
        return await self.catalog.create_session(title)

    async def _under_limits(self, session_id: str) -> bool:
        messages = await self.catalog.list_messages(session_id)
        total_tokens = sum(m.tokens.total for m in messages if m.tokens is not None)
        total_messages = len(messages)
        max_tokens, max_messages = self.limits.effective()
        logger.debug(
            f"session: {session_id} usage tokens={total_tokens}/{max_tokens} "
            f"messages={total_messages}/{max_messages}"
        )
        return total_tokens <= max_tokens and total_messages <= max_messages
