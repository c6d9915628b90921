from __future__ import annotations

from miniopencode.models import SessionSummary


class SessionController:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_session_list_entry(self, session: SessionSummary, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        title = session.title or "(untitled)"
        return f"{self._line_prefix}{marker} {title} [{self.short_id(session.id)}] (id={session.id})"

    def format_session_list(
        self,
        sessions: list[SessionSummary],
        *,
        active_session_id: str | None,
        limit: int = 20,
    ) -> list[str]:
        if not sessions:
            return [f"{self._line_prefix}No sessions found."]
        lines = [f"{self._line_prefix}Sessions ({len(sessions)}):"]
        for session in sessions[: max(1, limit)]:
            lines.append(self.format_session_list_entry(session, active_session_id=active_session_id))
        if len(sessions) > limit:
            lines.append(f"{self._line_prefix}... {len(sessions) - limit} more")
        return lines

    def format_active_session(self, session_id: str, *, base_url: str) -> str:
        return f"{self._line_prefix}Active session: {session_id} ({base_url})"
