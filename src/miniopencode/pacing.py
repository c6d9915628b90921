from __future__ import annotations

from dataclasses import dataclass

DEFAULT_CHUNK_SIZE = 3


@dataclass(frozen=True)
class Reveal:
    text: str
    fragment_id: str
    message_id: str
    remaining: bool = False


class PacingBuffer:
    """Typewriter backlog for answer text owned by one fragment at a time."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._chunk_size = max(1, chunk_size)
        self._backlog = ""
        self._fragment_id = ""
        self._message_id = ""

    @property
    def has_backlog(self) -> bool:
        return bool(self._backlog)

    @property
    def owner(self) -> tuple[str, str]:
        return self._fragment_id, self._message_id

    def offer(self, fragment_id: str, message_id: str, text: str) -> Reveal | None:
        """Queue text; returns the previous owner's whole backlog when the owner changes."""
        flushed = None
        if (fragment_id, message_id) != (self._fragment_id, self._message_id):
            flushed = self.flush()
            self._fragment_id = fragment_id
            self._message_id = message_id
        self._backlog += text
        return flushed

    def drain(self, max_runes: int | None = None) -> Reveal:
        size = self._chunk_size if max_runes is None else max(1, max_runes)
        text, self._backlog = self._backlog[:size], self._backlog[size:]
        return Reveal(
            text=text,
            fragment_id=self._fragment_id,
            message_id=self._message_id,
            remaining=bool(self._backlog),
        )

    def flush(self) -> Reveal | None:
        if not self._backlog:
            return None
        text, self._backlog = self._backlog, ""
        return Reveal(text=text, fragment_id=self._fragment_id, message_id=self._message_id)
