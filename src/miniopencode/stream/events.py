from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

MESSAGE_UPDATED = "message.updated"
PART_UPDATED = "message.part.updated"
SESSION_IDLE = "session.idle"


@dataclass(frozen=True)
class FeedRecord:
    """One raw record from the event feed: SSE event name plus its data payload."""

    event: str
    data: str


class ContentKind(str, Enum):
    ANSWER = "answer"
    REASONING = "reasoning"
    TOOL = "tool"
    OTHER = "other"
    META = "meta"


class DeltaOp(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


@dataclass(frozen=True)
class ContentDelta:
    message_id: str
    fragment_id: str
    kind: ContentKind
    op: DeltaOp
    text: str
    is_final: bool = False

    @property
    def is_meta(self) -> bool:
        return self.kind is ContentKind.META


@dataclass(frozen=True)
class MessageUpdated:
    message_id: str
    role: str
    completed: bool
    session_id: str = ""


@dataclass(frozen=True)
class PartUpdated:
    part_id: str
    message_id: str
    part_type: str
    text: str
    delta: str | None
    ended: bool
    session_id: str = ""
    tool: str = ""
    tool_status: str = ""
    tool_title: str = ""

    def current_text(self) -> str:
        if self.text or self.part_type not in _TOOL_TYPES:
            return self.text
        return " ".join(
            piece
            for piece in (self.tool, f"[{self.tool_status}]" if self.tool_status else "", self.tool_title)
            if piece
        )


@dataclass(frozen=True)
class SessionIdle:
    """The server finished working on a prompt; ends the turn."""

    session_id: str = ""


@dataclass(frozen=True)
class UnknownEvent:
    type: str


FeedEvent = MessageUpdated | PartUpdated | SessionIdle | UnknownEvent

_TOOL_TYPES = {"tool", "tool-use", "function"}
_REASONING_TYPES = {"reasoning", "thinking"}


def classify_part(part_type: str) -> ContentKind:
    if part_type == "text":
        return ContentKind.ANSWER
    if part_type in _REASONING_TYPES:
        return ContentKind.REASONING
    if part_type in _TOOL_TYPES:
        return ContentKind.TOOL
    return ContentKind.OTHER


def decode_record(record: FeedRecord) -> FeedEvent:
    """Decode a raw record into one of the closed event variants.

    Anything that is not valid JSON, or lacks the fields a variant needs,
    becomes ``UnknownEvent`` so the stream keeps going.
    """
    try:
        payload = json.loads(record.data)
    except (TypeError, ValueError):
        return UnknownEvent(type=record.event or "")
    if not isinstance(payload, dict):
        return UnknownEvent(type=record.event or "")

    event_type = payload.get("type")
    if not isinstance(event_type, str) or not event_type:
        event_type = record.event or ""
    properties = payload.get("properties")
    if not isinstance(properties, dict):
        return UnknownEvent(type=event_type)

    if event_type == MESSAGE_UPDATED:
        return _decode_message(properties) or UnknownEvent(type=event_type)
    if event_type == PART_UPDATED:
        return _decode_part(properties) or UnknownEvent(type=event_type)
    if event_type == SESSION_IDLE:
        return SessionIdle(session_id=_str(properties.get("sessionID")))
    return UnknownEvent(type=event_type)


def _decode_message(properties: dict[str, Any]) -> MessageUpdated | None:
    info = properties.get("info")
    if not isinstance(info, dict):
        return None
    message_id = info.get("id")
    role = info.get("role")
    if not isinstance(message_id, str) or not message_id or not isinstance(role, str):
        return None
    times = info.get("time")
    completed = isinstance(times, dict) and times.get("completed") is not None
    return MessageUpdated(
        message_id=message_id,
        role=role,
        completed=completed,
        session_id=_str(info.get("sessionID")),
    )


def _decode_part(properties: dict[str, Any]) -> PartUpdated | None:
    part = properties.get("part")
    if not isinstance(part, dict):
        return None
    part_id = part.get("id")
    message_id = part.get("messageID")
    if not isinstance(part_id, str) or not part_id or not isinstance(message_id, str):
        return None

    delta = properties.get("delta")
    if not isinstance(delta, str) or not delta:
        delta = None
    times = part.get("time")
    ended = isinstance(times, dict) and times.get("end") is not None

    state = part.get("state") if isinstance(part.get("state"), dict) else {}
    return PartUpdated(
        part_id=part_id,
        message_id=message_id,
        part_type=_str(part.get("type")),
        text=_str(part.get("text")) or _str(part.get("content")),
        delta=delta,
        ended=ended,
        session_id=_str(part.get("sessionID")),
        tool=_str(part.get("tool")),
        tool_status=_str(state.get("status")),
        tool_title=_str(state.get("title")),
    )


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""
