from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from miniopencode.stream.events import ContentDelta, ContentKind, DeltaOp


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Fragment:
    id: str
    kind: ContentKind
    text: str = ""
    final: bool = False


@dataclass
class TranscriptMessage:
    role: Role
    id: str = ""
    pending: bool = False
    completed: bool = False
    system: bool = False
    fragments: list[Fragment] = field(default_factory=list)
    created: datetime = field(default_factory=lambda: datetime.now(UTC))

    def fragment(self, fragment_id: str) -> Fragment | None:
        for fragment in self.fragments:
            if fragment.id == fragment_id:
                return fragment
        return None

    @property
    def text(self) -> str:
        return "".join(f.text for f in self.fragments)


_KIND_LABELS = {
    ContentKind.REASONING: "[thinking] ",
    ContentKind.TOOL: "[tool] ",
}


class Transcript:
    """Ordered messages built from user input and reconciled content deltas.

    Deltas always land on the trailing assistant message, tracked by index.
    A user message or a system line ends that message; the next delta then
    opens a new pending assistant message.
    """

    def __init__(self) -> None:
        self._messages: list[TranscriptMessage] = []
        self._assistant_index: int | None = None

    @property
    def messages(self) -> tuple[TranscriptMessage, ...]:
        return tuple(self._messages)

    @property
    def trailing_assistant(self) -> TranscriptMessage | None:
        if self._assistant_index is None:
            return None
        return self._messages[self._assistant_index]

    def add_user_message(self, text: str) -> TranscriptMessage:
        message = TranscriptMessage(
            role=Role.USER,
            fragments=[Fragment(id="", kind=ContentKind.ANSWER, text=text)],
        )
        self._messages.append(message)
        self._assistant_index = None
        return message

    def add_system_line(self, text: str) -> TranscriptMessage:
        message = TranscriptMessage(
            role=Role.ASSISTANT,
            system=True,
            fragments=[Fragment(id="", kind=ContentKind.ANSWER, text=text)],
        )
        self._messages.append(message)
        self._assistant_index = None
        return message

    def ensure_pending_assistant(self, message_id: str = "") -> TranscriptMessage:
        if self._assistant_index is None:
            self._messages.append(TranscriptMessage(role=Role.ASSISTANT, id=message_id, pending=True))
            self._assistant_index = len(self._messages) - 1
            return self._messages[self._assistant_index]
        message = self._messages[self._assistant_index]
        if not message.id and message_id:
            message.id = message_id
        return message

    def apply_delta(self, delta: ContentDelta) -> None:
        message = self.ensure_pending_assistant(delta.message_id)
        if delta.is_meta:
            if delta.is_final:
                message.completed = True
            return

        fragment = message.fragment(delta.fragment_id)
        if fragment is None:
            fragment = Fragment(id=delta.fragment_id, kind=delta.kind)
            message.fragments.append(fragment)

        if delta.op is DeltaOp.REPLACE:
            fragment.text = delta.text
        else:
            fragment.text += delta.text
        if delta.is_final:
            fragment.final = True

        if delta.text and message.pending:
            message.pending = False

    def render(
        self,
        *,
        show_thinking: bool = True,
        show_tools: bool = True,
        spinner_frame: str = "",
        show_spinner: bool = False,
        max_lines: int = 0,
    ) -> str:
        blocks: list[str] = []
        for message in self._messages:
            if message.role is Role.USER:
                blocks.append(f"You: {message.text}")
                continue

            lines = ["Assistant:"]
            if show_spinner and message.pending:
                lines.append(spinner_frame)
                blocks.append("\n".join(lines))
                continue
            for fragment in message.fragments:
                if fragment.kind is ContentKind.REASONING and not show_thinking:
                    continue
                if fragment.kind is ContentKind.TOOL and not show_tools:
                    continue
                lines.append(_KIND_LABELS.get(fragment.kind, "") + fragment.text)
            blocks.append("\n".join(lines))

        document = "\n\n".join(blocks)
        return truncate_lines(document, max_lines)


def truncate_lines(document: str, max_lines: int) -> str:
    if max_lines <= 0:
        return document
    lines = document.split("\n")
    if len(lines) <= max_lines:
        return document
    return "\n".join(lines[-max_lines:])
