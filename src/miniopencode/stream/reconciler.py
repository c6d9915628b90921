from __future__ import annotations

from loguru import logger

from miniopencode.stream.events import (
    ContentDelta,
    ContentKind,
    DeltaOp,
    FeedRecord,
    MessageUpdated,
    PartUpdated,
    SessionIdle,
    classify_part,
    decode_record,
)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


class StreamReconciler:
    """Turns raw feed records into deduplicated content deltas.

    State is keyed by message id (role, completion) and fragment id (last
    known full text, completion) and lives only as long as one stream.
    A fragment that belongs to a user message is never emitted: the client
    already rendered that text when it sent the prompt.
    """

    def __init__(self, *, session_id: str | None = None):
        self._session_id = session_id
        self._role_of: dict[str, str] = {}
        self._last_text: dict[str, str] = {}
        self._completed_messages: set[str] = set()
        self._ended_fragments: set[str] = set()

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def reset(self) -> None:
        self._role_of.clear()
        self._last_text.clear()
        self._completed_messages.clear()
        self._ended_fragments.clear()

    def role_of(self, message_id: str) -> str:
        return self._role_of.get(message_id, "")

    def reconcile(self, record: FeedRecord) -> ContentDelta | SessionIdle | None:
        event = decode_record(record)
        if isinstance(event, MessageUpdated):
            if not self._in_scope(event.session_id):
                return None
            return self._on_message(event)
        if isinstance(event, PartUpdated):
            if not self._in_scope(event.session_id):
                return None
            return self._on_part(event)
        if isinstance(event, SessionIdle):
            if not self._in_scope(event.session_id):
                return None
            logger.debug(f"reconciler: session idle session={event.session_id}")
            return event
        logger.debug(f"reconciler: dropping record type={event.type!r}")
        return None

    def _in_scope(self, session_id: str) -> bool:
        return not self._session_id or not session_id or session_id == self._session_id

    def _on_message(self, event: MessageUpdated) -> ContentDelta | None:
        seen = event.message_id in self._role_of
        self._role_of[event.message_id] = event.role
        logger.debug(f"reconciler: message.updated id={event.message_id} role={event.role}")
        if event.role != ROLE_ASSISTANT:
            return None

        newly_completed = event.completed and event.message_id not in self._completed_messages
        if seen and not newly_completed:
            return None
        if newly_completed:
            self._completed_messages.add(event.message_id)
        return ContentDelta(
            message_id=event.message_id,
            fragment_id="",
            kind=ContentKind.META,
            op=DeltaOp.APPEND,
            text="",
            is_final=event.completed,
        )

    def _on_part(self, event: PartUpdated) -> ContentDelta | None:
        if self._role_of.get(event.message_id) == ROLE_USER:
            logger.debug(f"reconciler: skipping user message part msgID={event.message_id}")
            return None

        previous = self._last_text.get(event.part_id, "")
        if event.delta is not None:
            op = DeltaOp.APPEND
            text = event.delta
            full = previous + text
        else:
            full = event.current_text()
            if full == previous:
                op, text = DeltaOp.APPEND, ""
            elif full.startswith(previous):
                # Replays of the whole fragment only contribute their new suffix.
                op, text = DeltaOp.APPEND, full[len(previous):]
            else:
                op, text = DeltaOp.REPLACE, full

        first_end = event.ended and event.part_id not in self._ended_fragments
        if event.ended:
            self._ended_fragments.add(event.part_id)

        if not text:
            if not first_end:
                return None
            op = DeltaOp.APPEND
        else:
            self._last_text[event.part_id] = full

        return ContentDelta(
            message_id=event.message_id,
            fragment_id=event.part_id,
            kind=classify_part(event.part_type),
            op=op,
            text=text,
            is_final=event.ended,
        )
