from miniopencode.stream.events import ContentDelta, ContentKind, DeltaOp, FeedRecord, SessionIdle, decode_record
from miniopencode.stream.feed import EventFeed, EventSource, parse_sse
from miniopencode.stream.reconciler import StreamReconciler
from miniopencode.stream.streamer import StreamEnd, Streamer

__all__ = [
    "ContentDelta",
    "ContentKind",
    "DeltaOp",
    "EventFeed",
    "EventSource",
    "FeedRecord",
    "SessionIdle",
    "StreamEnd",
    "StreamReconciler",
    "Streamer",
    "decode_record",
    "parse_sse",
]
