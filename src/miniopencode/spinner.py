import sys
import threading
from typing import TextIO

DOT_FRAMES = ("⣾", "⣽", "⣻", "⢿", "⡿", "⣟", "⣯", "⣷")


class Spinner:
    """Waiting indicator drawn after ``prefix`` on the current terminal line.

    Frames are redrawn with ``\\r`` from a daemon thread until ``stop()``,
    which erases the last frame so the caller's next write continues the line.
    """

    def __init__(
        self,
        prefix: str = "",
        *,
        stream: TextIO | None = None,
        label: str = " thinking...",
        frames: tuple[str, ...] = DOT_FRAMES,
        interval_seconds: float = 0.1,
    ):
        self._prefix = prefix
        self._stream = stream or sys.stdout
        self._label = label
        self._frames = frames or DOT_FRAMES
        self._interval = max(0.01, interval_seconds)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._drawn = 0

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="miniopencode-spinner", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
        if not self._drawn:
            return
        width = max(len(f) for f in self._frames) + len(self._label)
        self._stream.write("\r" + self._prefix + " " * width + "\r" + self._prefix)
        self._stream.flush()

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                frame = self._frames[self._drawn % len(self._frames)]
                self._stream.write("\r" + self._prefix + frame + self._label)
                self._stream.flush()
                self._drawn += 1
                self._stop.wait(self._interval)
        except (UnicodeEncodeError, OSError):
            pass  # terminal cannot draw the frames
