from __future__ import annotations

import os
import sys
from typing import TextIO

from miniopencode.spinner import Spinner


class ConsoleSink:
    """Writes a growing transcript document to a terminal stream.

    Only the new suffix is written. When an earlier part changes (a
    replaced fragment), output restarts on a fresh line from the start of
    the line that differs. The spinner runs from the moment a reply is
    awaited until the first new output.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        *,
        spinner_enabled: bool = True,
        spinner_interval_seconds: float = 0.1,
    ):
        self._stream = stream or sys.stdout
        self._spinner_enabled = spinner_enabled
        self._spinner_interval = spinner_interval_seconds
        self._printed = ""
        self._spinner: Spinner | None = None
        self._spinner_used = False

    @property
    def printed(self) -> str:
        return self._printed

    def update(self, document: str, *, busy: bool) -> None:
        if document != self._printed:
            self._stop_spinner()
            self._write_diff(document)
        if not busy:
            self._stop_spinner()
            self._spinner_used = False
        elif self._spinner_enabled and not self._spinner_used:
            self._spinner_used = True
            prefix = self._printed.rsplit("\n", 1)[-1]
            self._spinner = Spinner(prefix, stream=self._stream, interval_seconds=self._spinner_interval)
            self._spinner.start()

    def close(self) -> None:
        self._stop_spinner()

    def _write_diff(self, document: str) -> None:
        common = os.path.commonprefix([self._printed, document])
        if len(common) == len(self._printed):
            self._stream.write(document[len(common):])
        else:
            line_start = common.rfind("\n") + 1
            self._stream.write("\n" + document[line_start:])
        self._stream.flush()
        self._printed = document

    def _stop_spinner(self) -> None:
        if self._spinner is not None:
            self._spinner.stop()
            self._spinner = None
