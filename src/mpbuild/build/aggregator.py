"""Single consumer for build output and completion events."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable

from mpbuild.build.models import CompletionEvent, OutputChunk

output_logger = logging.getLogger("mpbuild.output")


class ResultAggregator:
    """Drains worker output on its own thread and renders completion events.

    Output arrives in completion order, one chunk per finished task. Each chunk
    goes to the console sink (unless quiet) and, line by line, to the
    ``mpbuild.output`` logger so a configured log file keeps the full build
    log. Nothing here feeds back into scheduling.
    """

    def __init__(
        self,
        *,
        echo: Callable[[str], None] | None = None,
        quiet: bool = False,
    ) -> None:
        self.queue: queue.Queue[OutputChunk | None] = queue.Queue()
        self.quiet = quiet
        self.events: list[CompletionEvent] = []
        self.chunks_received = 0
        self._echo = echo or (lambda _text: None)
        self._echo_lock = threading.Lock()
        self._thread: threading.Thread | None = None

    def start(self) -> ResultAggregator:
        self._thread = threading.Thread(
            target=self._drain_loop,
            daemon=True,
            name="mpbuild-output",
        )
        self._thread.start()
        return self

    def stop(self, timeout: float | None = 10.0) -> None:
        """Flush everything queued so far, then end the drain thread."""

        if self._thread is None:
            return
        self.queue.put(None)
        self._thread.join(timeout=timeout)
        self._thread = None

    def __enter__(self) -> ResultAggregator:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def report_event(self, event: CompletionEvent) -> None:
        self.events.append(event)
        self._write(event.render())

    def _drain_loop(self) -> None:
        while True:
            chunk = self.queue.get()
            if chunk is None:
                return
            self._handle(chunk)

    def _handle(self, chunk: OutputChunk) -> None:
        self.chunks_received += 1
        for line in chunk.text.splitlines():
            output_logger.info("%s: %s", chunk.label, line)
        if not self.quiet:
            self._write(chunk.text.rstrip("\n"))

    def _write(self, text: str) -> None:
        with self._echo_lock:
            self._echo(text)
