from __future__ import annotations

import io
import json
import threading
from typing import Iterable, List

from treesurgery.runtime import Event


class JSONLTracer:
    """Tracer that writes one JSON record per surgery application to a file-like sink.

    Safe to share between corpus workers; writes are serialized.
    """

    def __init__(self, sink: io.TextIOBase):
        self.sink = sink
        self._lock = threading.Lock()

    def __call__(self, event: Event) -> None:
        line = json.dumps(event.to_record())
        with self._lock:
            self.sink.write(line)
            self.sink.write("\n")
            self.sink.flush()


def dump_events(events: Iterable[Event]) -> List[dict]:
    """Convert an event stream to JSON-serializable dicts."""

    return [ev.to_record() for ev in events]
