# src/clusterup/observers/jsonfile.py
from __future__ import annotations

import json
import threading
from pathlib import Path

from .events import BaseEvent


class JsonFileObserver:
    """One JSON object per line, next to the run log (``<run>.jsonl``)."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def notify(self, event: BaseEvent) -> None:
        record = {"type": type(event).__name__, **event.dict()}
        line = json.dumps(record, default=str, sort_keys=False)
        # events arrive from fan-out threads
        with self._lock, self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
