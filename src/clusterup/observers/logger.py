# src/clusterup/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent, NodeFailed, PhaseFailed

_CONTEXT_KEYS = ("ts", "run_id", "cluster")


class LoggerObserver:
    """Mirrors events into the run log; failures at WARNING, the rest at DEBUG."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(f"{k}={v}" for k, v in event.dict().items() if k not in _CONTEXT_KEYS)
        level = logging.WARNING if isinstance(event, (NodeFailed, PhaseFailed)) else logging.DEBUG
        self.logger.log(level, "[EVENT] %s: %s", type(event).__name__, fields)
