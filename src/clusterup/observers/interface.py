# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterup/observers/interface.py
from __future__ import annotations

from typing import Protocol, runtime_checkable

from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """
    Anything that wants pipeline events. notify() is called from worker
    threads, so implementations that write shared state must lock.
    """

    def notify(self, event: BaseEvent) -> None: ...
