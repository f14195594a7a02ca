# esbridge/core/base_stage.py
from __future__ import annotations

from abc import ABC
from typing import Any

from .stats import Stats


class Stage(ABC):  # noqa: B024
    """
    Lifecycle shared by the task-side stages (shard readers and shard writers).
    A stage owns at most one cluster session; open() acquires it, close() flushes and
    releases it. Both are called from the single thread that runs the task.
    """

    def open(self) -> None:  # noqa: B027
        """Per-task init. Called once before the first record."""
        pass

    def close(self) -> None:  # noqa: B027
        """Per-task teardown. Called once after the last record (success or failure)."""
        pass

    def stats(self) -> Stats:
        """Transport counters gathered so far (complete after close())."""
        return Stats()

    def __enter__(self) -> "Stage":
        self.open()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


__all__ = ["Stage"]
