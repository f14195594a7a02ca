# esbridge/core/stats.py
from __future__ import annotations

from dataclasses import dataclass, fields, replace


@dataclass
class Stats:
    """
    Counters collected by a transport client and folded into the owning session on close.
    Times are wall-clock milliseconds.
    """

    bytes_sent: int = 0
    docs_sent: int = 0
    bulk_total: int = 0
    bulk_time_ms: float = 0.0
    docs_received: int = 0
    scroll_total: int = 0
    scroll_time_ms: float = 0.0

    def aggregate(self, other: "Stats | None") -> "Stats":
        """Add `other` into this instance (in place) and return self."""
        if other is None:
            return self
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    def copy(self) -> "Stats":
        return replace(self)


__all__ = ["Stats"]
