# esbridge/core/resource.py
from __future__ import annotations

from typing import Optional

from .config import Settings
from .errors import BridgeIllegalArgumentError


class Resource:
    """
    Parsed read or write target: `index`, `index/type` or `index/type?q=...`.
    A query embedded in the resource is used only when the settings carry no query.
    """

    def __init__(self, settings: Settings, read: bool) -> None:
        raw = settings.resource_read if read else settings.resource_write
        if not raw or not raw.strip():
            kind = "read" if read else "write"
            raise BridgeIllegalArgumentError(f"No {kind} resource specified")

        self.raw = raw.strip()
        target, _, uri_query = self.raw.partition("?")
        parts = [p for p in target.strip("/").split("/") if p]
        if not parts or len(parts) > 2:
            raise BridgeIllegalArgumentError(
                f"Invalid resource [{self.raw}]; expected 'index' or 'index/type'"
            )

        self.index: str = parts[0]
        self.type: Optional[str] = parts[1] if len(parts) == 2 else None
        if settings.query:
            self.query: Optional[str] = settings.query
        else:
            self.query = f"?{uri_query}" if uri_query else None

    @property
    def mapping(self) -> str:
        """Target of the mapping API (types are folded away by the cluster)."""
        return self.index

    @property
    def index_and_type(self) -> str:
        return f"{self.index}/{self.type}" if self.type else self.index

    def __str__(self) -> str:
        return self.index_and_type

    def __repr__(self) -> str:
        return f"Resource({self.raw!r})"


__all__ = ["Resource"]
