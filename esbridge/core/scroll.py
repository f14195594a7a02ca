# esbridge/core/scroll.py
from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, TYPE_CHECKING
from urllib.parse import parse_qs

from loguru import logger

from .config import Settings
from .errors import BridgeIllegalArgumentError, BridgeIllegalStateError, BridgeTransportError
from .resource import Resource
from .serialization import Hit, ScrollReader
from .stats import Stats

if TYPE_CHECKING:
    from .repository import RestRepository


def parse_query(raw: Optional[str]) -> Dict[str, Any]:
    """
    Accepts an empty query (match_all), a JSON DSL body (with or without the top-level
    "query" key), `?q=...` URI syntax or a bare query string.
    """
    if not raw or not raw.strip():
        return {"match_all": {}}

    raw = raw.strip()
    if raw.startswith("{"):
        try:
            body = json.loads(raw)
        except ValueError as ex:
            raise BridgeIllegalArgumentError(f"Cannot parse query [{raw}]: {ex}") from ex
        return body.get("query", body)

    if raw.startswith("?"):
        q = parse_qs(raw[1:]).get("q")
        if not q:
            raise BridgeIllegalArgumentError(f"URI query [{raw}] has no 'q' parameter")
        return {"query_string": {"query": q[0]}}

    return {"query_string": {"query": raw}}


class QueryBuilder:
    """Builds the scroll-opening search request for one shard of the read resource."""

    def __init__(self, settings: Settings) -> None:
        self.resource = Resource(settings, read=True)
        self.query = parse_query(self.resource.query)
        self.size = settings.scroll.size
        self.keepalive = settings.scroll.keepalive
        self._fields: Optional[List[str]] = settings.scroll.fields
        self._shard: Optional[str] = None
        self._node: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryBuilder":
        return cls(settings)

    def shard(self, shard_id: Any) -> "QueryBuilder":
        self._shard = str(shard_id)
        return self

    def only_node(self, node_id: str) -> "QueryBuilder":
        self._node = node_id
        return self

    def fields(self, fields: Optional[List[str]]) -> "QueryBuilder":
        self._fields = list(fields) if fields else None
        return self

    def preference(self) -> Optional[str]:
        parts = []
        if self._shard is not None:
            parts.append(f"_shards:{self._shard}")
        if self._node:
            parts.append(f"_only_node:{self._node}")
        return "|".join(parts) or None

    def build_request(self, page_size: Optional[int] = None) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "index": self.resource.index,
            "query": self.query,
            "size": page_size or self.size,
            "scroll": self.keepalive,
            "sort": ["_doc"],
            "track_total_hits": True,
        }
        pref = self.preference()
        if pref:
            request["preference"] = pref
        if self._fields:
            request["source_includes"] = self._fields
        return request

    def build(self, repository: "RestRepository", reader: ScrollReader) -> "ScrollQuery":
        return repository.scan(self, reader)

    def __str__(self) -> str:
        return f"QueryBuilder[{self.resource}, {self.query}, preference={self.preference()}]"


class ScrollState(Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    EXHAUSTED = "exhausted"
    CLOSED = "closed"


class ScrollQuery:
    """
    Cursor over one scroll. Pages are fetched lazily, one at a time, in server order.
    `size` is the total reported when the scroll opened; it only feeds progress
    reporting and never ends the iteration (an empty page does).
    """

    def __init__(self, repository: "RestRepository", reader: ScrollReader) -> None:
        self.repository = repository
        self.reader = reader
        self.state = ScrollState.UNOPENED
        self.scroll_id: Optional[str] = None
        self.size = 0
        self.read = 0
        self._batch: List[Hit] = []
        self._index = 0

    def open(self, query: QueryBuilder, page_size: Optional[int] = None) -> "ScrollQuery":
        if self.state is not ScrollState.UNOPENED:
            raise BridgeIllegalStateError(f"Scroll already {self.state.value}")

        scroll_id, total, page = self.repository.client.scan(query.build_request(page_size))
        self.scroll_id = scroll_id
        self.size = total
        self._batch = self.reader.read(page)
        self._index = 0
        self.state = ScrollState.OPEN if self._batch else ScrollState.EXHAUSTED
        logger.trace(f"Opened scroll [{scroll_id}] of size [{total}] for {query}")
        return self

    def has_next(self) -> bool:
        if self._index < len(self._batch):
            return True
        if self.state is not ScrollState.OPEN:
            return False

        assert self.scroll_id is not None
        self.scroll_id, self._batch = self.repository.scroll(self.scroll_id, self.reader)
        self._index = 0
        if not self._batch:
            self.state = ScrollState.EXHAUSTED
            return False
        return True

    def next(self) -> Hit:
        if not self.has_next():
            raise BridgeIllegalStateError("No more documents available in scroll")
        hit = self._batch[self._index]
        self._index += 1
        self.read += 1
        return hit

    def __iter__(self) -> Iterator[Hit]:
        while self.has_next():
            yield self.next()

    def close(self) -> None:
        if self.state is ScrollState.CLOSED:
            return
        was_open = self.state is not ScrollState.UNOPENED
        self.state = ScrollState.CLOSED
        self._batch = []
        try:
            if was_open and self.scroll_id and self.repository.client is not None:
                try:
                    self.repository.client.clear_scroll(self.scroll_id)
                except BridgeTransportError as ex:
                    # the cursor expires server-side on its own
                    logger.warning(f"Cannot release scroll [{self.scroll_id}]: {ex}")
        finally:
            self.repository.close()

    def stats(self) -> Stats:
        return self.repository.stats()

    def __repr__(self) -> str:
        return f"ScrollQuery(id={self.scroll_id}, size={self.size}, state={self.state.value})"


__all__ = ["parse_query", "QueryBuilder", "ScrollState", "ScrollQuery"]
