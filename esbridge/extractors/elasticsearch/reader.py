# esbridge/extractors/elasticsearch/reader.py
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from loguru import logger

from esbridge.core.config import Settings
from esbridge.core.mapping import Mapping
from esbridge.core.registry import VALUE_ADAPTER, get_registry, register
from esbridge.core.repository import ClientFactory, RestRepository
from esbridge.core.scroll import QueryBuilder, ScrollQuery
from esbridge.core.serialization import ScrollReader
from esbridge.core.stats import Stats

from .splits import ShardInputSplit


class ValueAdapter(Protocol):
    """
    Turns decoded (id, document) pairs into the key/value objects a host framework
    expects. set_current_* may fill the given object in place or return a new one
    (for immutable key/value types).
    """

    def create_key(self) -> Any: ...

    def create_value(self) -> Any: ...

    def set_current_key(self, key: Any, obj: Any) -> Any: ...

    def set_current_value(self, value: Any, obj: Any) -> Any: ...


@register(VALUE_ADAPTER, "dict")
class DictValueAdapter:
    """Keys as strings, values as plain dicts."""

    def create_key(self) -> str:
        return ""

    def create_value(self) -> Dict[str, Any]:
        return {}

    def set_current_key(self, key: str, obj: Any) -> str:
        return str(obj)

    def set_current_value(self, value: Dict[str, Any], obj: Any) -> Dict[str, Any]:
        value.clear()
        value.update(obj)
        return value


class ShardRecordReader:
    """
    Reads one shard split through a scroll pinned to the split's node.
    The scroll is opened lazily on the first call to next().
    """

    def __init__(
        self,
        split: ShardInputSplit,
        adapter: Optional[ValueAdapter] = None,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        settings = Settings.load(split.settings)
        if not settings.has_pinned_node:
            settings.pin_node(split.node_ip, split.http_port)

        self.split = split
        self.settings = settings
        self.adapter: ValueAdapter = adapter or get_registry().create(
            VALUE_ADAPTER, settings.value_adapter
        )

        mapping: Optional[Mapping] = None
        if split.mapping:
            mapping = Mapping.from_base64(split.mapping)
        else:
            logger.warning(
                f"No mapping found for [{split}] - either no index exists or the split "
                f"configuration has been corrupted"
            )
        self.scroll_reader = ScrollReader(
            mapping,
            read_metadata=settings.read_metadata,
            empty_as_null=settings.read_field_empty_as_null,
        )

        self.repository: Optional[RestRepository] = RestRepository(settings, client_factory)
        self.query_builder = (
            QueryBuilder.from_settings(settings)
            .shard(split.shard_id)
            .only_node(split.node_id)
            .fields(settings.scroll.fields)
        )
        self.scroll_query: Optional[ScrollQuery] = None

        self.size = 0
        self.read = 0
        self.current_key: Any = None
        self.current_value: Any = None
        self._stats = Stats()
        logger.debug(f"Initializing RecordReader for [{split}]")

    def next_key_value(self) -> bool:
        """Advance using fresh key/value objects (consumers may keep the previous ones)."""
        return self.next(self.adapter.create_key(), self.adapter.create_value())

    def next(self, key: Any, value: Any) -> bool:
        if self.scroll_query is None:
            assert self.repository is not None, "Reader already closed"
            self.scroll_query = self.query_builder.build(self.repository, self.scroll_reader)
            self.size = self.scroll_query.size
            logger.trace(
                f"Received scroll [{self.scroll_query}], size [{self.size}] "
                f"for query [{self.query_builder}]"
            )

        if not self.scroll_query.has_next():
            return False

        doc_id, doc = self.scroll_query.next()
        self.current_key = self.adapter.set_current_key(key, doc_id)
        self.current_value = self.adapter.set_current_value(value, doc)
        self.read += 1
        return True

    @property
    def pos(self) -> int:
        return self.read

    @property
    def progress(self) -> float:
        return 0.0 if self.size == 0 else self.read / self.size

    def close(self) -> None:
        logger.debug(f"Closing RecordReader for [{self.split}]")
        try:
            if self.scroll_query is not None:
                self.scroll_query.close()
            elif self.repository is not None:
                self.repository.close()
        finally:
            if self.repository is not None:
                self._stats.aggregate(self.repository.stats())
                self.repository = None
            self.scroll_query = None

    def stats(self) -> Stats:
        copy = self._stats.copy()
        if self.repository is not None:
            copy.aggregate(self.repository.stats())
        return copy


__all__ = ["ValueAdapter", "DictValueAdapter", "ShardRecordReader"]
