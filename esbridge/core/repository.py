# esbridge/core/repository.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from loguru import logger

from .buffer import BytesArray, BytesRef, TrackingBytesArray
from .config import Settings
from .errors import BridgeError, BridgeIllegalArgumentError, BridgeInvalidRequestError
from .mapping import Mapping
from .registry import BULK_COMMAND, get_registry
from .resource import Resource
from .rest_client import ElasticsearchRestClient, TransportClient
from .scroll import QueryBuilder, ScrollQuery
from .serialization import Hit, ScrollReader
from .stats import Stats
from .topology import Node, Shard, TopologyResolver

ClientFactory = Callable[[Settings], TransportClient]


class RestRepository:
    """
    One task's session against the cluster.
    Writes are buffered into a fixed-size byte buffer and sent as bulk requests; the
    buffer is allocated on the first write so read-only sessions never pay for it.
    Owned by a single thread for its whole life.
    """

    def __init__(self, settings: Settings, client_factory: Optional[ClientFactory] = None) -> None:
        self.settings = settings
        self.resource_read: Optional[Resource] = None
        self.resource_write: Optional[Resource] = None

        if settings.resource_read:
            self.resource_read = Resource(settings, read=True)
        if settings.resource_write:
            self.resource_write = Resource(settings, read=False)
        if self.resource_read is None and self.resource_write is None:
            raise BridgeIllegalArgumentError(
                "Invalid configuration - No read or write resource specified"
            )

        factory = client_factory or ElasticsearchRestClient
        self.client: Optional[TransportClient] = factory(settings)

        # write state, see _lazy_init_writing()
        self._ba = BytesArray(0)
        self._data = TrackingBytesArray(self._ba)
        self._trivial_ref = BytesRef()
        self._data_entries = 0
        self._entries_threshold = 0
        self._requires_refresh_after_bulk = False
        self._executed_bulk_write = False
        self._had_write_errors = False
        self._write_initialized = False
        self._command: Any = None

        self._closed = False
        self._stats = Stats()

    def _lazy_init_writing(self) -> None:
        if self._write_initialized:
            return
        self._write_initialized = True
        self._ba.allocate(self.settings.batch.size_bytes)
        self._entries_threshold = self.settings.batch.size_entries
        self._requires_refresh_after_bulk = self.settings.batch.refresh_after_write
        self._command = get_registry().create(BULK_COMMAND, self.settings.bulk_command, self.settings)

    # ---------------------- write path ----------------------

    def write_to_index(self, obj: Any) -> None:
        """Serialize `obj` through the bulk command and buffer it."""
        if obj is None:
            raise BridgeIllegalArgumentError("no object data given")
        self._lazy_init_writing()
        self._do_write_to_index(self._command.write(obj))

    def write_processed_to_index(self, data: bytes) -> None:
        """Buffer an already serialized bulk entry (action + source lines)."""
        if data is None or len(data) == 0:
            raise BridgeIllegalArgumentError("no data given")
        self._lazy_init_writing()
        self._trivial_ref.reset()
        self._trivial_ref.add(data)
        self._do_write_to_index(self._trivial_ref)

    def _do_write_to_index(self, payload: BytesRef) -> None:
        # check space first
        if len(payload) > self._data.available:
            self.flush()

        self._data.copy_from(payload)
        payload.reset()

        self._data_entries += 1
        if 0 < self._entries_threshold <= self._data_entries:
            self.flush()

    def flush(self) -> None:
        """Send the buffered entries as one bulk request."""
        if self._data.length == 0:
            return

        logger.debug(
            f"Sending batch of [{self._data.length}] bytes/[{self._data_entries}] entries"
        )
        assert self.client is not None and self.resource_write is not None
        try:
            self.client.bulk(self.resource_write, self._data)
        except BridgeError:
            self._had_write_errors = True
            raise

        self._data.reset()
        self._data_entries = 0
        self._executed_bulk_write = True

    @property
    def buffered_entries(self) -> int:
        return self._data_entries

    @property
    def buffered_bytes(self) -> int:
        return self._data.length

    @property
    def had_write_errors(self) -> bool:
        return self._had_write_errors

    # ---------------------- read path ----------------------

    def scan(
        self, query: QueryBuilder, reader: ScrollReader, page_size: Optional[int] = None
    ) -> ScrollQuery:
        """
        Open a scroll for `query`; the returned cursor owns this repository.
        `page_size` overrides `scroll.size` for this cursor only.
        """
        return ScrollQuery(self, reader).open(query, page_size)

    def scroll(self, scroll_id: str, reader: ScrollReader) -> Tuple[str, List[Hit]]:
        assert self.client is not None
        page = self.client.scroll(scroll_id)
        return page.get("_scroll_id") or scroll_id, reader.read(page)

    # ---------------------- topology / index admin ----------------------

    def read_target_shards(self) -> Dict[Shard, Node]:
        assert self.client is not None and self.resource_read is not None
        return TopologyResolver(self.client).read_targets(self.resource_read.index)

    def write_target_primary_shards(self) -> Dict[Shard, Node]:
        assert self.client is not None and self.resource_write is not None
        return TopologyResolver(self.client).write_primary_targets(self.resource_write.index)

    def get_mapping(self) -> Mapping:
        assert self.client is not None and self.resource_read is not None
        return Mapping.from_response(self.client.get_mapping(self.resource_read.mapping))

    def index_exists(self, read: bool) -> bool:
        assert self.client is not None
        res = self.resource_read if read else self.resource_write
        if res is None:
            raise BridgeIllegalArgumentError(f"No {'read' if read else 'write'} resource configured")

        exists = self.client.exists(res.index)
        # could be an alias or a pattern which is valid for read; ask the mapping instead
        if not exists and read:
            try:
                exists = bool(self.client.get_mapping(res.mapping))
            except BridgeInvalidRequestError:
                exists = False
        return exists

    def put_mapping(self, mapping: Dict[str, Any]) -> None:
        assert self.client is not None and self.resource_write is not None
        self.client.put_mapping(self.resource_write.index, mapping)

    def touch(self) -> bool:
        assert self.client is not None and self.resource_write is not None
        return self.client.touch(self.resource_write.index)

    def wait_for_yellow(self) -> bool:
        """Returns True if the index did not reach yellow within 10s."""
        assert self.client is not None and self.resource_write is not None
        return self.client.health(self.resource_write.index, "yellow", "10s")

    # ---------------------- lifecycle ----------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Closing repository and connection to Elasticsearch ...")

        try:
            if self._data.length > 0:
                if not self._had_write_errors:
                    self.flush()
                else:
                    logger.debug("Dirty close; ignoring last existing write batch...")
                    self._data.reset()
                    self._data_entries = 0

            if self._requires_refresh_after_bulk and self._executed_bulk_write:
                assert self.client is not None and self.resource_write is not None
                self.client.refresh(self.resource_write)
                logger.debug(f"Refreshing index [{self.resource_write}]")
        finally:
            if self.client is not None:
                self.client.close()
                self._stats.aggregate(self.client.stats())
                self.client = None

    def stats(self) -> Stats:
        copy = self._stats.copy()
        if self.client is not None:
            copy.aggregate(self.client.stats())
        return copy

    def __enter__(self) -> "RestRepository":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


__all__ = ["RestRepository", "ClientFactory"]
