# esbridge/core/rest_client.py
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Protocol, Tuple

from elasticsearch import ApiError, Elasticsearch, TransportError
from loguru import logger

from .buffer import TrackingBytesArray
from .config import Settings
from .errors import (
    BridgeInvalidRequestError,
    BridgeTransportError,
    BulkWriteError,
)
from .resource import Resource
from .stats import Stats
from .topology import Node

ShardGroups = List[List[Dict[str, Any]]]


class TransportClient(Protocol):
    """
    Everything the sessions need from the wire. One instance per session; never shared
    between threads. Every method blocks until the cluster answers or raises BridgeError.
    """

    def bulk(self, resource: Resource, data: TrackingBytesArray) -> None: ...

    def scan(self, request: Dict[str, Any]) -> Tuple[str, int, Dict[str, Any]]: ...

    def scroll(self, scroll_id: str) -> Dict[str, Any]: ...

    def clear_scroll(self, scroll_id: str) -> None: ...

    def target_shards(self, index: str) -> ShardGroups: ...

    def get_nodes(self) -> Dict[str, Node]: ...

    def get_mapping(self, mapping: str) -> Dict[str, Any]: ...

    def put_mapping(self, index: str, mapping: Dict[str, Any]) -> None: ...

    def exists(self, index: str) -> bool: ...

    def touch(self, index: str) -> bool: ...

    def refresh(self, resource: Resource) -> None: ...

    def health(self, index: str, level: str, timeout: str) -> bool: ...

    def close(self) -> None: ...

    def stats(self) -> Stats: ...


@contextmanager
def _translated(action: str) -> Iterator[None]:
    """Re-raise elasticsearch client errors as esbridge transport errors."""
    try:
        yield
    except ApiError as ex:
        status = getattr(ex.meta, "status", None)
        message = f"{action} failed: {ex}"
        if status is not None and 400 <= status < 500:
            raise BridgeInvalidRequestError(message, status) from ex
        raise BridgeTransportError(message, status) from ex
    except TransportError as ex:
        raise BridgeTransportError(f"{action} failed: {ex}") from ex


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


class ElasticsearchRestClient:
    """
    TransportClient backed by the official elasticsearch client.
    Talks only to `settings.target_nodes()`, i.e. the pinned node once a session is pinned.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        hosts = [n if "://" in n else f"http://{n}" for n in settings.target_nodes()]
        self._es = Elasticsearch(hosts, request_timeout=settings.http_timeout, **settings.options)
        self._stats = Stats()

    # ---------------------- bulk / scroll ----------------------

    def bulk(self, resource: Resource, data: TrackingBytesArray) -> None:
        payload = data.to_bytes()
        start = time.perf_counter()
        with _translated(f"Bulk write to [{resource}]"):
            response = self._es.bulk(operations=payload).body
        self._stats.bulk_time_ms += _elapsed_ms(start)
        self._stats.bulk_total += 1
        self._stats.bytes_sent += len(payload)
        self._stats.docs_sent += data.entries

        if response.get("errors"):
            failures = [
                item
                for entry in response.get("items", [])
                for item in entry.values()
                if item.get("error")
            ]
            sample = [f.get("error") for f in failures[:5]]
            raise BulkWriteError(
                f"Found unrecoverable error(s) {sample} while writing [{len(failures)}] "
                f"out of [{data.entries}] entries to [{resource}]",
                failures,
            )

    def scan(self, request: Dict[str, Any]) -> Tuple[str, int, Dict[str, Any]]:
        start = time.perf_counter()
        with _translated(f"Scroll open on [{request.get('index')}]"):
            page = self._es.search(**request).body
        self._track_page(page, start)

        total = page.get("hits", {}).get("total", 0)
        if isinstance(total, dict):
            total = total.get("value", 0)
        return page.get("_scroll_id", ""), int(total), page

    def scroll(self, scroll_id: str) -> Dict[str, Any]:
        start = time.perf_counter()
        with _translated("Scroll continuation"):
            page = self._es.scroll(scroll_id=scroll_id, scroll=self.settings.scroll.keepalive).body
        self._track_page(page, start)
        return page

    def clear_scroll(self, scroll_id: str) -> None:
        with _translated("Scroll release"):
            self._es.clear_scroll(scroll_id=scroll_id)

    def _track_page(self, page: Dict[str, Any], start: float) -> None:
        self._stats.scroll_time_ms += _elapsed_ms(start)
        self._stats.scroll_total += 1
        self._stats.docs_received += len(page.get("hits", {}).get("hits", []))

    # ---------------------- topology ----------------------

    def target_shards(self, index: str) -> ShardGroups:
        with _translated(f"Shard lookup for [{index}]"):
            return self._es.search_shards(index=index).body.get("shards", [])

    def get_nodes(self) -> Dict[str, Node]:
        with _translated("Node lookup"):
            info = self._es.nodes.info(metric="http").body.get("nodes", {})
        nodes: Dict[str, Node] = {}
        for node_id, data in info.items():
            node = Node.from_info(node_id, data)
            if node is not None:
                nodes[node_id] = node
        return nodes

    # ---------------------- index admin ----------------------

    def get_mapping(self, mapping: str) -> Dict[str, Any]:
        with _translated(f"Mapping lookup for [{mapping}]"):
            return self._es.indices.get_mapping(index=mapping).body

    def put_mapping(self, index: str, mapping: Dict[str, Any]) -> None:
        with _translated(f"Mapping update for [{index}]"):
            self._es.indices.put_mapping(index=index, body=mapping)

    def exists(self, index: str) -> bool:
        with _translated(f"Existence check for [{index}]"):
            return bool(self._es.indices.exists(index=index))

    def touch(self, index: str) -> bool:
        """Create the index if missing. Returns True only if this call created it."""
        if self.exists(index):
            return False
        try:
            with _translated(f"Index creation for [{index}]"):
                self._es.indices.create(index=index)
        except BridgeInvalidRequestError as ex:
            # another task created it in the meantime
            if "resource_already_exists_exception" in str(ex):
                return False
            raise
        return True

    def refresh(self, resource: Resource) -> None:
        with _translated(f"Refresh of [{resource}]"):
            self._es.indices.refresh(index=resource.index)

    def health(self, index: str, level: str, timeout: str) -> bool:
        """Wait for `level` health. Returns True if the wait timed out."""
        try:
            response = self._es.cluster.health(
                index=index, wait_for_status=level, timeout=timeout
            ).body
        except ApiError as ex:
            if getattr(ex.meta, "status", None) == 408:
                return True
            raise BridgeTransportError(f"Health check for [{index}] failed: {ex}") from ex
        except TransportError as ex:
            raise BridgeTransportError(f"Health check for [{index}] failed: {ex}") from ex
        return bool(response.get("timed_out", False))

    # ---------------------- lifecycle ----------------------

    def close(self) -> None:
        logger.debug(f"Closing transport to {self.settings.target_nodes()}")
        self._es.close()

    def stats(self) -> Stats:
        return self._stats.copy()


__all__ = ["TransportClient", "ElasticsearchRestClient", "ShardGroups"]
