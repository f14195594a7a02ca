# esbridge/core/config.py
from __future__ import annotations

import base64
import copy
import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class BatchConfig:
    """Write-side buffering knobs (per session)."""

    size_bytes: int = 1024 * 1024  # fixed capacity of the bulk buffer
    size_entries: int = 1000  # flush after this many docs; <= 0 disables
    refresh_after_write: bool = True


@dataclass
class ScrollConfig:
    """Read-side paging knobs (per shard reader)."""

    size: int = 50  # docs per scroll page
    keepalive: str = "10m"
    fields: Optional[List[str]] = None  # _source includes; None returns everything


@dataclass
class Settings:
    """
    Everything a session needs to talk to the cluster.
    Read splits carry a saved copy (see save()/load()) so every reader task rebuilds
    an identical session without touching the job's original configuration.
    """

    nodes: List[str] = field(default_factory=lambda: ["localhost:9200"])
    discovered_nodes: List[str] = field(default_factory=list)
    nodes_discovery: bool = True
    pinned_node: Optional[str] = None

    resource_read: Optional[str] = None
    resource_write: Optional[str] = None
    query: Optional[str] = None

    index_auto_create: bool = True
    index_read_missing_as_empty: bool = False
    field_presence_validation: str = "ignore"  # ignore | warning | strict

    write_operation: str = "index"  # index | create | update
    mapping_id: Optional[str] = None  # record field used as document _id

    read_metadata: bool = False
    read_field_empty_as_null: bool = True

    # registry names, see esbridge.core.registry
    bulk_command: str = "json"
    value_adapter: str = "dict"

    http_timeout: float = 60.0
    batch: BatchConfig = field(default_factory=BatchConfig)
    scroll: ScrollConfig = field(default_factory=ScrollConfig)
    # Free-form: extra transport options (auth, TLS, ...)
    options: Dict[str, Any] = field(default_factory=dict)

    # ---------------------- node pinning ----------------------

    @property
    def has_pinned_node(self) -> bool:
        return bool(self.pinned_node)

    def pin_node(self, address: str, port: Optional[int] = None) -> "Settings":
        """Route every request of this session to a single node ("ip:port")."""
        self.pinned_node = f"{address}:{port}" if port is not None else address
        return self

    def discovered_or_declared_nodes(self) -> List[str]:
        return list(self.discovered_nodes) if self.discovered_nodes else list(self.nodes)

    def target_nodes(self) -> List[str]:
        if self.pinned_node:
            return [self.pinned_node]
        return self.discovered_or_declared_nodes()

    # ---------------------- (de)serialization ----------------------

    def copy(self) -> "Settings":
        return copy.deepcopy(self)

    def save(self) -> str:
        """Base64 JSON snapshot, safe to ship inside a split."""
        raw = json.dumps(asdict(self), sort_keys=True).encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    @classmethod
    def load(cls, blob: str) -> "Settings":
        data = json.loads(base64.b64decode(blob.encode("ascii")).decode("utf-8"))
        batch = BatchConfig(**data.pop("batch", {}))
        scroll = ScrollConfig(**data.pop("scroll", {}))
        return cls(batch=batch, scroll=scroll, **data)


@dataclass
class ThreadingConfig:
    """Parallelism knobs for the runner."""

    workers: int = 8  # concurrent tasks (one session each)
    batch_size: int = 2000  # records handed to a loader per upsert_batch() call


@dataclass
class JobConfig:
    """
    Job-level config the runner understands: a name, the thread pool and the cluster
    settings every task copies before it opens its own session.
    """

    name: str = "job"
    threading: ThreadingConfig = field(default_factory=ThreadingConfig)
    settings: Settings = field(default_factory=Settings)


__all__ = ["BatchConfig", "ScrollConfig", "Settings", "ThreadingConfig", "JobConfig"]
