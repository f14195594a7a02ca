# esbridge/core/topology.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, TYPE_CHECKING

from loguru import logger

from .errors import UnstableClusterError

if TYPE_CHECKING:
    from .rest_client import ShardGroups, TransportClient


class ShardState(Enum):
    UNASSIGNED = "UNASSIGNED"
    INITIALIZING = "INITIALIZING"
    STARTED = "STARTED"
    RELOCATING = "RELOCATING"

    @property
    def is_started(self) -> bool:
        # a relocating copy keeps serving until the target takes over
        return self in (ShardState.STARTED, ShardState.RELOCATING)


@dataclass(frozen=True, order=True)
class Shard:
    """
    One copy of a shard taken from a topology snapshot.
    Equality and ordering only look at (index, name) so assignment order is strict
    and reproducible across snapshots.
    """

    index: str
    name: int
    primary: bool = field(default=False, compare=False)
    state: ShardState = field(default=ShardState.UNASSIGNED, compare=False)
    node: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Shard":
        return cls(
            index=data["index"],
            name=int(data["shard"]),
            primary=bool(data.get("primary", False)),
            state=ShardState(str(data.get("state", "UNASSIGNED")).upper()),
            node=data.get("node"),
        )

    def __str__(self) -> str:
        role = "P" if self.primary else "R"
        return f"[{self.index}][{self.name}]{role}@{self.node}"


@dataclass(frozen=True)
class Node:
    """An HTTP-enabled cluster member."""

    id: str
    name: str
    ip_address: str
    http_port: int

    @property
    def address(self) -> str:
        return f"{self.ip_address}:{self.http_port}"

    @classmethod
    def from_info(cls, node_id: str, info: Mapping[str, Any]) -> Optional["Node"]:
        """
        Build a Node from a `nodes.info` entry. Returns None when the node does not
        publish an HTTP address (HTTP disabled, e.g. dedicated master/transport nodes).
        """
        publish = (info.get("http") or {}).get("publish_address")
        if not publish:
            return None
        # formats: "ip:port", "host/ip:port", "inet[/ip:port]"
        publish = publish.replace("inet[", "").rstrip("]")
        publish = publish.rsplit("/", 1)[-1]
        ip, _, port = publish.rpartition(":")
        return cls(id=node_id, name=info.get("name", node_id), ip_address=ip, http_port=int(port))


class TopologyResolver:
    """
    Maps every logical shard of an index to the node that backs it.
    Each attempt fetches a fresh snapshot. A snapshot that references a node missing
    from the registry, or that has a shard group without an eligible copy, is treated
    as stale and the whole attempt is thrown away.
    """

    MAX_ATTEMPTS = 3

    def __init__(self, client: "TransportClient") -> None:
        self.client = client

    def read_targets(self, index: str) -> Dict[Shard, Node]:
        """First started copy of each shard (primary or replica)."""
        return self._resolve(index, lambda shard: shard.state.is_started)

    def write_primary_targets(self, index: str) -> Dict[Shard, Node]:
        """Primary copy of each shard."""
        # TODO: confirm whether search_shards can list an unstarted primary on an HTTP
        # node; if so, add the is_started check here as well.
        return self._resolve(index, lambda shard: shard.primary)

    # ---------------------- internals ----------------------

    def _resolve(self, index: str, accept: Callable[[Shard], bool]) -> Dict[Shard, Node]:
        for _ in range(self.MAX_ATTEMPTS):
            shards = self._attempt(index, accept)
            if shards is not None:
                return shards
        raise UnstableClusterError(
            "Cluster state volatile; cannot find node backing shards - "
            "please check whether your cluster is stable"
        )

    def _attempt(
        self, index: str, accept: Callable[[Shard], bool]
    ) -> Optional[Dict[Shard, Node]]:
        groups: ShardGroups = self.client.target_shards(index)
        nodes: Dict[str, Node] = self.client.get_nodes()

        shards: Dict[Shard, Node] = {}
        for group in groups:
            chosen = self._choose(group, accept, nodes, groups)
            if chosen is None:
                return None
            shard, node = chosen
            shards[shard] = node
        return shards

    def _choose(
        self,
        group: List[Dict[str, Any]],
        accept: Callable[[Shard], bool],
        nodes: Dict[str, Node],
        groups: "ShardGroups",
    ) -> Optional[Tuple[Shard, Node]]:
        """First acceptable copy of one shard group and its node; None means stale."""
        for data in group:
            shard = Shard.from_dict(data)
            if not accept(shard):
                continue
            node = nodes.get(shard.node) if shard.node else None
            if node is None:
                logger.warning(
                    f"Cannot find node with id [{shard.node}] (is HTTP enabled?) from "
                    f"shard [{shard}] in nodes [{list(nodes)}]; layout [{groups}]"
                )
                return None
            return shard, node

        # every group must be served, otherwise shard ids (and write buckets) shift
        logger.warning(f"No eligible copy in shard group {group}; layout [{groups}]")
        return None


__all__ = ["ShardState", "Shard", "Node", "TopologyResolver"]
