# esbridge/core/assignment.py
from __future__ import annotations

import random
from typing import Dict, Optional, Sequence, Tuple

from loguru import logger

from .config import Settings
from .errors import BridgeIllegalArgumentError
from .initialization import discover_nodes_if_needed
from .repository import ClientFactory, RestRepository
from .resource import Resource
from .serialization import IndexPattern
from .topology import Node, Shard


def is_unknown_ordinal(task_ordinal: Optional[int]) -> bool:
    return task_ordinal is None or task_ordinal < 0


def assign_primary_shard(
    target_shards: Dict[Shard, Node], task_ordinal: Optional[int], rng: random.Random
) -> Tuple[Shard, Node]:
    """
    Pick the primary shard a write task should feed.
    Shards are sorted by (index, id) so the same ordinal always lands on the same shard
    for a given snapshot; tasks without an ordinal get a random bucket instead.
    """
    if not target_shards:
        raise BridgeIllegalArgumentError("No primary shards to assign")

    ordered = sorted(target_shards)
    if is_unknown_ordinal(task_ordinal):
        task_ordinal = rng.randint(1, len(ordered))
    assert task_ordinal is not None

    shard = ordered[task_ordinal % len(ordered)]
    return shard, target_shards[shard]


def assign_random_node(nodes: Sequence[str], rng: random.Random) -> str:
    if not nodes:
        raise BridgeIllegalArgumentError("No nodes available to write to")
    return rng.choice(list(nodes))


class WriteTargetAssigner:
    """
    Opens the write session for one task, pinned to the node it should talk to:
      - single index: the node holding the task's primary shard
      - index pattern: a random node (the target index is only known per record)
    The random source is per assigner so tests can seed it.
    """

    def __init__(
        self,
        settings: Settings,
        client_factory: Optional[ClientFactory] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.client_factory = client_factory
        self.rng = rng or random.Random()
        self.assigned_shard: Optional[Shard] = None
        self.assigned_node: Optional[str] = None

    def assign(self, task_ordinal: Optional[int]) -> RestRepository:
        settings = self.settings.copy()
        discover_nodes_if_needed(settings, self.client_factory)

        # pre-pin to spread topology lookups over the cluster
        nodes = settings.discovered_or_declared_nodes()
        if not nodes:
            raise BridgeIllegalArgumentError("No nodes available to write to")
        start = 0 if is_unknown_ordinal(task_ordinal) else task_ordinal
        assert start is not None
        settings.pin_node(nodes[start % len(nodes)])

        resource = Resource(settings, read=False)
        if IndexPattern.compile(resource.index).has_pattern:
            return self._init_multi_indices(settings, resource, task_ordinal)
        return self._init_single_index(settings, resource, task_ordinal)

    def _init_single_index(
        self, settings: Settings, resource: Resource, task_ordinal: Optional[int]
    ) -> RestRepository:
        logger.debug(f"Resource [{resource}] resolves as a single index")

        repository = RestRepository(settings, self.client_factory)
        try:
            if settings.index_auto_create and repository.touch():
                if repository.wait_for_yellow():
                    logger.warning(f"Timed out waiting for index [{resource}] to reach yellow health")
            target_shards = repository.write_target_primary_shards()
        finally:
            repository.close()

        if not target_shards:
            raise BridgeIllegalArgumentError(
                f"Cannot determine write shards for [{resource}]; likely its format is "
                f"incorrect (maybe it contains illegal characters?)"
            )

        if is_unknown_ordinal(task_ordinal):
            logger.warning("Cannot determine task id - redirecting writes in a random fashion")
        shard, node = assign_primary_shard(target_shards, task_ordinal, self.rng)

        settings.pin_node(node.ip_address, node.http_port)
        self.assigned_shard = shard
        self.assigned_node = settings.pinned_node
        logger.debug(
            f"Writer instance [{task_ordinal}] assigned to primary shard [{shard}] "
            f"at address [{settings.pinned_node}]"
        )
        return RestRepository(settings, self.client_factory)

    def _init_multi_indices(
        self, settings: Settings, resource: Resource, task_ordinal: Optional[int]
    ) -> RestRepository:
        logger.debug(f"Resource [{resource}] resolves as an index pattern")

        node = assign_random_node(settings.discovered_or_declared_nodes(), self.rng)
        settings.pin_node(node)
        self.assigned_shard = None
        self.assigned_node = node
        logger.debug(f"Writer instance [{task_ordinal}] assigned to [{node}]")
        return RestRepository(settings, self.client_factory)


__all__ = ["assign_primary_shard", "assign_random_node", "WriteTargetAssigner"]
