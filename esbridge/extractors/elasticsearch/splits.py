# esbridge/extractors/elasticsearch/splits.py
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from loguru import logger

from esbridge.core.config import Settings
from esbridge.core.errors import BridgeIllegalArgumentError
from esbridge.core.initialization import discover_nodes_if_needed
from esbridge.core.mapping import FieldPresenceValidation, validate_mapping
from esbridge.core.repository import ClientFactory, RestRepository
from esbridge.core.topology import Node, Shard


@dataclass(frozen=True)
class ShardInputSplit:
    """
    Everything a reader task needs to rebuild its session without resolving topology
    again: the node to pin to, the shard to read, the (base64) mapping and the (base64)
    settings captured when the job was planned.
    """

    node_ip: str
    http_port: int
    node_id: str
    node_name: str
    shard_id: str
    mapping: Optional[str]
    settings: str

    @property
    def locations(self) -> List[str]:
        return [self.node_ip]

    def serialize(self) -> bytes:
        return json.dumps(asdict(self)).encode("utf-8")

    @classmethod
    def deserialize(cls, data: bytes) -> "ShardInputSplit":
        return cls(**json.loads(data.decode("utf-8")))

    def __str__(self) -> str:
        return (
            f"ShardInputSplit [node=[{self.node_id}/{self.node_name}|{self.node_ip}:"
            f"{self.http_port}],shard={self.shard_id}]"
        )


def get_splits(settings: Settings, client_factory: Optional[ClientFactory] = None) -> List[ShardInputSplit]:
    """
    Plan the read side of a job: one split per shard of the read resource, each pinned
    to the node that serves a started copy of it.
    A missing index yields no splits when `index_read_missing_as_empty` is set and
    raises otherwise.
    """
    settings = settings.copy()
    discover_nodes_if_needed(settings, client_factory)
    saved_settings = settings.save()

    target_shards: Dict[Shard, Node]
    saved_mapping: Optional[str] = None

    repository = RestRepository(settings, client_factory)
    try:
        if not repository.index_exists(read=True):
            if not settings.index_read_missing_as_empty:
                raise BridgeIllegalArgumentError(
                    f"Index [{settings.resource_read}] missing and setting "
                    f"[index_read_missing_as_empty] is set to false"
                )
            logger.info(f"Index [{settings.resource_read}] missing - treating it as empty")
            target_shards = {}
        else:
            target_shards = repository.read_target_shards()
            logger.trace(f"Creating splits for shards {target_shards}")

        logger.info(f"Reading from [{settings.resource_read}]")

        if target_shards:
            mapping = repository.get_mapping()
            logger.info(f"Discovered mapping {mapping} for [{settings.resource_read}]")
            validation = FieldPresenceValidation.parse(settings.field_presence_validation)
            validate_mapping(settings.scroll.fields, mapping, validation)
            saved_mapping = mapping.to_base64()
    finally:
        repository.close()

    splits = [
        ShardInputSplit(
            node_ip=node.ip_address,
            http_port=node.http_port,
            node_id=node.id,
            node_name=node.name,
            shard_id=str(shard.name),
            mapping=saved_mapping,
            settings=saved_settings,
        )
        for shard, node in target_shards.items()
    ]
    logger.info(f"Created [{len(splits)}] shard-splits")
    return splits


__all__ = ["ShardInputSplit", "get_splits"]
