# esbridge/core/initialization.py
from __future__ import annotations

from typing import Optional

from loguru import logger

from .config import Settings
from .errors import BridgeIllegalArgumentError
from .repository import ClientFactory, RestRepository
from .rest_client import ElasticsearchRestClient


def discover_nodes_if_needed(
    settings: Settings, client_factory: Optional[ClientFactory] = None
) -> None:
    """Record the HTTP addresses of every node so tasks can spread over the whole cluster."""
    if not settings.nodes_discovery or settings.discovered_nodes:
        return

    client = (client_factory or ElasticsearchRestClient)(settings)
    try:
        nodes = client.get_nodes()
    finally:
        client.close()

    settings.discovered_nodes = sorted(node.address for node in nodes.values())
    logger.debug(f"Discovered Elasticsearch nodes {settings.discovered_nodes}")


def check_id_for_operation(settings: Settings) -> None:
    if settings.write_operation.lower() == "update" and not settings.mapping_id:
        raise BridgeIllegalArgumentError(
            "Operation [update] requires an id but none (mapping_id) was specified"
        )


def check_index_existence(settings: Settings, client_factory: Optional[ClientFactory] = None) -> None:
    """Writing to a missing index is only allowed when the index can be auto-created."""
    if settings.index_auto_create:
        return

    repository = RestRepository(settings, client_factory)
    try:
        exists = repository.index_exists(read=False)
    finally:
        repository.close()

    if not exists:
        raise BridgeIllegalArgumentError(
            f"Target index [{settings.resource_write}] does not exist and auto-creation is disabled"
        )


__all__ = ["discover_nodes_if_needed", "check_id_for_operation", "check_index_existence"]
