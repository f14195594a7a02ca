# esbridge/core/errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


class BridgeError(Exception):
    """Base for every error raised by esbridge."""


class BridgeIllegalStateError(BridgeError):
    """The cluster or a session is in a state the operation cannot work with."""


class UnstableClusterError(BridgeIllegalStateError):
    """Shard topology could not be resolved after the bounded number of attempts."""


class BridgeIllegalArgumentError(BridgeError, ValueError):
    """Invalid input or configuration (null record, missing index, bad resource, ...)."""


class BridgeTransportError(BridgeError):
    """
    Network or protocol failure reported by the transport client.
    `status` carries the HTTP status when the cluster answered at all.
    """

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class BridgeInvalidRequestError(BridgeTransportError):
    """The cluster rejected the request (4xx), e.g. the index does not exist."""


class BulkWriteError(BridgeTransportError):
    """A bulk request was accepted but some of its items failed."""

    def __init__(self, message: str, failures: List[Dict[str, Any]]) -> None:
        super().__init__(message)
        self.failures = failures


__all__ = [
    "BridgeError",
    "BridgeIllegalStateError",
    "UnstableClusterError",
    "BridgeIllegalArgumentError",
    "BridgeTransportError",
    "BridgeInvalidRequestError",
    "BulkWriteError",
]
