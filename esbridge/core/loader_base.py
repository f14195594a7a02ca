# esbridge/core/loader_base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from .base_stage import Stage
from .extractor_base import Batch
from .stats import Stats


@dataclass(frozen=True)
class LoadResult:
    """
    Returned by LoaderClient.finalize() once a task's records are all flushed.
    - success_count: records accepted into the write buffer and flushed
    - stats: transport counters of the task's session
    Failures are not counted here: they raise and fail the task.
    """

    success_count: int
    stats: Stats = field(default_factory=Stats)


class LoaderClient(Stage, ABC):
    """
    Write side of a task: receives batches of records and forwards them to the cluster.
    Implementations must provide upsert_batch(); records may stay buffered until
    finalize()/close().
    """

    @abstractmethod
    def upsert_batch(self, records: Batch) -> int:
        """
        Hand one batch to the session (MUST be implemented by subclasses).
        Returns the number of records accepted.
        """
        ...

    @abstractmethod
    def finalize(self) -> LoadResult:
        """Flush whatever is still buffered and report the task totals."""
        ...


__all__ = ["LoaderClient", "LoadResult"]
