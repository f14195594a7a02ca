# esbridge/loaders/elasticsearch/loader.py
from __future__ import annotations

import random
from typing import Any, Optional

from loguru import logger

from esbridge.core.assignment import WriteTargetAssigner
from esbridge.core.config import Settings
from esbridge.core.errors import BridgeIllegalArgumentError
from esbridge.core.extractor_base import Batch
from esbridge.core.initialization import check_id_for_operation, check_index_existence
from esbridge.core.loader_base import LoaderClient, LoadResult
from esbridge.core.repository import ClientFactory, RestRepository
from esbridge.core.stats import Stats


def check_output_specs(settings: Settings, client_factory: Optional[ClientFactory] = None) -> None:
    """Job-level validation, run once before any write task starts."""
    if not settings.resource_write:
        raise BridgeIllegalArgumentError("No write resource (index/pattern) specified")
    check_id_for_operation(settings)
    check_index_existence(settings, client_factory)
    logger.info(f"Writing to [{settings.resource_write}]")


class ShardRecordWriter:
    """
    Write side of one task. The target shard/node is resolved on the first record,
    after which every record goes through a single pinned, buffered session.
    """

    def __init__(
        self,
        settings: Settings,
        task_ordinal: Optional[int] = None,
        client_factory: Optional[ClientFactory] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.task_ordinal = task_ordinal
        self.assigner = WriteTargetAssigner(settings, client_factory, rng)
        self.repository: Optional[RestRepository] = None
        self.written = 0
        self._stats = Stats()

    def _init(self) -> RestRepository:
        if self.repository is None:
            logger.trace(f"Writer instance [{self.task_ordinal}] initiating discovery of target shard...")
            self.repository = self.assigner.assign(self.task_ordinal)
        return self.repository

    def write(self, value: Any) -> None:
        self._init().write_to_index(value)
        self.written += 1

    def write_raw(self, data: bytes) -> None:
        self._init().write_processed_to_index(data)
        self.written += 1

    def close(self) -> Stats:
        logger.trace(f"Closing RecordWriter [{self.assigner.assigned_node}][{self.settings.resource_write}]")
        if self.repository is not None:
            try:
                self.repository.close()
            finally:
                self._stats.aggregate(self.repository.stats())
                self.repository = None
        return self._stats.copy()

    def stats(self) -> Stats:
        copy = self._stats.copy()
        if self.repository is not None:
            copy.aggregate(self.repository.stats())
        return copy


class ElasticsearchLoader(LoaderClient):
    """
    Loader for one write task. Records are buffered and bulk-sent to the primary shard
    picked for `task_ordinal`; finalize() flushes the tail and reports totals.
    """

    def __init__(
        self,
        settings: Settings,
        task_ordinal: Optional[int] = None,
        client_factory: Optional[ClientFactory] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.writer = ShardRecordWriter(settings, task_ordinal, client_factory, rng)
        self._result: Optional[LoadResult] = None

    def upsert_batch(self, records: Batch) -> int:
        for rec in records:
            self.writer.write(rec)
        return len(records)

    def finalize(self) -> LoadResult:
        if self._result is None:
            stats = self.writer.close()
            self._result = LoadResult(success_count=self.writer.written, stats=stats)
        return self._result

    def close(self) -> None:
        """Release the session; no-op after finalize()."""
        if self._result is None:
            self.writer.close()

    def stats(self) -> Stats:
        return self._result.stats.copy() if self._result else self.writer.stats()


__all__ = ["check_output_specs", "ShardRecordWriter", "ElasticsearchLoader"]
