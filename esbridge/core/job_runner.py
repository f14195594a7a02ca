# esbridge/core/job_runner.py
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from .config import JobConfig
from .extractor_base import Batch, Extractor, Record
from .loader_base import LoaderClient
from .stats import Stats

TaskResult = Tuple[int, Stats]
# split -> read stage for that split
ExtractorFactory = Callable[[Any], Extractor]
# task ordinal -> write stage for that task
LoaderFactory = Callable[[int], LoaderClient]


class JobRunner:
    """
    Stands in for the parallel compute framework:
      - Read:  plan the splits, then one reader task per split
      - Write: one writer task per input partition (task ordinal = partition index)
      - Copy:  one task per split, reading it and writing to the output
    The concrete stages come from the factories; every task owns its own stages and
    their sessions, the thread pool only provides the parallelism.
    """

    def __init__(
        self,
        cfg: JobConfig,
        make_extractor: Optional[ExtractorFactory] = None,
        make_loader: Optional[LoaderFactory] = None,
        plan_splits: Optional[Callable[[], Sequence[Any]]] = None,
        check_output: Optional[Callable[[], None]] = None,
    ) -> None:
        self.cfg = cfg
        self.make_extractor = make_extractor
        self.make_loader = make_loader
        self.plan_splits = plan_splits
        self.check_output = check_output
        self._lock = threading.Lock()
        self._total_ok = 0
        self._stats = Stats()

    # ---------------------- public entry points ----------------------

    def plan_reads(self) -> List[Any]:
        assert self.plan_splits, "No read planner configured"
        return list(self.plan_splits())

    def run_extract(
        self,
        consume: Callable[[Record], None],
        splits: Optional[Sequence[Any]] = None,
    ) -> TaskResult:
        """Pipeline: Extract -> consume(record). `consume` is called under the runner's lock."""
        splits = self.plan_reads() if splits is None else splits
        self._run_tasks([lambda s=s: self._extract_one(s, consume) for s in splits])
        return self._total_ok, self._stats.copy()

    def run_load(self, partitions: Sequence[Iterable[Record]]) -> TaskResult:
        """Pipeline: partitions -> Loader (one write task per partition)."""
        self._check_output()
        self._run_tasks(
            [lambda i=i, p=p: self._load_one(i, p) for i, p in enumerate(partitions)]
        )
        return self._total_ok, self._stats.copy()

    def run_extract_to_loader(self, splits: Optional[Sequence[Any]] = None) -> TaskResult:
        """Pipeline: Extract -> Loader (no staging), one task per split."""
        self._check_output()
        splits = self.plan_reads() if splits is None else splits
        self._run_tasks([lambda i=i, s=s: self._copy_one(i, s) for i, s in enumerate(splits)])
        return self._total_ok, self._stats.copy()

    # ---------------------- internals ----------------------

    def _check_output(self) -> None:
        """Job-level output validation, once, before any write task starts."""
        if self.check_output:
            self.check_output()

    def _run_tasks(self, tasks: Sequence[Callable[[], TaskResult]]) -> None:
        """Run every task on the pool; the first task failure fails the job."""
        workers = max(1, self.cfg.threading.workers)
        logger.info(f"Job [{self.cfg.name}] running [{len(tasks)}] task(s) on [{workers}] worker(s)")
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(task) for task in tasks]
            for fut in as_completed(futures):
                ok, stats = fut.result()
                with self._lock:
                    self._total_ok += ok
                    self._stats.aggregate(stats)

    def _extract_one(self, split: Any, consume: Callable[[Record], None]) -> TaskResult:
        assert self.make_extractor, "No extractor factory configured"
        extractor = self.make_extractor(split)
        count = 0
        extractor.open()
        try:
            for rec in extractor.iter_records():
                with self._lock:
                    consume(rec)
                count += 1
        finally:
            extractor.close()
        return count, extractor.stats()

    def _load_one(self, ordinal: int, records: Iterable[Record]) -> TaskResult:
        assert self.make_loader, "No loader factory configured"
        loader = self.make_loader(ordinal)
        loader.open()
        try:
            for batch in _batch_iter(records, self.cfg.threading.batch_size):
                loader.upsert_batch(batch)
            result = loader.finalize()
        finally:
            loader.close()
        return result.success_count, result.stats

    def _copy_one(self, ordinal: int, split: Any) -> TaskResult:
        assert self.make_extractor and self.make_loader, "Copy needs both stage factories"
        extractor = self.make_extractor(split)
        loader = self.make_loader(ordinal)
        extractor.open()
        loader.open()
        try:
            for batch in extractor.iter_batches(self.cfg.threading.batch_size):
                loader.upsert_batch(batch)
            result = loader.finalize()
        finally:
            # always close in reverse order
            loader.close()
            extractor.close()
        return result.success_count, result.stats.copy().aggregate(extractor.stats())


# ------------ helpers ------------


def _batch_iter(records: Iterable[Record], size: int) -> Iterable[Batch]:
    """Turn an iterator of records into an iterator of batches."""
    batch: Batch = []
    for rec in records:
        batch.append(rec)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


__all__ = ["JobRunner", "TaskResult", "ExtractorFactory", "LoaderFactory"]
