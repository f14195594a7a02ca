# esbridge/core/extractor_base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List

from .base_stage import Stage

Record = Dict[str, Any]
Batch = List[Record]


class Extractor(Stage, ABC):
    """
    Read side of a task: streams the records of one input split.
    Subclasses must implement iter_records().
    """

    @abstractmethod
    def iter_records(self) -> Iterator[Record]:
        """Yield one record (dict) at a time, in the order the source returns them."""
        ...

    def iter_batches(self, batch_size: int) -> Iterator[Batch]:
        """Group iter_records() into lists of at most `batch_size` records."""
        batch: Batch = []
        for rec in self.iter_records():
            batch.append(rec)
            if len(batch) >= batch_size:
                yield batch
                batch = []
        if batch:
            yield batch


__all__ = ["Extractor", "Record", "Batch"]
