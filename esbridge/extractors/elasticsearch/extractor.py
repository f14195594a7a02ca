# esbridge/extractors/elasticsearch/extractor.py
from __future__ import annotations

from typing import Iterator, Optional

from esbridge.core.extractor_base import Extractor, Record
from esbridge.core.repository import ClientFactory
from esbridge.core.stats import Stats

from .reader import DictValueAdapter, ShardRecordReader
from .splits import ShardInputSplit


class ElasticsearchExtractor(Extractor):
    """
    Streams the documents of one shard split.
    Uses a scroll pinned to the split's node so each task reads only its own shard.
    """

    def __init__(self, split: ShardInputSplit, client_factory: Optional[ClientFactory] = None):
        self.split = split
        self.client_factory = client_factory
        self.reader: ShardRecordReader | None = None
        self._stats = Stats()

    def open(self) -> None:
        """Rebuild the session from the split."""
        self.reader = ShardRecordReader(self.split, DictValueAdapter(), self.client_factory)

    def iter_records(self) -> Iterator[Record]:
        """Stream documents one by one as dicts."""
        assert self.reader, "Extractor not opened. Call .open() first."
        while self.reader.next_key_value():
            # each document comes back as (id, source)
            yield {"_id": self.reader.current_key, **self.reader.current_value}

    @property
    def progress(self) -> float:
        return self.reader.progress if self.reader else 0.0

    def close(self) -> None:
        """Release the scroll and the session."""
        if self.reader:
            try:
                self.reader.close()
            finally:
                self._stats.aggregate(self.reader.stats())
                self.reader = None

    def stats(self) -> Stats:
        return self._stats.copy() if self.reader is None else self.reader.stats()


__all__ = ["ElasticsearchExtractor"]
