# esbridge/pipelines/elasticsearch.py
from __future__ import annotations

from typing import Optional

from esbridge.core.config import JobConfig
from esbridge.core.job_runner import JobRunner
from esbridge.core.repository import ClientFactory
from esbridge.extractors.elasticsearch.extractor import ElasticsearchExtractor
from esbridge.extractors.elasticsearch.splits import ShardInputSplit, get_splits
from esbridge.loaders.elasticsearch.loader import ElasticsearchLoader, check_output_specs


def build_runner(cfg: JobConfig, client_factory: Optional[ClientFactory] = None) -> JobRunner:
    """
    JobRunner wired for Elasticsearch on both sides: shard splits of the read resource
    feed ElasticsearchExtractor tasks, and every write task gets an ElasticsearchLoader
    pinned to the primary shard picked for its ordinal.
    """
    settings = cfg.settings

    def make_extractor(split: ShardInputSplit) -> ElasticsearchExtractor:
        return ElasticsearchExtractor(split, client_factory)

    def make_loader(ordinal: int) -> ElasticsearchLoader:
        return ElasticsearchLoader(settings, ordinal, client_factory)

    return JobRunner(
        cfg,
        make_extractor=make_extractor,
        make_loader=make_loader,
        plan_splits=lambda: get_splits(settings, client_factory),
        check_output=lambda: check_output_specs(settings, client_factory),
    )


__all__ = ["build_runner"]
