"""End-to-end pipelines through the runner, against the in-memory cluster."""

import pytest

from esbridge.core.config import JobConfig, ThreadingConfig
from esbridge.core.errors import BridgeIllegalArgumentError, BridgeTransportError
from esbridge.core.extractor_base import Extractor
from esbridge.core.job_runner import JobRunner, _batch_iter
from esbridge.core.loader_base import LoadResult, LoaderClient
from esbridge.pipelines.elasticsearch import build_runner
from tests.fixtures.fake_cluster import hits


@pytest.fixture
def job(settings):
    settings.batch.size_bytes = 10_000
    return JobConfig(name="test-job", threading=ThreadingConfig(workers=2, batch_size=2), settings=settings)


class TestRunLoad:
    def test_each_partition_writes_through_its_own_primary(self, cluster, job):
        partitions = [[{"n": i} for i in range(3)], [{"n": i} for i in range(3, 5)]]
        total, stats = build_runner(job, cluster.factory).run_load(partitions)

        assert total == 5
        assert stats.docs_sent == 5
        # ordinal 0 -> shard 0 on n0, ordinal 1 -> shard 1 on n1
        assert sorted(cluster.args("bulk")) == [("test", "10.0.0.0:9200"), ("test", "10.0.0.1:9200")]
        assert sorted(len(b) for b in cluster.bulks) == [2, 3]

    def test_update_without_id_fails_before_any_task(self, cluster, job):
        job.settings.write_operation = "update"
        with pytest.raises(BridgeIllegalArgumentError):
            build_runner(job, cluster.factory).run_load([[{"n": 1}]])
        assert cluster.calls == []

    def test_missing_index_without_auto_create_is_rejected(self, cluster, job):
        job.settings.resource_write = "fresh"
        job.settings.index_auto_create = False
        with pytest.raises(BridgeIllegalArgumentError):
            build_runner(job, cluster.factory).run_load([[{"n": 1}]])
        assert cluster.count("bulk") == 0

    def test_task_failure_fails_the_job(self, cluster, job):
        cluster.bulk_failures = 5
        with pytest.raises(BridgeTransportError):
            build_runner(job, cluster.factory).run_load([[{"n": 1}]])
        assert all(c.closed for c in cluster.clients)


class TestRunExtract:
    def test_every_shard_is_read_once(self, cluster, job):
        cluster.pages["0"] = [hits(0, 2)]
        cluster.pages["1"] = [hits(2, 3), hits(5, 1)]
        cluster.pages["2"] = []
        seen = []

        total, stats = build_runner(job, cluster.factory).run_extract(seen.append)

        assert total == 6
        assert sorted(int(r["_id"]) for r in seen) == list(range(6))
        assert stats.docs_received == 6
        assert all(c.closed for c in cluster.clients)

    def test_missing_index_as_empty_runs_no_tasks(self, cluster, job):
        job.settings.resource_read = "missing"
        job.settings.index_read_missing_as_empty = True
        total, _ = build_runner(job, cluster.factory).run_extract(lambda r: None)
        assert total == 0
        assert cluster.count("scan") == 0


class TestRunExtractToLoader:
    def test_copy_between_indices(self, cluster, job):
        job.settings.resource_write = "copy"
        cluster.indices["copy"] = {"mappings": {}}
        cluster.pages["*"] = [hits(0, 3)]

        total, stats = build_runner(job, cluster.factory).run_extract_to_loader()

        # three shards, each serving the same three documents
        assert total == 9
        assert stats.docs_received == 9
        assert stats.docs_sent == 9
        assert {index for index, _ in cluster.args("bulk")} == {"copy"}


def test_batch_iter_keeps_the_tail():
    assert list(_batch_iter(range(5), 2)) == [[0, 1], [2, 3], [4]]
    assert list(_batch_iter([], 2)) == []


class ListExtractor(Extractor):
    def __init__(self, records):
        self.records = records

    def iter_records(self):
        yield from self.records


class CollectingLoader(LoaderClient):
    def __init__(self, sink):
        self.sink = sink

    def upsert_batch(self, records):
        self.sink.extend(records)
        return len(records)

    def finalize(self):
        return LoadResult(success_count=len(self.sink))


def test_runner_works_with_any_stages():
    sinks = {}
    runner = JobRunner(
        JobConfig(threading=ThreadingConfig(workers=2, batch_size=2)),
        make_extractor=ListExtractor,
        make_loader=lambda ordinal: CollectingLoader(sinks.setdefault(ordinal, [])),
    )

    total, _ = runner.run_extract_to_loader([[{"a": 1}, {"a": 2}, {"a": 3}], [{"a": 4}]])
    assert total == 4
    assert sinks == {0: [{"a": 1}, {"a": 2}, {"a": 3}], 1: [{"a": 4}]}
