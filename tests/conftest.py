import pytest

from esbridge.core.config import BatchConfig, Settings
from tests.fixtures.fake_cluster import FakeCluster, make_node, shard_entry


@pytest.fixture
def cluster() -> FakeCluster:
    """Three HTTP nodes, one index `test` with three primaries (listed out of order)."""
    c = FakeCluster()
    c.nodes = {f"n{i}": make_node(f"n{i}", f"10.0.0.{i}") for i in range(3)}
    c.indices["test"] = {"mappings": {"properties": {"n": {"type": "long"}}}}
    c.snapshots = [
        [
            [shard_entry("test", 2, "n2")],
            [shard_entry("test", 0, "n0")],
            [shard_entry("test", 1, "n1")],
        ]
    ]
    return c


@pytest.fixture
def settings() -> Settings:
    return Settings(
        nodes=["localhost:9200"],
        nodes_discovery=False,
        resource_read="test",
        resource_write="test",
        batch=BatchConfig(size_bytes=100, size_entries=0, refresh_after_write=False),
    )
