"""Tests for shard/node resolution and its bounded retry."""

import pytest

from esbridge.core.errors import UnstableClusterError
from esbridge.core.repository import RestRepository
from esbridge.core.topology import Node, Shard, ShardState, TopologyResolver
from tests.fixtures.fake_cluster import shard_entry


class TestShard:
    def test_ordering_uses_index_then_id(self):
        shards = [
            Shard("b", 0),
            Shard("a", 10),
            Shard("a", 2),
        ]
        assert sorted(shards) == [Shard("a", 2), Shard("a", 10), Shard("b", 0)]

    def test_equality_ignores_role_and_node(self):
        primary = Shard("a", 1, primary=True, state=ShardState.STARTED, node="n0")
        replica = Shard("a", 1, primary=False, state=ShardState.STARTED, node="n1")
        assert primary == replica
        assert hash(primary) == hash(replica)

    def test_from_dict(self):
        shard = Shard.from_dict(shard_entry("idx", "3", "n1", primary=False, state="started"))
        assert shard.index == "idx"
        assert shard.name == 3
        assert not shard.primary
        assert shard.state is ShardState.STARTED


class TestNode:
    @pytest.mark.parametrize(
        "publish",
        ["10.1.2.3:9201", "es-host/10.1.2.3:9201", "inet[/10.1.2.3:9201]"],
    )
    def test_publish_address_formats(self, publish):
        node = Node.from_info("id1", {"name": "node-1", "http": {"publish_address": publish}})
        assert node == Node("id1", "node-1", "10.1.2.3", 9201)
        assert node.address == "10.1.2.3:9201"

    def test_node_without_http_is_skipped(self):
        assert Node.from_info("id1", {"name": "master-only"}) is None


class TestReadTargets:
    def test_first_started_copy_wins(self, cluster):
        cluster.snapshots = [
            [
                [
                    shard_entry("test", 0, "n0", primary=True, state="INITIALIZING"),
                    shard_entry("test", 0, "n1", primary=False, state="STARTED"),
                    shard_entry("test", 0, "n2", primary=False, state="STARTED"),
                ]
            ]
        ]
        targets = TopologyResolver(cluster.factory(None)).read_targets("test")
        assert list(targets.values()) == [cluster.nodes["n1"]]
        assert next(iter(targets)).node == "n1"

    def test_group_without_started_copy_makes_the_snapshot_stale(self, cluster):
        cluster.snapshots = [
            [
                [shard_entry("test", 0, None, state="UNASSIGNED")],
                [shard_entry("test", 1, "n1")],
            ]
        ]
        with pytest.raises(UnstableClusterError):
            TopologyResolver(cluster.factory(None)).read_targets("test")
        assert cluster.count("target_shards") == 3

    def test_unstarted_group_is_retried_until_it_starts(self, cluster):
        cluster.snapshots = [
            [[shard_entry("test", 0, "n0", state="INITIALIZING")], [shard_entry("test", 1, "n1")]],
            [[shard_entry("test", 0, "n0")], [shard_entry("test", 1, "n1")]],
        ]
        targets = TopologyResolver(cluster.factory(None)).read_targets("test")
        assert [s.name for s in targets] == [0, 1]
        assert cluster.count("target_shards") == 2


class TestWriteTargets:
    def test_primary_copy_is_chosen_over_replicas(self, cluster):
        cluster.snapshots = [
            [
                [
                    shard_entry("test", 0, "n1", primary=False),
                    shard_entry("test", 0, "n0", primary=True),
                ]
            ]
        ]
        targets = TopologyResolver(cluster.factory(None)).write_primary_targets("test")
        shard, node = next(iter(targets.items()))
        assert shard.primary
        assert node == cluster.nodes["n0"]

    def test_group_with_only_a_replica_is_never_dropped(self, cluster, settings):
        cluster.snapshots = [
            [
                [shard_entry("test", 0, "n0", primary=False)],
                [shard_entry("test", 1, "n1")],
                [shard_entry("test", 2, "n2")],
            ]
        ]
        repo = RestRepository(settings, cluster.factory)

        with pytest.raises(UnstableClusterError):
            repo.write_target_primary_shards()
        assert cluster.count("target_shards") == 3

    def test_unresolvable_node_on_every_attempt_is_fatal(self, cluster, settings):
        cluster.snapshots = [[[shard_entry("test", 0, "ghost")]]]
        repo = RestRepository(settings, cluster.factory)

        with pytest.raises(UnstableClusterError):
            repo.write_target_primary_shards()
        assert cluster.count("target_shards") == TopologyResolver.MAX_ATTEMPTS == 3

    def test_stale_snapshot_is_retried_wholesale(self, cluster, settings):
        cluster.snapshots = [
            [[shard_entry("test", 0, "n0")], [shard_entry("test", 1, "ghost")]],
            [[shard_entry("test", 0, "n0")], [shard_entry("test", 1, "n1")]],
        ]
        repo = RestRepository(settings, cluster.factory)

        targets = repo.write_target_primary_shards()
        assert cluster.count("target_shards") == 2
        assert {s.name: n.id for s, n in targets.items()} == {0: "n0", 1: "n1"}

    def test_read_resolution_is_retried_as_well(self, cluster, settings):
        cluster.snapshots = [[[shard_entry("test", 0, "ghost", primary=False)]]]
        repo = RestRepository(settings, cluster.factory)
        with pytest.raises(UnstableClusterError):
            repo.read_target_shards()
        assert cluster.count("target_shards") == 3
