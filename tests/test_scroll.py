"""Tests for the scroll session lifecycle and query building."""

import pytest

from esbridge.core.errors import BridgeIllegalArgumentError, BridgeIllegalStateError, BridgeTransportError
from esbridge.core.repository import RestRepository
from esbridge.core.scroll import QueryBuilder, ScrollState, parse_query
from esbridge.core.serialization import ScrollReader
from tests.fixtures.fake_cluster import hits


def open_scroll(cluster, settings, shard="0"):
    repo = RestRepository(settings, cluster.factory)
    query = QueryBuilder.from_settings(settings).shard(shard).only_node("n0")
    return query.build(repo, ScrollReader())


class TestScrollQuery:
    def test_pages_are_consumed_until_an_empty_page(self, cluster, settings):
        cluster.pages["0"] = [hits(0, 400), hits(400, 400), hits(800, 200)]
        scroll = open_scroll(cluster, settings)

        assert scroll.size == 1000
        assert scroll.state is ScrollState.OPEN
        ids = [doc_id for doc_id, _ in scroll]

        assert ids == [str(i) for i in range(1000)]
        assert not scroll.has_next()
        assert scroll.state is ScrollState.EXHAUSTED
        # pages 2 and 3, then the empty page that ends the scroll
        assert cluster.count("scroll") == 3

    def test_next_after_exhaustion_fails(self, cluster, settings):
        cluster.pages["0"] = [hits(0, 2)]
        scroll = open_scroll(cluster, settings)
        assert scroll.next() == ("0", {"n": 0})
        assert scroll.next() == ("1", {"n": 1})
        with pytest.raises(BridgeIllegalStateError):
            scroll.next()

    def test_empty_result_is_exhausted_right_away(self, cluster, settings):
        cluster.pages["0"] = []
        scroll = open_scroll(cluster, settings)
        assert scroll.state is ScrollState.EXHAUSTED
        assert not scroll.has_next()
        assert cluster.count("scroll") == 0

    def test_size_does_not_end_iteration(self, cluster, settings):
        # the reported total is only a progress hint
        cluster.pages["0"] = [hits(0, 3), hits(3, 3)]
        scroll = open_scroll(cluster, settings)
        scroll.size = 2
        assert len(list(scroll)) == 6

    def test_close_releases_cursor_and_session(self, cluster, settings):
        cluster.pages["0"] = [hits(0, 5), hits(5, 5)]
        scroll = open_scroll(cluster, settings)
        scroll.next()
        scroll.close()
        scroll.close()

        assert scroll.state is ScrollState.CLOSED
        assert cluster.args("clear_scroll") == ["scroll-0-1"]
        assert cluster.clients[0].closed
        assert scroll.stats().scroll_total == 1

    def test_open_request_targets_shard_and_node(self, cluster, settings):
        settings.scroll.size = 25
        settings.scroll.fields = ["n"]
        cluster.pages["3"] = [hits(0, 1)]
        open_scroll(cluster, settings, shard=3)

        request = cluster.args("scan")[0]
        assert request["index"] == "test"
        assert request["preference"] == "_shards:3|_only_node:n0"
        assert request["size"] == 25
        assert request["scroll"] == "10m"
        assert request["source_includes"] == ["n"]
        assert request["query"] == {"match_all": {}}

    def test_failed_continuation_propagates_and_close_still_releases(self, cluster, settings):
        cluster.pages["0"] = [hits(0, 2), hits(2, 2)]
        cluster.scroll_failures = 1
        scroll = open_scroll(cluster, settings)
        scroll.next()
        scroll.next()

        with pytest.raises(BridgeTransportError):
            scroll.next()
        # not retried
        assert cluster.count("scroll") == 1

        scroll.close()
        assert scroll.state is ScrollState.CLOSED
        assert cluster.args("clear_scroll") == ["scroll-0-1"]
        assert cluster.clients[0].closed

    def test_page_size_overrides_settings(self, cluster, settings):
        cluster.pages["0"] = [hits(0, 1)]
        repo = RestRepository(settings, cluster.factory)
        repo.scan(QueryBuilder(settings), ScrollReader(), page_size=7)
        assert cluster.args("scan")[0]["size"] == 7

    def test_open_twice_is_rejected(self, cluster, settings):
        cluster.pages["0"] = [hits(0, 1)]
        scroll = open_scroll(cluster, settings)
        with pytest.raises(BridgeIllegalStateError):
            scroll.open(QueryBuilder(settings))


class TestParseQuery:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, {"match_all": {}}),
            ("  ", {"match_all": {}}),
            ('{"query": {"term": {"a": 1}}}', {"term": {"a": 1}}),
            ('{"term": {"a": 1}}', {"term": {"a": 1}}),
            ("?q=user:kimchy", {"query_string": {"query": "user:kimchy"}}),
            ("user:kimchy", {"query_string": {"query": "user:kimchy"}}),
        ],
    )
    def test_supported_forms(self, raw, expected):
        assert parse_query(raw) == expected

    def test_invalid_json_is_rejected(self):
        with pytest.raises(BridgeIllegalArgumentError):
            parse_query("{not json")

    def test_uri_query_without_q_is_rejected(self):
        with pytest.raises(BridgeIllegalArgumentError):
            parse_query("?size=10")

    def test_resource_query_is_used_when_settings_have_none(self, settings):
        settings.resource_read = "test/_doc?q=n:1"
        builder = QueryBuilder(settings)
        assert builder.query == {"query_string": {"query": "n:1"}}
        assert builder.resource.index == "test"
