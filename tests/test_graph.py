"""Tests for teammate graph construction and the build-once cache"""
import logging
import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from teammate_graph import config
from teammate_graph.graph import (
    GraphBuildError, GraphCache, InvalidEdgeError, build_graph, count_edges
)

EDGES = [(1, 2), (2, 3), (3, 1), (3, 4), (2, 1), (4, 3), (5, 6)]


def test_adjacency_is_symmetric():
    graph = build_graph(EDGES)

    for player, teammates in graph.items():
        for teammate in teammates:
            assert player in graph[teammate]


def test_duplicates_and_reversed_pairs_collapse():
    graph = build_graph(EDGES)

    assert graph[1] == {2, 3}
    assert graph[3] == {1, 2, 4}
    assert count_edges(graph) == 5


def test_result_ignores_order_and_duplicates():
    shuffled = list(reversed(EDGES)) + [(4, 3), (6, 5), (1, 2)]

    assert dict(build_graph(EDGES)) == dict(build_graph(shuffled))


def test_graph_is_read_only():
    graph = build_graph(EDGES)

    assert isinstance(graph[1], frozenset)
    with pytest.raises(TypeError):
        graph[7] = frozenset()


def test_skip_policy_drops_self_loops_and_malformed_records(caplog):
    records = [(1, 2), (3, 3), ('a', 1), (1,), None, (-1, 2), (True, 2), (2, 4)]

    with caplog.at_level(logging.WARNING):
        graph = build_graph(records, invalid_edge_policy='skip')

    assert set(graph) == {1, 2, 4}
    assert 3 not in graph
    for player, teammates in graph.items():
        assert player not in teammates
    assert "Skipped 6 invalid teammate records out of 8" in caplog.text


@pytest.mark.parametrize('bad_record', [(3, 3), ('a', 1), (1, 2, 3), None, (-5, 1)])
def test_reject_policy_raises_on_invalid_record(bad_record):
    with pytest.raises(InvalidEdgeError):
        build_graph([(1, 2), bad_record], invalid_edge_policy='reject')


def test_reject_policy_accepts_clean_edges():
    graph = build_graph([(1, 2), (2, 3)], invalid_edge_policy='reject')

    assert graph[2] == {1, 3}


def test_unknown_policy_is_an_error():
    with pytest.raises(ValueError):
        build_graph(EDGES, invalid_edge_policy='ignore')


class CountingLoader:
    def __init__(self, edges, delay=0.0):
        self.edges = edges
        self.delay = delay
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return list(self.edges)


def test_cache_builds_once():
    loader = CountingLoader(EDGES)
    cache = GraphCache(edge_loader=loader)

    first = cache.get()
    second = cache.get()

    assert first is second
    assert loader.calls == 1


def test_concurrent_callers_share_one_build():
    loader = CountingLoader(EDGES, delay=0.2)
    cache = GraphCache(edge_loader=loader)

    with ThreadPoolExecutor(max_workers=16) as pool:
        graphs = list(pool.map(lambda _: cache.get(), range(32)))

    assert loader.calls == 1
    assert all(graph is graphs[0] for graph in graphs)
    assert len(graphs[0]) == 6


def test_loader_failure_raises_build_error_and_leaves_cache_empty():
    attempts = []

    def flaky_loader():
        attempts.append(1)
        if len(attempts) == 1:
            raise sqlite3.OperationalError("no such table: teammates")
        return EDGES

    cache = GraphCache(edge_loader=flaky_loader)

    with pytest.raises(GraphBuildError) as excinfo:
        cache.get()

    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    assert not cache.is_loaded
    assert cache.get_stats()['loaded'] is False

    # Next caller retries the build
    assert 4 in cache.get()
    assert cache.is_loaded


def test_reject_policy_failure_surfaces_from_cache():
    cache = GraphCache(edge_loader=lambda: [(1, 2), (2, 2)], invalid_edge_policy='reject')

    with pytest.raises(InvalidEdgeError):
        cache.get()
    assert not cache.is_loaded


def test_skip_policy_cache_keeps_invariants():
    cache = GraphCache(edge_loader=lambda: [(1, 2), (2, 2), (2, 3)], invalid_edge_policy='skip')

    graph = cache.get()

    assert graph[2] == {1, 3}
    assert cache.get_stats()['edge_count'] == 2


def test_invalidate_forces_rebuild():
    loader = CountingLoader(EDGES)
    cache = GraphCache(edge_loader=loader)

    first = cache.get()
    cache.invalidate()
    assert not cache.is_loaded

    second = cache.get()

    assert loader.calls == 2
    assert first is not second
    assert cache.get_stats()['build_count'] == 2


def test_stats_report_readiness_and_size():
    cache = GraphCache(edge_loader=lambda: EDGES)

    before = cache.get_stats()
    assert before['loaded'] is False
    assert before['node_count'] == 0
    assert before['built_at'] is None

    cache.get()
    after = cache.get_stats()

    assert after['loaded'] is True
    assert after['node_count'] == 6
    assert after['edge_count'] == 5
    assert after['build_count'] == 1
    assert after['build_time_ms'] >= 0
    assert after['built_at'] is not None


def test_cache_uses_configured_policy_by_default(monkeypatch):
    monkeypatch.setattr(config, 'INVALID_EDGE_POLICY', 'reject')
    cache = GraphCache(edge_loader=lambda: [(1, 2), (3, 3)])

    assert cache.invalid_edge_policy == 'reject'
    with pytest.raises(InvalidEdgeError):
        cache.get()


def test_explicit_policy_overrides_configuration(monkeypatch):
    monkeypatch.setattr(config, 'INVALID_EDGE_POLICY', 'reject')
    cache = GraphCache(edge_loader=lambda: [(1, 2), (3, 3)], invalid_edge_policy='skip')

    assert set(cache.get()) == {1, 2}
