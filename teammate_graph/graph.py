"""
Teammate graph construction and process-lifetime caching

This module turns raw teammate records into an undirected adjacency map
and owns the single shared copy of it:
- Self-loops and malformed records are skipped or rejected by policy
- Adjacency sets are frozen once the build completes
- At most one build runs at a time, however many callers are waiting
"""

from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple
import threading
import logging
import time

from teammate_graph import config, database

logger = logging.getLogger(__name__)

# player_id -> ids of every player who shared a team with them
Graph = Mapping[int, FrozenSet[int]]

INVALID_EDGE_POLICIES = ('skip', 'reject')


class GraphBuildError(Exception):
    """The teammate graph could not be built; no partial graph is exposed"""


class InvalidEdgeError(GraphBuildError):
    """A teammate record is a self-loop or not a pair of player ids (reject policy)"""


def _is_player_id(value) -> bool:
    # bool is an int subclass but never a valid id
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def build_graph(edges: Iterable[Tuple[int, int]], invalid_edge_policy: str = 'skip') -> Graph:
    """
    Build an undirected adjacency map from teammate pairs

    Duplicate and reversed pairs collapse into one logical edge, so the
    result depends only on the set of distinct pairs.

    Args:
        edges: Iterable of (player_id, teammate_id) pairs
        invalid_edge_policy: "skip" drops self-loops and malformed records,
            "reject" raises InvalidEdgeError on the first one

    Returns:
        Read-only mapping of player id to a frozenset of teammate ids

    Raises:
        InvalidEdgeError: Under the reject policy, for a bad record
        ValueError: For an unknown policy name
    """
    if invalid_edge_policy not in INVALID_EDGE_POLICIES:
        raise ValueError(f"Unknown invalid edge policy: {invalid_edge_policy!r}")

    adjacency: Dict[int, set] = {}
    records = 0
    skipped = 0

    for record in edges:
        records += 1
        try:
            a, b = record
        except (TypeError, ValueError):
            a = b = None

        if not (_is_player_id(a) and _is_player_id(b)) or a == b:
            if invalid_edge_policy == 'reject':
                raise InvalidEdgeError(f"Invalid teammate record: {record!r}")
            skipped += 1
            continue

        adjacency.setdefault(a, set()).add(b)
        adjacency.setdefault(b, set()).add(a)

    if skipped:
        logger.warning(f"Skipped {skipped} invalid teammate records out of {records}")

    return MappingProxyType({player: frozenset(teammates) for player, teammates in adjacency.items()})


def count_edges(graph: Graph) -> int:
    """Number of distinct undirected edges"""
    return sum(len(teammates) for teammates in graph.values()) // 2


class GraphCache:
    """
    Build-once holder for the teammate graph

    The first get() loads every teammate pair and builds the graph; callers
    arriving while that build runs block on the lock and receive the same
    finished graph. After that, get() is a plain attribute read.

    The handle is created by the application and passed to whatever needs
    the graph, it is never looked up globally.
    """

    def __init__(
        self,
        edge_loader: Callable[[], Iterable[Tuple[int, int]]] = database.get_all_teammate_pairs,
        invalid_edge_policy: Optional[str] = None,
    ):
        """
        Args:
            edge_loader: Bulk accessor returning every (player_id, teammate_id) pair
            invalid_edge_policy: "skip" or "reject" (default: config.INVALID_EDGE_POLICY)
        """
        self.edge_loader = edge_loader
        self.invalid_edge_policy = invalid_edge_policy or config.INVALID_EDGE_POLICY
        self._graph: Optional[Graph] = None
        self._lock = threading.Lock()
        self._edge_count = 0
        self._build_count = 0
        self._build_time_ms: Optional[int] = None
        self._built_at: Optional[datetime] = None

    @property
    def is_loaded(self) -> bool:
        return self._graph is not None

    def get(self) -> Graph:
        """
        Return the graph, building it on first use

        Raises:
            GraphBuildError: If the edge source fails or, under the reject
                policy, contains an invalid record
        """
        graph = self._graph
        if graph is not None:
            return graph

        with self._lock:
            if self._graph is None:
                self._graph = self._build()
            return self._graph

    def _build(self) -> Graph:
        logger.info("Building teammate graph...")
        started = time.perf_counter()

        try:
            edges = self.edge_loader()
            graph = build_graph(edges, self.invalid_edge_policy)
        except GraphBuildError:
            logger.error("Teammate graph build rejected the edge data")
            raise
        except Exception as e:
            logger.error(f"Failed to load teammate relationships: {e}")
            raise GraphBuildError(f"Failed to load teammate relationships: {e}") from e

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self._edge_count = count_edges(graph)
        self._build_count += 1
        self._build_time_ms = elapsed_ms
        self._built_at = datetime.now(timezone.utc)

        logger.info(
            f"Graph built in {elapsed_ms}ms: {len(graph):,} players, {self._edge_count:,} teammate connections"
        )
        return graph

    def invalidate(self):
        """Drop the cached graph so the next get() rebuilds it from the edge source"""
        with self._lock:
            self._graph = None
            self._edge_count = 0
            logger.info("Teammate graph cache invalidated")

    def get_stats(self) -> dict:
        """
        Get readiness and size information for health reporting

        Returns:
            Dictionary with graph metrics
        """
        graph = self._graph
        return {
            'loaded': graph is not None,
            'node_count': len(graph) if graph is not None else 0,
            'edge_count': self._edge_count if graph is not None else 0,
            'build_time_ms': self._build_time_ms,
            'built_at': self._built_at,
            'build_count': self._build_count,
        }
