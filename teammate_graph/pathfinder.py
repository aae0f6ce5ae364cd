"""
Shortest teammate chain between two players

Bidirectional BFS over the cached teammate graph. Each round expands one
whole level of whichever frontier is smaller, and the search stops at the
first meeting point, when a frontier runs dry, at the depth bound, or when
the time budget runs out.
"""

from collections import deque
from typing import Callable, Deque, Dict, List, NamedTuple, Optional
import sqlite3
import logging
import time

from teammate_graph import config, database
from teammate_graph.graph import Graph, GraphCache
from teammate_graph.models import Connection, ConnectionStep, Player, PathResult

logger = logging.getLogger(__name__)

FORWARD = 'forward'
BACKWARD = 'backward'

# Why a search stopped; logged for operators, never returned to callers
STOP_FOUND = 'found'
STOP_EXHAUSTED = 'exhausted'
STOP_MAX_DEPTH = 'max_depth'
STOP_TIMEOUT = 'timeout'


class SearchNode(NamedTuple):
    """A player discovered during one query, with the player that discovered it"""
    player_id: int
    parent: Optional[int]
    direction: str


class SearchOutcome(NamedTuple):
    found: bool
    raw_path: List[int]
    nodes_explored: int
    stop_reason: str
    rounds: int


def expand_frontier(
    graph: Graph,
    queue: Deque[int],
    this_visited: Dict[int, SearchNode],
    other_visited: Dict[int, SearchNode],
    direction: str,
) -> Optional[int]:
    """
    Expand every node currently queued on one side by one level

    Nodes discovered here are recorded in this_visited and queued for the
    next round. Returns the first neighbor already reached by the other
    side, or None when the level is exhausted without meeting.
    """
    for _ in range(len(queue)):
        current = queue.popleft()
        neighbors = graph.get(current, ())

        # Look for a meeting point before queueing anything from this node
        for neighbor in neighbors:
            if neighbor in other_visited:
                if neighbor not in this_visited:
                    this_visited[neighbor] = SearchNode(neighbor, current, direction)
                return neighbor

        for neighbor in neighbors:
            if neighbor not in this_visited:
                this_visited[neighbor] = SearchNode(neighbor, current, direction)
                queue.append(neighbor)

    return None


def reconstruct_path(
    meeting_point: int,
    forward_visited: Dict[int, SearchNode],
    backward_visited: Dict[int, SearchNode],
) -> List[int]:
    """Join the source -> meeting chain with the meeting -> target chain"""
    forward_path = []
    node = forward_visited.get(meeting_point)
    while node is not None:
        forward_path.append(node.player_id)
        node = forward_visited[node.parent] if node.parent is not None else None
    forward_path.reverse()

    # Meeting point is already the last forward entry
    backward_path = []
    node = backward_visited.get(meeting_point)
    while node is not None and node.parent is not None:
        backward_path.append(node.parent)
        node = backward_visited[node.parent]

    return forward_path + backward_path


def bidirectional_bfs(
    graph: Graph,
    source: int,
    target: int,
    max_depth: int = config.MAX_SEARCH_DEPTH,
    timeout_seconds: float = config.SEARCH_TIMEOUT_SECONDS,
) -> SearchOutcome:
    """
    Find a shortest path of player ids from source to target

    Args:
        graph: Teammate adjacency map
        source: Starting player id
        target: Target player id
        max_depth: Maximum number of expansion rounds (one level of one side each)
        timeout_seconds: Wall-clock budget for the search itself, checked once
            per round; time spent building the graph before the call is not counted

    Returns:
        SearchOutcome with the path (empty unless found) and the stop reason
    """
    if source == target:
        return SearchOutcome(source in graph, [source] if source in graph else [], 1, STOP_FOUND, 0)

    started = time.monotonic()

    forward_queue = deque([source])
    backward_queue = deque([target])
    forward_visited = {source: SearchNode(source, None, FORWARD)}
    backward_visited = {target: SearchNode(target, None, BACKWARD)}

    rounds = 0
    while True:
        if not forward_queue or not backward_queue:
            stop_reason = STOP_EXHAUSTED
            break
        if rounds >= max_depth:
            stop_reason = STOP_MAX_DEPTH
            break
        if time.monotonic() - started > timeout_seconds:
            stop_reason = STOP_TIMEOUT
            break

        # Expand from the smaller frontier
        if len(forward_queue) <= len(backward_queue):
            meeting_point = expand_frontier(graph, forward_queue, forward_visited, backward_visited, FORWARD)
        else:
            meeting_point = expand_frontier(graph, backward_queue, backward_visited, forward_visited, BACKWARD)
        rounds += 1

        if meeting_point is not None:
            return SearchOutcome(
                found=True,
                raw_path=reconstruct_path(meeting_point, forward_visited, backward_visited),
                nodes_explored=len(forward_visited) + len(backward_visited),
                stop_reason=STOP_FOUND,
                rounds=rounds,
            )

    return SearchOutcome(
        found=False,
        raw_path=[],
        nodes_explored=len(forward_visited) + len(backward_visited),
        stop_reason=stop_reason,
        rounds=rounds,
    )


class PlayerPathFinder:
    """
    Answers "how are these two players connected" queries

    Holds no per-query state, so one instance serves concurrent queries.
    """

    def __init__(
        self,
        graph_cache: GraphCache,
        player_lookup: Callable[[int], Optional[dict]] = database.get_player_by_id,
        max_depth: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            graph_cache: Handle to the shared teammate graph
            player_lookup: By-id accessor returning a players row as a dict, or None
            max_depth: Round bound (default: config.MAX_SEARCH_DEPTH)
            timeout_seconds: Search budget, excluding any graph build triggered
                by the query (default: config.SEARCH_TIMEOUT_SECONDS)
        """
        self.graph_cache = graph_cache
        self.player_lookup = player_lookup
        self.max_depth = config.MAX_SEARCH_DEPTH if max_depth is None else max_depth
        self.timeout_seconds = config.SEARCH_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds

    def find_shortest_path(self, source_id: int, target_id: int) -> PathResult:
        """
        Find the shortest teammate chain from source_id to target_id

        Unknown players, disconnected pairs and exceeded bounds all come back
        as found=False.

        Raises:
            GraphBuildError: If the graph has to be built and the build fails
        """
        started = time.monotonic()

        if source_id == target_id:
            player = self._resolve_player(source_id)
            if player is None:
                return self._not_found(started, nodes_explored=0)
            return PathResult(
                found=True,
                degrees=0,
                path=[ConnectionStep(player=player)],
                nodes_explored=1,
                execution_time_ms=self._elapsed_ms(started),
            )

        graph = self.graph_cache.get()

        if source_id not in graph or target_id not in graph:
            logger.info(f"Player not in teammate graph: {source_id} -> {target_id}")
            return self._not_found(started, nodes_explored=0)

        outcome = bidirectional_bfs(graph, source_id, target_id, self.max_depth, self.timeout_seconds)

        logger.info(
            "Path search finished",
            extra={
                "source_id": source_id,
                "target_id": target_id,
                "stop_reason": outcome.stop_reason,
                "rounds": outcome.rounds,
                "nodes_explored": outcome.nodes_explored,
            }
        )

        if not outcome.found:
            return self._not_found(started, nodes_explored=outcome.nodes_explored)

        path = self._build_connection_path(outcome.raw_path)
        return PathResult(
            found=True,
            degrees=max(len(path) - 1, 0),
            hops=len(outcome.raw_path) - 1,
            path=path,
            nodes_explored=outcome.nodes_explored,
            execution_time_ms=self._elapsed_ms(started),
        )

    def _build_connection_path(self, raw_path: List[int]) -> List[ConnectionStep]:
        """Resolve each player id, dropping any that cannot be resolved"""
        steps = []
        for player_id in raw_path:
            player = self._resolve_player(player_id)
            if player is None:
                logger.warning(f"Player {player_id} on path has no display record, omitting it")
                continue
            steps.append(ConnectionStep(
                player=player,
                connection=Connection() if steps else None,
            ))
        return steps

    def _resolve_player(self, player_id: int) -> Optional[Player]:
        try:
            row = self.player_lookup(player_id)
        except sqlite3.Error as e:
            logger.error(f"Failed to load player {player_id}: {e}")
            return None
        return Player.from_row(row) if row else None

    def _not_found(self, started: float, nodes_explored: int) -> PathResult:
        return PathResult(
            found=False,
            nodes_explored=nodes_explored,
            execution_time_ms=self._elapsed_ms(started),
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
