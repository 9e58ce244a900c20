"""
HNSW search algorithm.

This module handles querying an HNSW graph to find approximate nearest neighbors.
The search algorithm:
1. Starts at the entry point (top layer)
2. Greedily navigates down through layers to get closer to the query
3. At layer 0, expands the search into a beam of width ef_search
4. Returns the k nearest neighbors

The ef_search parameter controls the accuracy-speed tradeoff:
- Higher ef_search = better recall, slower search
- Lower ef_search = faster search, lower recall

The routines only need a GraphView: something that can hand out vectors and
neighbor lists by node ID. HNSWGraph is one; the store-backed PersistentIndex
is another, fetching neighbor sets on demand instead of keeping them resident.
"""

import heapq
from typing import Iterable, List, Optional, Protocol, Set, Tuple

import numpy as np
import numpy.typing as npt

from hnswdb.hnsw.utils import Candidate, as_vector

Vector = npt.NDArray[np.float32]


class GraphView(Protocol):
    """Read-only neighbor lookup capability that search runs against."""

    dimension: int
    entry_point: Optional[int]

    def get_max_level(self) -> int:
        """Top layer of the graph, -1 when empty."""
        ...

    def get_vector(self, node_id: int) -> Vector:
        """Vector stored for a node."""
        ...

    def get_neighbors(self, node_id: int, layer: int) -> List[int]:
        """Neighbor IDs of a node at a layer."""
        ...

    def distance(self, v1: Vector, v2: Vector) -> float:
        """Distance between two vectors under the graph's metric."""
        ...


def greedy_search(view: GraphView, query: Vector, entry: int, layer: int) -> Candidate:
    """
    Single-hop greedy walk at one layer.

    Moves to the closest neighbor while that improves the distance to the query.

    Returns:
        (distance, node_id) of the local minimum reached
    """
    current = entry
    current_dist = view.distance(query, view.get_vector(current))

    improved = True
    while improved:
        improved = False
        for neighbor_id in view.get_neighbors(current, layer):
            dist = view.distance(query, view.get_vector(neighbor_id))
            if (dist, neighbor_id) < (current_dist, current):
                current, current_dist = neighbor_id, dist
                improved = True

    return current_dist, current


def search_layer(
    view: GraphView,
    query: Vector,
    entry_points: Iterable[Candidate],
    ef: int,
    layer: int,
) -> List[Candidate]:
    """
    Beam search for nearest neighbors at a single layer.

    This is the core subroutine used during both insertion and search.

    Args:
        view: Graph to search
        query: Query vector
        entry_points: (distance, node_id) pairs to start from
        ef: Beam width (number of closest nodes to keep)
        layer: Which layer to search on

    Returns:
        Up to ef (distance, node_id) pairs sorted closest first; equal
        distances are ordered by node ID, i.e. by insertion order
    """
    candidates: List[Candidate] = []
    # Max-heap of the best results via negated keys; the root is the worst kept
    results: List[Tuple[float, int]] = []
    visited: Set[int] = set()

    for dist, node_id in entry_points:
        if node_id in visited:
            continue
        visited.add(node_id)
        heapq.heappush(candidates, (dist, node_id))
        heapq.heappush(results, (-dist, -node_id))
        if len(results) > ef:
            heapq.heappop(results)

    while candidates:
        current = heapq.heappop(candidates)
        worst = (-results[0][0], -results[0][1])

        # Closest unexplored candidate is already worse than everything kept
        if current > worst and len(results) >= ef:
            break

        # One read of the neighbor list per hop
        for neighbor_id in view.get_neighbors(current[1], layer):
            if neighbor_id in visited:
                continue
            visited.add(neighbor_id)

            dist = view.distance(query, view.get_vector(neighbor_id))
            if len(results) < ef or (dist, neighbor_id) < worst:
                heapq.heappush(candidates, (dist, neighbor_id))
                heapq.heappush(results, (-dist, -neighbor_id))
                if len(results) > ef:
                    heapq.heappop(results)
                worst = (-results[0][0], -results[0][1])

    return sorted((-neg_dist, -neg_id) for neg_dist, neg_id in results)


class HNSWSearcher:
    """
    Handles search queries on an HNSW graph.

    Search takes no lock. It is safe for any number of concurrent callers
    once construction is finished; while inserts are in flight it still works
    because each neighbor list is read once per hop, but results may miss the
    nodes being added.
    """

    def __init__(self, view: GraphView, ef_search: int = 50) -> None:
        """
        Initialize searcher with a graph.

        Args:
            view: The graph to search in
            ef_search: Size of candidate list during search (higher = better recall)
        """
        self.view = view
        self.ef_search = ef_search

    def search(self, query: Vector, k: int, ef_search: Optional[int] = None) -> List[Tuple[int, float]]:
        """
        Search for k nearest neighbors to the query vector.

        Args:
            query: Query vector to search for
            k: Number of nearest neighbors to return
            ef_search: Override default ef_search for this query

        Returns:
            List of (node_id, distance) tuples, sorted by distance (closest first)

        Raises:
            DimensionMismatchError: If the query length differs from the graph's
            ValueError: If k < 1
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        query = as_vector(query, self.view.dimension)

        if self.view.entry_point is None:
            return []

        ef = ef_search if ef_search is not None else self.ef_search
        ef = max(ef, k)

        return [(node_id, dist) for dist, node_id in self.search_candidates(query, ef)[:k]]

    def search_candidates(self, query: Vector, ef: int) -> List[Candidate]:
        """Full descent returning the layer-0 beam as (distance, node_id) pairs."""
        entry = self.view.entry_point
        if entry is None:
            return []

        current = (self.view.distance(query, self.view.get_vector(entry)), entry)
        for layer in range(self.view.get_max_level(), 0, -1):
            current = greedy_search(self.view, query, current[1], layer)

        return search_layer(self.view, query, [current], ef, layer=0)
