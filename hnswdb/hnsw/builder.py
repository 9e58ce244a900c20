"""
HNSW graph construction and insertion logic.

This module handles adding new nodes to the HNSW graph. The insertion algorithm:
1. Assigns a random layer to the new node (exponential distribution)
2. Greedily descends from the entry point through the layers above the node's own
3. From the node's layer down to 0, beam-searches ef_construction candidates
4. Picks diverse neighbors with the selection heuristic and links them both ways
5. Trims any neighbor that went over its cap by evicting its farthest link,
   relinking at layer 0 so that the bottom layer stays connected

The key insight: start search at the top (sparse) layer and progressively
zoom in through denser layers until reaching the target layer.
"""

import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from hnswdb.hnsw.graph import HNSWGraph, HNSWNode
from hnswdb.hnsw.searcher import greedy_search, search_layer
from hnswdb.hnsw.utils import Candidate, assign_layer, select_neighbors_heuristic

if TYPE_CHECKING:
    from hnswdb.record import IndexableRecord

logger = logging.getLogger(__name__)


class HNSWBuilder:
    """
    Handles insertion of nodes into the HNSW graph.

    All mutations hold `graph.lock`, so the graph has a single writer at a time
    and back-links always stay consistent.
    """

    def __init__(self, graph: HNSWGraph) -> None:
        """
        Initialize builder with a graph to operate on.

        Args:
            graph: The HNSWGraph to insert nodes into
        """
        self.graph = graph

    def insert(self, record: "IndexableRecord", level: Optional[int] = None) -> int:
        """
        Insert a record as a new node.

        Args:
            record: Record to insert
            level: Maximum layer for the node, drawn from the graph's random
                   source when omitted

        Returns:
            ID of the new node

        Raises:
            DimensionMismatchError: If the record has the wrong dimension
            DuplicateSubjectError: If the subject is already in the graph
        """
        graph = self.graph
        with graph.lock:
            if level is None:
                level = assign_layer(level_multiplier=graph.level_multiplier, rng=graph.rng)

            previous_entry = graph.entry_point
            previous_top = graph.get_max_level()

            node_id = graph.add_node(record, level)

            # First node in the graph: nothing to connect to
            if previous_entry is None:
                return node_id

            self._connect(graph.nodes[node_id], previous_entry, previous_top)
            return node_id

    def reconnect(self, node_id: int, record: "IndexableRecord") -> None:
        """
        Replace a node's record and rewire it as if it had just been inserted.

        The node keeps its ID and level. Its former layer-0 links are offered
        back to it after the new ones and trimmed by the usual eviction, so
        the layer stays connected.
        """
        graph = self.graph
        with graph.lock:
            graph.replace_record(node_id, record)
            node = graph.nodes[node_id]

            former: Dict[int, List[int]] = {}
            for layer in range(node.level + 1):
                former[layer] = node.get_neighbors(layer)
                for neighbor_id in former[layer]:
                    graph.remove_edge(node_id, neighbor_id, layer)

            if graph.size() == 1:
                return

            start = graph.entry_point
            if start == node_id:
                start = self._fallback_start(node_id, former)
            self._connect(node, start, graph.nodes[start].level)

            for neighbor_id in former[0]:
                if neighbor_id not in node.neighbors[0]:
                    graph.add_edge(node_id, neighbor_id, 0)
                    self._shrink(neighbor_id, 0, protected=node_id)
            self._shrink(node_id, 0, protected=node_id)

    def _fallback_start(self, node_id: int, former: Dict[int, List[int]]) -> int:
        """Pick a start node when the node being rewired is the entry point."""
        for layer in sorted(former, reverse=True):
            if former[layer]:
                return former[layer][0]
        return 1 if node_id == 0 else 0

    def _connect(self, node: HNSWNode, entry: int, top_level: int) -> None:
        """Search for and link neighbors of `node` at every layer it lives in."""
        graph = self.graph
        query = node.vector
        level = node.level

        current: Candidate = (graph.distance(query, graph.get_vector(entry)), entry)

        # Layers above the node's own: keep only the single closest node
        for layer in range(top_level, level, -1):
            current = greedy_search(graph, query, current[1], layer)

        entry_points: List[Candidate] = [current]
        for layer in range(min(level, top_level), -1, -1):
            candidates = search_layer(graph, query, entry_points, graph.ef_construction, layer)
            candidates = [c for c in candidates if c[1] != node.id]

            selected = select_neighbors_heuristic(
                candidates, graph.max_connections(layer), graph.distance_between
            )

            for dist, neighbor_id in selected:
                graph.add_edge(node.id, neighbor_id, layer, dist)

            for _, neighbor_id in selected:
                self._shrink(neighbor_id, layer, protected=node.id)

            if candidates:
                entry_points = candidates

    def _shrink(self, node_id: int, layer: int, protected: int) -> None:
        """
        Evict links of `node_id` at `layer` until it is back under the cap.

        Eviction removes both directions of the edge, farthest link first.
        Layer 0 never loses connectivity: a link whose two ends share a
        neighbor is evicted before any other, and when there is none the
        evicted node is relinked by `_repair`.
        """
        graph = self.graph
        node = graph.nodes[node_id]
        cap = graph.max_connections(layer)

        while node.degree(layer) > cap:
            # Ties evict the most recently inserted node
            farthest_first = [
                neighbor_id
                for neighbor_id, _ in sorted(
                    node.neighbors[layer].items(), key=lambda item: (item[1], item[0]), reverse=True
                )
            ]

            if layer > 0:
                graph.remove_edge(node_id, farthest_first[0], layer)
                continue

            victim = self._bypassed_neighbor(node, farthest_first)
            if victim is not None:
                graph.remove_edge(node_id, victim, 0)
                continue

            victim = next((n for n in farthest_first if n != protected), farthest_first[0])
            graph.remove_edge(node_id, victim, 0)
            self._repair(node_id, victim)

    def _bypassed_neighbor(self, node: HNSWNode, farthest_first: List[int]) -> Optional[int]:
        """First neighbor still two hops away from `node` through another neighbor."""
        links = node.neighbors[0]
        for neighbor_id in farthest_first:
            if any(other in links for other in self.graph.nodes[neighbor_id].neighbors[0]):
                return neighbor_id
        return None

    def _repair(self, node_id: int, evicted_id: int) -> None:
        """
        Keep `evicted_id` connected to `node_id` at layer 0 after their link was cut.

        Walks layer 0 breadth-first from `node_id`. Reaching the evicted node
        means nothing was split. Otherwise the evicted node is linked to the
        closest node with spare capacity on the nearest level of the walk.
        When every reachable node is full, an edge that closes a cycle is cut
        to make room at one of its ends.
        """
        graph = self.graph
        cap = graph.max_connections(0)
        evicted_vector = graph.get_vector(evicted_id)

        parent: Dict[int, Optional[int]] = {node_id: None}
        frontier = [node_id]
        cycle_edge: Optional[Tuple[int, int]] = None

        while frontier:
            next_frontier: List[int] = []
            for current in frontier:
                for neighbor_id in graph.get_neighbors(current, 0):
                    if neighbor_id == evicted_id:
                        return
                    if neighbor_id not in parent:
                        parent[neighbor_id] = current
                        next_frontier.append(neighbor_id)
                    elif (
                        cycle_edge is None
                        and neighbor_id != parent[current]
                        and node_id not in (current, neighbor_id)
                    ):
                        cycle_edge = (current, neighbor_id)

            with_room = [n for n in next_frontier if graph.nodes[n].degree(0) < cap]
            if with_room:
                target = min(
                    with_room,
                    key=lambda n: (graph.distance(evicted_vector, graph.get_vector(n)), n),
                )
                graph.add_edge(evicted_id, target, 0)
                return

            frontier = next_frontier

        if cycle_edge is not None:
            first, second = cycle_edge
            graph.remove_edge(first, second, 0)
            graph.add_edge(evicted_id, first, 0)
            return

        logger.debug("Node %d could not be relinked at layer 0 after eviction", evicted_id)
