"""
HNSW graph data structures.

This module defines the core data structures for storing the HNSW graph:
- HNSWNode: A single record in the graph with its per-layer connections
- HNSWGraph: Container for the entire graph structure

The graph is hierarchical: nodes at layer 0 form a dense graph with all vectors,
while higher layers contain progressively fewer nodes for faster coarse-grained search.

Nodes live in a dense arena (a list indexed by node ID) and refer to each other
by ID only, so the cyclic neighbor structure never forms reference cycles and
serializes as plain integer lists.
"""

import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import numpy as np
import numpy.typing as npt

from hnswdb.errors import ConfigurationError, DimensionMismatchError, DuplicateSubjectError
from hnswdb.hnsw.distance import DistanceFunction
from hnswdb.hnsw.utils import level_multiplier_for

if TYPE_CHECKING:
    from hnswdb.record import IndexableRecord

Vector = npt.NDArray[np.float32]


class HNSWNode:
    """
    Represents a single node in the HNSW graph.

    The node appears in layers 0 through its assigned 'level'. At each layer it
    keeps an insertion-ordered mapping of neighbor ID -> distance, so pruning and
    export never have to recompute a distance that was already known.
    """

    __slots__ = ("id", "record", "level", "neighbors")

    def __init__(self, node_id: int, record: "IndexableRecord", level: int) -> None:
        """
        Create a new HNSW node.

        Args:
            node_id: Arena index of this node
            record: The indexed record (subject + vector)
            level: Maximum layer this node appears in (0 = base layer only)
        """
        self.id = node_id
        self.record = record
        self.level = level

        # {layer_num: {neighbor_id: distance}}, filled in during construction
        self.neighbors: Dict[int, Dict[int, float]] = {layer: {} for layer in range(level + 1)}

    @property
    def vector(self) -> Vector:
        return self.record.vector

    @property
    def subject(self) -> Any:
        return self.record.subject

    def add_neighbor(self, neighbor_id: int, layer: int, distance: float) -> None:
        """
        Add (or refresh) a connection to another node at a specific layer.

        Args:
            neighbor_id: ID of the neighbor node to connect to
            layer: Which layer to add the connection at
            distance: Distance between the two nodes
        """
        if layer > self.level:
            raise ValueError(
                f"Cannot add neighbor at layer {layer} (node max level is {self.level})"
            )

        self.neighbors[layer][neighbor_id] = distance

    def remove_neighbor(self, neighbor_id: int, layer: int) -> bool:
        """Drop a connection; returns True if it existed."""
        if layer > self.level:
            return False
        return self.neighbors[layer].pop(neighbor_id, None) is not None

    def get_neighbors(self, layer: int) -> List[int]:
        """
        Get all neighbor IDs at a specific layer.

        Args:
            layer: Which layer to query

        Returns:
            List of neighbor node IDs at that layer (a copy)
        """
        if layer > self.level:
            return []

        return list(self.neighbors[layer])

    def degree(self, layer: int) -> int:
        if layer > self.level:
            return 0
        return len(self.neighbors[layer])

    def __repr__(self) -> str:
        return f"HNSWNode(id={self.id}, subject={self.subject!r}, level={self.level})"


class HNSWGraph:
    """
    Container for the entire HNSW graph structure.

    Manages all nodes, tracks the entry point for searches, and holds the build
    parameters. Mutations go through the builder, which serializes them on
    `lock`; readers never take the lock.
    """

    def __init__(
        self,
        dimension: int,
        M: int = 16,
        ef_construction: int = 200,
        ef_search: int = 50,
        distance: "str | DistanceFunction" = DistanceFunction.COSINE,
        M_L: Optional[int] = None,
        level_multiplier: Optional[float] = None,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """
        Initialize an empty HNSW graph.

        Args:
            dimension: Dimensionality of vectors to store
            M: Maximum number of neighbors per node at layers > 0 (typical: 16-64)
            ef_construction: Candidate list size while inserting
            ef_search: Default candidate list size while searching
            distance: Distance function name (inner_product, cosine, euclidean)
            M_L: Maximum neighbors at layer 0 (default: 2*M for denser base layer)
            level_multiplier: Controls layer distribution (default: 1/ln(M))
            seed: Seed for layer assignment, ignored when `rng` is given
            rng: Random source for layer assignment

        Raises:
            ConfigurationError: On any invalid parameter
        """
        if not isinstance(dimension, (int, np.integer)) or dimension <= 0:
            raise ConfigurationError(f"dimension must be a positive integer, got {dimension!r}")
        if M < 1:
            raise ConfigurationError(f"M must be >= 1, got {M}")
        if ef_construction < 1:
            raise ConfigurationError(f"ef_construction must be >= 1, got {ef_construction}")
        if ef_search < 1:
            raise ConfigurationError(f"ef_search must be >= 1, got {ef_search}")

        self.dimension = int(dimension)
        self.M = M
        self.M_L = M_L if M_L is not None else 2 * M  # Layer 0 has more connections
        if self.M_L < 1:
            raise ConfigurationError(f"M_L must be >= 1, got {self.M_L}")
        self.ef_construction = ef_construction
        self.ef_search = ef_search

        self.distance_function = DistanceFunction.parse(distance)
        self._distance = self.distance_function.compute

        # mL = 1/ln(M) ensures exponential decay P(layer >= l) = (1/M)^l
        if level_multiplier is None:
            self.level_multiplier = level_multiplier_for(M)
        else:
            self.level_multiplier = level_multiplier

        self.rng = rng if rng is not None else np.random.default_rng(seed)

        # Node arena: node ID == position in this list
        self.nodes: List[HNSWNode] = []
        self._subject_to_id: Dict[Any, int] = {}

        # Entry point: the node at the highest layer where searches begin
        self.entry_point: Optional[int] = None

        self.lock = threading.RLock()

    def max_connections(self, layer: int) -> int:
        """Neighbor cap at a layer: M_L at layer 0, M above."""
        return self.M_L if layer == 0 else self.M

    def add_node(self, record: "IndexableRecord", level: int) -> int:
        """
        Add a new node to the graph structure (without connecting it yet).

        Args:
            record: Record to store
            level: Maximum layer this node should appear in

        Returns:
            The ID assigned to the new node

        Raises:
            DimensionMismatchError: If the record has the wrong dimension
            DuplicateSubjectError: If the subject is already indexed
        """
        if len(record.vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(record.vector), record.subject)
        if record.subject in self._subject_to_id:
            raise DuplicateSubjectError(record.subject)

        node_id = len(self.nodes)
        self.nodes.append(HNSWNode(node_id, record, level))
        self._subject_to_id[record.subject] = node_id

        # First node, or a node above every existing layer, becomes the entry point
        if self.entry_point is None or level > self.nodes[self.entry_point].level:
            self.entry_point = node_id

        return node_id

    def replace_record(self, node_id: int, record: "IndexableRecord") -> None:
        """Swap the payload of an existing node; the subject must not change."""
        node = self.nodes[node_id]
        if record.subject != node.subject:
            raise ValueError(f"Cannot change subject of node {node_id} from {node.subject!r}")
        if len(record.vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(record.vector), record.subject)
        node.record = record

    def get_node(self, node_id: int) -> Optional[HNSWNode]:
        """
        Retrieve a node by its ID.

        Returns:
            The HNSWNode, or None if not found
        """
        if 0 <= node_id < len(self.nodes):
            return self.nodes[node_id]
        return None

    def node_id_for(self, subject: Any) -> Optional[int]:
        """Arena ID of the node holding `subject`, or None."""
        return self._subject_to_id.get(subject)

    def add_edge(self, node1_id: int, node2_id: int, layer: int, distance: Optional[float] = None) -> None:
        """
        Create a bidirectional connection between two nodes at a specific layer.

        Args:
            node1_id: First node ID
            node2_id: Second node ID
            layer: Layer at which to create the connection
            distance: Precomputed distance, computed here when omitted
        """
        node1 = self.get_node(node1_id)
        node2 = self.get_node(node2_id)

        if node1 is None or node2 is None:
            raise ValueError(f"Node not found: {node1_id} or {node2_id}")
        if node1_id == node2_id:
            raise ValueError(f"Cannot connect node {node1_id} to itself")

        if distance is None:
            distance = self._distance(node1.vector, node2.vector)

        node1.add_neighbor(node2_id, layer, distance)
        node2.add_neighbor(node1_id, layer, distance)

    def remove_edge(self, node1_id: int, node2_id: int, layer: int) -> None:
        """Remove a connection in both directions."""
        self.nodes[node1_id].remove_neighbor(node2_id, layer)
        self.nodes[node2_id].remove_neighbor(node1_id, layer)

    def distance(self, v1: Vector, v2: Vector) -> float:
        return self._distance(v1, v2)

    def distance_between(self, node1_id: int, node2_id: int) -> float:
        return self._distance(self.nodes[node1_id].vector, self.nodes[node2_id].vector)

    # --- GraphView capability used by HNSWSearcher ---

    def get_vector(self, node_id: int) -> Vector:
        return self.nodes[node_id].vector

    def get_neighbors(self, node_id: int, layer: int) -> List[int]:
        return self.nodes[node_id].get_neighbors(layer)

    def get_max_level(self) -> int:
        """
        Get the maximum layer level in the graph (level of entry point).

        Returns:
            Maximum layer number, or -1 if graph is empty
        """
        if self.entry_point is None:
            return -1

        return self.nodes[self.entry_point].level

    def size(self) -> int:
        """Get the total number of nodes in the graph."""
        return len(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        return (
            f"HNSWGraph(nodes={self.size()}, max_level={self.get_max_level()}, "
            f"M={self.M}, dim={self.dimension}, distance={self.distance_function.value})"
        )
