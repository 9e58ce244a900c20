"""
Query handle over an HNSW graph that lives in a durable store.

Nothing is hydrated up front. The searcher walks the graph through the
GraphView hooks below, and each hook reads the store: an entity for a vector,
the outgoing relationships of a node for its neighbor list. A small LRU cache
of entities keeps repeated hops cheap without making the whole graph resident,
so the persisted form can be larger than memory.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from hnswdb.config import LAYER_PROPERTY, ORDER_PROPERTY, IndexConfig
from hnswdb.errors import ConfigurationError
from hnswdb.hnsw.searcher import HNSWSearcher
from hnswdb.hnsw.utils import as_vector
from hnswdb.persistence.store import DurableStore, Entity
from hnswdb.query import NeighborQuery

logger = logging.getLogger(__name__)

Vector = npt.NDArray[np.float32]


def insertion_order(entity: Entity) -> Tuple[int, int]:
    """
    Sort key placing entities in the order their nodes were inserted.

    Entities written without a stored position fall back to entity ID order,
    after all positioned ones.
    """
    order = entity.properties.get(ORDER_PROPERTY)
    if order is None:
        return 1, entity.id
    return 0, int(order)


class PersistentIndex(NeighborQuery[Entity]):
    """
    Searchable index bound to entities and relationships in a DurableStore.

    Node IDs are store entity IDs; ties between equal distances still come
    back in the order the nodes were inserted. When the graph was exported with
    quantization, stored vectors are integer codes and queries are quantized
    with the same range before any distance is computed.
    """

    def __init__(self, store: DurableStore, config: IndexConfig, cache_size: int = 4096) -> None:
        """
        Bind to a previously exported graph.

        Args:
            store: Store the graph was exported to
            config: Descriptor returned by export (must carry the entry point)
            cache_size: Entities kept in the LRU cache (0 disables caching)

        Raises:
            ConfigurationError: If the store holds nodes but the descriptor has
                no entry point, or the entry point is not in the store
        """
        self.store = store
        self.config = config
        self.dimension = config.dimensionality
        self._distance = config.distance.compute
        self._cache_size = cache_size
        self._cache: "OrderedDict[int, Entity]" = OrderedDict()
        self._cache_lock = threading.Lock()

        self.entry_point: Optional[int] = None
        if config.entry_point is not None:
            entity = store.lookup_entity(config.entity_type_name, config.id_property_name, config.entry_point)
            if entity is None:
                raise ConfigurationError(
                    f"Entry point {config.entry_point!r} not found among "
                    f"{config.entity_type_name} entities"
                )
            self.entry_point = entity.id
        elif store.count_entities(config.entity_type_name) > 0:
            raise ConfigurationError("Descriptor has no entry_point; export the index before loading it")

        self._searcher = HNSWSearcher(self, ef_search=config.ef_search)

    # --- GraphView ---

    def get_max_level(self) -> int:
        if self.entry_point is None:
            return -1
        return self.config.max_layer or 0

    def get_vector(self, node_id: int) -> Vector:
        entity = self._entity(node_id)
        return np.asarray(entity.properties[self.config.vector_property_name], dtype=np.float32)

    def get_neighbors(self, node_id: int, layer: int) -> List[int]:
        relationships = self.store.relationships_from(node_id, self.config.relationship_type_name)
        return [rel.target for rel in relationships if rel.properties.get(LAYER_PROPERTY, 0) == layer]

    def distance(self, v1: Vector, v2: Vector) -> float:
        return self._distance(v1, v2)

    def _entity(self, node_id: int) -> Entity:
        with self._cache_lock:
            entity = self._cache.get(node_id)
            if entity is not None:
                self._cache.move_to_end(node_id)
                return entity

        # Store reads happen outside the cache lock
        entity = self.store.get_entity(node_id)
        if entity is None:
            raise ConfigurationError(f"Relationship points at missing entity {node_id}")

        if self._cache_size > 0:
            with self._cache_lock:
                self._cache[node_id] = entity
                while len(self._cache) > self._cache_size:
                    self._cache.popitem(last=False)
        return entity

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    # --- NeighborQuery hooks ---

    def _prepare_query(self, vector: Union[Vector, Sequence[float]]) -> Vector:
        query = as_vector(vector, self.dimension)
        if self.config.quantized:
            step = self.config.quantization_max - self.config.quantization_min
            query = np.floor(query.astype(np.float64) / step).astype(np.float32)
        return query

    def _lookup(self, subject: Any) -> Optional[Tuple[int, Vector]]:
        entity = self.get(subject)
        if entity is None:
            return None
        return entity.id, self.get_vector(entity.id)

    def _search_nodes(self, query: Vector, k: int, ef_search: Optional[int]) -> List[Tuple[int, float]]:
        # The beam breaks ties by entity ID; re-rank it by insertion order before cutting to k
        ef = max(ef_search if ef_search is not None else self._searcher.ef_search, k)
        beam = self._searcher.search(query, ef, ef)
        beam.sort(key=lambda hit: (hit[1], insertion_order(self._entity(hit[0]))))
        return beam[:k]

    def _resolve(self, node_id: int) -> Tuple[Entity, Any]:
        entity = self._entity(node_id)
        return entity, entity.properties[self.config.id_property_name]

    # --- Accessors ---

    def get(self, subject: Any) -> Optional[Entity]:
        """Entity stored for a subject, or None."""
        return self.store.lookup_entity(
            self.config.entity_type_name, self.config.id_property_name, subject
        )

    def __contains__(self, subject: Any) -> bool:
        return self.get(subject) is not None

    def size(self) -> int:
        return self.store.count_entities(self.config.entity_type_name)

    def __len__(self) -> int:
        return self.size()

    def __repr__(self) -> str:
        return f"PersistentIndex(store={self.store!r}, config={self.config!r})"
