"""
Translation between the in-memory HNSW graph and a durable store.

Mapping:
- every graph node becomes one entity of `entity_type_name`, with the subject
  under `id_property_name`, the vector (or its quantized codes) under
  `vector_property_name`, the node level under "hnsw_level" and its insertion
  position under "hnsw_order"
- every (node, neighbor, layer) link becomes one directed relationship of
  `relationship_type_name`, weighted by the distance and tagged with its layer

Links are symmetric in memory, so each edge is written once per direction.
None of these functions commit: the caller owns the transaction.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from hnswdb.config import LAYER_PROPERTY, LEVEL_PROPERTY, ORDER_PROPERTY, IndexConfig
from hnswdb.errors import ConfigurationError
from hnswdb.index import HnswIndex
from hnswdb.persistence.persistent_index import PersistentIndex, insertion_order
from hnswdb.persistence.store import DurableStore
from hnswdb.record import IndexableRecord

logger = logging.getLogger(__name__)

# (record, level, {layer: [(neighbor_id, distance), ...]})
_NodeSnapshot = Tuple[IndexableRecord, int, Dict[int, List[Tuple[int, float]]]]


def export_index(
    index: HnswIndex,
    store: DurableStore,
    config: Optional[IndexConfig] = None,
    quantization_range: Optional[Tuple[float, float]] = None,
    log_every: int = 10000,
) -> IndexConfig:
    """
    Write an in-memory index to a store.

    Entities are looked up by subject first and reused, and each entity's
    outgoing relationships are deleted and recreated, so exporting the same
    graph twice leaves the store unchanged.

    Args:
        index: Index to export
        store: Destination store
        config: Store mapping to use; defaults to index.to_config(). Its graph
                parameters must match the index.
        quantization_range: (min, max) to store quantized codes instead of floats;
                            defaults to the range already in `config`, if any
        log_every: Log progress every this many entities

    Returns:
        The descriptor to save alongside the store, with entry point, max layer
        and quantization range filled in

    Raises:
        ConfigurationError: If `config` disagrees with the index
        InvalidRangeError: If the quantization range is invalid
    """
    graph = index.graph
    if config is None:
        config = index.to_config()
    _check_compatible(index, config)

    if quantization_range is None and config.quantized:
        quantization_range = (config.quantization_min, config.quantization_max)

    # Snapshot under the lock, write to the store without holding it
    with graph.lock:
        snapshot: List[_NodeSnapshot] = [
            (node.record, node.level, {layer: list(links.items()) for layer, links in node.neighbors.items()})
            for node in graph.nodes
        ]
        entry_subject = graph.nodes[graph.entry_point].subject if graph.entry_point is not None else None
        max_layer = graph.get_max_level() if graph.entry_point is not None else None

    total = len(snapshot)
    logger.info("Exporting %d nodes to %r", total, store)

    entity_ids: List[int] = []
    for node_id, (record, level, _) in enumerate(snapshot):
        if quantization_range is not None:
            payload = record.quantize(*quantization_range).codes.tolist()
        else:
            payload = record.vector.tolist()

        properties: Dict[str, Any] = {
            config.id_property_name: record.subject,
            config.vector_property_name: payload,
            LEVEL_PROPERTY: level,
            ORDER_PROPERTY: node_id,
        }

        existing = store.lookup_entity(config.entity_type_name, config.id_property_name, record.subject)
        if existing is None:
            entity = store.create_entity(
                config.entity_type_name, properties, key_property=config.id_property_name
            )
        elif existing.properties != properties:
            entity = store.update_entity(existing.id, properties)
        else:
            entity = existing
        entity_ids.append(entity.id)

        if log_every and (node_id + 1) % log_every == 0:
            logger.info("Saved %d out of %d entities", node_id + 1, total)

    relationship_count = 0
    for node_id, (_, _, layers) in enumerate(snapshot):
        source = entity_ids[node_id]
        store.delete_relationships_from(source, config.relationship_type_name)
        for layer in sorted(layers):
            for neighbor_id, dist in layers[layer]:
                store.create_relationship(
                    config.relationship_type_name,
                    source,
                    entity_ids[neighbor_id],
                    dist,
                    {LAYER_PROPERTY: layer},
                )
                relationship_count += 1

    logger.info("Exported %d entities and %d relationships", total, relationship_count)

    return config.with_updates(
        entry_point=entry_subject,
        max_layer=max_layer,
        quantization_min=quantization_range[0] if quantization_range is not None else None,
        quantization_max=quantization_range[1] if quantization_range is not None else None,
    )


def load_index(store: DurableStore, config: IndexConfig, cache_size: int = 4096) -> PersistentIndex:
    """
    Bind a query handle to a graph already in the store.

    No insertion is re-run and nothing is loaded up front; traversal fetches
    entities and relationships on demand.
    """
    return PersistentIndex(store, config, cache_size=cache_size)


def load_graph(store: DurableStore, config: IndexConfig, **index_kwargs: Any) -> HnswIndex:
    """
    Rebuild a full in-memory HnswIndex from the store.

    The result accepts further inserts and can be exported again.

    Args:
        store: Store the graph was exported to
        config: Descriptor returned by export
        **index_kwargs: Extra HnswIndex arguments (seed, rng, normalize, ...)

    Raises:
        ConfigurationError: If the export was quantized (floats are gone) or
            the stored graph is inconsistent with the descriptor
    """
    if config.quantized:
        raise ConfigurationError("Cannot rebuild an in-memory graph from quantized vectors")

    index = HnswIndex.from_config(config, **index_kwargs)
    graph = index.graph

    # Arena IDs follow the exported insertion order so ties resolve as before
    entities = sorted(store.iter_entities(config.entity_type_name), key=insertion_order)

    with graph.lock:
        node_ids: Dict[int, int] = {}
        for entity in entities:
            record = IndexableRecord(
                entity.properties[config.id_property_name],
                entity.properties[config.vector_property_name],
            )
            node_ids[entity.id] = graph.add_node(record, int(entity.properties.get(LEVEL_PROPERTY, 0)))

        for entity_id, node_id in node_ids.items():
            node = graph.nodes[node_id]
            for rel in store.relationships_from(entity_id, config.relationship_type_name):
                if rel.target not in node_ids:
                    raise ConfigurationError(f"Relationship {rel.id} points outside {config.entity_type_name}")
                node.add_neighbor(node_ids[rel.target], rel.properties.get(LAYER_PROPERTY, 0), rel.weight)

        if config.entry_point is not None:
            entry = graph.node_id_for(config.entry_point)
            if entry is None:
                raise ConfigurationError(f"Entry point {config.entry_point!r} not found in the store")
            graph.entry_point = entry

    logger.info("Loaded %d nodes from %r", graph.size(), store)
    return index


def _check_compatible(index: HnswIndex, config: IndexConfig) -> None:
    graph = index.graph
    if config.dimensionality != graph.dimension:
        raise ConfigurationError(
            f"Config dimensionality {config.dimensionality} doesn't match index dimension {graph.dimension}"
        )
    if config.distance != graph.distance_function:
        raise ConfigurationError(
            f"Config distance {config.distance_function!r} doesn't match index distance "
            f"{graph.distance_function.value!r}"
        )
