"""
Tests for exporting an index to a store and querying it from there.

Most tests run once per store implementation via the `store` fixture.
"""

import sqlite3

import numpy as np
import pytest

from hnswdb import HnswIndex, IndexConfig, load_graph, load_index
from hnswdb.config import LAYER_PROPERTY, LEVEL_PROPERTY, ORDER_PROPERTY
from hnswdb.errors import ConfigurationError, InvalidRangeError, NotFoundError
from hnswdb.persistence import PersistentIndex


def _queries(sample_vectors):
    rng = np.random.default_rng(99)
    return list(sample_vectors[:8]) + list(rng.standard_normal((4, sample_vectors.shape[1])))


def _same_results(a, b):
    assert [r.subject for r in a] == [r.subject for r in b]
    assert [r.distance for r in a] == pytest.approx([r.distance for r in b], abs=1e-6)


def test_export_returns_descriptor(built_index, store):
    config = built_index.export(store)

    graph = built_index.graph
    assert config.entry_point == graph.nodes[graph.entry_point].subject
    assert config.max_layer == graph.get_max_level()
    assert not config.quantized
    assert config.dimensionality == built_index.dimension


def test_export_writes_entities_and_edges(built_index, store):
    config = built_index.export(store)

    assert store.count_entities(config.entity_type_name) == built_index.size()
    expected_edges = sum(
        node.degree(layer) for node in built_index.graph.nodes for layer in range(node.level + 1)
    )
    assert store.count_relationships(config.relationship_type_name) == expected_edges

    node = built_index.graph.nodes[0]
    entity = store.lookup_entity("Node", "name", node.subject)
    assert entity[LEVEL_PROPERTY] == node.level
    assert entity["vector"] == pytest.approx(node.vector.tolist())
    layer0 = [
        store.get_entity(rel.target)["name"]
        for rel in store.relationships_from(entity.id, "Proximity")
        if rel.properties[LAYER_PROPERTY] == 0
    ]
    assert layer0 == [built_index.graph.nodes[n].subject for n in node.get_neighbors(0)]


def test_round_trip_search_results_match(built_index, store, sample_vectors):
    config = built_index.export(store)
    persisted = load_index(store, config)

    for query in _queries(sample_vectors):
        _same_results(built_index.search(query, k=10), persisted.search(query, k=10))


def test_round_trip_find_neighbors_by_key(built_index, store):
    config = built_index.export(store)
    persisted = load_index(store, config)

    for subject in ("item_0", "item_17", "item_42"):
        expected = built_index.find_neighbors(subject, k=5)
        actual = persisted.find_neighbors(subject, k=5)
        _same_results(expected, actual)
        assert subject not in [r.subject for r in actual]
        assert actual[0].item["name"] == actual[0].subject


def test_persisted_unknown_key(built_index, store):
    persisted = load_index(store, built_index.export(store))

    with pytest.raises(NotFoundError):
        persisted.find_neighbors("missing", k=3)


def test_export_is_idempotent(built_index, store):
    config = built_index.export(store)
    entities = store.count_entities(config.entity_type_name)
    edges = store.count_relationships(config.relationship_type_name)
    ids = [e.id for e in store.iter_entities(config.entity_type_name)]

    second = built_index.export(store, config)

    assert second == config
    assert store.count_entities(config.entity_type_name) == entities
    assert store.count_relationships(config.relationship_type_name) == edges
    assert [e.id for e in store.iter_entities(config.entity_type_name)] == ids


def test_export_after_more_inserts_updates_store(built_index, store, sample_vectors):
    config = built_index.export(store)
    built_index.add("late", -sample_vectors[0])

    config = built_index.export(store, config)
    persisted = load_index(store, config)

    assert len(persisted) == built_index.size()
    assert "late" in persisted
    assert persisted.find_neighbors(-sample_vectors[0], k=1)[0].subject == "late"


def test_custom_store_mapping(built_index, store, sample_vectors):
    mapping = built_index.to_config(
        entity_type_name="Word",
        relationship_type_name="NEAR",
        vector_property_name="embedding",
        id_property_name="text",
    )

    config = built_index.export(store, mapping)
    persisted = load_index(store, config)

    assert store.count_entities("Word") == built_index.size()
    assert store.count_entities("Node") == 0
    assert persisted.get("item_3")["embedding"] == pytest.approx(sample_vectors[3].tolist())
    _same_results(built_index.search(sample_vectors[3], k=5), persisted.search(sample_vectors[3], k=5))


def test_export_config_mismatch(built_index, store):
    with pytest.raises(ConfigurationError):
        built_index.export(store, IndexConfig(dimensionality=built_index.dimension + 1))

    with pytest.raises(ConfigurationError):
        built_index.export(store, IndexConfig(dimensionality=built_index.dimension, distance_function="euclidean"))


def test_quantized_export(built_index, store, sample_vectors):
    config = built_index.export(store, quantization_range=(-0.5, 0.5))

    assert config.quantized
    assert (config.quantization_min, config.quantization_max) == (-0.5, 0.5)
    entity = store.lookup_entity("Node", "name", "item_0")
    codes = entity["vector"]
    assert len(codes) == built_index.dimension
    assert all(isinstance(c, int) for c in codes)
    assert codes == np.floor(sample_vectors[0].astype(np.float64)).astype(int).tolist()

    persisted = load_index(store, config)
    results = persisted.find_neighbors("item_0", k=5)
    assert len(results) == 5
    assert "item_0" not in [r.subject for r in results]
    assert len(persisted.search(sample_vectors[1], k=5)) == 5


def test_quantized_export_invalid_range(built_index, store):
    with pytest.raises(InvalidRangeError):
        built_index.export(store, quantization_range=(1.0, 1.0))


def test_load_graph_rejects_quantized(built_index, store):
    config = built_index.export(store, quantization_range=(-1.0, 1.0))

    with pytest.raises(ConfigurationError):
        load_graph(store, config)


def test_load_graph_rebuilds_index(built_index, store, sample_vectors):
    config = built_index.export(store)

    restored = load_graph(store, config, seed=5)

    assert restored.size() == built_index.size()
    assert restored.graph.entry_point == built_index.graph.entry_point
    for original, loaded in zip(built_index.graph.nodes, restored.graph.nodes):
        assert loaded.subject == original.subject
        assert loaded.level == original.level
        assert {layer: list(links) for layer, links in loaded.neighbors.items()} == {
            layer: list(links) for layer, links in original.neighbors.items()
        }

    for query in _queries(sample_vectors):
        _same_results(built_index.search(query, k=10), restored.search(query, k=10))

    restored.add("extra", sample_vectors[0] * -1)
    assert restored.find_neighbors(sample_vectors[0] * -1, k=1)[0].subject == "extra"


def test_reloaded_ties_follow_insertion_order_not_entity_ids(store):
    """Entities created out of order before the export don't reorder ties"""
    for subject in ("b", "a"):
        store.create_entity("Node", {"name": subject, "vector": [0.0, 0.0]}, key_property="name")

    index = HnswIndex(dimension=2, distance="euclidean", seed=6)
    for subject in ("c", "a", "b"):
        index.add(subject, [1.0, 1.0])
    config = index.export(store)

    assert [store.lookup_entity("Node", "name", s)[ORDER_PROPERTY] for s in ("c", "a", "b")] == [0, 1, 2]

    persisted = load_index(store, config)
    assert [r.subject for r in persisted.search([1.0, 1.0], k=3)] == ["c", "a", "b"]
    assert [r.subject for r in persisted.search([1.0, 1.0], k=2)] == ["c", "a"]

    restored = load_graph(store, config)
    assert [node.subject for node in restored.graph.nodes] == ["c", "a", "b"]
    assert [r.subject for r in restored.search([1.0, 1.0], k=3)] == ["c", "a", "b"]


def test_empty_index_export(store):
    index = HnswIndex(dimension=4)

    config = index.export(store)
    persisted = load_index(store, config)

    assert config.entry_point is None
    assert config.max_layer is None
    assert persisted.search([1.0, 0.0, 0.0, 0.0], k=3) == []
    assert len(persisted) == 0


def test_load_without_entry_point(built_index, store):
    config = built_index.export(store)

    with pytest.raises(ConfigurationError):
        load_index(store, config.with_updates(entry_point=None, max_layer=None))

    with pytest.raises(ConfigurationError):
        load_index(store, config.with_updates(entry_point="not_there"))


def test_persistent_index_accessors(built_index, store):
    persisted = PersistentIndex(store, built_index.export(store), cache_size=0)

    assert "item_1" in persisted
    assert "item_x" not in persisted
    assert persisted.size() == built_index.size()
    assert persisted.get("item_1")["name"] == "item_1"
    assert persisted.get_max_level() == built_index.graph.get_max_level()

    persisted.clear_cache()


def test_small_cache_gives_same_results(built_index, store, sample_vectors):
    config = built_index.export(store)
    cached = load_index(store, config)
    tiny = load_index(store, config, cache_size=2)

    for query in _queries(sample_vectors)[:4]:
        _same_results(cached.search(query, k=5), tiny.search(query, k=5))


def test_descriptor_file_round_trip(built_index, make_sqlite_store, tmp_path, sample_vectors):
    store = make_sqlite_store("index.sqlite3")
    with store.transaction():
        config = built_index.export(store)
    config.to_json(tmp_path / "index.json")
    store.close()

    reopened = make_sqlite_store("index.sqlite3")
    persisted = load_index(reopened, IndexConfig.from_json(tmp_path / "index.json"))

    for query in _queries(sample_vectors):
        _same_results(built_index.search(query, k=10), persisted.search(query, k=10))


def test_store_errors_propagate(built_index, make_sqlite_store):
    store = make_sqlite_store("closed.sqlite3")
    store.close()

    with pytest.raises(sqlite3.ProgrammingError):
        built_index.export(store)
