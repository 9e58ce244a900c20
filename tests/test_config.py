"""
Tests for IndexConfig and the JSON descriptor.
"""

import json
import logging

import pytest

from hnswdb import HnswIndex
from hnswdb.config import REQUIRED_KEYS, IndexConfig
from hnswdb.errors import ConfigurationError, NotFoundError
from hnswdb.hnsw.distance import DistanceFunction


def test_defaults():
    config = IndexConfig(dimensionality=300)

    assert config.distance_function == "cosine"
    assert config.distance is DistanceFunction.COSINE
    assert config.M == 16
    assert config.ef_construction == 200
    assert config.ef_search == 50
    assert config.entity_type_name == "Node"
    assert config.relationship_type_name == "Proximity"
    assert config.vector_property_name == "vector"
    assert config.id_property_name == "name"
    assert not config.quantized
    assert config.entry_point is None


def test_enum_distance_is_stored_as_name():
    config = IndexConfig(dimensionality=4, distance_function=DistanceFunction.INNER_PRODUCT)

    assert config.distance_function == "inner_product"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"dimensionality": 0},
        {"dimensionality": True},
        {"dimensionality": 4, "M": "16"},
        {"dimensionality": 4, "ef_search": 0},
        {"dimensionality": 4, "distance_function": "hamming"},
        {"dimensionality": 4, "entity_type_name": ""},
        {"dimensionality": 4, "quantization_min": 0.0},
        {"dimensionality": 4, "quantization_min": 1.0, "quantization_max": 1.0},
        {"dimensionality": 4, "quantization_min": "0", "quantization_max": "1"},
        {"dimensionality": 4, "max_layer": -1},
    ],
)
def test_invalid_config(kwargs):
    with pytest.raises(ConfigurationError):
        IndexConfig(**kwargs)


def test_descriptor_contains_required_keys_only_by_default():
    doc = IndexConfig(dimensionality=8).to_descriptor()

    assert set(doc) == set(REQUIRED_KEYS)


def test_descriptor_round_trip_with_optional_keys():
    config = IndexConfig(
        dimensionality=8,
        distance_function="euclidean",
        M=4,
        quantization_min=-1.0,
        quantization_max=1.0,
        entry_point="dog",
        max_layer=3,
    )

    doc = config.to_descriptor()

    assert doc["quantization_min"] == -1.0
    assert doc["entry_point"] == "dog"
    assert IndexConfig.from_descriptor(doc) == config


def test_from_descriptor_missing_key():
    doc = IndexConfig(dimensionality=8).to_descriptor()
    del doc["vector_property_name"]

    with pytest.raises(ConfigurationError, match="vector_property_name"):
        IndexConfig.from_descriptor(doc)


def test_from_descriptor_type_mismatch():
    doc = IndexConfig(dimensionality=8).to_descriptor()
    doc["ef_construction"] = "many"

    with pytest.raises(ConfigurationError):
        IndexConfig.from_descriptor(doc)


def test_from_descriptor_not_a_mapping():
    with pytest.raises(ConfigurationError):
        IndexConfig.from_descriptor(["dimensionality", 8])


def test_from_descriptor_warns_on_unknown_keys(caplog):
    doc = IndexConfig(dimensionality=8).to_descriptor()
    doc["legacy_option"] = True

    with caplog.at_level(logging.WARNING, logger="hnswdb.config"):
        config = IndexConfig.from_descriptor(doc)

    assert config.dimensionality == 8
    assert "legacy_option" in caplog.text


def test_json_round_trip(tmp_path):
    path = tmp_path / "index.json"
    config = IndexConfig(dimensionality=16, M=8, entry_point="cat", max_layer=1)

    config.to_json(path)

    assert json.loads(path.read_text())["M"] == 8
    assert IndexConfig.from_json(path) == config


def test_from_json_missing_file(tmp_path):
    with pytest.raises(NotFoundError):
        IndexConfig.from_json(tmp_path / "missing.json")


def test_from_json_invalid_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")

    with pytest.raises(ConfigurationError):
        IndexConfig.from_json(path)


def test_with_updates_revalidates():
    config = IndexConfig(dimensionality=4)

    assert config.with_updates(M=32).M == 32
    with pytest.raises(ConfigurationError):
        config.with_updates(M=0)


def test_index_from_config():
    config = IndexConfig(dimensionality=12, distance_function="euclidean", M=6, ef_search=20)

    index = HnswIndex.from_config(config)

    assert index.dimension == 12
    assert index.graph.M == 6
    assert index.graph.distance_function is DistanceFunction.EUCLIDEAN
    assert index.ef_search == 20
    assert index.to_config() == config
