"""Index configuration and its descriptor document.

Usage:
    from hnswdb import IndexConfig

    config = IndexConfig(dimensionality=300, distance_function="inner_product")
    config.to_json("index.json")

    # Later, in another process
    config = IndexConfig.from_json("index.json")

The descriptor is a flat JSON object. The nine keys below are required; the
quantization range and entry point are optional and filled in by export.
"""

import json
import logging
import math
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, Optional

from hnswdb.errors import ConfigurationError, NotFoundError
from hnswdb.hnsw.distance import DistanceFunction

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "dimensionality",
    "distance_function",
    "M",
    "ef_construction",
    "ef_search",
    "entity_type_name",
    "relationship_type_name",
    "vector_property_name",
    "id_property_name",
)

_POSITIVE_INTS = ("dimensionality", "M", "ef_construction", "ef_search")
_NAMES = ("entity_type_name", "relationship_type_name", "vector_property_name", "id_property_name")

# Entity property holding each node's HNSW level
LEVEL_PROPERTY = "hnsw_level"
# Entity property holding each node's insertion position in the exported graph
ORDER_PROPERTY = "hnsw_order"
# Relationship property holding the layer an edge belongs to
LAYER_PROPERTY = "layer"


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class IndexConfig:
    """Configuration for a persistent HNSW index.

    Graph parameters:
        dimensionality: Length of every vector
        distance_function: "inner_product", "cosine" or "euclidean"
        M: Max neighbors per node above layer 0 (2*M at layer 0)
        ef_construction: Candidate list size while inserting
        ef_search: Default candidate list size while searching

    Store mapping:
        entity_type_name: Type of the entity created per node
        relationship_type_name: Type of the proximity relationships
        vector_property_name: Entity property holding the vector (or codes)
        id_property_name: Entity property holding the subject

    Filled in by export:
        quantization_min / quantization_max: Range used when vectors were
            stored as quantized codes (both None when stored as floats)
        entry_point: Subject of the entry point node
        max_layer: Level of the entry point node
    """

    dimensionality: int
    distance_function: str = DistanceFunction.COSINE.value
    M: int = 16
    ef_construction: int = 200
    ef_search: int = 50
    entity_type_name: str = "Node"
    relationship_type_name: str = "Proximity"
    vector_property_name: str = "vector"
    id_property_name: str = "name"

    quantization_min: Optional[float] = None
    quantization_max: Optional[float] = None
    entry_point: Any = None
    max_layer: Optional[int] = None

    def __post_init__(self):
        """Validate configuration."""
        if isinstance(self.distance_function, DistanceFunction):
            self.distance_function = self.distance_function.value

        for name in _POSITIVE_INTS:
            value = getattr(self, name)
            if not _is_int(value) or value < 1:
                raise ConfigurationError(f"{name} must be an integer >= 1, got {value!r}")

        DistanceFunction.parse(self.distance_function)

        for name in _NAMES:
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ConfigurationError(f"{name} must be a non-empty string, got {value!r}")

        if (self.quantization_min is None) != (self.quantization_max is None):
            raise ConfigurationError("quantization_min and quantization_max must be set together")
        if self.quantized:
            if not (_is_number(self.quantization_min) and _is_number(self.quantization_max)):
                raise ConfigurationError("quantization range must be numeric")
            if not (math.isfinite(self.quantization_min) and math.isfinite(self.quantization_max)):
                raise ConfigurationError("quantization range must be finite")
            if self.quantization_max <= self.quantization_min:
                raise ConfigurationError(
                    f"quantization_max ({self.quantization_max}) must be greater than "
                    f"quantization_min ({self.quantization_min})"
                )

        if self.max_layer is not None and (not _is_int(self.max_layer) or self.max_layer < 0):
            raise ConfigurationError(f"max_layer must be a non-negative integer, got {self.max_layer!r}")

    @property
    def quantized(self) -> bool:
        return self.quantization_min is not None

    @property
    def distance(self) -> DistanceFunction:
        return DistanceFunction(self.distance_function)

    def graph_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for HNSWGraph / HnswIndex."""
        return {
            "dimension": self.dimensionality,
            "M": self.M,
            "ef_construction": self.ef_construction,
            "ef_search": self.ef_search,
            "distance": self.distance_function,
        }

    def with_updates(self, **changes: Any) -> "IndexConfig":
        """Copy with some fields changed (validated again)."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    def to_descriptor(self) -> Dict[str, Any]:
        """Descriptor document: required keys always, optional keys when set."""
        doc = {key: getattr(self, key) for key in REQUIRED_KEYS}
        for f in fields(self):
            if f.name not in doc and getattr(self, f.name) is not None:
                doc[f.name] = getattr(self, f.name)
        return doc

    @classmethod
    def from_descriptor(cls, doc: Dict[str, Any]) -> "IndexConfig":
        """
        Build a config from a descriptor document.

        Raises:
            ConfigurationError: If the document is not a mapping, a required
                key is missing, or a value has the wrong type
        """
        if not isinstance(doc, dict):
            raise ConfigurationError(f"Descriptor must be a JSON object, got {type(doc).__name__}")

        missing = [key for key in REQUIRED_KEYS if key not in doc]
        if missing:
            raise ConfigurationError(f"Descriptor is missing required keys: {', '.join(missing)}")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(doc) - known)
        if unknown:
            logger.warning("Ignoring unknown descriptor keys: %s", ", ".join(unknown))

        return cls(**{key: value for key, value in doc.items() if key in known})

    def to_json(self, filepath: "str | os.PathLike[str]") -> None:
        """Save the descriptor to a JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_descriptor(), f, indent=2)

    @classmethod
    def from_json(cls, filepath: "str | os.PathLike[str]") -> "IndexConfig":
        """
        Load a descriptor from a JSON file.

        Raises:
            NotFoundError: If the file does not exist
            ConfigurationError: If it is not valid JSON or fails validation
        """
        try:
            with open(filepath, 'r') as f:
                doc = json.load(f)
        except FileNotFoundError:
            raise NotFoundError(f"Index descriptor not found: {filepath}") from None
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Index descriptor {filepath} is not valid JSON: {e}") from e
        return cls.from_descriptor(doc)

    def __repr__(self) -> str:
        quantization = (
            f", quantized=({self.quantization_min}, {self.quantization_max})" if self.quantized else ""
        )
        return (
            f"IndexConfig(dim={self.dimensionality}, {self.distance_function}, M={self.M}, "
            f"ef_construction={self.ef_construction}, ef_search={self.ef_search}, "
            f"{self.entity_type_name}-[{self.relationship_type_name}]->{self.entity_type_name}"
            f"{quantization})"
        )
