"""
Distance and similarity metrics for vector comparisons.

Every metric here is expressed as a *distance*: lower means more similar.
The HNSW graph only ever compares distances, so the same search code works
for all of them.

- inner_product: 1 - dot(a, b). Meant for vectors normalized to unit length,
  where it ranks exactly like cosine but skips the norm computation.
- cosine: 1 - cosine_similarity(a, b). Ranges from 0 (same direction) to 2.
- euclidean: L2 distance.
"""

from enum import Enum
from typing import Callable, Dict

import numpy as np
import numpy.typing as npt

from hnswdb.errors import ConfigurationError

Vector = npt.NDArray[np.float32]


def cosine_similarity(v1: Vector, v2: Vector) -> float:
    """
    Compute cosine similarity between two vectors.

    Cosine similarity measures the cosine of the angle between two vectors.
    It ranges from -1 (opposite directions) to 1 (same direction).

    Args:
        v1: First vector (1D numpy array)
        v2: Second vector (1D numpy array)

    Returns:
        Similarity score between -1 and 1 (higher means more similar)

    Example:
        >>> cosine_similarity(np.array([1.0, 0.0]), np.array([1.0, 0.0]))
        1.0
    """
    dot_product = np.dot(v1, v2)

    norm_v1 = np.linalg.norm(v1)
    norm_v2 = np.linalg.norm(v2)

    # Zero vectors have no direction
    if norm_v1 == 0.0 or norm_v2 == 0.0:
        return 0.0

    return float(dot_product / (norm_v1 * norm_v2))


def cosine_distance(v1: Vector, v2: Vector) -> float:
    """
    Compute cosine distance between two vectors (1 - cosine_similarity).

    Args:
        v1: First vector (1D numpy array)
        v2: Second vector (1D numpy array)

    Returns:
        Distance score between 0 and 2 (lower means more similar)
    """
    return 1.0 - cosine_similarity(v1, v2)


def inner_product_distance(v1: Vector, v2: Vector) -> float:
    """
    Compute inner product distance (1 - dot product).

    Only a proper ranking for unit-length vectors; callers normalize first.
    """
    return 1.0 - float(np.dot(v1, v2))


def euclidean_distance(v1: Vector, v2: Vector) -> float:
    """Compute the L2 (Euclidean) distance between two vectors."""
    diff = np.asarray(v1, dtype=np.float64) - np.asarray(v2, dtype=np.float64)
    return float(np.sqrt(np.dot(diff, diff)))


def normalize_vector(v: Vector) -> Vector:
    """
    Normalize a vector to unit length (L2 norm = 1).

    Args:
        v: Input vector (1D numpy array)

    Returns:
        Normalized vector with L2 norm = 1, or the input unchanged if it is
        the zero vector

    Example:
        >>> np.linalg.norm(normalize_vector(np.array([3.0, 4.0])))
        1.0
    """
    norm = np.linalg.norm(v)

    # Avoid division by zero
    if norm == 0.0:
        return v

    return v / norm


DistanceFn = Callable[[Vector, Vector], float]


class DistanceFunction(str, Enum):
    """Names of the supported distance functions, as stored in descriptors."""

    INNER_PRODUCT = "inner_product"
    COSINE = "cosine"
    EUCLIDEAN = "euclidean"

    def compute(self, v1: Vector, v2: Vector) -> float:
        return _DISTANCE_FUNCTIONS[self](v1, v2)

    @classmethod
    def parse(cls, name: "str | DistanceFunction") -> "DistanceFunction":
        """Resolve a name (or enum member) to a DistanceFunction."""
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(member.value for member in cls)
            raise ConfigurationError(
                f"Unknown distance function {name!r} (expected one of: {valid})"
            ) from None


_DISTANCE_FUNCTIONS: Dict[DistanceFunction, DistanceFn] = {
    DistanceFunction.INNER_PRODUCT: inner_product_distance,
    DistanceFunction.COSINE: cosine_distance,
    DistanceFunction.EUCLIDEAN: euclidean_distance,
}


def get_distance_function(name: "str | DistanceFunction") -> DistanceFn:
    """Return the distance callable registered under `name`."""
    return _DISTANCE_FUNCTIONS[DistanceFunction.parse(name)]
