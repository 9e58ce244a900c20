"""
Utility functions for HNSW graph construction.

This module provides helper functions used during index building and search:
- Vector validation: coerce user input into a checked float32 array
- Layer assignment: Determines which layers a new node should appear in
- Neighbor selection: Chooses which edges to keep when building the graph

The layer assignment uses an exponential distribution to create a hierarchical
structure, where most nodes are only in layer 0 and progressively fewer nodes
appear in higher layers. This hierarchy allows for efficient search by starting
at sparse top layers and zooming in.
"""

import math
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from hnswdb.errors import DimensionMismatchError, InvalidVectorError

Vector = npt.NDArray[np.float32]

# (distance, node_id) pairs, the currency of every search routine
Candidate = Tuple[float, int]


def as_vector(
    vector: Union[Vector, Sequence[float]],
    dimension: Optional[int] = None,
    subject: Any = None,
) -> Vector:
    """
    Convert input to a validated 1D float32 vector.

    Args:
        vector: Array-like of numbers
        dimension: Expected length, or None to skip the length check
        subject: Subject the vector belongs to, included in error messages

    Returns:
        A float32 numpy array

    Raises:
        InvalidVectorError: If the input is not 1D or has non-finite values
        DimensionMismatchError: If the length differs from `dimension`
    """
    try:
        arr = np.asarray(vector, dtype=np.float32)
    except (TypeError, ValueError) as e:
        raise InvalidVectorError(f"Vector is not numeric: {e}", subject) from e

    if arr.ndim != 1:
        raise InvalidVectorError(f"Vector must be 1-dimensional, got shape {arr.shape}", subject)

    if dimension is not None and arr.shape[0] != dimension:
        raise DimensionMismatchError(dimension, arr.shape[0], subject)

    if not np.all(np.isfinite(arr)):
        raise InvalidVectorError("Vector contains NaN or infinite values", subject)

    return arr


def level_multiplier_for(M: int) -> float:
    """mL = 1/ln(M) per the HNSW paper; M=1 has no log so it falls back to 1.0."""
    return 1.0 / math.log(M) if M > 1 else 1.0


def assign_layer(
    M: Optional[int] = None,
    level_multiplier: Optional[float] = None,
    rng: Optional[np.random.Generator] = None,
) -> int:
    """
    Randomly assign a layer for a new node per the HNSW paper.

    Formula (Malkov & Yashunin 2016): layer = floor(-ln(uniform(0,1)) * mL)
    where mL = 1/ln(M).

    Args:
        M: Maximum connections per node (used to derive mL, default 16)
        level_multiplier: Explicit mL (overrides M if provided)
        rng: Random source; pass a seeded Generator for reproducible graphs

    Returns:
        Layer number (0 = bottom layer, higher = sparser upper layers)

    Example:
        >>> # For M=16: ~93.75% at layer 0, ~6.25% at layer 1, ~0.39% at layer 2
        >>> rng = np.random.default_rng(42)
        >>> layers = [assign_layer(M=16, rng=rng) for _ in range(10000)]
    """
    if level_multiplier is None:
        level_multiplier = level_multiplier_for(M if M is not None else 16)

    if rng is None:
        rng = np.random.default_rng()

    # random() is in [0, 1); 1 - u is in (0, 1] so the log is always finite
    random_value = 1.0 - rng.random()

    return int(-math.log(random_value) * level_multiplier)


def select_neighbors_heuristic(
    candidates: List[Candidate],
    M: int,
    distance_between: Callable[[int, int], float],
    keep_pruned: bool = False,
) -> List[Candidate]:
    """
    Select neighbors using the diversity heuristic (HNSW paper, Algorithm 4).

    Candidates are visited closest first. A candidate is kept only if it is
    closer to the base node than to every neighbor selected so far; otherwise
    it sits in the "shadow" of a selected neighbor and would only add a
    redundant short edge. Dropping those keeps the long-range links that make
    search logarithmic.

    Args:
        candidates: (distance_to_base, node_id) pairs
        M: Maximum number of neighbors to select
        distance_between: Returns the distance between two node IDs
        keep_pruned: Top up with the closest discarded candidates when fewer
                     than M survive the diversity check

    Returns:
        Selected (distance, node_id) pairs, closest first

    Example:
        >>> # b lies right behind a, so a shadows it; c points elsewhere
        >>> select_neighbors_heuristic([(1.0, a), (1.1, b), (2.0, c)], 2, dist)
        [(1.0, a), (2.0, c)]
    """
    if len(candidates) == 0 or M <= 0:
        return []

    ordered = sorted(candidates)

    selected: List[Candidate] = []
    pruned: List[Candidate] = []

    for candidate in ordered:
        if len(selected) >= M:
            break

        candidate_dist, candidate_id = candidate
        is_diverse = all(
            candidate_dist <= distance_between(candidate_id, selected_id)
            for _, selected_id in selected
        )

        if is_diverse:
            selected.append(candidate)
        else:
            pruned.append(candidate)

    if keep_pruned and len(selected) < M:
        selected.extend(pruned[: M - len(selected)])
        selected.sort()

    return selected
