"""
Query façade shared by the in-memory and the persisted index.

find_neighbors() accepts either a subject key or a raw vector. A key is looked
up in the index and its own vector becomes the query; the key itself is left
out of the results. Anything that is a numpy array or a list is treated as a
raw vector; every other value (strings, ints, tuples, ...) is a key.
"""

from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np
import numpy.typing as npt

from hnswdb.errors import NotFoundError

Vector = npt.NDArray[np.float32]
T = TypeVar("T")


@dataclass(frozen=True)
class SearchResult(Generic[T]):
    """One neighbor: the resolved item, its distance to the query and its subject."""

    item: T
    distance: float
    subject: Any


class NeighborQuery(Generic[T]):
    """
    Base class implementing find_neighbors() and search() on top of four hooks
    that each index type provides.
    """

    dimension: int

    def _prepare_query(self, vector: Union[Vector, Sequence[float]]) -> Vector:
        """Validate a raw query vector and convert it to the index representation."""
        raise NotImplementedError

    def _lookup(self, subject: Any) -> Optional[Tuple[int, Vector]]:
        """Node ID and query-ready vector for a subject, None if unknown."""
        raise NotImplementedError

    def _search_nodes(self, query: Vector, k: int, ef_search: Optional[int]) -> List[Tuple[int, float]]:
        """(node_id, distance) pairs closest first."""
        raise NotImplementedError

    def _resolve(self, node_id: int) -> Tuple[T, Any]:
        """(item, subject) for a node ID."""
        raise NotImplementedError

    def search(
        self, query: Union[Vector, Sequence[float]], k: int = 10, ef_search: Optional[int] = None
    ) -> List[SearchResult[T]]:
        """
        Search for the k nearest neighbors of a raw query vector.

        Args:
            query: Query vector
            k: Number of results to return
            ef_search: Override the default beam width for this query

        Returns:
            SearchResults sorted by distance (closest first)

        Raises:
            DimensionMismatchError: If the query has the wrong length
            ValueError: If k < 1
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        prepared = self._prepare_query(query)
        return self._to_results(self._search_nodes(prepared, k, ef_search))

    def find_neighbors(
        self, key_or_vector: Any, k: int = 10, ef_search: Optional[int] = None
    ) -> List[SearchResult[T]]:
        """
        Find the k nearest neighbors of a subject or of a raw vector.

        Args:
            key_or_vector: Subject key already in the index, or a query vector
            k: Number of neighbors to return (> 0)
            ef_search: Override the default beam width for this query

        Returns:
            SearchResults sorted by distance (closest first). A subject is never
            returned as its own neighbor.

        Raises:
            NotFoundError: If a subject key is given that is not in the index
            DimensionMismatchError: If a raw vector has the wrong length
            ValueError: If k < 1
        """
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        if is_vector_like(key_or_vector):
            return self.search(key_or_vector, k, ef_search)

        found = self._lookup(key_or_vector)
        if found is None:
            raise NotFoundError(f"Subject {key_or_vector!r} not found in the index")
        node_id, query = found

        # One extra slot since the subject itself will usually come back first
        ef = max(ef_search, k + 1) if ef_search is not None else None
        hits = self._search_nodes(query, k + 1, ef)
        hits = [(hit_id, dist) for hit_id, dist in hits if hit_id != node_id][:k]
        return self._to_results(hits)

    def _to_results(self, hits: List[Tuple[int, float]]) -> List[SearchResult[T]]:
        results = []
        for node_id, dist in hits:
            item, subject = self._resolve(node_id)
            results.append(SearchResult(item=item, distance=float(dist), subject=subject))
        return results


def is_vector_like(value: Any) -> bool:
    return isinstance(value, (np.ndarray, list))
