"""
In-memory HNSW index.

HnswIndex is the main entry point for building an index: it owns the graph,
inserts records (one at a time or in bulk with progress reporting) and answers
queries. Once built it can be exported to a durable store with export().

Example:
    >>> index = HnswIndex(dimension=3, M=8, ef_construction=100, seed=42)
    >>> index.add("dog", [0.9, 0.1, 0.0])
    >>> index.add("cat", [0.8, 0.2, 0.1])
    >>> index.add("car", [0.0, 0.1, 0.9])
    >>> [r.subject for r in index.find_neighbors("dog", k=1)]
    ['cat']
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import numpy.typing as npt

from hnswdb.config import IndexConfig
from hnswdb.errors import DuplicateSubjectError, HnswError
from hnswdb.hnsw.builder import HNSWBuilder
from hnswdb.hnsw.distance import DistanceFunction, normalize_vector
from hnswdb.hnsw.graph import HNSWGraph
from hnswdb.hnsw.searcher import HNSWSearcher
from hnswdb.hnsw.utils import as_vector
from hnswdb.query import NeighborQuery
from hnswdb.record import IndexableRecord

logger = logging.getLogger(__name__)

Vector = npt.NDArray[np.float32]
ProgressCallback = Callable[[int, int], None]

DUPLICATE_POLICIES = ("reject", "skip", "overwrite")


@dataclass
class RecordError:
    """A record that could not be inserted during a bulk build."""

    subject: Any
    error: Exception

    def __str__(self) -> str:
        return f"{self.subject!r}: {self.error}"


@dataclass
class BulkInsertResult:
    """Outcome of add_all()."""

    total: int = 0
    inserted: int = 0
    overwritten: int = 0
    skipped: int = 0
    errors: List[RecordError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors


def _subject_of(item: Any) -> Any:
    """Subject of a bulk item, or the item itself when it is not a pair."""
    if isinstance(item, IndexableRecord):
        return item.subject
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return item[0]
    return item


class HnswIndex(NeighborQuery[IndexableRecord]):
    """
    In-memory HNSW index over IndexableRecords.

    Construction is single-writer: inserts serialize on the graph lock.
    Searches take no lock and may run concurrently with each other.
    """

    def __init__(
        self,
        dimension: int,
        M: int = 16,
        ef_construction: int = 200,
        ef_search: int = 50,
        distance: "str | DistanceFunction" = DistanceFunction.COSINE,
        normalize: bool = False,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None,
        log_every: int = 10000,
    ) -> None:
        """
        Initialize an empty index.

        Args:
            dimension: Dimensionality of vectors
            M: HNSW max connections per node (typically 16-64)
            ef_construction: HNSW construction parameter (higher = better quality, slower)
            ef_search: Default search parameter (higher = better recall, slower)
            distance: "inner_product", "cosine" or "euclidean"
            normalize: Scale vectors (records and queries) to unit length first;
                       needed for a meaningful inner_product ranking
            seed: Seed for layer assignment (reproducible graph shape)
            rng: Explicit random source, takes precedence over seed
            log_every: Log bulk-insert progress every this many records

        Raises:
            ConfigurationError: On invalid parameters
        """
        self._graph = HNSWGraph(
            dimension=dimension,
            M=M,
            ef_construction=ef_construction,
            ef_search=ef_search,
            distance=distance,
            seed=seed,
            rng=rng,
        )
        self._builder = HNSWBuilder(self._graph)
        self._searcher = HNSWSearcher(self._graph, ef_search=ef_search)
        self.dimension = self._graph.dimension
        self.normalize = normalize
        self.log_every = log_every

    @classmethod
    def from_config(cls, config: IndexConfig, **kwargs: Any) -> "HnswIndex":
        """Create an empty index with the graph parameters of `config`."""
        return cls(**config.graph_kwargs(), **kwargs)

    @property
    def graph(self) -> HNSWGraph:
        return self._graph

    @property
    def ef_search(self) -> int:
        return self._searcher.ef_search

    @ef_search.setter
    def ef_search(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"ef_search must be >= 1, got {value}")
        self._searcher.ef_search = value
        self._graph.ef_search = value

    # --- Insertion ---

    def add(self, subject: Any, vector: Union[Vector, Sequence[float]]) -> int:
        """
        Insert one vector under `subject`.

        Returns:
            Internal node ID

        Raises:
            DimensionMismatchError, InvalidVectorError, DuplicateSubjectError
        """
        return self.add_record(IndexableRecord(subject, vector))

    def add_record(self, record: IndexableRecord) -> int:
        """Insert a prepared record; same errors as add()."""
        return self._builder.insert(self._prepare_record(record))

    def add_all(
        self,
        records: Iterable[Union[IndexableRecord, Tuple[Any, Union[Vector, Sequence[float]]]]],
        progress_callback: Optional[ProgressCallback] = None,
        on_duplicate: str = "reject",
    ) -> BulkInsertResult:
        """
        Insert many records sequentially.

        A bad record (wrong dimension, non-finite values, duplicate subject,
        unhashable subject or an item that is not a pair) is reported in the
        result and the batch carries on.

        Args:
            records: IndexableRecords or (subject, vector) pairs
            progress_callback: Called as (completed, total) after every record;
                               exceptions it raises are logged and ignored
            on_duplicate: What to do with a subject that is already indexed:
                "reject" (default) reports DuplicateSubjectError,
                "skip" leaves the existing record alone,
                "overwrite" replaces the stored record and rewires its node

        Returns:
            BulkInsertResult with counts and per-record errors
        """
        if on_duplicate not in DUPLICATE_POLICIES:
            raise ValueError(
                f"on_duplicate must be one of {DUPLICATE_POLICIES}, got {on_duplicate!r}"
            )

        if not isinstance(records, (list, tuple)):
            records = list(records)

        result = BulkInsertResult(total=len(records))

        for completed, item in enumerate(records, start=1):
            subject = _subject_of(item)
            try:
                self._insert_one(item, on_duplicate, result)
            except (HnswError, TypeError, ValueError) as e:
                result.errors.append(RecordError(subject=subject, error=e))
                logger.debug("Rejected record %r: %s", subject, e)

            self._notify(progress_callback, completed, result.total)
            if self.log_every and completed % self.log_every == 0:
                logger.info("Added %d out of %d records to the index", completed, result.total)

        logger.info(
            "Bulk insert finished: %d inserted, %d overwritten, %d skipped, %d failed",
            result.inserted, result.overwritten, result.skipped, result.failed,
        )
        return result

    def _insert_one(self, item: Any, on_duplicate: str, result: BulkInsertResult) -> None:
        if isinstance(item, IndexableRecord):
            record = item
        else:
            try:
                subject, vector = item
            except (TypeError, ValueError):
                raise TypeError(
                    f"Expected an IndexableRecord or a (subject, vector) pair, got {item!r}"
                ) from None
            record = IndexableRecord(subject, vector)
        record = self._prepare_record(record)

        node_id = self._graph.node_id_for(record.subject)
        if node_id is None:
            self._builder.insert(record)
            result.inserted += 1
        elif on_duplicate == "skip":
            result.skipped += 1
        elif on_duplicate == "overwrite":
            self._builder.reconnect(node_id, record)
            result.overwritten += 1
        else:
            raise DuplicateSubjectError(record.subject)

    @staticmethod
    def _notify(callback: Optional[ProgressCallback], completed: int, total: int) -> None:
        if callback is None:
            return
        try:
            callback(completed, total)
        except Exception:
            logger.warning("Progress callback failed at %d/%d", completed, total, exc_info=True)

    def _prepare_record(self, record: IndexableRecord) -> IndexableRecord:
        # Validates dimension up front so bulk errors carry the subject
        as_vector(record.vector, self.dimension, record.subject)
        if self.normalize and record.norm not in (0.0, 1.0):
            return IndexableRecord(record.subject, normalize_vector(record.vector))
        return record

    # --- NeighborQuery hooks ---

    def _prepare_query(self, vector: Union[Vector, Sequence[float]]) -> Vector:
        query = as_vector(vector, self.dimension)
        return normalize_vector(query) if self.normalize else query

    def _lookup(self, subject: Any) -> Optional[Tuple[int, Vector]]:
        node_id = self._graph.node_id_for(subject)
        if node_id is None:
            return None
        return node_id, self._graph.get_vector(node_id)

    def _search_nodes(self, query: Vector, k: int, ef_search: Optional[int]) -> List[Tuple[int, float]]:
        return self._searcher.search(query, k, ef_search)

    def _resolve(self, node_id: int) -> Tuple[IndexableRecord, Any]:
        record = self._graph.nodes[node_id].record
        return record, record.subject

    # --- Accessors ---

    def get(self, subject: Any) -> Optional[IndexableRecord]:
        """Stored record for a subject, or None."""
        node_id = self._graph.node_id_for(subject)
        return self._graph.nodes[node_id].record if node_id is not None else None

    def __contains__(self, subject: Any) -> bool:
        return self._graph.node_id_for(subject) is not None

    def size(self) -> int:
        """Number of records in the index."""
        return self._graph.size()

    def __len__(self) -> int:
        return self._graph.size()

    def records(self) -> List[IndexableRecord]:
        """All records in insertion order."""
        return [node.record for node in self._graph.nodes]

    # --- Persistence ---

    def to_config(self, **store_mapping: Any) -> IndexConfig:
        """
        IndexConfig carrying this index's graph parameters.

        Args:
            **store_mapping: entity_type_name, relationship_type_name,
                vector_property_name, id_property_name overrides
        """
        return IndexConfig(
            dimensionality=self._graph.dimension,
            distance_function=self._graph.distance_function.value,
            M=self._graph.M,
            ef_construction=self._graph.ef_construction,
            ef_search=self._searcher.ef_search,
            **store_mapping,
        )

    def export(
        self,
        store: Any,
        config: Optional[IndexConfig] = None,
        quantization_range: Optional[Tuple[float, float]] = None,
    ) -> IndexConfig:
        """Write the graph to `store`; see hnswdb.persistence.adapter.export_index."""
        from hnswdb.persistence.adapter import export_index

        return export_index(self, store, config=config, quantization_range=quantization_range)

    def __repr__(self) -> str:
        return f"HnswIndex({self._graph!r})"
