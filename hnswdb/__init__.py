"""
hnswdb - Persistent HNSW vector index

Approximate nearest neighbor search on a Hierarchical Navigable Small World
graph, built in memory and persisted as entities and weighted relationships in
a durable store, from which it can be queried without loading it back.
"""

__version__ = "0.1.0"

from hnswdb.config import IndexConfig
from hnswdb.errors import (
    ConfigurationError,
    DimensionMismatchError,
    DuplicateSubjectError,
    HnswError,
    InvalidRangeError,
    InvalidVectorError,
    NotFoundError,
)
from hnswdb.hnsw.distance import DistanceFunction
from hnswdb.index import BulkInsertResult, HnswIndex, RecordError
from hnswdb.persistence import (
    MemoryStore,
    PersistentIndex,
    SQLiteStore,
    export_index,
    load_graph,
    load_index,
)
from hnswdb.query import SearchResult
from hnswdb.record import IndexableRecord, QuantizedVector
from hnswdb.wordvectors import load_word_vectors

__all__ = [
    "HnswIndex",
    "PersistentIndex",
    "IndexConfig",
    "IndexableRecord",
    "QuantizedVector",
    "SearchResult",
    "BulkInsertResult",
    "RecordError",
    "DistanceFunction",
    "MemoryStore",
    "SQLiteStore",
    "export_index",
    "load_index",
    "load_graph",
    "load_word_vectors",
    "HnswError",
    "ConfigurationError",
    "DimensionMismatchError",
    "DuplicateSubjectError",
    "InvalidRangeError",
    "InvalidVectorError",
    "NotFoundError",
]
