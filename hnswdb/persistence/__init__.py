"""
Persistence of HNSW graphs into entity/relationship stores.
"""

from hnswdb.persistence.store import DurableStore, Entity, MemoryStore, Relationship
from hnswdb.persistence.sqlite_store import SQLiteStore
from hnswdb.persistence.persistent_index import PersistentIndex
from hnswdb.persistence.adapter import export_index, load_graph, load_index

__all__ = [
    "DurableStore",
    "Entity",
    "Relationship",
    "MemoryStore",
    "SQLiteStore",
    "PersistentIndex",
    "export_index",
    "load_index",
    "load_graph",
]
