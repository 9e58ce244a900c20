"""
Pytest configuration and shared fixtures for hnswdb tests
"""

from typing import Callable, Dict

import numpy as np
import pytest

from hnswdb import HnswIndex, MemoryStore, SQLiteStore


@pytest.fixture
def dimension() -> int:
    """Standard vector dimension for testing."""
    return 16


@pytest.fixture
def sample_vectors(dimension) -> np.ndarray:
    """Generate sample vectors for testing."""
    rng = np.random.default_rng(42)
    return rng.standard_normal((60, dimension)).astype(np.float32)


@pytest.fixture
def animal_vectors() -> Dict[str, np.ndarray]:
    """dog is much closer to cat than to car under cosine similarity."""
    return {
        "dog": np.array([1.0, 0.9, 0.1], dtype=np.float32),
        "cat": np.array([0.9, 1.0, 0.2], dtype=np.float32),
        "car": np.array([0.1, 0.2, 1.0], dtype=np.float32),
    }


@pytest.fixture
def built_index(sample_vectors, dimension) -> HnswIndex:
    """Small index whose ef values make search exhaustive."""
    index = HnswIndex(dimension=dimension, M=8, ef_construction=200, ef_search=200, seed=7)
    index.add_all([(f"item_{i}", vec) for i, vec in enumerate(sample_vectors)])
    return index


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    """Each persistence test runs against both store implementations."""
    if request.param == "memory":
        yield MemoryStore()
    else:
        sqlite_store = SQLiteStore(str(tmp_path / "graph.sqlite3"))
        yield sqlite_store
        sqlite_store.close()


@pytest.fixture
def make_sqlite_store(tmp_path) -> Callable[[str], SQLiteStore]:
    """Factory for SQLite stores under the test's tmp dir."""
    opened = []

    def factory(name: str = "graph.sqlite3") -> SQLiteStore:
        s = SQLiteStore(str(tmp_path / name))
        opened.append(s)
        return s

    yield factory

    for s in opened:
        try:
            s.close()
        except Exception:
            pass
