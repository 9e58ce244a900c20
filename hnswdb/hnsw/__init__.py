"""
HNSW (Hierarchical Navigable Small World) implementation module.

This module contains the core HNSW algorithm components for building and searching
graph-based approximate nearest neighbor indexes.

Components:
- distance: Distance metrics (inner product, cosine, euclidean)
- utils: Helper functions (vector validation, layer assignment, neighbor selection)
- graph: Graph data structure (node arena, per-layer links)
- builder: Insertion algorithm
- searcher: Greedy and beam search over any GraphView
"""

from hnswdb.hnsw.distance import (
    DistanceFunction,
    cosine_distance,
    cosine_similarity,
    euclidean_distance,
    inner_product_distance,
)
from hnswdb.hnsw.graph import HNSWNode, HNSWGraph
from hnswdb.hnsw.builder import HNSWBuilder
from hnswdb.hnsw.searcher import GraphView, HNSWSearcher

__all__ = [
    "DistanceFunction",
    "cosine_similarity",
    "cosine_distance",
    "inner_product_distance",
    "euclidean_distance",
    "HNSWNode",
    "HNSWGraph",
    "HNSWBuilder",
    "HNSWSearcher",
    "GraphView",
]
