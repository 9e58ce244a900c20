"""
Reader for word-vector text files (fastText / word2vec text layout).

Each line is a word followed by its components, separated by spaces:

    300000 300            <- optional header: count and dimension
    dog 0.0123 -0.4411 ...

Files ending in ".gz" are decompressed on the fly. Every declared component is
parsed; a line with the wrong number of components is logged and skipped.
"""

import gzip
import logging
import os
from typing import IO, Iterator, List, Optional

import numpy as np

from hnswdb.hnsw.distance import normalize_vector
from hnswdb.record import IndexableRecord

logger = logging.getLogger(__name__)


def _open_text(path: "str | os.PathLike[str]") -> IO[str]:
    if str(path).endswith(".gz"):
        return gzip.open(path, "rt", encoding="utf-8")
    return open(path, "r", encoding="utf-8")


def _parse_header(tokens: List[str]) -> Optional[int]:
    """Dimension from a "count dim" header line, None if this is not a header."""
    if len(tokens) == 2 and tokens[0].isdigit() and tokens[1].isdigit():
        return int(tokens[1])
    return None


def iter_word_vectors(
    path: "str | os.PathLike[str]",
    limit: Optional[int] = None,
    normalize: bool = True,
    dimension: Optional[int] = None,
) -> Iterator[IndexableRecord]:
    """
    Stream records from a word-vector file.

    Args:
        path: .vec or .vec.gz file
        limit: Stop after this many records
        normalize: Scale vectors to unit length (so inner product ranks like cosine)
        dimension: Expected dimension; taken from the header or the first line
                   when omitted

    Yields:
        IndexableRecord per valid line, subject = the word
    """
    if limit is not None and limit <= 0:
        return

    produced = 0
    with _open_text(path) as f:
        for line_number, line in enumerate(f, start=1):
            tokens = line.rstrip("\n").rstrip().split(" ")
            if not tokens or tokens == [""]:
                continue

            if line_number == 1:
                header_dimension = _parse_header(tokens)
                if header_dimension is not None:
                    if dimension is None:
                        dimension = header_dimension
                    continue

            word, components = tokens[0], tokens[1:]
            if dimension is None:
                dimension = len(components)

            if len(components) != dimension:
                logger.warning(
                    "Skipping line %d (%r): %d components, expected %d",
                    line_number, word, len(components), dimension,
                )
                continue

            try:
                vector = np.array([float(c) for c in components], dtype=np.float32)
            except ValueError:
                logger.warning("Skipping line %d (%r): non-numeric component", line_number, word)
                continue

            if normalize:
                vector = normalize_vector(vector)

            yield IndexableRecord(word, vector)

            produced += 1
            if limit is not None and produced >= limit:
                return


def load_word_vectors(
    path: "str | os.PathLike[str]",
    limit: Optional[int] = None,
    normalize: bool = True,
    dimension: Optional[int] = None,
) -> List[IndexableRecord]:
    """Read a whole word-vector file; see iter_word_vectors()."""
    logger.info("Loading words from %s", path)
    records = list(iter_word_vectors(path, limit=limit, normalize=normalize, dimension=dimension))
    logger.info("Loaded %d words", len(records))
    return records
