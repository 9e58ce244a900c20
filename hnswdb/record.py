"""
Indexable records and their quantized form.

An IndexableRecord pairs a caller-supplied subject (any totally ordered key,
typically a string) with its vector. The L2 norm is computed once here so
distance code never has to recompute it.
"""

import functools
import math
from dataclasses import dataclass
from typing import Any, Sequence, Union

import numpy as np
import numpy.typing as npt

from hnswdb.errors import InvalidRangeError
from hnswdb.hnsw.utils import as_vector

Vector = npt.NDArray[np.float32]


@dataclass(frozen=True)
class QuantizedVector:
    """
    Lossy integer representation of a record's vector.

    codes[i] = floor(vector[i] / (max - min)); no norm is kept.
    """

    subject: Any
    codes: npt.NDArray[np.int64]

    def __len__(self) -> int:
        return len(self.codes)

    def dequantize(self, min_value: float, max_value: float) -> Vector:
        """
        Map codes back to floats with the same (min, max) used to quantize.

        Every value lands within one quantization step (max - min) of the
        original component.
        """
        step = _quantization_step(min_value, max_value)
        return (self.codes.astype(np.float64) * step).astype(np.float32)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QuantizedVector):
            return NotImplemented
        return self.subject == other.subject and np.array_equal(self.codes, other.codes)

    __hash__ = None  # type: ignore[assignment]


@functools.total_ordering
class IndexableRecord:
    """
    A subject with its vector and cached norm.

    Records compare and sort by subject only; the vector plays no part in
    ordering or equality.
    """

    __slots__ = ("subject", "vector", "norm")

    def __init__(self, subject: Any, vector: Union[Vector, Sequence[float]]) -> None:
        """
        Args:
            subject: Identifying key, unique within an index
            vector: 1D array-like of floats (copied into a float32 array)
        """
        self.subject = subject
        self.vector = as_vector(vector, subject=subject)
        # float64 accumulation; nrm2 scales internally so it cannot overflow
        self.norm = float(np.linalg.norm(self.vector.astype(np.float64)))

    @property
    def dimension(self) -> int:
        return len(self.vector)

    def quantize(self, min_value: float, max_value: float) -> QuantizedVector:
        """
        Quantize the vector with a linear mapping over (min, max).

        Each dimension is mapped independently as floor(v / (max - min)).

        Raises:
            InvalidRangeError: If max <= min or a bound is not finite
        """
        step = _quantization_step(min_value, max_value)
        codes = np.floor(self.vector.astype(np.float64) / step).astype(np.int64)
        return QuantizedVector(subject=self.subject, codes=codes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IndexableRecord):
            return NotImplemented
        return self.subject == other.subject

    def __lt__(self, other: "IndexableRecord") -> bool:
        if not isinstance(other, IndexableRecord):
            return NotImplemented
        return self.subject < other.subject

    def __hash__(self) -> int:
        return hash(self.subject)

    def __repr__(self) -> str:
        return f"IndexableRecord(subject={self.subject!r}, dim={len(self.vector)}, norm={self.norm:.4f})"


def _quantization_step(min_value: float, max_value: float) -> float:
    if not (math.isfinite(min_value) and math.isfinite(max_value)):
        raise InvalidRangeError(f"Quantization range must be finite, got ({min_value}, {max_value})")
    if max_value <= min_value:
        raise InvalidRangeError(
            f"Quantization range max ({max_value}) must be greater than min ({min_value})"
        )
    return float(max_value) - float(min_value)
