"""
Tests for IndexableRecord and QuantizedVector.

Records carry a subject, a float32 vector and its cached L2 norm; they order
and compare by subject only. Quantization maps each component to
floor(v / (max - min)).
"""

import numpy as np
import pytest

from hnswdb.errors import InvalidRangeError, InvalidVectorError
from hnswdb.record import IndexableRecord, QuantizedVector


def test_norm_is_cached():
    record = IndexableRecord("a", [3.0, 4.0])

    assert record.norm == pytest.approx(5.0)
    assert record.dimension == 2
    assert record.vector.dtype == np.float32


def test_norm_non_negative_and_zero_only_for_zero_vector():
    rng = np.random.default_rng(0)
    for i in range(20):
        record = IndexableRecord(i, rng.standard_normal(8))
        assert record.norm > 0.0

    assert IndexableRecord("zero", np.zeros(8)).norm == 0.0


def test_norm_does_not_overflow():
    """Large float32 components would overflow a naive float32 sum of squares"""
    record = IndexableRecord("big", np.full(4, 1e30, dtype=np.float32))

    assert np.isfinite(record.norm)
    assert record.norm == pytest.approx(2e30, rel=1e-5)


def test_records_order_by_subject():
    records = [IndexableRecord(s, [1.0, 0.0]) for s in ("cat", "ant", "dog")]

    assert [r.subject for r in sorted(records)] == ["ant", "cat", "dog"]
    assert IndexableRecord("ant", [0.0, 1.0]) < IndexableRecord("bee", [1.0, 0.0])
    assert IndexableRecord("bee", [0.0, 1.0]) >= IndexableRecord("ant", [1.0, 0.0])


def test_record_equality_ignores_vector():
    a = IndexableRecord("same", [1.0, 0.0])
    b = IndexableRecord("same", [0.0, 1.0])

    assert a == b
    assert hash(a) == hash(b)
    assert len({a, b}) == 1
    assert a != IndexableRecord("other", [1.0, 0.0])


def test_record_rejects_invalid_vector():
    with pytest.raises(InvalidVectorError):
        IndexableRecord("nan", [1.0, float("nan")])

    with pytest.raises(InvalidVectorError):
        IndexableRecord("matrix", [[1.0], [2.0]])


def test_quantize_codes():
    record = IndexableRecord("a", [0.25, -0.75, 1.9])

    assert record.quantize(0.0, 1.0).codes.tolist() == [0, -1, 1]
    assert record.quantize(-1.0, 1.0).codes.tolist() == [0, -1, 0]


def test_quantize_keeps_length_and_subject():
    rng = np.random.default_rng(5)
    record = IndexableRecord("a", rng.standard_normal(32))

    quantized = record.quantize(-0.5, 0.5)

    assert isinstance(quantized, QuantizedVector)
    assert quantized.subject == "a"
    assert len(quantized) == 32
    assert quantized.codes.dtype == np.int64


@pytest.mark.parametrize("bounds", [(-1.0, 1.0), (0.0, 0.25), (-3.0, 7.0)])
def test_dequantize_within_one_step(bounds):
    rng = np.random.default_rng(11)
    record = IndexableRecord("a", rng.uniform(-2.0, 2.0, size=64))
    step = bounds[1] - bounds[0]

    restored = record.quantize(*bounds).dequantize(*bounds)

    assert np.all(np.abs(restored - record.vector) <= step + 1e-6)


def test_quantize_invalid_range():
    record = IndexableRecord("a", [1.0, 2.0])

    with pytest.raises(InvalidRangeError):
        record.quantize(0.0, 0.0)

    with pytest.raises(InvalidRangeError):
        record.quantize(1.0, -1.0)

    with pytest.raises(InvalidRangeError):
        record.quantize(0.0, float("inf"))

    with pytest.raises(ValueError):
        record.quantize(2.0, 2.0)


def test_quantized_vector_equality():
    a = QuantizedVector("a", np.array([1, 2], dtype=np.int64))
    b = QuantizedVector("a", np.array([1, 2], dtype=np.int64))
    c = QuantizedVector("a", np.array([1, 3], dtype=np.int64))

    assert a == b
    assert a != c
