import numpy as np
import pytest

from guaranteed_qmc.sobol import MAX_DIMENSION, ScrambledSobolSequence


def test_blocks_are_consistent_with_one_sequence():
    source = ScrambledSobolSequence(d=3, rng=11)
    head = source.generate(0, 64)
    tail = source.generate(64, 64)
    np.testing.assert_array_equal(np.vstack([head, tail]), source.generate(0, 128))


def test_repeated_requests_return_same_points():
    source = ScrambledSobolSequence(d=2, rng=5)
    np.testing.assert_array_equal(source.generate(16, 16), source.generate(16, 16))


def test_scramble_depends_on_rng():
    a = ScrambledSobolSequence(d=2, rng=1).generate(0, 8)
    b = ScrambledSobolSequence(d=2, rng=2).generate(0, 8)
    assert not np.allclose(a, b)


def test_one_dimensional_projections_are_stratified():
    n = 256
    points = ScrambledSobolSequence(d=4, rng=3).generate(0, n)
    assert np.all((points >= 0.0) & (points < 1.0))
    for j in range(4):
        cells = np.sort(np.floor(points[:, j] * n).astype(int))
        np.testing.assert_array_equal(cells, np.arange(n))


def test_rejects_dimension_out_of_range():
    with pytest.raises(ValueError):
        ScrambledSobolSequence(d=MAX_DIMENSION + 1)
    with pytest.raises(ValueError):
        ScrambledSobolSequence(d=0)


def test_blocks_come_in_gray_code_order():
    source = ScrambledSobolSequence(d=1, scramble=False)
    points = source.generate(0, 8)[:, 0]
    np.testing.assert_array_equal(points[:4], [0.0, 0.5, 0.75, 0.25])
    np.testing.assert_array_equal(np.sort(points), np.arange(8) / 8)
    np.testing.assert_array_equal(np.sort(source.generate(8, 8)[:, 0]), (np.arange(8) + 0.5) / 8)
