import numpy as np
import pytest

from crystal_builder import build_crystal
from exceptions import InvalidConfiguration
from motif_library import get_motif
from neighbor_source import PeriodicNeighborSource, PrecomputedNeighborSource
from periodic_box import Box


def _sorted_rows(vecs):
    vecs = np.round(np.asarray(vecs, dtype=float), 9)
    return vecs[np.lexsort(vecs.T[::-1])]


def test_simple_cubic_neighbors_cross_boundaries():
    box, points = build_crystal('cubic_P', reps=(4, 4, 4))
    nn = PeriodicNeighborSource(6)
    nn.compute(box, points)

    assert len(nn) == 64
    expected = _sorted_rows(get_motif('sc'))
    for i in (0, 21, 63):
        assert np.allclose(_sorted_rows(nn.neighbors(i)), expected)


def test_neighbors_are_nearest_first():
    box, points = build_crystal('cubic_F', reps=(3, 3, 3))
    nn = PeriodicNeighborSource(12)
    nn.compute(box, points)
    dists = np.linalg.norm(nn.neighbors(0), axis=1)
    assert len(dists) == 12
    assert np.all(np.diff(dists) >= -1e-12)
    assert np.allclose(dists, 1.0 / np.sqrt(2.0))


def test_neighbor_indices_match_vectors():
    box = Box.cube(4.0)
    points = np.array([[0.1, 0.0, 0.0], [3.9, 0.0, 0.0], [2.0, 2.0, 2.0]])
    nn = PeriodicNeighborSource(1)
    nn.compute(box, points)
    assert nn.neighbor_indices(0).tolist() == [1]
    assert np.allclose(nn.neighbors(0), [[-0.2, 0.0, 0.0]])


def test_positions_outside_box_are_wrapped():
    box, points = build_crystal('cubic_P', reps=(4, 4, 4))
    nn = PeriodicNeighborSource(6)
    nn.compute(box, points + np.array([8.0, -4.0, 12.0]))
    assert np.allclose(_sorted_rows(nn.neighbors(5)), _sorted_rows(get_motif('sc')))


def test_invalid_k():
    with pytest.raises(InvalidConfiguration):
        PeriodicNeighborSource(0)


def test_precomputed_source_length_must_match():
    nn = PrecomputedNeighborSource([[(1, 0, 0)], [(0, 1, 0), (0, 0, 1)]])
    nn.compute(None, np.zeros((2, 3)))
    assert nn.neighbors(1).shape == (2, 3)
    with pytest.raises(InvalidConfiguration):
        nn.compute(None, np.zeros((3, 3)))
