import numpy as np
import pytest

from environment import Environment, build_environment
from exceptions import CapacityExceeded


def test_build_environment_assigns_slots_in_input_order():
    env = build_environment(3, [[1, 0, 0], [0, 1, 0]], max_neighbors=4)
    assert env.index == 3
    assert env.num_vectors == 2
    assert env.vector_slots.tolist() == [0, 1]
    assert not env.is_ghost


def test_build_environment_rejects_too_many_vectors():
    with pytest.raises(CapacityExceeded) as exc:
        build_environment(0, np.eye(3), max_neighbors=2)
    assert exc.value.supplied == 3
    assert exc.value.capacity == 2


def test_hard_radius_filter_is_inclusive():
    vecs = [[1, 0, 0], [0, 2, 0], [0, 0, 0.5]]
    env = build_environment(0, vecs, max_neighbors=3, hard_rmax_sq=1.0)
    assert env.num_vectors == 2
    assert np.allclose(env.vectors, [[1, 0, 0], [0, 0, 0.5]])
    assert env.vector_slots.tolist() == [0, 1]


def test_hard_radius_can_leave_environment_empty():
    env = build_environment(0, [[3, 0, 0]], max_neighbors=2, hard_rmax_sq=1.0)
    assert env.num_vectors == 0
    assert np.isnan(env.slot_ordered()).all()


def test_add_vector_respects_capacity():
    env = Environment(0, max_neighbors=1)
    env.add_vector([1, 0, 0])
    with pytest.raises(CapacityExceeded):
        env.add_vector([0, 1, 0])


def test_relabel_and_slot_ordered():
    env = build_environment(0, [[1, 0, 0], [0, 1, 0]], max_neighbors=3)
    env.relabel_slots({0: 2})
    assert env.vector_slots.tolist() == [2, 1]
    ordered = env.slot_ordered()
    assert np.isnan(ordered[0]).all()
    assert np.allclose(ordered[1], [0, 1, 0])
    assert np.allclose(ordered[2], [1, 0, 0])
