import numpy as np
import pytest

from env_disjoint_set import EnvDisjointSet, _complete_mapping
from env_matcher import is_similar
from environment import Environment, build_environment

V = np.array([(1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)])


def env(vecs, index=0, k=4, is_ghost=False):
    return build_environment(index, np.asarray(vecs, dtype=float), k, is_ghost=is_ghost)


def test_fresh_forest_is_all_roots():
    dj = EnvDisjointSet([Environment(i, 4) for i in range(5)], 4)
    assert [dj.find(i) for i in range(5)] == list(range(5))
    assert dj.roots() == list(range(5))
    assert dj.find_set(3) == [3]


def test_indices_are_reassigned_to_forest_position():
    envs = [Environment(7, 4), Environment(7, 4)]
    EnvDisjointSet(envs, 4)
    assert [e.index for e in envs] == [0, 1]


def test_merge_equal_rank_attaches_b_under_a():
    e0 = env([(1, 0, 0), (0, 1, 0)])
    e1 = env([(0, 1, 0), (1, 0, 0)], 1)
    dj = EnvDisjointSet([e0, e1], 4)

    corr = is_similar(e0, e1, 0.0)
    assert corr == {0: 1, 1: 0}
    assert dj.merge(0, 1, corr)
    assert dj.find(1) == 0
    assert dj.rank[0] == 1

    # e1 now uses e0's slot frame
    assert e1.vector_slots.tolist() == [1, 0]
    assert np.allclose(dj.get_individual_environment(1)[:2], [(1, 0, 0), (0, 1, 0)])
    assert np.allclose(dj.get_average_environment(0)[:2], [(1, 0, 0), (0, 1, 0)])


def test_merge_into_higher_rank_tree_uses_correspondence_directly():
    e0 = env(V[[2, 0, 1]])
    e1 = env(V, 1)
    e2 = env(V, 2)
    dj = EnvDisjointSet([e0, e1, e2], 4)
    dj.merge(1, 2, is_similar(e1, e2, 0.0))

    corr = is_similar(e0, e1, 0.0)
    assert corr == {0: 2, 1: 0, 2: 1}
    dj.merge(0, 1, corr)

    assert dj.find(0) == 1
    assert e0.vector_slots.tolist() == [2, 0, 1]
    avg = dj.get_average_environment(1)
    assert np.allclose(avg[:3], V)
    assert np.isnan(avg[3]).all()


def test_merged_members_agree_slot_by_slot():
    rng = np.random.default_rng(5)
    base = rng.normal(size=(4, 3))
    envs = [env(base[rng.permutation(4)] + rng.normal(scale=1e-3, size=(4, 3)), i) for i in range(6)]
    dj = EnvDisjointSet(envs, 4)
    for i, j in [(0, 1), (2, 3), (4, 5), (1, 3), (5, 0)]:
        dj.merge(i, j, is_similar(envs[i], envs[j], 0.01))

    root = dj.find(0)
    assert dj.find_set(root) == list(range(6))
    ordered = np.array([dj.get_individual_environment(i) for i in range(6)])
    # every member places the same base vector in each slot
    spread = ordered - ordered[0]
    assert np.abs(spread).max() < 1e-2


def test_merge_same_tree_is_noop():
    dj = EnvDisjointSet([env(V, i) for i in range(3)], 4)
    identity = {0: 0, 1: 1, 2: 2}
    assert dj.merge(0, 1, identity)
    assert dj.merge(1, 2, identity)
    assert not dj.merge(2, 0, identity)
    assert dj.roots() == [0]


def test_forest_invariant_after_random_merges():
    n = 40
    dj = EnvDisjointSet([Environment(i, 4) for i in range(n)], 4)
    rng = np.random.default_rng(0)
    for a, b in rng.integers(0, n, size=(30, 2)):
        dj.merge(int(a), int(b), {})

    roots = {dj.find(i) for i in range(n)}
    assert roots == set(dj.roots())
    for i in range(n):
        r = dj.find(i)
        assert dj.find(r) == r
        assert dj.is_root(r)
        assert i in dj.find_set(r)
    assert sum(len(dj.find_set(r)) for r in roots) == n


def test_ghost_excluded_from_average():
    e0 = env([(1, 0, 0)])
    ghost = env([(1.1, 0, 0)], 1, is_ghost=True)
    dj = EnvDisjointSet([e0, ghost], 4)
    dj.merge(1, 0, {0: 0})
    assert dj.find(0) == 1
    assert np.allclose(dj.get_average_environment(1)[0], (1, 0, 0))


def test_unfilled_slots_are_nan():
    dj = EnvDisjointSet([env([(1, 0, 0), (0, 1, 0)])], 4)
    avg = dj.get_average_environment(0)
    assert avg.shape == (4, 3)
    assert np.isnan(avg[2:]).all()
    assert not np.isnan(avg[:2]).any()


def test_find_set_of_non_root_raises():
    dj = EnvDisjointSet([Environment(i, 4) for i in range(2)], 4)
    dj.merge(0, 1, {})
    with pytest.raises(ValueError):
        dj.find_set(1)


def test_find_out_of_range_raises():
    dj = EnvDisjointSet([Environment(0, 4)], 4)
    with pytest.raises(IndexError):
        dj.find(1)
    with pytest.raises(IndexError):
        dj.find(-1)


X, Y, Z = np.eye(3)


def test_complete_mapping_pairs_unmapped_slots_by_direction():
    child = {0: X, 1: Y, 2: Z}
    root = {0: Z, 1: X, 2: Y}
    assert _complete_mapping({0: 1}, child, root, 3) == {0: 1, 1: 2, 2: 0}


def test_complete_mapping_keeps_label_unused_by_root():
    assert _complete_mapping({0: 0}, {0: X, 1: Y}, {0: X}, 3) == {0: 0, 1: 1}


def test_complete_mapping_skips_distant_directions():
    child = {0: X, 1: Y}
    root = {0: X, 1: -Y}
    assert _complete_mapping({0: 0}, child, root, 3, threshold_sq=0.1) == {0: 0, 1: 2}
    assert _complete_mapping({0: 0}, child, root, 3) == {0: 0, 1: 1}


def test_partial_correspondence_places_unmatched_vector_by_direction():
    root_env = env([X, Y, Z])
    root_env.relabel_slots({2: 3})
    child_env = env([X, Y, Z], 1)
    dj = EnvDisjointSet([root_env, child_env], 4, threshold_sq=0.1)

    # only the X and Y vectors were paired
    dj.merge(0, 1, {0: 0, 1: 1})
    assert child_env.vector_slots.tolist() == [0, 1, 3]
    avg = dj.get_average_environment(0)
    assert np.allclose(avg[[0, 1, 3]], [X, Y, Z])
    assert np.isnan(avg[2]).all()
