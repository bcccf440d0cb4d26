"""
Environment Matcher
Decides whether two environments are structurally equivalent and, if so,
which vector of one corresponds to which vector of the other.

Two environments match when the smaller one can be paired one-to-one with a
subset of the larger one such that every pair lies within the squared
distance threshold. Among all such pairings the one with minimum total
squared distance is returned (assignment problem, solved with
scipy.optimize.linear_sum_assignment).
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from environment import Environment, build_environment
from exceptions import InvalidThreshold

Correspondence = Dict[int, int]


def _check_threshold_sq(threshold_sq: float) -> float:
    value = float(threshold_sq)
    if not np.isfinite(value) or value < 0.0:
        raise InvalidThreshold(f"Squared threshold must be finite and >= 0, got {threshold_sq}")
    return value


def pair_cost_matrix(vecs1: np.ndarray, vecs2: np.ndarray) -> np.ndarray:
    """(n1, n2) matrix of squared distances between every vector pair."""
    diff = vecs1[:, None, :] - vecs2[None, :, :]
    return np.einsum('ijk,ijk->ij', diff, diff)


def match_vectors(
    vecs1: np.ndarray,
    vecs2: np.ndarray,
    threshold_sq: float
) -> Optional[List[Tuple[int, int]]]:
    """
    Optimal pairing of two vector sets under a per-pair squared-distance bound.

    Works on vector indices (not slots), so the result only depends on the
    vectors themselves.

    Args:
        vecs1: (n1, 3) vectors
        vecs2: (n2, 3) vectors
        threshold_sq: Largest squared distance a matched pair may have (inclusive)

    Returns:
        List of (i1, i2) index pairs of length min(n1, n2), sorted by i1,
        or None if no pairing satisfies the bound.
        Among pairings of equal total cost, the lowest i1 takes the lowest i2.
    """
    threshold_sq = _check_threshold_sq(threshold_sq)
    vecs1 = np.asarray(vecs1, dtype=float).reshape(-1, 3)
    vecs2 = np.asarray(vecs2, dtype=float).reshape(-1, 3)
    n1, n2 = len(vecs1), len(vecs2)

    # An empty environment only matches another empty one
    if n1 == 0 or n2 == 0:
        return [] if n1 == n2 else None

    cost = pair_cost_matrix(vecs1, vecs2)
    allowed = cost <= threshold_sq

    # Every vector on the smaller side needs at least one candidate
    if n1 <= n2 and not np.all(allowed.any(axis=1)):
        return None
    if n2 <= n1 and not np.all(allowed.any(axis=0)):
        return None

    # Forbidden pairs get a finite penalty larger than any feasible total,
    # so the solver only uses one when no feasible pairing exists.
    m = min(n1, n2)
    penalty = m * float(cost[allowed].max()) + 1.0
    masked = np.where(allowed, cost, penalty)

    rows, cols = linear_sum_assignment(masked)
    if not np.all(allowed[rows, cols]):
        return None

    return _lowest_index_optimum(masked, allowed, dict(zip(rows.tolist(), cols.tolist())), m)


def _solve_remaining(masked: np.ndarray, allowed: np.ndarray, rows: List[int],
                     cols: List[int], need: int) -> Optional[Tuple[float, Dict[int, int]]]:
    """Optimal feasible pairing of ``need`` pairs between the given rows and columns."""
    if need == 0:
        return 0.0, {}
    if min(len(rows), len(cols)) != need:
        return None
    sub = masked[np.ix_(rows, cols)]
    r, c = linear_sum_assignment(sub)
    if not np.all(allowed[np.ix_(rows, cols)][r, c]):
        return None
    return float(sub[r, c].sum()), {rows[i]: cols[j] for i, j in zip(r, c)}


def _lowest_index_optimum(masked: np.ndarray, allowed: np.ndarray,
                          assignment: Dict[int, int], m: int) -> List[Tuple[int, int]]:
    """
    Among all optimal pairings, pick the one that pairs the lowest row with
    the lowest column, then the next row, and so on.

    ``assignment`` is any optimal pairing. Rows are fixed in ascending order;
    a lower column replaces the current one only if the remaining rows can
    still be completed at the optimal total.
    """
    n1, n2 = masked.shape
    optimum = float(sum(masked[i, j] for i, j in assignment.items()))
    tol = 1e-9 * max(1.0, abs(optimum))

    spent = 0.0
    fixed: List[Tuple[int, int]] = []
    free_cols = set(range(n2))
    for i in range(n1):
        current = assignment.get(i)
        later_rows = list(range(i + 1, n1))
        for j in sorted(free_cols):
            if current is not None and j >= current:
                break
            if not allowed[i, j]:
                continue
            rest = _solve_remaining(masked, allowed, later_rows,
                                    sorted(free_cols - {j}), m - len(fixed) - 1)
            if rest is not None and abs(spent + masked[i, j] + rest[0] - optimum) <= tol:
                current = j
                assignment = {i: j, **rest[1]}
                break
        if current is not None:
            fixed.append((i, current))
            spent += float(masked[i, current])
            free_cols.discard(current)
    return fixed


def is_similar(e1: Environment, e2: Environment, threshold_sq: float) -> Optional[Correspondence]:
    """
    Is environment e1 similar to environment e2?

    Returns:
        ``{slot in e1: slot in e2}`` for every matched vector pair, or None
        if the environments are not similar. Unmatched vectors of the larger
        environment are absent from the mapping.
        An empty environment is only similar to another empty one.
    """
    pairs = match_vectors(e1.vectors, e2.vectors, threshold_sq)
    if pairs is None:
        return None
    return correspondence_from_pairs(e1, e2, pairs)


def correspondence_from_pairs(
    e1: Environment,
    e2: Environment,
    pairs: List[Tuple[int, int]]
) -> Correspondence:
    """Translate vector-index pairs into a slot correspondence using current slots."""
    return {int(e1.vector_slots[i]): int(e2.vector_slots[j]) for i, j in pairs}


def invert_correspondence(mapping: Correspondence) -> Correspondence:
    return {v: k for k, v in mapping.items()}


def is_similar_points(
    ref_points1: np.ndarray,
    ref_points2: np.ndarray,
    threshold_sq: float
) -> Optional[Correspondence]:
    """
    Compare two raw point sets (vectors about an implicit origin).

    Both sets are wrapped as environments with slots 0..n-1, so the result
    maps row indices of ``ref_points1`` to row indices of ``ref_points2``.
    """
    p1 = np.asarray(ref_points1, dtype=float).reshape(-1, 3)
    p2 = np.asarray(ref_points2, dtype=float).reshape(-1, 3)
    capacity = max(len(p1), len(p2), 1)
    e1 = build_environment(0, p1, capacity)
    e2 = build_environment(1, p2, capacity)
    return is_similar(e1, e2, threshold_sq)
