"""
Local Environments
An environment is the ordered set of neighbor displacement vectors around
one particle, together with the slot label carried by each vector.

Slots identify "the same" neighbor direction across environments that have
been merged into one cluster; averaging is done slot by slot.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from exceptions import CapacityExceeded


class Environment:
    """
    Bounded collection of neighbor vectors plus disjoint-set bookkeeping.

    Attributes:
        index: Position of this environment in the disjoint-set forest
        max_neighbors: Capacity (the configured k)
        vectors: (n, 3) float array, n <= max_neighbors
        vector_slots: (n,) int array, the slot label of each vector
        is_ghost: Excluded from physical averages (e.g. a reference motif)
    """

    def __init__(self, index: int, max_neighbors: int, is_ghost: bool = False):
        self.index = int(index)
        self.max_neighbors = int(max_neighbors)
        self.is_ghost = bool(is_ghost)
        self.vectors = np.empty((0, 3), dtype=float)
        self.vector_slots = np.empty((0,), dtype=np.int64)

    @property
    def num_vectors(self) -> int:
        return len(self.vectors)

    def add_vector(self, vec: Sequence[float]) -> None:
        """Append a vector; its slot is the next free label in input order."""
        n = self.num_vectors
        if n >= self.max_neighbors:
            raise CapacityExceeded(n + 1, self.max_neighbors)
        self.vectors = np.vstack([self.vectors, np.asarray(vec, dtype=float).reshape(1, 3)])
        self.vector_slots = np.append(self.vector_slots, n)

    def set_vectors(self, vectors: np.ndarray) -> None:
        """Replace all vectors at once, slots reset to 0..n-1."""
        vectors = np.asarray(vectors, dtype=float).reshape(-1, 3)
        if len(vectors) > self.max_neighbors:
            raise CapacityExceeded(len(vectors), self.max_neighbors)
        self.vectors = vectors.copy()
        self.vector_slots = np.arange(len(vectors), dtype=np.int64)

    def relabel_slots(self, mapping: dict) -> None:
        """Rewrite every slot label found in ``mapping``; others are left alone."""
        self.vector_slots = np.array(
            [mapping.get(int(s), int(s)) for s in self.vector_slots], dtype=np.int64
        )

    def slot_ordered(self) -> np.ndarray:
        """(max_neighbors, 3) array with each vector placed at its slot, NaN where empty."""
        out = np.full((self.max_neighbors, 3), np.nan, dtype=float)
        if self.num_vectors:
            out[self.vector_slots] = self.vectors
        return out

    def __repr__(self) -> str:
        ghost = ", ghost" if self.is_ghost else ""
        return f"Environment(index={self.index}, n={self.num_vectors}/{self.max_neighbors}{ghost})"


def build_environment(
    index: int,
    neighbor_vectors: np.ndarray,
    max_neighbors: int,
    hard_rmax_sq: Optional[float] = None,
    is_ghost: bool = False,
) -> Environment:
    """
    Build the environment of one particle from its neighbor displacements.

    Args:
        index: Forest index of the new environment (the particle index)
        neighbor_vectors: (n, 3) displacement vectors, nearest first
        max_neighbors: Capacity k
        hard_rmax_sq: If given, vectors with squared length above this are dropped
        is_ghost: Mark the environment as a ghost

    Raises:
        CapacityExceeded: If more than ``max_neighbors`` vectors are supplied.
    """
    vectors = np.asarray(neighbor_vectors, dtype=float).reshape(-1, 3)
    if len(vectors) > max_neighbors:
        raise CapacityExceeded(len(vectors), max_neighbors)

    if hard_rmax_sq is not None and len(vectors):
        keep = np.einsum('ij,ij->i', vectors, vectors) <= hard_rmax_sq
        vectors = vectors[keep]

    env = Environment(index, max_neighbors, is_ghost=is_ghost)
    env.set_vectors(vectors)
    return env
