"""
Neighbor Sources
Supply, for each particle, the ordered displacement vectors to its nearest
neighbors (already periodic-wrapped).

Key points:
- scipy.spatial.cKDTree over all 27 periodic images of the configuration
- One batch k-nearest query for every particle
- Neighbor order (nearest first) is deterministic for a fixed
  configuration, so clustering is reproducible
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from scipy.spatial import cKDTree

from exceptions import InvalidConfiguration
from periodic_box import Box

logger = logging.getLogger(__name__)

ZERO_SHIFT_INDEX = 13


class NeighborSource(Protocol):
    """Narrow interface consumed by MatchEnv."""

    def compute(self, box: Box, points: np.ndarray) -> None:
        ...

    def neighbors(self, i: int) -> np.ndarray:
        """(n_i, 3) displacement vectors of particle i, n_i <= k."""
        ...


def _build_periodic_image_tree(
    centers: np.ndarray,
    shifts: np.ndarray
) -> Tuple[cKDTree, np.ndarray]:
    """
    Build a cKDTree over all 27 periodic images (27*n points).
    Image ``s`` of particle ``j`` sits at row ``s*n + j``.
    """
    centers_img = np.vstack([centers + sh for sh in shifts]).astype(float, copy=False)
    return cKDTree(centers_img), centers_img


class PeriodicNeighborSource:
    """
    k-nearest-neighbor search with periodic boundary conditions.

    The search only looks one image deep, so the box should be at least
    as wide as twice the k-th neighbor distance along each axis.
    """

    def __init__(self, k: int):
        if int(k) < 1:
            raise InvalidConfiguration(f"k must be >= 1, got {k}")
        self.k = int(k)
        self._vectors: List[np.ndarray] = []
        self._indices: List[np.ndarray] = []

    def compute(self, box: Box, points: np.ndarray) -> None:
        points = np.asarray(points, dtype=float)
        n = len(points)
        self._vectors = []
        self._indices = []
        if n == 0:
            return

        centers = box.wrap_positions(points)
        shifts = box.shifts()
        tree_img, centers_img = _build_periodic_image_tree(centers, shifts)

        # +1 because every particle finds itself at distance zero
        n_query = min(self.k + 1, len(centers_img))
        _, idx = tree_img.query(centers, k=n_query)
        idx = np.asarray(idx).reshape(n, n_query)

        self_img = ZERO_SHIFT_INDEX * n
        for i in range(n):
            row = idx[i]
            row = row[(row < len(centers_img)) & (row != self_img + i)][:self.k]
            self._vectors.append(centers_img[row] - centers[i])
            self._indices.append(row % n)

        logger.debug("Neighbor search: %d particles, k=%d", n, self.k)

    def neighbors(self, i: int) -> np.ndarray:
        return self._vectors[i]

    def neighbor_indices(self, i: int) -> np.ndarray:
        """Particle indices of the neighbors of i, in the same order as neighbors(i)."""
        return self._indices[i]

    def __len__(self) -> int:
        return len(self._vectors)


class PrecomputedNeighborSource:
    """
    Neighbor vectors supplied by the caller, one (n_i, 3) array per particle.

    Useful when neighbor lists come from another analysis tool. The box and
    points passed to compute() are only checked for a matching length.
    """

    def __init__(self, vectors: Sequence[Sequence[Sequence[float]]]):
        self._vectors = [np.asarray(v, dtype=float).reshape(-1, 3) for v in vectors]

    def compute(self, box: Optional[Box], points: np.ndarray) -> None:
        if len(points) != len(self._vectors):
            raise InvalidConfiguration(
                f"Precomputed neighbors cover {len(self._vectors)} particles, "
                f"but {len(points)} points were supplied"
            )

    def neighbors(self, i: int) -> np.ndarray:
        return self._vectors[i]

    def __len__(self) -> int:
        return len(self._vectors)
