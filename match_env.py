"""
Match-Environment Analysis
Clusters particles by whether their local environments match, or tests every
particle against a reference motif.

Workflow:
1. Build one Environment per particle from the neighbor source
2. cluster(): compare every unordered pair of particles and merge matching
   pairs into an EnvDisjointSet
   match_motif(): compare every particle against one ghost environment
3. Renumber roots to dense labels and cache averaged environments

After a run, use the accessors (cluster_label_of, averaged_environment,
individual_environment, matches_motif, ...) to retrieve results.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

import numpy as np

from env_disjoint_set import EnvDisjointSet
from env_matcher import Correspondence, correspondence_from_pairs, is_similar_points, match_vectors
from environment import Environment, build_environment
from exceptions import InvalidConfiguration
from match_config import DEFAULT_NUM_NEIGHBORS, MatchEnvConfig
from neighbor_source import NeighborSource, PeriodicNeighborSource
from periodic_box import Box

logger = logging.getLogger(__name__)

PairMatches = List[Tuple[int, List[Tuple[int, int]]]]


def _as_points(points, name: str = "points") -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.ndim == 1 and arr.size == 0:
        arr = arr.reshape(0, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise InvalidConfiguration(f"{name} must have shape (N, 3), got {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidConfiguration(f"{name} contains non-finite coordinates")
    return arr


class MatchEnv:
    """
    Environment-matching analysis for one periodic box.

    Args:
        box: Simulation box
        rmax: Cutoff radius. Sets the length scale of the threshold and, with
            hard_r=True, the largest neighbor distance kept. Values near the
            first minimum of the radial distribution function work well.
        k: Number of nearest neighbors that define an environment
        n_workers: Threads used for the pairwise similarity pass
        neighbor_source: Defaults to a PeriodicNeighborSource(k)
    """

    def __init__(self, box: Box, rmax: float, k: int = DEFAULT_NUM_NEIGHBORS,
                 n_workers: int = 1, neighbor_source: Optional[NeighborSource] = None):
        if not isinstance(box, Box):
            raise InvalidConfiguration(f"box must be a Box, got {type(box).__name__}")
        self.config = MatchEnvConfig(rmax=rmax, k=k, n_workers=n_workers)
        self._box = box
        self._custom_source = neighbor_source is not None
        self._nn: NeighborSource = (neighbor_source if neighbor_source is not None
                                    else PeriodicNeighborSource(self.config.k))
        self._reset_results()

    def _reset_results(self) -> None:
        self._mode: Optional[str] = None
        self._num_particles = 0
        self._labels = np.empty((0,), dtype=np.int64)
        self._env: Dict[int, np.ndarray] = {}
        self._tot_env = np.empty((0, self.config.k, 3), dtype=float)
        self._motif_matches = np.empty((0,), dtype=bool)
        self._motif_env: Optional[np.ndarray] = None

    # -----------------------------
    # Configuration
    # -----------------------------

    @property
    def box(self) -> Box:
        return self._box

    @property
    def rmax(self) -> float:
        return self.config.rmax

    @property
    def num_neighbors(self) -> int:
        return self.config.k

    @property
    def num_particles(self) -> int:
        return self._num_particles

    @property
    def mode(self) -> Optional[str]:
        """'cluster' or 'motif' after a run, None before."""
        return self._mode

    @property
    def num_clusters(self) -> int:
        self._require_run()
        return len(self._env)

    def set_box(self, box: Box) -> None:
        """Replace the box. The default neighbor source is rebuilt."""
        if not isinstance(box, Box):
            raise InvalidConfiguration(f"box must be a Box, got {type(box).__name__}")
        self._box = box
        if not self._custom_source:
            self._nn = PeriodicNeighborSource(self.config.k)

    # -----------------------------
    # Environment construction
    # -----------------------------

    def build_environments(self, points: np.ndarray, hard_r: bool = False) -> List[Environment]:
        """One Environment per particle, index i for particle i."""
        points = _as_points(points)
        self._nn.compute(self._box, points)
        hard_rmax_sq = self.config.rmax_sq if hard_r else None

        envs = []
        n_empty = 0
        for i in range(len(points)):
            env = build_environment(i, self._nn.neighbors(i), self.config.k, hard_rmax_sq)
            if env.num_vectors == 0:
                n_empty += 1
            envs.append(env)

        if n_empty:
            logger.warning("%d of %d particles have no neighbors within rmax=%.4g",
                           n_empty, len(points), self.config.rmax)
        return envs

    # -----------------------------
    # Clustering
    # -----------------------------

    def cluster(self, points: np.ndarray, threshold: float, hard_r: bool = False) -> None:
        """
        Group particles whose environments match.

        Args:
            points: (N, 3) particle positions
            threshold: Unitless; pairs of vectors match when their squared
                difference is <= threshold * rmax**2. Must be in [0, 2).
            hard_r: Drop neighbors farther than rmax before matching
        """
        threshold_sq = self.config.threshold_sq(threshold)
        points = _as_points(points)
        n = len(points)
        t0 = time.perf_counter()
        logger.info("Clustering %d particles (k=%d, threshold_sq=%.4g, hard_r=%s)",
                    n, self.config.k, threshold_sq, hard_r)

        envs = self.build_environments(points, hard_r)
        dj = EnvDisjointSet(envs, self.config.k, threshold_sq)

        n_merges = 0
        if self.config.n_workers > 1 and n > 1:
            with ThreadPoolExecutor(max_workers=self.config.n_workers) as pool:
                rows = pool.map(lambda i: self._match_row(envs, i, threshold_sq), range(n))
                for i, row in enumerate(rows):
                    for j, pairs in row:
                        corr = correspondence_from_pairs(envs[i], envs[j], pairs)
                        n_merges += dj.merge(i, j, corr)
        else:
            for i in range(n):
                for j in range(i + 1, n):
                    # Already in one tree: the merge would be a no-op
                    if dj.find(i) == dj.find(j):
                        continue
                    pairs = match_vectors(envs[i].vectors, envs[j].vectors, threshold_sq)
                    if pairs is None:
                        continue
                    corr = correspondence_from_pairs(envs[i], envs[j], pairs)
                    n_merges += dj.merge(i, j, corr)

        self._populate_env(dj, n, mode='cluster')
        logger.debug("%d merges applied", n_merges)
        logger.info("Found %d clusters among %d particles in %.2fs",
                    len(self._env), n, time.perf_counter() - t0)

    @staticmethod
    def _match_row(envs: List[Environment], i: int, threshold_sq: float) -> PairMatches:
        """Vector-index matches of particle i against every j > i. Read-only."""
        out = []
        for j in range(i + 1, len(envs)):
            pairs = match_vectors(envs[i].vectors, envs[j].vectors, threshold_sq)
            if pairs is not None:
                out.append((j, pairs))
        return out

    # -----------------------------
    # Motif matching
    # -----------------------------

    def match_motif(self, points: np.ndarray, ref_points: np.ndarray,
                    threshold: float, hard_r: bool = False) -> None:
        """
        Test every particle's environment against a reference motif.

        Args:
            points: (N, 3) particle positions
            ref_points: (M, 3) motif vectors about an implicit origin, M <= k
            threshold: Unitless, as in cluster()
            hard_r: Drop particle neighbors farther than rmax before matching
        """
        threshold_sq = self.config.threshold_sq(threshold)
        points = _as_points(points)
        ref_points = _as_points(ref_points, name="ref_points")
        n = len(points)
        logger.info("Matching %d particles against a %d-vector motif (threshold_sq=%.4g)",
                    n, len(ref_points), threshold_sq)

        envs = self.build_environments(points, hard_r)
        ghost = build_environment(n, ref_points, self.config.k, is_ghost=True)
        dj = EnvDisjointSet(envs + [ghost], self.config.k, threshold_sq)

        def test(i: int) -> Optional[List[Tuple[int, int]]]:
            return match_vectors(ghost.vectors, envs[i].vectors, threshold_sq)

        if self.config.n_workers > 1 and n > 1:
            with ThreadPoolExecutor(max_workers=self.config.n_workers) as pool:
                results = list(pool.map(test, range(n)))
        else:
            results = [test(i) for i in range(n)]

        matches = np.zeros(n, dtype=bool)
        for i, pairs in enumerate(results):
            if pairs is None:
                continue
            # Ghost goes first so it stays the root and keeps the motif's slot frame
            corr = correspondence_from_pairs(ghost, envs[i], pairs)
            dj.merge(n, i, corr)
            matches[i] = True

        self._populate_env(dj, n, mode='motif')
        self._motif_matches = matches
        self._motif_env = dj.get_average_environment(dj.find(n))
        logger.info("%d of %d particles match the motif", int(matches.sum()), n)

    # -----------------------------
    # Results
    # -----------------------------

    def _populate_env(self, dj: EnvDisjointSet, n: int, mode: str) -> None:
        """Renumber roots of the first n nodes to 0..num_clusters-1 and cache environments."""
        self._reset_results()
        labels = np.empty(n, dtype=np.int64)
        label_of_root: Dict[int, int] = {}
        env: Dict[int, np.ndarray] = {}
        for i in range(n):
            root = dj.find(i)
            if root not in label_of_root:
                label = len(label_of_root)
                label_of_root[root] = label
                env[label] = dj.get_average_environment(root)
            labels[i] = label_of_root[root]

        self._labels = labels
        self._env = env
        self._tot_env = np.array([dj.get_individual_environment(i) for i in range(n)],
                                 dtype=float).reshape(n, self.config.k, 3)
        self._num_particles = n
        self._mode = mode

    def _require_run(self) -> None:
        if self._mode is None:
            raise RuntimeError("No results yet: call cluster() or match_motif() first")

    def _check_particle(self, i: int) -> int:
        i = int(i)
        if not 0 <= i < self._num_particles:
            raise IndexError(f"Particle {i} out of range (N={self._num_particles})")
        return i

    def clusters(self) -> np.ndarray:
        """Cluster label of every particle."""
        self._require_run()
        return self._labels.copy()

    def cluster_label_of(self, i: int) -> int:
        self._require_run()
        return int(self._labels[self._check_particle(i)])

    def averaged_environment(self, label: int) -> np.ndarray:
        """(k, 3) slot-wise average environment of a cluster; NaN rows for empty slots."""
        self._require_run()
        if int(label) not in self._env:
            raise IndexError(f"Cluster {label} out of range (num_clusters={len(self._env)})")
        return self._env[int(label)].copy()

    def environments(self) -> Dict[int, np.ndarray]:
        """Mapping of cluster label to averaged environment."""
        self._require_run()
        return {label: vecs.copy() for label, vecs in self._env.items()}

    def individual_environment(self, i: int) -> np.ndarray:
        """(k, 3) environment of one particle in its cluster's slot order; NaN rows for empty slots."""
        self._require_run()
        return self._tot_env[self._check_particle(i)].copy()

    def total_environment(self) -> np.ndarray:
        """(N, k, 3) array of every particle's individual environment."""
        self._require_run()
        return self._tot_env.copy()

    def _require_motif(self) -> None:
        if self._mode != 'motif':
            raise RuntimeError("No motif results: call match_motif() first")

    def matches_motif(self, i: int) -> bool:
        self._require_motif()
        return bool(self._motif_matches[self._check_particle(i)])

    def motif_matches(self) -> np.ndarray:
        """Boolean array, True for particles similar to the motif."""
        self._require_motif()
        return self._motif_matches.copy()

    def motif_environment(self) -> np.ndarray:
        """Average environment of the matching particles, in the motif's slot order."""
        self._require_motif()
        return self._motif_env.copy()

    def is_similar(self, ref_points1: np.ndarray, ref_points2: np.ndarray,
                   threshold: float) -> Optional[Correspondence]:
        """
        Compare two raw vector sets with this instance's threshold scaling.

        Returns the ``{row in ref_points1: row in ref_points2}`` correspondence,
        or None if the sets are not similar.
        """
        threshold_sq = self.config.threshold_sq(threshold)
        return is_similar_points(_as_points(ref_points1, "ref_points1"),
                                 _as_points(ref_points2, "ref_points2"),
                                 threshold_sq)
