"""
Environment Disjoint Set
Union-find forest whose nodes are Environments.

Unlike a plain disjoint set, merging two trees first rewrites the slot labels
of every environment in the tree being attached, so that all environments
under one root agree on which slot denotes which neighbor direction. This is
what makes slot-by-slot averaging of a cluster meaningful.

Nodes live in a flat list indexed by forest position; parent and rank are
parallel integer arrays. Merges mutate shared state and must be applied by a
single writer.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

import numpy as np
from scipy.optimize import linear_sum_assignment

from env_matcher import pair_cost_matrix
from environment import Environment


def _complete_mapping(
    mapping: Dict[int, int],
    child_dirs: Dict[int, np.ndarray],
    root_dirs: Dict[int, np.ndarray],
    max_neighbors: int,
    threshold_sq: Optional[float] = None,
) -> Dict[int, int]:
    """
    Extend a partial slot mapping to an injective relabelling of the child tree.

    Args:
        mapping: Child slot -> root slot for the vectors that were matched
        child_dirs: Mean vector of every slot used in the child tree
        root_dirs: Mean vector of every slot used in the root tree
        max_neighbors: Number of slot labels
        threshold_sq: If given, direction pairs farther apart are not paired

    Child slots missing from ``mapping`` are first paired with root slots that
    no mapped slot claims, by minimum total squared distance between their
    mean vectors. Slots still left keep their label if the root frame does
    not use it, otherwise they take the lowest label it does not use.
    """
    full = {int(s): int(t) for s, t in mapping.items()}
    taken = set(full.values())
    unmapped = sorted(s for s in child_dirs if s not in full)
    open_root = sorted(label for label in root_dirs if label not in taken)

    if unmapped and open_root:
        cost = pair_cost_matrix(np.array([child_dirs[s] for s in unmapped]),
                                np.array([root_dirs[label] for label in open_root]))
        rows, cols = linear_sum_assignment(cost)
        for r, c in zip(rows, cols):
            if threshold_sq is None or cost[r, c] <= threshold_sq:
                full[unmapped[r]] = open_root[c]
                taken.add(open_root[c])

    leftover = [s for s in unmapped if s not in full]
    unused = [label for label in range(max_neighbors)
              if label not in taken and label not in root_dirs]
    for s in leftover:
        if s in unused:
            full[s] = s
            unused.remove(s)
            taken.add(s)

    # Root slots with a different direction are the last resort
    pool = unused + [label for label in open_root if label not in taken]
    for s in leftover:
        if s not in full:
            full[s] = pool.pop(0)
    return full


class EnvDisjointSet:
    """
    Forest of environments with union by rank and path compression.

    Args:
        environments: One environment per forest position; ``environments[i].index``
            is set to ``i``.
        max_neighbors: Number of slots (the configured k)
        threshold_sq: Squared distance within which unmatched slot directions
            of two trees are treated as the same slot when merging
    """

    def __init__(self, environments: Sequence[Environment], max_neighbors: int,
                 threshold_sq: Optional[float] = None):
        self.max_neighbors = int(max_neighbors)
        self.threshold_sq = threshold_sq
        self.nodes: List[Environment] = list(environments)
        for i, env in enumerate(self.nodes):
            env.index = i
        n = len(self.nodes)
        self.parent = np.arange(n, dtype=np.int64)
        self.rank = np.zeros(n, dtype=np.int64)
        self._members: Dict[int, List[int]] = {i: [i] for i in range(n)}

        # Per-root slot sums over all members (ghosts included) for slot directions
        self._slot_sum: Dict[int, np.ndarray] = {}
        self._slot_count: Dict[int, np.ndarray] = {}
        for i, env in enumerate(self.nodes):
            total = np.zeros((self.max_neighbors, 3), dtype=float)
            count = np.zeros(self.max_neighbors, dtype=np.int64)
            if env.num_vectors:
                np.add.at(total, env.vector_slots, env.vectors)
                np.add.at(count, env.vector_slots, 1)
            self._slot_sum[i] = total
            self._slot_count[i] = count

    def __len__(self) -> int:
        return len(self.nodes)

    def find(self, x: int) -> int:
        """Root of the tree containing node x."""
        x = int(x)
        if not 0 <= x < len(self.nodes):
            raise IndexError(f"Node {x} out of range for forest of size {len(self.nodes)}")
        root = x
        while self.parent[root] != root:
            root = int(self.parent[root])
        while self.parent[x] != root:
            nxt = int(self.parent[x])
            self.parent[x] = root
            x = nxt
        return root

    def is_root(self, x: int) -> bool:
        return int(self.parent[int(x)]) == int(x)

    def roots(self) -> List[int]:
        return sorted(self._members.keys())

    def _slot_directions(self, root: int) -> Dict[int, np.ndarray]:
        count = self._slot_count[root]
        return {int(s): self._slot_sum[root][s] / count[s] for s in np.flatnonzero(count)}

    def merge(self, a: int, b: int, correspondence: Dict[int, int]) -> bool:
        """
        Join the trees of a and b.

        ``correspondence`` maps slot labels of a's tree to slot labels of
        b's tree (as returned by ``is_similar(env_a, env_b, ...)``). The
        lower-rank root is attached under the higher-rank one; on equal rank
        b's root goes under a's. The attached tree is relabelled into the
        surviving root's slot frame.

        Returns:
            False if a and b were already in the same tree, True otherwise.
        """
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return False

        if self.rank[ra] < self.rank[rb]:
            child, root = ra, rb
            mapping = dict(correspondence)
        else:
            child, root = rb, ra
            mapping = {v: k for k, v in correspondence.items()}
            if self.rank[ra] == self.rank[rb]:
                self.rank[ra] += 1

        full = _complete_mapping(mapping, self._slot_directions(child),
                                 self._slot_directions(root), self.max_neighbors,
                                 self.threshold_sq)
        members = self._members.pop(child)
        for m in members:
            self.nodes[m].relabel_slots(full)

        child_sum = self._slot_sum.pop(child)
        child_count = self._slot_count.pop(child)
        for s, t in full.items():
            self._slot_sum[root][t] += child_sum[s]
            self._slot_count[root][t] += child_count[s]

        self.parent[child] = root
        self._members[root].extend(members)
        return True

    def find_set(self, root: int) -> List[int]:
        """All node indices in the tree headed by ``root``, ascending."""
        root = int(root)
        if root not in self._members:
            raise ValueError(f"Node {root} is not a root of the forest")
        return sorted(self._members[root])

    def get_average_environment(self, root: int) -> np.ndarray:
        """
        Slot-wise mean of the vectors of every non-ghost node in the tree.

        Returns:
            (max_neighbors, 3) array; slots no vector contributes to are NaN.
        """
        total = np.zeros((self.max_neighbors, 3), dtype=float)
        count = np.zeros(self.max_neighbors, dtype=np.int64)
        for m in self.find_set(root):
            env = self.nodes[m]
            if env.is_ghost or env.num_vectors == 0:
                continue
            np.add.at(total, env.vector_slots, env.vectors)
            np.add.at(count, env.vector_slots, 1)

        avg = np.full((self.max_neighbors, 3), np.nan, dtype=float)
        filled = count > 0
        avg[filled] = total[filled] / count[filled, None]
        return avg

    def get_individual_environment(self, index: int) -> np.ndarray:
        """Unaveraged vectors of one node, placed at their slots (NaN where empty)."""
        return self.nodes[int(index)].slot_ordered()
