"""
Crystal Builder
Generates periodic particle configurations (replicated Bravais lattices)
for testing and for the explorer app.
"""

from __future__ import annotations

import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from periodic_box import Box


@dataclass(frozen=True)
class LatticeParams:
    """Lattice parameters for a crystal structure."""
    a: float = 1.0
    b_ratio: float = 1.0
    c_ratio: float = 1.0
    alpha: float = 90.0
    beta: float = 90.0
    gamma: float = 90.0

    @property
    def b(self) -> float:
        return self.a * self.b_ratio

    @property
    def c(self) -> float:
        return self.a * self.c_ratio


# Basis points (fractional coordinates) of each crystal type
BRAVAIS_BASIS: Dict[str, List[Tuple[float, float, float]]] = {
    'cubic_P': [(0, 0, 0)],
    'cubic_I': [(0, 0, 0), (0.5, 0.5, 0.5)],  # BCC
    'cubic_F': [(0, 0, 0), (0.5, 0.5, 0), (0.5, 0, 0.5), (0, 0.5, 0.5)],  # FCC
    'hexagonal_H': [(0, 0, 0), (2/3, 1/3, 0.5)],  # HCP
    'diamond': [(0, 0, 0), (0.5, 0.5, 0), (0.5, 0, 0.5), (0, 0.5, 0.5),
                (0.25, 0.25, 0.25), (0.75, 0.75, 0.25), (0.75, 0.25, 0.75), (0.25, 0.75, 0.75)],
}

CRYSTAL_LABELS = {
    'cubic_P': 'Simple cubic',
    'cubic_I': 'BCC',
    'cubic_F': 'FCC',
    'hexagonal_H': 'HCP',
    'diamond': 'Diamond',
}

# Nearest-neighbor distance in units of a, and the motif that describes the first shell
NEAREST_NEIGHBOR: Dict[str, Tuple[float, str]] = {
    'cubic_P': (1.0, 'sc'),
    'cubic_I': (np.sqrt(3.0) / 2.0, 'bcc'),
    'cubic_F': (1.0 / np.sqrt(2.0), 'fcc'),
    'hexagonal_H': (1.0, 'hcp'),
    'diamond': (np.sqrt(3.0) / 4.0, 'diamond'),
}


def default_params(crystal: str, a: float = 1.0) -> LatticeParams:
    """Ideal lattice parameters (ideal c/a for HCP)."""
    if crystal == 'hexagonal_H':
        return LatticeParams(a=a, c_ratio=np.sqrt(8.0 / 3.0), gamma=120.0)
    return LatticeParams(a=a)


def build_crystal(
    crystal: str,
    params: Optional[LatticeParams] = None,
    reps: Sequence[int] = (3, 3, 3)
) -> Tuple[Box, np.ndarray]:
    """
    Replicate a unit cell into a periodic supercell.

    Args:
        crystal: Key of BRAVAIS_BASIS
        params: Lattice parameters; ideal ones for the crystal if None
        reps: Number of unit cells along each lattice vector

    Returns:
        (box, positions) with positions as an (N, 3) Cartesian array
    """
    if crystal not in BRAVAIS_BASIS:
        raise KeyError(f"Unknown crystal '{crystal}'. Available: {', '.join(sorted(BRAVAIS_BASIS))}")
    p = params or default_params(crystal)
    reps = np.asarray(reps, dtype=int)
    if reps.shape != (3,) or np.any(reps < 1):
        raise ValueError(f"reps must be three positive integers, got {reps.tolist()}")

    cell = Box.from_parameters(p.a, p.b, p.c, p.alpha, p.beta, p.gamma)
    box = Box(cell.lattice * reps[:, None])

    basis = np.array(BRAVAIS_BASIS[crystal], dtype=float)
    cells = np.array([(i, j, k)
                      for i in range(reps[0]) for j in range(reps[1]) for k in range(reps[2])],
                     dtype=float)
    frac = (cells[:, None, :] + basis[None, :, :]).reshape(-1, 3) / reps
    return box, box.frac_to_cart(frac)


def jitter_positions(points: np.ndarray, sigma: float, seed: Optional[int] = None) -> np.ndarray:
    """Add isotropic Gaussian noise with standard deviation sigma to every coordinate."""
    rng = np.random.default_rng(seed)
    points = np.asarray(points, dtype=float)
    return points + rng.normal(0.0, sigma, size=points.shape)


def remove_particles(points: np.ndarray, indices: Sequence[int]) -> np.ndarray:
    """Positions with the given particles deleted (vacancies)."""
    return np.delete(np.asarray(points, dtype=float), list(indices), axis=0)
