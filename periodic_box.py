"""
Periodic Simulation Box
Triclinic box defined by row-wise lattice vectors.

Provides the minimum-image convention used to turn raw particle separations
into neighbor displacement vectors, plus the 27 periodic shift vectors used
by the neighbor search.
"""

from __future__ import annotations

import numpy as np
from typing import Sequence, Tuple
from functools import lru_cache

from exceptions import InvalidConfiguration


@lru_cache(maxsize=256)
def _lattice_vectors_cached(a: float, b: float, c: float,
                            alpha: float, beta: float, gamma: float) -> Tuple[Tuple[float, float, float], ...]:
    """Return lattice vectors as a tuple-of-tuples for caching."""
    alpha_r = np.radians(alpha)
    beta_r = np.radians(beta)
    gamma_r = np.radians(gamma)

    a_vec = np.array([a, 0.0, 0.0], dtype=float)
    b_vec = np.array([b * np.cos(gamma_r), b * np.sin(gamma_r), 0.0], dtype=float)

    c_x = c * np.cos(beta_r)
    sg = np.sin(gamma_r)
    if abs(sg) < 1e-14:
        c_y = 0.0
    else:
        c_y = c * (np.cos(alpha_r) - np.cos(beta_r) * np.cos(gamma_r)) / sg
    c_z_sq = max(0.0, c**2 - c_x**2 - c_y**2)
    c_vec = np.array([c_x, c_y, np.sqrt(c_z_sq)], dtype=float)

    # Snap round-off from cos(90 deg) so orthogonal boxes stay exactly orthogonal
    lat = np.array([a_vec, b_vec, c_vec], dtype=float)
    lat[np.abs(lat) < 1e-12] = 0.0
    return tuple(tuple(float(x) for x in row) for row in lat)


class Box:
    """
    Periodic box with lattice vectors stored as rows of a 3x3 matrix.

    Cartesian -> fractional is ``cart @ inv(lattice)`` and the reverse is
    ``frac @ lattice``.
    """

    def __init__(self, lattice: Sequence[Sequence[float]]):
        lat = np.asarray(lattice, dtype=float)
        if lat.shape != (3, 3):
            raise InvalidConfiguration(f"Box lattice must be 3x3, got shape {lat.shape}")
        if not np.all(np.isfinite(lat)):
            raise InvalidConfiguration("Box lattice contains non-finite values")
        volume = float(np.linalg.det(lat))
        if abs(volume) < 1e-12:
            raise InvalidConfiguration(f"Box lattice is singular (volume={volume:.3e})")
        self._lattice = lat
        self._inverse = np.linalg.inv(lat)
        self._volume = abs(volume)

    @classmethod
    def cube(cls, length: float) -> 'Box':
        return cls.from_lengths(length, length, length)

    @classmethod
    def from_lengths(cls, lx: float, ly: float, lz: float) -> 'Box':
        """Orthorhombic box with the given edge lengths."""
        lengths = np.array([lx, ly, lz], dtype=float)
        if np.any(~np.isfinite(lengths)) or np.any(lengths <= 0.0):
            raise InvalidConfiguration(f"Box edge lengths must be finite and > 0, got {lengths.tolist()}")
        return cls(np.diag(lengths))

    @classmethod
    def from_parameters(cls, a: float, b: float, c: float,
                        alpha: float = 90.0, beta: float = 90.0, gamma: float = 90.0) -> 'Box':
        """Box from edge lengths (same length unit) and angles in degrees."""
        if min(a, b, c) <= 0.0:
            raise InvalidConfiguration(f"Box edge lengths must be > 0, got a={a}, b={b}, c={c}")
        lat = _lattice_vectors_cached(float(a), float(b), float(c),
                                      float(alpha), float(beta), float(gamma))
        return cls(np.array(lat, dtype=float))

    @property
    def lattice(self) -> np.ndarray:
        return self._lattice.copy()

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def lengths(self) -> np.ndarray:
        return np.linalg.norm(self._lattice, axis=1)

    def is_orthorhombic(self) -> bool:
        return bool(np.allclose(self._lattice, np.diag(np.diag(self._lattice))))

    def frac_to_cart(self, frac: np.ndarray) -> np.ndarray:
        return np.asarray(frac, dtype=float) @ self._lattice

    def cart_to_frac(self, cart: np.ndarray) -> np.ndarray:
        return np.asarray(cart, dtype=float) @ self._inverse

    def wrap(self, displacement: np.ndarray) -> np.ndarray:
        """
        Apply the minimum-image convention to one or more displacements.

        Works in fractional space (``d - round(d)``), which is exact for
        orthorhombic boxes and the standard approximation for triclinic ones.
        """
        frac = self.cart_to_frac(displacement)
        frac = frac - np.round(frac)
        return frac @ self._lattice

    def wrap_positions(self, points: np.ndarray) -> np.ndarray:
        """Map absolute positions into the primary cell [0, 1) in fractional space."""
        frac = self.cart_to_frac(points)
        frac = frac - np.floor(frac)
        # floor can leave values equal to 1.0 after round-off
        frac[frac >= 1.0] = 0.0
        return frac @ self._lattice

    def shifts(self) -> np.ndarray:
        """The 27 Cartesian shift vectors of the 3x3x3 image block, zero shift at index 13."""
        frac_shifts = np.array(
            [[i, j, k] for i in (-1, 0, 1) for j in (-1, 0, 1) for k in (-1, 0, 1)],
            dtype=float,
        )
        return frac_shifts @ self._lattice

    def __repr__(self) -> str:
        rows = ", ".join("[" + ", ".join(f"{x:.4g}" for x in row) + "]" for row in self._lattice)
        return f"Box([{rows}])"
