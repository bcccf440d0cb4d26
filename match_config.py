"""
Match-Environment Configuration
Validated run parameters and the constants shared by the matching modules.
"""
from dataclasses import dataclass
import math
import numbers

from exceptions import InvalidConfiguration, InvalidThreshold


# Largest neighbor count an environment may hold. Matches the size of the
# precomputed coefficient tables used by the Ql/Wl order-parameter family.
MAX_NUM_NEIGHBORS = 12

DEFAULT_NUM_NEIGHBORS = 12

# Unitless thresholds at or above this ratio (times rmax^2) cannot
# discriminate between any two vectors bounded by the search radius.
MAX_THRESHOLD_RATIO = 2.0


@dataclass(frozen=True)
class MatchEnvConfig:
    """Parameters fixed for the lifetime of a MatchEnv instance."""
    rmax: float
    k: int = DEFAULT_NUM_NEIGHBORS
    n_workers: int = 1

    def __post_init__(self):
        try:
            rmax = float(self.rmax)
        except (TypeError, ValueError):
            raise InvalidConfiguration(f"rmax must be a number, got {self.rmax!r}") from None
        if not math.isfinite(rmax) or rmax <= 0.0:
            raise InvalidConfiguration(f"rmax must be finite and > 0, got {self.rmax}")
        object.__setattr__(self, 'rmax', rmax)

        if isinstance(self.k, bool) or not isinstance(self.k, numbers.Integral):
            raise InvalidConfiguration(f"k must be an integer, got {self.k!r}")
        if not 1 <= int(self.k) <= MAX_NUM_NEIGHBORS:
            raise InvalidConfiguration(
                f"k must satisfy 1 <= k <= {MAX_NUM_NEIGHBORS}, got {self.k}"
            )
        object.__setattr__(self, 'k', int(self.k))

        if int(self.n_workers) < 1:
            raise InvalidConfiguration(f"n_workers must be >= 1, got {self.n_workers}")
        object.__setattr__(self, 'n_workers', int(self.n_workers))

    @property
    def rmax_sq(self) -> float:
        return self.rmax * self.rmax

    def threshold_sq(self, threshold: float) -> float:
        """
        Convert a unitless threshold into an absolute squared distance.

        The result is ``threshold * rmax**2``: the largest squared length of
        the difference between two vectors that still counts as a match.
        """
        return validate_threshold_ratio(threshold) * self.rmax_sq


def validate_threshold_ratio(threshold: float) -> float:
    """Return threshold as float, or raise InvalidThreshold if outside [0, 2)."""
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidThreshold(f"threshold must be a number, got {threshold!r}") from None
    if not math.isfinite(value) or value < 0.0:
        raise InvalidThreshold(f"threshold must be finite and >= 0, got {threshold}")
    if value >= MAX_THRESHOLD_RATIO:
        raise InvalidThreshold(
            f"threshold must be < {MAX_THRESHOLD_RATIO} (in units of rmax^2), got {threshold}; "
            f"larger values match every pair of environment vectors"
        )
    return value
