"""
Error taxonomy for environment matching.

All errors derive from ValueError so callers that already guard numeric
input with ``except ValueError`` keep working.
"""


class MatchEnvError(ValueError):
    """Base class for configuration and contract violations."""


class InvalidConfiguration(MatchEnvError):
    """Bad rmax, k, box or point array. Raised before any work is done."""


class CapacityExceeded(MatchEnvError):
    """More neighbor vectors were supplied than the environment can hold."""

    def __init__(self, supplied: int, capacity: int):
        self.supplied = supplied
        self.capacity = capacity
        super().__init__(
            f"Environment received {supplied} vectors but holds at most "
            f"{capacity} (k={capacity}); the neighbor source and k disagree"
        )


class InvalidThreshold(MatchEnvError):
    """Negative or meaningless similarity threshold."""
