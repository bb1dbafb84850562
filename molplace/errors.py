"""
Exception types raised by the placement engine.
"""

from __future__ import annotations

from typing import Optional


class PlacementError(Exception):
    """Base class for all placement failures."""


class MissingConfigurationDataError(PlacementError):
    """A compartment, composition row or catalog entry required by a run is absent."""


class TopologyError(MissingConfigurationDataError):
    """A molecule topology string could not be parsed."""


class InternalInconsistencyError(PlacementError):
    """A post-condition of a placement run did not hold."""


class GeometryExhaustionError(PlacementError):
    """Sampling could not satisfy the geometric constraints within its bounds."""


class PlacementFailure(GeometryExhaustionError):
    """The bulk correction loop ran out of attempts for one molecule instance."""

    def __init__(self, molecule_name: str, attempts: int, last_valid_index: Optional[int] = None):
        self.molecule_name = molecule_name
        self.attempts = attempts
        self.last_valid_index = last_valid_index
        super().__init__(
            f"Could not place molecule '{molecule_name}' in free volume "
            f"after {attempts} correction attempts."
        )


class PlacementCancelled(Exception):
    """Raised internally to unwind a run once cancellation was requested."""
