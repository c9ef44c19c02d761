"""Exception taxonomy for lattice construction, indexing and percolation runs.

All errors signal caller mistakes and are raised before any work is done.
"""


class PercolationError(ValueError):
    """Base class for every error raised by this package."""


class InvalidLatticeError(PercolationError):
    """Lattice built with bad extents, an empty neighborhood or an unknown boundary."""


class OutOfBoundsError(PercolationError, IndexError):
    """Site coordinates or integer index outside the lattice."""


class ShapeMismatchError(PercolationError):
    """Occupancy configuration does not match the lattice site or edge count."""


class PreconditionError(PercolationError):
    """Probability outside [0, 1], empty site/edge set, or bad rule parameter."""


# historical spelling
PrecondtionError = PreconditionError
