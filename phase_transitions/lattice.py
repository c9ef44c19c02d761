"""Regular D-dimensional lattices with a fixed neighbor-offset template.

Sites are tuples of 1-based coordinates. The integer index of a site is a
mixed-radix encoding with dimension 1 varying fastest, so on an ``N x N``
lattice site ``(i, j)`` has index ``(j - 1) * N + i``. That index is how
sites are referenced inside the disjoint-set partition.

Presets (square, triangular, cubic, hypercubic, moore) only choose an offset
template; they all build the same :class:`Lattice`.
"""
from enum import Enum
from itertools import product
from typing import Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np
import logging

from phase_transitions.errors import InvalidLatticeError, OutOfBoundsError

# Module logger
logger = logging.getLogger(__name__)

Site = Tuple[int, ...]


class Boundary(Enum):
    """Boundary policy applied to neighbor lookups."""

    FREE = "free"
    PERIODIC = "periodic"

    @classmethod
    def parse(cls, value: Union[str, "Boundary"]) -> "Boundary":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidLatticeError(
                f"Unknown boundary condition {value!r}; expected 'free' or 'periodic'"
            ) from None


class Edge(NamedTuple):
    """Undirected bond; ``site1 < site2`` under tuple ordering."""

    site1: Site
    site2: Site


def apply_boundary(coord: int, size: int, mode: Boundary) -> Optional[int]:
    """Map one coordinate through the boundary policy.

    Periodic always lands in ``[1, size]`` because Python's ``%`` is
    non-negative for a positive modulus. Free returns None for a coordinate
    that falls off the lattice.
    """
    if mode is Boundary.PERIODIC:
        return (coord - 1) % size + 1
    if 1 <= coord <= size:
        return coord
    return None


class Lattice:
    """Regular grid of extent ``size`` with a neighbor-offset template.

    Attributes
    - size: tuple of D positive extents
    - neighborhood: tuple of D-dimensional integer offset vectors
    - boundary: Boundary.FREE or Boundary.PERIODIC
    """

    def __init__(
        self,
        size: Sequence[int],
        neighborhood: Sequence[Sequence[int]],
        boundary: Union[str, Boundary] = "free",
    ) -> None:
        """Build and validate a lattice.

        Args:
        - size (sequence of int): extent along each dimension, each >= 1
        - neighborhood (sequence of offset vectors): each of length D, at
          least one offset
        - boundary (str or Boundary): "free" or "periodic"

        Raises InvalidLatticeError on any violation.
        """
        try:
            dims = tuple(size)
        except TypeError:
            raise InvalidLatticeError("size must be a sequence of positive ints") from None
        if len(dims) == 0:
            raise InvalidLatticeError("size must have at least one dimension")
        for d in dims:
            if isinstance(d, (bool, np.bool_)) or not isinstance(d, (int, np.integer)):
                raise InvalidLatticeError(f"extent {d!r} is not an integer")
            if d < 1:
                raise InvalidLatticeError(f"extents must be >= 1, got {dims}")

        offsets = []
        for off in neighborhood:
            off = tuple(int(v) for v in off)
            if len(off) != len(dims):
                raise InvalidLatticeError(
                    f"offset {off} has {len(off)} components, lattice has {len(dims)} dimensions"
                )
            offsets.append(off)
        if not offsets:
            raise InvalidLatticeError("neighborhood must contain at least one offset")

        self._size: Tuple[int, ...] = tuple(int(d) for d in dims)
        self._neighborhood: Tuple[Site, ...] = tuple(offsets)
        self._boundary: Boundary = Boundary.parse(boundary)
        self._n_sites: int = int(np.prod(self._size, dtype=np.int64))
        # mixed-radix strides, dimension 1 fastest
        self._strides: Tuple[int, ...] = tuple(
            int(np.prod(self._size[:d], dtype=np.int64)) for d in range(len(self._size))
        )

        self._neighbor_table: Optional[np.ndarray] = None
        self._edge_array: Optional[np.ndarray] = None
        self._edges: Optional[List[Edge]] = None

    # Read-only accessors
    @property
    def size(self) -> Tuple[int, ...]:
        return self._size

    @property
    def neighborhood(self) -> Tuple[Site, ...]:
        return self._neighborhood

    @property
    def boundary(self) -> Boundary:
        return self._boundary

    @property
    def ndim(self) -> int:
        return len(self._size)

    @property
    def n_sites(self) -> int:
        return self._n_sites

    def dimensions(self) -> Tuple[int, ...]:
        return self._size

    def __repr__(self) -> str:
        return (
            f"Lattice(size={self._size}, n_offsets={len(self._neighborhood)}, "
            f"boundary='{self._boundary.value}')"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Lattice):
            return NotImplemented
        return (
            self._size == other._size
            and self._neighborhood == other._neighborhood
            and self._boundary is other._boundary
        )

    def __hash__(self) -> int:
        return hash((self._size, self._neighborhood, self._boundary))

    # ------------------------------------------------------------------
    # Sites and indices
    # ------------------------------------------------------------------

    def all_sites(self) -> Iterator[Site]:
        """Yield every site in index order (dimension 1 fastest).

        Each call returns a fresh generator; the k-th site yielded is
        ``index_to_site(k + 1)``.
        """
        ranges = [range(1, d + 1) for d in reversed(self._size)]
        for rev in product(*ranges):
            yield rev[::-1]

    def _check_site(self, site: Sequence[int]) -> Site:
        try:
            coords = tuple(site)
        except TypeError:
            raise OutOfBoundsError(f"site {site!r} is not a coordinate tuple") from None
        for c in coords:
            if isinstance(c, (bool, np.bool_)) or not isinstance(c, (int, np.integer)):
                raise OutOfBoundsError(f"site {coords!r} has a non-integer coordinate {c!r}")
        site = tuple(int(c) for c in coords)
        if len(site) != len(self._size):
            raise OutOfBoundsError(
                f"site {site} has {len(site)} coordinates, lattice has {len(self._size)} dimensions"
            )
        for c, d in zip(site, self._size):
            if not 1 <= c <= d:
                raise OutOfBoundsError(f"site {site} outside lattice of size {self._size}")
        return site

    def contains(self, site: Sequence[int]) -> bool:
        """True when ``site`` is a valid coordinate tuple of this lattice."""
        try:
            self._check_site(site)
        except OutOfBoundsError:
            return False
        return True

    def site_to_index(self, site: Sequence[int]) -> int:
        """Integer index in ``[1, n_sites]``; bounds-checked, never wraps."""
        site = self._check_site(site)
        return 1 + sum((c - 1) * s for c, s in zip(site, self._strides))

    def index_to_site(self, n: int) -> Site:
        """Inverse of :meth:`site_to_index`."""
        if isinstance(n, (bool, np.bool_)) or not isinstance(n, (int, np.integer)):
            raise OutOfBoundsError(f"index {n!r} is not an integer")
        if not 1 <= n <= self._n_sites:
            raise OutOfBoundsError(f"index {n} outside [1, {self._n_sites}]")
        rem = int(n) - 1
        coords = []
        for d in self._size:
            coords.append(rem % d + 1)
            rem //= d
        return tuple(coords)

    def site_coordinates(self) -> np.ndarray:
        """(n_sites, D) array of 0-based coordinates in index order."""
        flat = np.arange(self._n_sites, dtype=np.int64)
        return np.stack(np.unravel_index(flat, self._size, order="F"), axis=1)

    # ------------------------------------------------------------------
    # Neighbors and edges
    # ------------------------------------------------------------------

    def neighbors_of(self, site: Sequence[int]) -> List[Site]:
        """Neighbors of ``site`` in neighborhood-template order.

        Periodic lattices keep every offset (wrapped); free lattices drop
        offsets leaving the lattice.
        """
        site = self._check_site(site)
        neighs = []
        for off in self._neighborhood:
            coords = []
            for c, dc, d in zip(site, off, self._size):
                nc = apply_boundary(c + dc, d, self._boundary)
                if nc is None:
                    break
                coords.append(nc)
            else:
                neighs.append(tuple(coords))
        return neighs

    def neighbor_table(self) -> np.ndarray:
        """(n_sites, n_offsets) int64 table of 0-based neighbor indices.

        Row ``i`` lists the neighbors of site index ``i + 1`` in template
        order; ``-1`` marks an offset dropped by a free boundary. The table is
        built once and returned read-only.
        """
        if self._neighbor_table is None:
            coords = self.site_coordinates()
            dims = np.asarray(self._size, dtype=np.int64)
            table = np.full((self._n_sites, len(self._neighborhood)), -1, dtype=np.int64)
            for k, off in enumerate(self._neighborhood):
                shifted = coords + np.asarray(off, dtype=np.int64)
                if self._boundary is Boundary.PERIODIC:
                    shifted = np.mod(shifted, dims)
                    valid = np.ones(self._n_sites, dtype=bool)
                else:
                    valid = np.all((shifted >= 0) & (shifted < dims), axis=1)
                idx = np.ravel_multi_index(tuple(shifted[valid].T), self._size, order="F")
                table[valid, k] = idx
            table.setflags(write=False)
            self._neighbor_table = table
        return self._neighbor_table

    def edge_array(self) -> np.ndarray:
        """(n_edges, 2) int64 array of 0-based site indices, aligned with :meth:`edges`.

        Every (site, neighbor) pair is put in canonical orientation (smaller
        coordinate tuple first) and kept only at its first occurrence when
        walking sites in index order and offsets in template order. Self
        loops (a site wrapping onto itself) are not edges.
        """
        if self._edge_array is None:
            table = self.neighbor_table()
            n_offsets = table.shape[1]
            # C-order rank of a site orders sites like tuple comparison
            coords = self.site_coordinates()
            lex_rank = np.ravel_multi_index(tuple(coords.T), self._size, order="C")

            src = np.repeat(np.arange(self._n_sites, dtype=np.int64), n_offsets)
            dst = table.ravel()
            keep = (dst >= 0) & (dst != src)
            src, dst = src[keep], dst[keep]
            swap = lex_rank[src] > lex_rank[dst]
            src, dst = np.where(swap, dst, src), np.where(swap, src, dst)

            pair_key = src * self._n_sites + dst
            _, first = np.unique(pair_key, return_index=True)
            first.sort()
            edges = np.stack([src[first], dst[first]], axis=1).astype(np.int64)
            edges.setflags(write=False)
            self._edge_array = edges
            logger.debug("Enumerated %d edges on %r", len(edges), self)
        return self._edge_array

    def edges(self) -> List[Edge]:
        """Every undirected edge exactly once, as :class:`Edge` tuples."""
        if self._edges is None:
            to_site = self.index_to_site
            self._edges = [
                Edge(to_site(int(a) + 1), to_site(int(b) + 1)) for a, b in self.edge_array()
            ]
        return list(self._edges)

    @property
    def n_edges(self) -> int:
        return int(self.edge_array().shape[0])


############################################################################################
# Presets
############################################################################################

def axis_offsets(ndim: int) -> List[Site]:
    """The 2*ndim axis-aligned unit offsets, -e_d before +e_d for each d."""
    offsets = []
    for d in range(ndim):
        for step in (-1, 1):
            off = [0] * ndim
            off[d] = step
            offsets.append(tuple(off))
    return offsets


def _extent(size: Union[int, Sequence[int]], ndim: int) -> Tuple[int, ...]:
    if isinstance(size, (int, np.integer)) and not isinstance(size, (bool, np.bool_)):
        return (int(size),) * ndim
    try:
        dims = tuple(size)
    except TypeError:
        raise InvalidLatticeError(f"size must be an int or a {ndim}-tuple, got {size!r}") from None
    if len(dims) != ndim:
        raise InvalidLatticeError(f"expected {ndim} extents, got {dims}")
    return dims


SQUARE_NEIGHBORHOOD = tuple(axis_offsets(2))
TRIANGULAR_NEIGHBORHOOD = SQUARE_NEIGHBORHOOD + ((1, 1), (-1, -1))
CUBIC_NEIGHBORHOOD = tuple(axis_offsets(3))
MOORE_NEIGHBORHOOD = tuple(
    (dr, dc) for dr in (-1, 0, 1) for dc in (-1, 0, 1) if (dr, dc) != (0, 0)
)


def square_lattice(size: Union[int, Sequence[int]], boundary: Union[str, Boundary] = "free") -> Lattice:
    """2D lattice with the 4 axis neighbors. ``size`` is N or (rows, cols)."""
    return Lattice(_extent(size, 2), SQUARE_NEIGHBORHOOD, boundary)


def triangular_lattice(size: Union[int, Sequence[int]], boundary: Union[str, Boundary] = "free") -> Lattice:
    """Triangular lattice embedded in a square grid: 4 axis neighbors plus (1,1), (-1,-1)."""
    return Lattice(_extent(size, 2), TRIANGULAR_NEIGHBORHOOD, boundary)


def cubic_lattice(size: Union[int, Sequence[int]], boundary: Union[str, Boundary] = "free") -> Lattice:
    return Lattice(_extent(size, 3), CUBIC_NEIGHBORHOOD, boundary)


def hypercubic_lattice(size: Sequence[int], boundary: Union[str, Boundary] = "free") -> Lattice:
    """Nearest-neighbor lattice in ``len(size)`` dimensions, two offsets per axis."""
    try:
        dims = tuple(size)
    except TypeError:
        raise InvalidLatticeError("hypercubic_lattice needs a size tuple") from None
    return Lattice(dims, axis_offsets(len(dims)), boundary)


def moore_lattice(size: Union[int, Sequence[int]], boundary: Union[str, Boundary] = "free") -> Lattice:
    """2D lattice with the 8-cell Moore neighborhood."""
    return Lattice(_extent(size, 2), MOORE_NEIGHBORHOOD, boundary)


LATTICE_PRESETS = {
    "square": square_lattice,
    "triangular": triangular_lattice,
    "cubic": cubic_lattice,
    "hypercubic": hypercubic_lattice,
    "moore": moore_lattice,
}


def make_lattice(kind: str, size, boundary: Union[str, Boundary] = "free") -> Lattice:
    """Build a preset lattice by name."""
    if kind not in LATTICE_PRESETS:
        raise InvalidLatticeError(
            f"Unknown lattice type {kind!r}. Valid types: {sorted(LATTICE_PRESETS)}"
        )
    return LATTICE_PRESETS[kind](size, boundary)
