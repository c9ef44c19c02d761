"""Site and bond percolation on regular lattices.

Both models build a :class:`DisjointSet` over all sites of the lattice.
Randomness comes only from the ``seed`` argument (an int, a
``SeedSequence`` or an existing ``numpy.random.Generator``), so a fixed
seed reproduces the occupancy draw and the partition exactly.

Usage:
    >>> lat = square_lattice(100, boundary="periodic")
    >>> result = run_site_percolation(lat, 0.5927, seed=42)
    >>> result.n_clusters()
"""
from dataclasses import dataclass
from numbers import Real
from typing import List, Mapping, Union

import numpy as np
import logging

from phase_transitions.cluster_analysis import DisjointSet
from phase_transitions.errors import PreconditionError, ShapeMismatchError
from phase_transitions.lattice import Edge, Lattice, Site

# Module logger
logger = logging.getLogger(__name__)

SeedLike = Union[None, int, np.random.SeedSequence, np.random.Generator]


@dataclass(frozen=True, eq=False)
class SitePercResult:
    """Site percolation outcome.

    Attributes
    - lattice: the lattice percolation ran on
    - occupied_sites: read-only boolean array shaped ``lattice.size``
    - clusters: frozen partition over site indices; unoccupied sites are
      singletons whose roots carry no meaning. Merge into ``clusters.copy()``
      to extend it.
    """

    lattice: Lattice
    occupied_sites: np.ndarray
    clusters: DisjointSet

    def site_mask(self) -> np.ndarray:
        return self.occupied_sites

    def occupied_site_list(self) -> List[Site]:
        """Occupied sites in index order."""
        flat = np.flatnonzero(self.occupied_sites.ravel(order="F"))
        return [self.lattice.index_to_site(int(i) + 1) for i in flat]

    def cluster_root(self, site: Site) -> int:
        """Root index of the cluster holding ``site``."""
        return self.clusters.find(self.lattice.site_to_index(site))

    def n_occupied(self) -> int:
        return int(np.count_nonzero(self.occupied_sites))

    def n_clusters(self) -> int:
        """Distinct clusters containing at least one occupied site."""
        roots = self.clusters.roots()[self.occupied_sites.ravel(order="F")]
        return int(np.unique(roots).size)


@dataclass(frozen=True, eq=False)
class BondPercResult:
    """Bond percolation outcome.

    Attributes
    - lattice: the lattice percolation ran on
    - occupied_edges: read-only boolean vector aligned with ``edge_list``
    - edge_list: the lattice edges in the order the occupancy refers to
    - clusters: frozen partition over all site indices
    """

    lattice: Lattice
    occupied_edges: np.ndarray
    edge_list: List[Edge]
    clusters: DisjointSet

    def site_mask(self) -> np.ndarray:
        """Every site belongs to some cluster in the bond model."""
        return np.ones(self.lattice.size, dtype=bool)

    def active_edges(self) -> List[Edge]:
        return [e for e, on in zip(self.edge_list, self.occupied_edges) if on]

    def cluster_root(self, site: Site) -> int:
        return self.clusters.find(self.lattice.site_to_index(site))

    def n_clusters(self) -> int:
        return self.clusters.component_count()


def _check_probability(p) -> float:
    if isinstance(p, (bool, np.bool_)) or not isinstance(p, Real):
        raise PreconditionError(f"occupation probability must be a real number, got {p!r}")
    p = float(p)
    if not 0.0 <= p <= 1.0:
        raise PreconditionError(f"occupation probability must be in [0, 1], got {p}")
    return p


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr = np.array(arr, dtype=bool, copy=True)
    arr.setflags(write=False)
    return arr


def _site_clusters(lattice: Lattice, occupied: np.ndarray) -> DisjointSet:
    clusters = DisjointSet(lattice.n_sites)
    clusters.union_occupied(occupied.ravel(order="F"), lattice.neighbor_table())
    return clusters.freeze()


def _bond_clusters(lattice: Lattice, active: np.ndarray) -> DisjointSet:
    clusters = DisjointSet(lattice.n_sites)
    clusters.union_edge_array(lattice.edge_array(), active)
    return clusters.freeze()


# ============================================================================
# SITE PERCOLATION
# ============================================================================

def run_site_percolation(lattice: Lattice, p: float, seed: SeedLike = None) -> SitePercResult:
    """Occupy each site independently with probability ``p`` and extract clusters.

    Args:
        lattice: lattice to percolate
        p: occupation probability in [0, 1]
        seed: seed or Generator for the occupancy draw

    Returns:
        SitePercResult
    """
    p = _check_probability(p)
    rng = np.random.default_rng(seed)
    occupied = rng.random(lattice.size) < p
    result = SitePercResult(lattice, _frozen(occupied), _site_clusters(lattice, occupied))
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Site percolation p=%.4f on %r: %d occupied, %d clusters",
            p, lattice, result.n_occupied(), result.n_clusters(),
        )
    return result


def site_occupancy(lattice: Lattice, config) -> np.ndarray:
    """Normalize a site configuration into a boolean array shaped ``lattice.size``.

    Accepts a boolean array, a numeric/spin array (occupied where the value
    equals +1) or a mapping from site tuples to values (missing sites are
    unoccupied). Mapping values follow the array rule: a site is occupied
    where its value equals 1, so ``True`` and spin ``+1`` occupy
    while ``False``, ``0`` and spin ``-1`` do not.
    """
    if isinstance(config, Mapping):
        flat = np.zeros(lattice.n_sites, dtype=bool)
        for site, value in config.items():
            # every key is bounds-checked, occupied or not
            index = lattice.site_to_index(site)
            if value == 1:
                flat[index - 1] = True
        return flat.reshape(lattice.size, order="F")

    arr = np.asarray(config)
    if arr.shape != lattice.size:
        raise ShapeMismatchError(
            f"site configuration has shape {arr.shape}, lattice has {lattice.size}"
        )
    if arr.dtype == np.bool_:
        return arr.copy()
    return arr == 1


def percolation_from_site_config(lattice: Lattice, occupancy) -> SitePercResult:
    """Extract clusters from a supplied site configuration.

    Args:
        lattice: lattice the configuration lives on
        occupancy: boolean array, spin array in {-1, +1} or site->bool mapping

    Returns:
        SitePercResult
    """
    occupied = site_occupancy(lattice, occupancy)
    result = SitePercResult(lattice, _frozen(occupied), _site_clusters(lattice, occupied))
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "Site clusters from config on %r: %d occupied, %d clusters",
            lattice, result.n_occupied(), result.n_clusters(),
        )
    return result


# ============================================================================
# BOND PERCOLATION
# ============================================================================

def _require_edges(lattice: Lattice) -> List[Edge]:
    edge_list = lattice.edges()
    if not edge_list:
        raise PreconditionError(f"{lattice!r} has no edges; bond percolation is undefined")
    return edge_list


def run_bond_percolation(lattice: Lattice, p: float, seed: SeedLike = None) -> BondPercResult:
    """Activate each edge independently with probability ``p`` and extract clusters.

    Args:
        lattice: lattice to percolate
        p: bond probability in [0, 1]
        seed: seed or Generator for the edge draw

    Returns:
        BondPercResult
    """
    p = _check_probability(p)
    edge_list = _require_edges(lattice)
    rng = np.random.default_rng(seed)
    active = rng.random(len(edge_list)) < p
    result = BondPercResult(lattice, _frozen(active), edge_list, _bond_clusters(lattice, active))
    logger.debug(
        "Bond percolation p=%.4f on %r: %d/%d edges active, %d clusters",
        p, lattice, int(active.sum()), len(edge_list), result.n_clusters(),
    )
    return result


def percolation_from_bond_config(lattice: Lattice, edge_occupancy) -> BondPercResult:
    """Extract clusters from a supplied edge configuration.

    Args:
        lattice: lattice the configuration lives on
        edge_occupancy: boolean vector aligned with ``lattice.edges()``

    Returns:
        BondPercResult
    """
    edge_list = _require_edges(lattice)
    active = np.asarray(edge_occupancy)
    if active.ndim != 1 or active.shape[0] != len(edge_list):
        raise ShapeMismatchError(
            f"edge configuration has shape {active.shape}, lattice has {len(edge_list)} edges"
        )
    if active.dtype != np.bool_:
        active = active == 1
    result = BondPercResult(lattice, _frozen(active), edge_list, _bond_clusters(lattice, active))
    logger.debug(
        "Bond clusters from config on %r: %d/%d edges active, %d clusters",
        lattice, int(active.sum()), len(edge_list), result.n_clusters(),
    )
    return result


def percolation_from_config(lattice: Lattice, config) -> SitePercResult:
    """Cluster extraction for a dynamics configuration (boolean or spin array)."""
    return percolation_from_site_config(lattice, config)
