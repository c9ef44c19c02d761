"""Disjoint-set partition and cluster statistics for percolation results.

The partition is a flat arena of integers (numpy ``parent`` and ``size``
arrays) over 1-based site indices. The analyzer turns a finished
percolation result into contiguous cluster labels, size statistics and
spanning-cluster detection on lattices of any dimension.
"""
from typing import Tuple, Dict, Optional

import numpy as np

from phase_transitions.errors import OutOfBoundsError, PreconditionError, ShapeMismatchError
from phase_transitions.numba_optimized import (
    _find_root,
    _union_roots,
    compress_all,
    union_active_edges,
    union_occupied_neighbors,
)


class DisjointSet:
    """Union-Find over the integers ``1..n``.

    Implements full path compression and union by size, giving near-constant
    amortized ``find``/``union``. Components only ever merge.

    Examples:
        >>> ds = DisjointSet(4)
        >>> ds.union(1, 2)
        True
        >>> ds.component_count()
        3
    """

    def __init__(self, n: int):
        if isinstance(n, (bool, np.bool_)) or not isinstance(n, (int, np.integer)):
            raise PreconditionError(f"DisjointSet size must be an int, got {n!r}")
        if n < 1:
            raise PreconditionError(f"DisjointSet needs at least one element, got {n}")
        self._parent = np.arange(int(n), dtype=np.int64)
        self._size = np.ones(int(n), dtype=np.int64)
        self._n_components = int(n)
        self._frozen = False

    def __len__(self) -> int:
        return int(self._parent.shape[0])

    def __repr__(self) -> str:
        state = ", frozen" if self._frozen else ""
        return f"DisjointSet(n={len(self)}, components={self._n_components}{state})"

    def freeze(self) -> "DisjointSet":
        """Refuse further merges. Queries keep working; returns ``self``."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_mutable(self) -> None:
        if self._frozen:
            raise PreconditionError("partition is frozen; merge into a copy() instead")

    def _index(self, x) -> int:
        """Validate a 1-based element and return its 0-based slot."""
        if isinstance(x, (bool, np.bool_)) or not isinstance(x, (int, np.integer)):
            raise OutOfBoundsError(f"element {x!r} is not an integer")
        if not 1 <= x <= len(self):
            raise OutOfBoundsError(f"element {x} outside [1, {len(self)}]")
        return int(x) - 1

    @property
    def parents(self) -> np.ndarray:
        """Copy of the 1-based parent array."""
        return self._parent + 1

    def find(self, x: int) -> int:
        """Root of the component containing ``x``, compressing the path."""
        return int(_find_root(self._parent, self._index(x))) + 1

    def union(self, x: int, y: int) -> bool:
        """Merge the components of ``x`` and ``y``.

        The smaller tree goes under the larger root. Returns False (and
        changes nothing) when they are already joined.
        """
        self._check_mutable()
        merged = bool(_union_roots(self._parent, self._size, self._index(x), self._index(y)))
        if merged:
            self._n_components -= 1
        return merged

    def in_same_set(self, x: int, y: int) -> bool:
        return self.find(x) == self.find(y)

    def component_count(self) -> int:
        return self._n_components

    def component_size(self, x: int) -> int:
        """Number of elements in the component containing ``x``."""
        root = _find_root(self._parent, self._index(x))
        return int(self._size[root])

    def roots(self) -> np.ndarray:
        """1-based root of every element, in element order."""
        return compress_all(self._parent) + 1

    def copy(self) -> "DisjointSet":
        """Independent, mergeable snapshot of the partition."""
        other = DisjointSet.__new__(DisjointSet)
        other._parent = self._parent.copy()
        other._size = self._size.copy()
        other._n_components = self._n_components
        other._frozen = False
        return other

    # Bulk operations over 0-based arrays, used by the percolation engine

    def union_edge_array(self, edge_array: np.ndarray, active: Optional[np.ndarray] = None) -> int:
        """Union each active row ``(a, b)`` of 0-based indices. Returns merges."""
        self._check_mutable()
        edge_array = np.asarray(edge_array, dtype=np.int64).reshape(-1, 2)
        if active is None:
            active = np.ones(edge_array.shape[0], dtype=bool)
        active = np.asarray(active, dtype=bool).ravel()
        if active.shape[0] != edge_array.shape[0]:
            raise ShapeMismatchError(
                f"{active.shape[0]} activity flags for {edge_array.shape[0]} edges"
            )
        if edge_array.size and (edge_array.min() < 0 or edge_array.max() >= len(self)):
            raise OutOfBoundsError("edge array references elements outside the partition")
        merges = union_active_edges(self._parent, self._size, edge_array, active)
        self._n_components -= merges
        return merges

    def union_occupied(self, occupied: np.ndarray, neighbor_table: np.ndarray) -> int:
        """Union every occupied element with its occupied table neighbors."""
        self._check_mutable()
        if occupied.shape[0] != len(self) or neighbor_table.shape[0] != len(self):
            raise ShapeMismatchError("occupancy and neighbor table must cover every element")
        merges = union_occupied_neighbors(self._parent, self._size, occupied, neighbor_table)
        self._n_components -= merges
        return merges


class ClusterAnalyzer:
    """Cluster statistics for site and bond percolation results.

    Works on anything exposing ``lattice``, ``clusters`` (a DisjointSet) and
    ``site_mask()`` (boolean array shaped like the lattice marking the sites
    that take part in clusters). Unoccupied sites in a site result carry
    label 0 and never count as clusters.

    Examples:
        >>> analyzer = ClusterAnalyzer()
        >>> labels, sizes = analyzer.detect_clusters(result)
        >>> stats = analyzer.get_stats(result)
        >>> percolates, label, _ = analyzer.check_percolation(result, axis=0)
    """

    def detect_clusters(self, result) -> Tuple[np.ndarray, Dict[int, int]]:
        """Contiguous cluster labels from the partition.

        Args:
            result: SitePercResult or BondPercResult

        Returns:
            Tuple containing:
            - labels: array shaped like the lattice, 0 for unoccupied sites,
                cluster IDs 1..n_clusters numbered by first site in index order
            - sizes: Dictionary mapping cluster label -> cluster size
        """
        lattice = result.lattice
        mask = np.asarray(result.site_mask(), dtype=bool).ravel(order="F")
        roots = result.clusters.roots()[mask]

        labels_flat = np.zeros(lattice.n_sites, dtype=np.int64)
        if roots.size == 0:
            return labels_flat.reshape(lattice.size, order="F"), {}

        _, first, inverse = np.unique(roots, return_index=True, return_inverse=True)
        # renumber by first appearance
        rank = np.empty(first.size, dtype=np.int64)
        rank[np.argsort(first)] = np.arange(1, first.size + 1)
        cluster_ids = rank[inverse.ravel()]
        labels_flat[mask] = cluster_ids

        counts = np.bincount(cluster_ids)
        sizes = {label: int(counts[label]) for label in range(1, first.size + 1)}
        return labels_flat.reshape(lattice.size, order="F"), sizes

    def count_clusters(self, result) -> int:
        """Number of distinct clusters containing at least one participating site."""
        mask = np.asarray(result.site_mask(), dtype=bool).ravel(order="F")
        return int(np.unique(result.clusters.roots()[mask]).size)

    def get_stats(self, result) -> Dict[str, object]:
        """Compute cluster statistics.

        Returns:
            Dictionary with keys:
            - 'n_clusters': Total number of clusters
            - 'sizes': Array of sizes (sorted descending)
            - 'largest': Size of largest cluster
            - 'largest_fraction': largest / n_sites (percolation order parameter)
            - 'mean_size': Mean cluster size
            - 'size_distribution': Dict[size -> count]
            - 'labels': Cluster label array
            - 'size_dict': Dict[label -> size]
        """
        labels, size_dict = self.detect_clusters(result)

        if len(size_dict) == 0:
            return {
                'n_clusters': 0,
                'sizes': np.array([], dtype=np.int64),
                'largest': 0,
                'largest_fraction': 0.0,
                'mean_size': 0.0,
                'size_distribution': {},
                'labels': labels,
                'size_dict': size_dict,
            }

        sizes = np.array(list(size_dict.values()), dtype=np.int64)
        sizes_sorted = np.sort(sizes)[::-1]
        largest = int(sizes_sorted[0])

        size_dist = {}
        for s in sizes:
            s_int = int(s)
            size_dist[s_int] = size_dist.get(s_int, 0) + 1

        return {
            'n_clusters': len(size_dict),
            'sizes': sizes_sorted,
            'largest': largest,
            'largest_fraction': largest / result.lattice.n_sites,
            'mean_size': float(np.mean(sizes)),
            'size_distribution': size_dist,
            'labels': labels,
            'size_dict': size_dict,
        }

    def check_percolation(
        self,
        result,
        axis: Optional[int] = None,
    ) -> Tuple[bool, int, np.ndarray]:
        """Detect whether a cluster spans the lattice.

        A cluster spans axis ``d`` when it holds a site with coordinate 1 and
        a site with coordinate ``size[d]`` along that axis.

        Args:
            result: percolation result to analyze
            axis: 0-based axis to check; None checks every axis

        Returns:
            Tuple containing:
            - percolates: True if a spanning cluster exists
            - cluster_label: Label of the largest spanning cluster (0 if none)
            - labels: Full cluster label array
        """
        labels, size_dict = self.detect_clusters(result)
        ndim = labels.ndim
        if axis is None:
            axes = range(ndim)
        else:
            if not isinstance(axis, (int, np.integer)) or not 0 <= axis < ndim:
                raise OutOfBoundsError(f"axis {axis!r} outside [0, {ndim})")
            axes = (int(axis),)

        spanning = set()
        for d in axes:
            low = np.take(labels, 0, axis=d)
            high = np.take(labels, -1, axis=d)
            spanning.update(set(low[low > 0].tolist()) & set(high[high > 0].tolist()))

        if spanning:
            perc_label = max(spanning, key=lambda x: size_dict[x])
            return True, int(perc_label), labels
        return False, 0, labels
