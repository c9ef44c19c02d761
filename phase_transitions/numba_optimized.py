#!/usr/bin/env python3
"""
Numba-optimized kernels for union-find cluster extraction and lattice dynamics.

Every kernel works on flat, 0-based site indices (dimension 1 fastest, the
same order as ``Lattice.site_to_index`` minus one) and on the dense
neighbor table produced by ``Lattice.neighbor_table()``, where ``-1`` marks
a neighbor dropped by a free boundary.

The dynamics kernels never draw random numbers themselves: callers draw the
site choices and uniforms from a ``numpy.random.Generator`` and pass them in,
so a seeded generator fully determines the outcome.

Usage:
    from phase_transitions.numba_optimized import (
        union_occupied_neighbors,   # site percolation sweep
        union_active_edges,         # bond percolation sweep
        compress_all,               # root of every element
        warmup_kernels,
    )
"""

import math

import numpy as np
from numba import njit


# ============================================================================
# UNION-FIND KERNELS
# ============================================================================

@njit(cache=True)
def _find_root(parent: np.ndarray, x: int) -> int:
    """Root of ``x`` with full path compression (two passes)."""
    root = x
    while parent[root] != root:
        root = parent[root]
    while parent[x] != root:
        nxt = parent[x]
        parent[x] = root
        x = nxt
    return root


@njit(cache=True)
def _union_roots(parent: np.ndarray, size: np.ndarray, a: int, b: int) -> bool:
    """Union by size. Returns True when two distinct components were merged."""
    ra = _find_root(parent, a)
    rb = _find_root(parent, b)
    if ra == rb:
        return False
    if size[ra] < size[rb]:
        ra, rb = rb, ra
    parent[rb] = ra
    size[ra] += size[rb]
    return True


@njit(cache=True)
def _union_active_edges(
    parent: np.ndarray,
    size: np.ndarray,
    edge_array: np.ndarray,
    active: np.ndarray,
) -> int:
    """Union the endpoints of every active edge; returns the merge count."""
    merges = 0
    for k in range(edge_array.shape[0]):
        if active[k]:
            if _union_roots(parent, size, edge_array[k, 0], edge_array[k, 1]):
                merges += 1
    return merges


@njit(cache=True)
def _union_occupied_neighbors(
    parent: np.ndarray,
    size: np.ndarray,
    occupied: np.ndarray,
    neighbor_table: np.ndarray,
) -> int:
    """Union every occupied site with each of its occupied neighbors."""
    n_sites, n_neighbors = neighbor_table.shape
    merges = 0
    for i in range(n_sites):
        if not occupied[i]:
            continue
        for k in range(n_neighbors):
            j = neighbor_table[i, k]
            if j >= 0 and occupied[j]:
                if _union_roots(parent, size, i, j):
                    merges += 1
    return merges


@njit(cache=True)
def _compress_all(parent: np.ndarray) -> np.ndarray:
    """Fully compress the forest and return the root of every element."""
    roots = np.empty(parent.shape[0], dtype=parent.dtype)
    for i in range(parent.shape[0]):
        roots[i] = _find_root(parent, i)
    return roots


# ============================================================================
# DYNAMICS KERNELS (sequential random-site updates)
# ============================================================================

@njit(cache=True)
def _random_flip_kernel(
    config: np.ndarray,
    sites: np.ndarray,
    uniforms: np.ndarray,
    flip_probability: float,
) -> None:
    for k in range(sites.shape[0]):
        if uniforms[k] < flip_probability:
            i = sites[k]
            config[i] = not config[i]


@njit(cache=True)
def _majority_kernel(
    config: np.ndarray,
    neighbor_table: np.ndarray,
    sites: np.ndarray,
) -> None:
    n_neighbors = neighbor_table.shape[1]
    for k in range(sites.shape[0]):
        i = sites[k]
        occupied = 0
        total = 0
        for m in range(n_neighbors):
            j = neighbor_table[i, m]
            if j >= 0:
                total += 1
                if config[j]:
                    occupied += 1
        if total == 0:
            continue
        # ties keep the current state
        if 2 * occupied > total:
            config[i] = True
        elif 2 * occupied < total:
            config[i] = False


@njit(cache=True)
def _hardcore_kernel(
    config: np.ndarray,
    neighbor_table: np.ndarray,
    sites: np.ndarray,
) -> None:
    n_neighbors = neighbor_table.shape[1]
    for k in range(sites.shape[0]):
        i = sites[k]
        if not config[i]:
            continue
        for m in range(n_neighbors):
            j = neighbor_table[i, m]
            if j >= 0 and config[j]:
                config[i] = False
                break


@njit(cache=True)
def _resample_kernel(
    config: np.ndarray,
    sites: np.ndarray,
    uniforms: np.ndarray,
    p: float,
) -> None:
    for k in range(sites.shape[0]):
        config[sites[k]] = uniforms[k] < p


@njit(cache=True)
def _ising_kernel(
    spins: np.ndarray,
    neighbor_table: np.ndarray,
    sites: np.ndarray,
    uniforms: np.ndarray,
    beta: float,
    coupling: int,
) -> None:
    """Metropolis single-spin updates."""
    n_neighbors = neighbor_table.shape[1]
    for k in range(sites.shape[0]):
        i = sites[k]
        s = spins[i]
        field = 0
        for m in range(n_neighbors):
            j = neighbor_table[i, m]
            if j >= 0:
                field += spins[j]
        d_energy = 2.0 * coupling * s * field
        if d_energy <= 0.0 or uniforms[k] < math.exp(-beta * d_energy):
            spins[i] = -s


# ============================================================================
# PUBLIC API
# ============================================================================

def union_active_edges(
    parent: np.ndarray,
    size: np.ndarray,
    edge_array: np.ndarray,
    active: np.ndarray,
) -> int:
    """
    Bond-percolation sweep over a canonical edge array.

    Args:
        parent: int64 parent array, modified in place
        size: int64 component-size array, modified in place
        edge_array: (n_edges, 2) array of 0-based flat site indices
        active: boolean vector aligned with ``edge_array``

    Returns:
        Number of merges performed (drop in component count)
    """
    return int(_union_active_edges(
        parent, size,
        np.ascontiguousarray(edge_array, dtype=np.int64),
        np.ascontiguousarray(active, dtype=np.bool_),
    ))


def union_occupied_neighbors(
    parent: np.ndarray,
    size: np.ndarray,
    occupied: np.ndarray,
    neighbor_table: np.ndarray,
) -> int:
    """
    Site-percolation sweep.

    Args:
        parent: int64 parent array, modified in place
        size: int64 component-size array, modified in place
        occupied: flat boolean occupancy in site-index order
        neighbor_table: (n_sites, n_offsets) int64 table, -1 for missing

    Returns:
        Number of merges performed
    """
    return int(_union_occupied_neighbors(
        parent, size,
        np.ascontiguousarray(occupied, dtype=np.bool_),
        np.ascontiguousarray(neighbor_table, dtype=np.int64),
    ))


def compress_all(parent: np.ndarray) -> np.ndarray:
    """Root (0-based) of every element; compresses ``parent`` in place."""
    return _compress_all(parent)


def warmup_kernels() -> None:
    """Pre-compile every kernel on a 3x3 periodic square lattice."""
    n = 9
    table = np.empty((n, 4), dtype=np.int64)
    for i in range(n):
        r, c = i % 3, i // 3
        table[i, 0] = ((r - 1) % 3) + 3 * c
        table[i, 1] = ((r + 1) % 3) + 3 * c
        table[i, 2] = r + 3 * ((c - 1) % 3)
        table[i, 3] = r + 3 * ((c + 1) % 3)

    parent = np.arange(n, dtype=np.int64)
    size = np.ones(n, dtype=np.int64)
    occupied = np.ones(n, dtype=np.bool_)
    union_occupied_neighbors(parent, size, occupied, table)
    compress_all(parent)

    parent = np.arange(n, dtype=np.int64)
    size = np.ones(n, dtype=np.int64)
    edges = np.array([[0, 1], [1, 2]], dtype=np.int64)
    union_active_edges(parent, size, edges, np.ones(2, dtype=np.bool_))

    sites = np.arange(n, dtype=np.int64)
    uniforms = np.full(n, 0.5)
    config = np.zeros(n, dtype=np.bool_)
    _random_flip_kernel(config, sites, uniforms, 0.5)
    _majority_kernel(config, table, sites)
    _hardcore_kernel(config, table, sites)
    _resample_kernel(config, sites, uniforms, 0.5)
    spins = np.ones(n, dtype=np.int8)
    _ising_kernel(spins, table, sites, uniforms, 0.5, 1)
