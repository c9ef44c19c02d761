"""Cluster rendering for 2D percolation results.

Each cluster root gets one color; unoccupied sites of a site-percolation
result get ``unoccupied_color``. Pixel ``[i - 1, j - 1]`` of the raster is
site ``(i, j)``.
"""
import logging
from typing import Optional, Sequence, Union

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.animation import PillowWriter
from matplotlib.colors import hsv_to_rgb, to_rgb

from phase_transitions.dynamics import DynamicsRule, run_dynamics
from phase_transitions.errors import InvalidLatticeError
from phase_transitions.lattice import Lattice
from phase_transitions.percolation import percolation_from_config

# Module logger
logger = logging.getLogger(__name__)

COLOR_SCHEMES = ("random", "hsv", "size_ordered")
PaletteLike = Union[None, str, Sequence]


def _palette_colors(palette: PaletteLike) -> Optional[np.ndarray]:
    """(k, 3) RGB array from a colormap name or a sequence of colors."""
    if palette is None:
        return None
    if isinstance(palette, str):
        cmap = matplotlib.colormaps[palette]
        return np.asarray(cmap(np.linspace(0.0, 1.0, cmap.N)))[:, :3]
    colors = np.array([to_rgb(c) for c in palette], dtype=float)
    if colors.size == 0:
        raise ValueError("palette must contain at least one color")
    return colors


def cluster_color_raster(
    result,
    color_scheme: str = "random",
    palette: PaletteLike = None,
    saturation: float = 0.85,
    value: float = 0.95,
    unoccupied_color="white",
    color_seed: Optional[int] = None,
) -> np.ndarray:
    """RGB image of the clusters of a 2D percolation result.

    Args:
        result: SitePercResult or BondPercResult on a 2D lattice
        color_scheme: 'random' (default), 'hsv' or 'size_ordered'
        palette: colormap name or color list. With 'size_ordered' the
            palette is cycled from the largest cluster down; otherwise each
            root picks a palette entry from its hash.
        saturation: HSV saturation for the 'hsv' scheme
        value: HSV value for the 'hsv' scheme
        unoccupied_color: any matplotlib color for empty sites
        color_seed: seeds the random colors for reproducible images

    Returns:
        float array of shape (rows, cols, 3) in [0, 1]
    """
    lattice = result.lattice
    if lattice.ndim != 2:
        raise InvalidLatticeError("cluster rendering only supports 2D lattices")
    if color_scheme not in COLOR_SCHEMES:
        raise ValueError(f"color_scheme must be one of {COLOR_SCHEMES}, got '{color_scheme}'")

    mask = np.asarray(result.site_mask(), dtype=bool).ravel(order="F")
    roots = result.clusters.roots()
    occupied_roots = roots[mask]
    unique_roots, inverse = np.unique(occupied_roots, return_inverse=True)
    inverse = inverse.ravel()
    n_clusters = unique_roots.size

    rng = np.random.default_rng(color_seed)
    colors = _palette_colors(palette)

    if color_scheme == "size_ordered":
        sizes = np.bincount(inverse, minlength=n_clusters)
        # tie-break on the smallest site (tuple order) of each cluster
        coords = lattice.site_coordinates()[mask]
        lex = np.ravel_multi_index(tuple(coords.T), lattice.size, order="C")
        first_site = np.full(n_clusters, np.iinfo(np.int64).max, dtype=np.int64)
        np.minimum.at(first_site, inverse, lex)
        order = np.lexsort((first_site, -sizes))
        if colors is None:
            colors = rng.random((max(n_clusters, 1), 3))
        root_colors = np.empty((n_clusters, 3))
        root_colors[order] = colors[np.arange(n_clusters) % len(colors)]
    elif colors is not None:
        # Knuth multiplicative hash spreads neighboring roots over the palette
        fraction = (unique_roots.astype(np.uint64) * np.uint64(2654435761)) % np.uint64(10 ** 9) / 1e9
        root_colors = colors[np.minimum((fraction * len(colors)).astype(int), len(colors) - 1)]
    elif color_scheme == "hsv":
        hues = (unique_roots % 360) / 360.0
        hsv = np.stack([hues, np.full(n_clusters, saturation), np.full(n_clusters, value)], axis=1)
        root_colors = hsv_to_rgb(hsv) if n_clusters else np.empty((0, 3))
    else:
        root_colors = rng.random((n_clusters, 3))

    img_flat = np.tile(np.asarray(to_rgb(unoccupied_color), dtype=float), (lattice.n_sites, 1))
    img_flat[mask] = root_colors[inverse]
    return img_flat.reshape(lattice.size + (3,), order="F")


def plot_clusters(result, ax=None, title: str = "Cluster Plot", **raster_kwargs):
    """Draw the cluster raster into ``ax`` (a new figure when None).

    Returns:
        matplotlib Figure object
    """
    img = cluster_color_raster(result, **raster_kwargs)
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 6))
    else:
        fig = ax.figure
    ax.imshow(img, interpolation="nearest", aspect="equal")
    ax.set_axis_off()
    ax.set_title(title)
    return fig


def save_cluster_animation(
    config: np.ndarray,
    lattice: Lattice,
    rule: DynamicsRule,
    steps: int,
    filename: str = "cluster_animation.gif",
    interval: int = 1,
    seed=None,
    fps: int = 15,
    **raster_kwargs,
) -> np.ndarray:
    """Run dynamics and write one cluster frame every ``interval`` steps.

    Args:
        config: initial boolean or spin configuration
        lattice: 2D lattice
        rule: dynamics rule advancing the configuration
        steps: number of frames
        filename: output GIF path
        interval: dynamics steps between frames
        seed: seed or Generator for the dynamics
        fps: frames per second of the GIF
        raster_kwargs: forwarded to :func:`cluster_color_raster`

    Returns:
        The configuration after the last frame's dynamics
    """
    if lattice.ndim != 2:
        raise InvalidLatticeError("cluster animation only supports 2D lattices")
    assert isinstance(steps, int) and steps > 0, "steps must be a positive integer"
    assert isinstance(interval, int) and interval > 0, "interval must be a positive integer"

    rng = np.random.default_rng(seed)
    fig, ax = plt.subplots(figsize=(6, 6))
    ax.set_axis_off()
    image = ax.imshow(
        cluster_color_raster(percolation_from_config(lattice, config), **raster_kwargs),
        interpolation="nearest",
    )

    writer = PillowWriter(fps=fps)
    try:
        with writer.saving(fig, filename, dpi=100):
            for t in range(steps):
                if t > 0:
                    perc = percolation_from_config(lattice, config)
                    image.set_data(cluster_color_raster(perc, **raster_kwargs))
                ax.set_title(f"Step {t * interval}")
                writer.grab_frame()
                config = run_dynamics(config, lattice, rule, interval, rng)
    finally:
        plt.close(fig)

    logger.info("Saved %d-frame cluster animation to %s", steps, filename)
    return config
