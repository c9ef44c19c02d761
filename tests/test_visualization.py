"""Rendering tests (Agg backend, no display)."""

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pytest
from matplotlib.figure import Figure

from phase_transitions.dynamics import MajorityDynamics
from phase_transitions.errors import InvalidLatticeError
from phase_transitions.lattice import cubic_lattice, square_lattice
from phase_transitions.percolation import (
    percolation_from_site_config,
    run_bond_percolation,
    run_site_percolation,
)
from phase_transitions.visualization import (
    cluster_color_raster,
    plot_clusters,
    save_cluster_animation,
)

WHITE = np.array([1.0, 1.0, 1.0])


@pytest.fixture
def two_clusters(free_5x5):
    """A 5-site column cluster and a single-site cluster."""
    config = np.zeros((5, 5), dtype=bool)
    config[:, 0] = True
    config[2, 3] = True
    return percolation_from_site_config(free_5x5, config)


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


class TestRaster:

    @pytest.mark.parametrize("scheme", ["random", "hsv", "size_ordered"])
    def test_shape_and_empty_sites(self, two_clusters, scheme):
        img = cluster_color_raster(two_clusters, color_scheme=scheme, color_seed=0)
        assert img.shape == (5, 5, 3)
        assert np.all((img >= 0) & (img <= 1))
        assert np.allclose(img[0, 1], WHITE)
        assert np.allclose(img[4, 4], WHITE)

    @pytest.mark.parametrize("scheme", ["random", "hsv", "size_ordered"])
    def test_one_color_per_cluster(self, two_clusters, scheme):
        img = cluster_color_raster(two_clusters, color_scheme=scheme, color_seed=0)
        for i in range(1, 5):
            np.testing.assert_allclose(img[i, 0], img[0, 0])
        assert not np.allclose(img[0, 0], img[2, 3])

    def test_size_ordered_palette(self, two_clusters):
        img = cluster_color_raster(two_clusters, color_scheme="size_ordered", palette=["red", "blue"])
        np.testing.assert_allclose(img[0, 0], [1.0, 0.0, 0.0])
        np.testing.assert_allclose(img[2, 3], [0.0, 0.0, 1.0])

    def test_colormap_palette(self, two_clusters):
        img = cluster_color_raster(two_clusters, palette="tab20")
        assert img.shape == (5, 5, 3)

    def test_color_seed_reproduces(self, seed):
        result = run_site_percolation(square_lattice(10), 0.6, seed=seed)
        a = cluster_color_raster(result, color_seed=7)
        b = cluster_color_raster(result, color_seed=7)
        np.testing.assert_array_equal(a, b)

    def test_custom_unoccupied_color(self, two_clusters):
        img = cluster_color_raster(two_clusters, unoccupied_color="black")
        np.testing.assert_allclose(img[4, 4], [0.0, 0.0, 0.0])

    def test_bond_result_colors_every_site(self, seed):
        result = run_bond_percolation(square_lattice(3), 1.0, seed=seed)
        img = cluster_color_raster(result, palette=["green"])
        np.testing.assert_allclose(img.reshape(-1, 3), np.tile([0.0, 0.5, 0.0], (9, 1)), atol=0.01)

    def test_rejects_non_2d(self, seed):
        result = run_site_percolation(cubic_lattice(3), 0.5, seed=seed)
        with pytest.raises(InvalidLatticeError):
            cluster_color_raster(result)

    def test_unknown_scheme(self, two_clusters):
        with pytest.raises(ValueError):
            cluster_color_raster(two_clusters, color_scheme="rainbow")


class TestPlotting:

    def test_plot_clusters_returns_figure(self, two_clusters):
        fig = plot_clusters(two_clusters, title="clusters")
        assert isinstance(fig, Figure)

    def test_plot_into_existing_axes(self, two_clusters):
        fig, ax = plt.subplots()
        assert plot_clusters(two_clusters, ax=ax, color_scheme="hsv") is fig
        assert ax.get_title() == "Cluster Plot"

    def test_animation_writes_gif(self, tmp_path, seed):
        lat = square_lattice(8, "periodic")
        config = np.random.default_rng(seed).random(lat.size) < 0.5
        out = tmp_path / "majority.gif"
        final = save_cluster_animation(
            config, lat, MajorityDynamics(), steps=3, filename=str(out), seed=seed,
        )
        assert out.exists() and out.stat().st_size > 0
        assert final.shape == lat.size

    def test_animation_rejects_non_2d(self, tmp_path):
        lat = cubic_lattice(2)
        with pytest.raises(InvalidLatticeError):
            save_cluster_animation(
                np.zeros(lat.size, dtype=bool), lat, MajorityDynamics(), 2,
                filename=str(tmp_path / "x.gif"),
            )
