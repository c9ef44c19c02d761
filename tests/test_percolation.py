"""Tests for site and bond percolation."""

import math

import numpy as np
import pytest

from phase_transitions.cluster_analysis import ClusterAnalyzer
from phase_transitions.errors import (
    OutOfBoundsError,
    PercolationError,
    PrecondtionError,
    PreconditionError,
    ShapeMismatchError,
)
from phase_transitions.lattice import (
    Lattice,
    cubic_lattice,
    moore_lattice,
    square_lattice,
    triangular_lattice,
)
from phase_transitions.percolation import (
    BondPercResult,
    SitePercResult,
    percolation_from_bond_config,
    percolation_from_config,
    percolation_from_site_config,
    run_bond_percolation,
    run_site_percolation,
)


# ============================================================================
# SITE PERCOLATION
# ============================================================================

class TestSitePercolation:

    def test_result_shape(self, free_5x5, seed):
        result = run_site_percolation(free_5x5, 0.5, seed=seed)
        assert isinstance(result, SitePercResult)
        assert result.occupied_sites.shape == (5, 5)
        assert result.occupied_sites.dtype == bool
        assert len(result.clusters) == 25

    @pytest.mark.parametrize("p", [0.0, 0.2, 0.5, 0.8, 1.0])
    @pytest.mark.parametrize("n", [5, 10, 20])
    def test_component_count_bounds(self, n, p, seed):
        result = run_site_percolation(square_lattice(n), p, seed=seed)
        k = result.n_occupied()
        c = result.clusters.component_count()
        assert c <= n * n
        assert c >= n * n - k
        assert result.n_clusters() <= k

    def test_empty_and_full(self, free_5x5):
        empty = run_site_percolation(free_5x5, 0.0, seed=1)
        assert empty.n_occupied() == 0
        assert empty.n_clusters() == 0
        assert empty.clusters.component_count() == 25

        full = run_site_percolation(free_5x5, 1.0, seed=1)
        assert full.n_occupied() == 25
        assert full.n_clusters() == 1
        assert full.clusters.component_count() == 1

    @pytest.mark.parametrize("p", [-0.1, 1.1, math.nan, "0.5", None, True])
    def test_invalid_probability(self, free_5x5, p):
        with pytest.raises(PreconditionError):
            run_site_percolation(free_5x5, p)

    def test_historical_error_name(self, free_5x5):
        with pytest.raises(PrecondtionError):
            run_site_percolation(free_5x5, 2.0)
        with pytest.raises(PercolationError):
            run_site_percolation(free_5x5, 2.0)

    def test_same_seed_reproduces(self, seed):
        lat = triangular_lattice(20, "periodic")
        a = run_site_percolation(lat, 0.5, seed=seed)
        b = run_site_percolation(lat, 0.5, seed=seed)
        np.testing.assert_array_equal(a.occupied_sites, b.occupied_sites)
        np.testing.assert_array_equal(a.clusters.roots(), b.clusters.roots())

    def test_different_seeds_differ(self):
        lat = square_lattice(20)
        a = run_site_percolation(lat, 0.5, seed=1)
        b = run_site_percolation(lat, 0.5, seed=2)
        assert not np.array_equal(a.occupied_sites, b.occupied_sites)

    def test_accepts_generator(self, seed):
        lat = square_lattice(10)
        a = run_site_percolation(lat, 0.5, seed=np.random.default_rng(seed))
        b = run_site_percolation(lat, 0.5, seed=np.random.default_rng(seed))
        np.testing.assert_array_equal(a.occupied_sites, b.occupied_sites)

    def test_occupancy_is_read_only(self, free_5x5):
        result = run_site_percolation(free_5x5, 0.5, seed=3)
        with pytest.raises(ValueError):
            result.occupied_sites[0, 0] = True

    def test_occupied_sites_share_roots_with_occupied_neighbors(self, seed):
        lat = cubic_lattice(5, "periodic")
        result = run_site_percolation(lat, 0.4, seed=seed)
        for site in result.occupied_site_list():
            for nb in lat.neighbors_of(site):
                if result.occupied_sites[tuple(c - 1 for c in nb)]:
                    assert result.cluster_root(site) == result.cluster_root(nb)


class TestSiteConfig:

    def test_bool_array_is_copied(self, free_5x5):
        config = np.zeros((5, 5), dtype=bool)
        config[0, 0] = config[0, 1] = True
        result = percolation_from_site_config(free_5x5, config)
        config[4, 4] = True
        assert not result.occupied_sites[4, 4]
        assert result.cluster_root((1, 1)) == result.cluster_root((1, 2))
        assert result.n_clusters() == 1

    def test_spin_array(self, free_5x5):
        spins = -np.ones((5, 5), dtype=np.int8)
        spins[2, :] = 1
        result = percolation_from_config(free_5x5, spins)
        assert result.n_occupied() == 5
        assert result.n_clusters() == 1

    def test_mapping(self, free_5x5):
        result = percolation_from_site_config(free_5x5, {(1, 1): True, (3, 3): True, (2, 2): False})
        assert result.n_occupied() == 2
        assert result.n_clusters() == 2
        assert result.occupied_site_list() == [(1, 1), (3, 3)]

    def test_mapping_with_bad_site(self, free_5x5):
        with pytest.raises(OutOfBoundsError):
            percolation_from_site_config(free_5x5, {(6, 1): True})

    def test_mapping_with_fractional_site(self, free_5x5):
        with pytest.raises(OutOfBoundsError):
            percolation_from_site_config(free_5x5, {(1.5, 1): True})

    def test_spin_mapping_matches_spin_array(self):
        lat = square_lattice(2)
        down = {site: -1 for site in lat.all_sites()}
        assert percolation_from_site_config(lat, down).n_occupied() == 0
        assert percolation_from_site_config(lat, -np.ones((2, 2), dtype=int)).n_occupied() == 0

        mixed = {(1, 1): 1, (2, 1): -1, (1, 2): True, (2, 2): 0}
        result = percolation_from_site_config(lat, mixed)
        assert result.occupied_site_list() == [(1, 1), (1, 2)]

    def test_partition_is_frozen(self, free_5x5):
        result = run_site_percolation(free_5x5, 0.0, seed=0)
        with pytest.raises(PreconditionError):
            result.clusters.union(1, 25)
        extended = result.clusters.copy()
        assert extended.union(1, 25)
        assert result.clusters.component_count() == 25
        assert extended.component_count() == 24

    def test_shape_mismatch(self, free_5x5):
        with pytest.raises(ShapeMismatchError):
            percolation_from_site_config(free_5x5, np.ones((5, 4), dtype=bool))

    def test_diagonal_depends_on_neighborhood(self):
        config = np.zeros((4, 4), dtype=bool)
        config[0, 0] = config[1, 1] = True
        assert percolation_from_site_config(square_lattice(4), config).n_clusters() == 2
        assert percolation_from_site_config(triangular_lattice(4), config).n_clusters() == 1
        assert percolation_from_site_config(moore_lattice(4), config).n_clusters() == 1

    def test_wrap_depends_on_boundary(self, free_5x5, periodic_5x5):
        config = np.zeros((5, 5), dtype=bool)
        config[0, 0] = config[4, 0] = True
        assert percolation_from_site_config(free_5x5, config).n_clusters() == 2
        assert percolation_from_site_config(periodic_5x5, config).n_clusters() == 1


# ============================================================================
# BOND PERCOLATION
# ============================================================================

class TestBondPercolation:

    def test_result(self, free_5x5, seed):
        result = run_bond_percolation(free_5x5, 0.5, seed=seed)
        assert isinstance(result, BondPercResult)
        assert result.edge_list == free_5x5.edges()
        assert result.occupied_edges.shape == (40,)
        assert len(result.clusters) == 25
        with pytest.raises(ValueError):
            result.occupied_edges[0] = True

    def test_extremes(self, free_5x5, periodic_5x5):
        assert run_bond_percolation(free_5x5, 1.0, seed=0).n_clusters() == 1
        assert run_bond_percolation(periodic_5x5, 1.0, seed=0).n_clusters() == 1
        assert run_bond_percolation(free_5x5, 0.0, seed=0).n_clusters() == 25

    def test_active_edges_join_endpoints(self, seed):
        lat = triangular_lattice(6, "periodic")
        result = run_bond_percolation(lat, 0.4, seed=seed)
        for e in result.active_edges():
            assert result.cluster_root(e.site1) == result.cluster_root(e.site2)

    def test_component_count_bounds(self, seed):
        lat = square_lattice(10)
        result = run_bond_percolation(lat, 0.5, seed=seed)
        n_active = int(result.occupied_edges.sum())
        c = result.n_clusters()
        assert lat.n_sites - n_active <= c <= lat.n_sites

    def test_same_seed_reproduces(self, seed):
        lat = cubic_lattice(4, "periodic")
        a = run_bond_percolation(lat, 0.3, seed=seed)
        b = run_bond_percolation(lat, 0.3, seed=seed)
        np.testing.assert_array_equal(a.occupied_edges, b.occupied_edges)
        np.testing.assert_array_equal(a.clusters.roots(), b.clusters.roots())

    def test_single_edge_config(self, free_5x5):
        active = np.zeros(free_5x5.n_edges, dtype=int)
        active[3] = 1
        result = percolation_from_bond_config(free_5x5, active)
        e = free_5x5.edges()[3]
        assert result.n_clusters() == 24
        assert result.cluster_root(e.site1) == result.cluster_root(e.site2)

    @pytest.mark.parametrize("shape", [(39,), (41,), (40, 1)])
    def test_config_shape_mismatch(self, free_5x5, shape):
        with pytest.raises(ShapeMismatchError):
            percolation_from_bond_config(free_5x5, np.ones(shape, dtype=bool))

    def test_partition_is_frozen(self, free_5x5):
        result = run_bond_percolation(free_5x5, 0.0, seed=0)
        assert result.clusters.frozen
        with pytest.raises(PreconditionError):
            result.clusters.union_edge_array(free_5x5.edge_array())
        assert result.n_clusters() == 25

    def test_no_edges(self):
        lat = square_lattice(1, "periodic")
        with pytest.raises(PreconditionError):
            run_bond_percolation(lat, 0.5)
        with pytest.raises(PreconditionError):
            percolation_from_bond_config(lat, np.zeros(0, dtype=bool))

    def test_invalid_probability(self, free_5x5):
        with pytest.raises(PreconditionError):
            run_bond_percolation(free_5x5, 1.5)


class TestSiteBondAgreement:
    """Full occupancy gives one cluster per connected component of the lattice."""

    @pytest.mark.parametrize("lattice", [
        square_lattice(6),
        square_lattice(4, "periodic"),
        triangular_lattice((3, 5)),
        cubic_lattice(3, "periodic"),
        Lattice((4, 3), [(1, 0), (-1, 0)]),
    ])
    def test_same_partition(self, lattice):
        analyzer = ClusterAnalyzer()
        site = run_site_percolation(lattice, 1.0, seed=0)
        bond = run_bond_percolation(lattice, 1.0, seed=0)
        site_labels, _ = analyzer.detect_clusters(site)
        bond_labels, _ = analyzer.detect_clusters(bond)
        np.testing.assert_array_equal(site_labels, bond_labels)
        assert site.n_clusters() == bond.n_clusters()

    def test_disconnected_template_counts_components(self):
        lat = Lattice((4, 3), [(1, 0), (-1, 0)])
        assert run_site_percolation(lat, 1.0, seed=0).n_clusters() == 3
        assert run_bond_percolation(lat, 1.0, seed=0).n_clusters() == 3
