"""Shared fixtures for the lattice and percolation tests."""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from phase_transitions.lattice import square_lattice


@pytest.fixture(scope="session")
def seed():
    """Fixed seed for reproducibility."""
    return 42


@pytest.fixture
def rng(seed):
    return np.random.default_rng(seed)


@pytest.fixture
def free_5x5():
    """5x5 square lattice with free boundaries."""
    return square_lattice(5, boundary="free")


@pytest.fixture
def periodic_5x5():
    """5x5 square lattice with periodic boundaries."""
    return square_lattice(5, boundary="periodic")
