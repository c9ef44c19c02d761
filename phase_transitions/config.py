#!/usr/bin/env python3
"""
Configuration for percolation sweeps and dynamics runs.

Single Config dataclass with pre-defined instances for the standard runs.

Usage:
    from phase_transitions.config import SITE_SWEEP_CONFIG, Config

    # Use pre-defined config
    cfg = SITE_SWEEP_CONFIG

    # Or create custom config
    cfg = Config(lattice_size=(200, 200), n_replicates=50)

    # Or modify existing
    cfg = Config(**{**asdict(SITE_SWEEP_CONFIG), 'boundary': 'periodic'})
"""

from dataclasses import dataclass
from typing import Tuple, Optional
import numpy as np

from phase_transitions.dynamics import (
    DynamicsRule,
    HardcoreModel,
    IndependentResample,
    IsingDynamics,
    MajorityDynamics,
    RandomFlip,
)
from phase_transitions.lattice import Lattice, make_lattice


@dataclass
class Config:
    """Central configuration for sweeps and dynamics runs."""

    # Lattice settings
    lattice_type: str = "square"  # square | triangular | cubic | hypercubic | moore
    lattice_size: Tuple[int, ...] = (64, 64)
    boundary: str = "free"

    # Percolation model: "site" or "bond"
    model: str = "site"

    # Probability sweep
    p_range: Tuple[float, float] = (0.45, 0.75)
    n_p: int = 31

    # Number of independent draws per probability
    n_replicates: int = 20

    # Base seed; replicate seeds are spawned from it
    seed: int = 12345

    # Axis a cluster has to span (None = any axis)
    spanning_axis: Optional[int] = None

    # Dynamics
    dynamics_rule: str = "majority"  # flip | majority | hardcore | resample | ising
    dynamics_steps: int = 50
    update_fraction: float = 1.0
    flip_probability: float = 0.1
    resample_p: float = 0.59
    ising_beta: float = 0.44
    ising_J: int = 1

    # Parallelization
    n_jobs: int = -1  # Use all available cores by default

    # Helpers
    def build_lattice(self) -> Lattice:
        """Lattice described by ``lattice_type``, ``lattice_size`` and ``boundary``."""
        return make_lattice(self.lattice_type, tuple(self.lattice_size), self.boundary)

    def get_probabilities(self) -> np.ndarray:
        """Generate occupation probability sweep values."""
        return np.linspace(self.p_range[0], self.p_range[1], self.n_p)

    def get_seeds(self) -> np.ndarray:
        """One 32-bit seed per (probability, replicate), reproducible from ``seed``."""
        ss = np.random.SeedSequence(self.seed)
        return ss.generate_state(self.n_p * self.n_replicates).reshape(self.n_p, self.n_replicates)

    def build_rule(self) -> DynamicsRule:
        rules = {
            "flip": lambda: RandomFlip(self.flip_probability),
            "majority": MajorityDynamics,
            "hardcore": HardcoreModel,
            "resample": lambda: IndependentResample(self.resample_p),
            "ising": lambda: IsingDynamics(self.ising_beta, self.ising_J),
        }
        if self.dynamics_rule not in rules:
            raise ValueError(f"Unknown dynamics rule '{self.dynamics_rule}'. Valid rules: {sorted(rules)}")
        return rules[self.dynamics_rule]()

    def estimate_runtime(self, n_cores: int = 8) -> str:
        """Estimate total runtime based on benchmark data."""
        # Benchmark: ~4 ms per 100x100 square site-percolation run
        ref_sites = 100 * 100
        ref_seconds = 0.004

        n_sites = int(np.prod(self.lattice_size))
        per_run_s = ref_seconds * n_sites / ref_sites
        if self.model == "bond":
            per_run_s *= 2  # edge enumeration and twice as many unions

        n_sims = self.n_p * self.n_replicates
        total_seconds = n_sims * per_run_s / max(1, n_cores)
        return f"{n_sims:,} runs, ~{total_seconds:.1f}s on {n_cores} cores"


############################################################################################
# Pre-defined configurations
############################################################################################

# Square-lattice site percolation around p_c ~ 0.5927
SITE_SWEEP_CONFIG = Config(
    lattice_type="square",
    lattice_size=(64, 64),
    model="site",
    p_range=(0.45, 0.75),
    n_p=31,
    n_replicates=20,
)

# Square-lattice bond percolation around p_c = 1/2
BOND_SWEEP_CONFIG = Config(
    lattice_type="square",
    lattice_size=(64, 64),
    model="bond",
    p_range=(0.35, 0.65),
    n_p=31,
    n_replicates=20,
)

# Triangular-lattice site percolation around p_c = 1/2
TRIANGULAR_SWEEP_CONFIG = Config(
    lattice_type="triangular",
    lattice_size=(64, 64),
    model="site",
    p_range=(0.35, 0.65),
    n_p=31,
    n_replicates=20,
)

# Ising dynamics near the 2D critical coupling, clusters of up spins
DYNAMICS_CONFIG = Config(
    lattice_type="square",
    lattice_size=(128, 128),
    boundary="periodic",
    dynamics_rule="ising",
    dynamics_steps=200,
    ising_beta=0.44,
)

PRESET_CONFIGS = {
    "site": SITE_SWEEP_CONFIG,
    "bond": BOND_SWEEP_CONFIG,
    "triangular": TRIANGULAR_SWEEP_CONFIG,
    "dynamics": DYNAMICS_CONFIG,
}


def get_preset_config(name: str) -> Config:
    """Get a pre-defined config by name."""
    if name not in PRESET_CONFIGS:
        raise ValueError(f"Unknown preset '{name}'. Valid presets: {list(PRESET_CONFIGS.keys())}")
    return PRESET_CONFIGS[name]
