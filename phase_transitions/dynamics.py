"""Stochastic update rules producing lattice configurations.

The rule set is closed: RandomFlip, MajorityDynamics, HardcoreModel,
IndependentResample and IsingDynamics, all dispatched by ``apply_rule``.
One step performs ``round(update_fraction * n_sites)`` sequential updates at
sites drawn uniformly with replacement. The random draws come from the
caller's ``numpy.random.Generator`` and are handed to the numba kernels.

Boolean rules work on boolean arrays shaped like the lattice. IsingDynamics
works on int8 spin arrays with values in {-1, +1}.
"""
import math
from dataclasses import dataclass
from numbers import Real
from typing import Union

import numpy as np
import logging

from phase_transitions.errors import PreconditionError, ShapeMismatchError
from phase_transitions.lattice import Lattice
from phase_transitions.numba_optimized import (
    _hardcore_kernel,
    _ising_kernel,
    _majority_kernel,
    _random_flip_kernel,
    _resample_kernel,
)

# Module logger
logger = logging.getLogger(__name__)


def _probability(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, Real) or not 0.0 <= float(value) <= 1.0:
        raise PreconditionError(f"{name} must be a number in [0, 1], got {value!r}")


@dataclass(frozen=True)
class RandomFlip:
    """Flip the chosen site with probability ``flip_probability``."""

    flip_probability: float

    def __post_init__(self):
        _probability("flip_probability", self.flip_probability)


@dataclass(frozen=True)
class MajorityDynamics:
    """Adopt the majority state of the neighbors; ties keep the current state."""


@dataclass(frozen=True)
class HardcoreModel:
    """An occupied site with an occupied neighbor becomes empty."""


@dataclass(frozen=True)
class IndependentResample:
    """Redraw the chosen site as occupied with probability ``p``."""

    p: float

    def __post_init__(self):
        _probability("p", self.p)


@dataclass(frozen=True)
class IsingDynamics:
    """Metropolis spin flips at inverse temperature ``beta``.

    ``J`` is +1 for ferromagnetic and -1 for antiferromagnetic coupling.
    """

    beta: float
    J: int = 1

    def __post_init__(self):
        if isinstance(self.beta, bool) or not isinstance(self.beta, Real) or not self.beta >= 0:
            raise PreconditionError(f"beta must be a non-negative number, got {self.beta!r}")
        if self.J not in (1, -1):
            raise PreconditionError(f"J must be +1 or -1, got {self.J!r}")


DynamicsRule = Union[RandomFlip, MajorityDynamics, HardcoreModel, IndependentResample, IsingDynamics]
BOOLEAN_RULES = (RandomFlip, MajorityDynamics, HardcoreModel, IndependentResample)


def _check_rule(rule) -> None:
    if not isinstance(rule, BOOLEAN_RULES + (IsingDynamics,)):
        raise PreconditionError(f"Unknown dynamics rule {rule!r}")


def _flat_config(config, lattice: Lattice, rule) -> np.ndarray:
    """Copy the configuration into a flat array in site-index order."""
    arr = np.asarray(config)
    if arr.shape != lattice.size:
        raise ShapeMismatchError(
            f"configuration has shape {arr.shape}, lattice has {lattice.size}"
        )
    if isinstance(rule, IsingDynamics):
        if not np.all((arr == 1) | (arr == -1)):
            raise PreconditionError("Ising configurations must only hold spins -1 and +1")
        return np.array(arr.ravel(order="F"), dtype=np.int8)
    if arr.dtype != np.bool_:
        arr = arr == 1
    return np.array(arr.ravel(order="F"), dtype=np.bool_)


def apply_rule(
    config: np.ndarray,
    lattice: Lattice,
    rule: DynamicsRule,
    rng: np.random.Generator,
    update_fraction: float = 1.0,
) -> np.ndarray:
    """Apply one step of ``rule`` and return the new configuration.

    Args:
    - config (np.ndarray): boolean (or spin, for Ising) array shaped like
      the lattice. It is not modified.
    - lattice (Lattice): lattice supplying neighbors and boundary policy
    - rule: one of the five rule variants
    - rng (np.random.Generator): source of all randomness
    - update_fraction (float): site updates per step as a fraction of the
      site count (>= 0)

    Returns: np.ndarray of the same shape
    """
    _check_rule(rule)
    if (
        isinstance(update_fraction, bool)
        or not isinstance(update_fraction, Real)
        or not math.isfinite(update_fraction)
        or update_fraction < 0
    ):
        raise PreconditionError(f"update_fraction must be a finite non-negative number, got {update_fraction!r}")

    flat = _flat_config(config, lattice, rule)
    n_updates = int(round(update_fraction * lattice.n_sites))
    sites = rng.integers(0, lattice.n_sites, size=n_updates, dtype=np.int64)

    if isinstance(rule, RandomFlip):
        _random_flip_kernel(flat, sites, rng.random(n_updates), float(rule.flip_probability))
    elif isinstance(rule, MajorityDynamics):
        _majority_kernel(flat, lattice.neighbor_table(), sites)
    elif isinstance(rule, HardcoreModel):
        _hardcore_kernel(flat, lattice.neighbor_table(), sites)
    elif isinstance(rule, IndependentResample):
        _resample_kernel(flat, sites, rng.random(n_updates), float(rule.p))
    else:
        _ising_kernel(flat, lattice.neighbor_table(), sites, rng.random(n_updates),
                      float(rule.beta), int(rule.J))

    return flat.reshape(lattice.size, order="F")


def run_dynamics(
    config: np.ndarray,
    lattice: Lattice,
    rule: DynamicsRule,
    steps: int,
    rng: np.random.Generator,
    update_fraction: float = 1.0,
) -> np.ndarray:
    """Apply ``steps`` consecutive steps and return the final configuration."""
    assert isinstance(steps, int) and steps >= 0, "steps must be a non-negative integer"
    for _ in range(steps):
        config = apply_rule(config, lattice, rule, rng, update_fraction)
    logger.debug("Ran %d steps of %r on %r", steps, rule, lattice)
    return np.array(config)


def random_config(rule: DynamicsRule, lattice: Lattice, rng: np.random.Generator) -> np.ndarray:
    """Initial configuration suited to ``rule``.

    Fair coin per site for RandomFlip, MajorityDynamics and HardcoreModel;
    occupied with probability ``p`` for IndependentResample; uniformly random
    int8 spins for IsingDynamics.
    """
    _check_rule(rule)
    if isinstance(rule, IsingDynamics):
        return rng.choice(np.array([-1, 1], dtype=np.int8), size=lattice.size)
    if isinstance(rule, IndependentResample):
        return rng.random(lattice.size) < rule.p
    return rng.random(lattice.size) < 0.5
