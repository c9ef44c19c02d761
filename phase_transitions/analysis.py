"""
Percolation sweeps over occupation probability and threshold estimation.

A sweep runs ``n_replicates`` independent draws at each probability of the
configured grid (in parallel through joblib), measures cluster observables
for each draw and aggregates them per probability. The spanning
probability curve is then fitted with a logistic step to locate p_c, and
the finite-cluster size distribution near p_c gives the Fisher exponent.

Usage:
    cfg = Config(lattice_size=(64, 64), n_jobs=4)
    results = run_sweep(cfg, logger)
    summary = aggregate_sweep(results)
    fit = estimate_threshold(summary["p"], summary["spanning_probability"])
    tau = cluster_size_exponent(results, fit["p_c"])
"""
import logging
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from joblib import Parallel, delayed
from scipy.optimize import curve_fit

from phase_transitions.cluster_analysis import ClusterAnalyzer
from phase_transitions.config import Config
from phase_transitions.lattice import Lattice
from phase_transitions.percolation import run_bond_percolation, run_site_percolation

# Module logger
logger = logging.getLogger(__name__)


# =============================================================================
# SINGLE RUN
# =============================================================================

def run_single_percolation(
    lattice: Lattice,
    model: str,
    p: float,
    seed: int,
    spanning_axis: Optional[int] = None,
) -> Dict:
    """One percolation draw and its cluster observables."""
    if model == "site":
        result = run_site_percolation(lattice, p, seed=seed)
        occupied_fraction = result.n_occupied() / lattice.n_sites
    elif model == "bond":
        result = run_bond_percolation(lattice, p, seed=seed)
        occupied_fraction = float(np.mean(result.occupied_edges))
    else:
        raise ValueError(f"model must be 'site' or 'bond', got '{model}'")

    analyzer = ClusterAnalyzer()
    stats = analyzer.get_stats(result)
    spans, span_label, _ = analyzer.check_percolation(result, axis=spanning_axis)

    # finite clusters only: the spanning cluster is left out of n_s
    finite_sizes = dict(stats["size_distribution"])
    if spans:
        s = stats["size_dict"][span_label]
        finite_sizes[s] -= 1
        if finite_sizes[s] == 0:
            del finite_sizes[s]

    return {
        "model": model,
        "p": float(p),
        "seed": int(seed),
        "occupied_fraction": float(occupied_fraction),
        "n_clusters": int(stats["n_clusters"]),
        "largest": int(stats["largest"]),
        "largest_fraction": float(stats["largest_fraction"]),
        "mean_size": float(stats["mean_size"]),
        "spans": bool(spans),
        "finite_cluster_sizes": {int(s): int(c) for s, c in sorted(finite_sizes.items())},
    }


# =============================================================================
# SWEEP
# =============================================================================

def sweep_jobs(cfg: Config) -> List[Tuple[float, int]]:
    """Every (probability, replicate seed) pair of ``cfg``, probability-major."""
    probabilities = cfg.get_probabilities()
    seeds = cfg.get_seeds()
    return [
        (float(p), int(seeds[i, r]))
        for i, p in enumerate(probabilities)
        for r in range(cfg.n_replicates)
    ]


def iter_sweep(cfg: Config, log: Optional[logging.Logger] = None) -> Iterator[Dict]:
    """Yield run results in job order, each as soon as its worker returns it.

    Usage:
        for result in tqdm(iter_sweep(cfg), total=len(sweep_jobs(cfg))):
            save(result)
    """
    log = log or logger
    lattice = cfg.build_lattice()
    jobs = sweep_jobs(cfg)

    log.info(f"{cfg.model.capitalize()} sweep: {len(jobs):,} simulations")
    log.info(f"  Lattice: {lattice!r}")
    log.info(f"  p: [{cfg.p_range[0]:.3f}, {cfg.p_range[1]:.3f}] in {cfg.n_p} steps")
    log.info(f"  Replicates: {cfg.n_replicates}")

    executor = Parallel(n_jobs=cfg.n_jobs, return_as="generator")
    tasks = (
        delayed(run_single_percolation)(lattice, cfg.model, p, seed, cfg.spanning_axis)
        for p, seed in jobs
    )
    yield from executor(tasks)


def run_sweep(cfg: Config, log: Optional[logging.Logger] = None) -> List[Dict]:
    """Run every (probability, replicate) combination of ``cfg``."""
    return list(iter_sweep(cfg, log))


def aggregate_sweep(results: List[Dict]) -> Dict[str, np.ndarray]:
    """Per-probability means over replicates, sorted by p."""
    if not results:
        raise ValueError("no sweep results to aggregate")

    grouped: Dict[float, List[Dict]] = {}
    for r in results:
        grouped.setdefault(r["p"], []).append(r)

    ps = np.array(sorted(grouped))
    out = {
        "p": ps,
        "n_replicates": np.array([len(grouped[p]) for p in ps]),
        "spanning_probability": np.array([np.mean([r["spans"] for r in grouped[p]]) for p in ps]),
        "largest_fraction_mean": np.array([np.mean([r["largest_fraction"] for r in grouped[p]]) for p in ps]),
        "largest_fraction_std": np.array([np.std([r["largest_fraction"] for r in grouped[p]]) for p in ps]),
        "n_clusters_mean": np.array([np.mean([r["n_clusters"] for r in grouped[p]]) for p in ps]),
        "mean_size_mean": np.array([np.mean([r["mean_size"] for r in grouped[p]]) for p in ps]),
    }
    return out


# =============================================================================
# FITS
# =============================================================================

def logistic_step(p: np.ndarray, p_c: float, width: float) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-(p - p_c) / width))


def estimate_threshold(ps: np.ndarray, spanning: np.ndarray) -> Dict:
    """Fit a logistic step to the spanning probability curve.

    Returns:
        Dictionary with 'p_c', 'p_c_se', 'width' and 'valid'. The fit is
        invalid when the curve never leaves 0 or 1 or when it fails to
        converge.
    """
    ps = np.asarray(ps, dtype=float)
    spanning = np.asarray(spanning, dtype=float)
    invalid = {"p_c": np.nan, "p_c_se": np.nan, "width": np.nan, "valid": False}

    if ps.size < 3 or np.all(spanning == spanning[0]):
        return invalid

    # start from the first crossing of 1/2
    above = np.flatnonzero(spanning >= 0.5)
    p0 = ps[above[0]] if above.size else ps[-1]
    span = ps.max() - ps.min()

    try:
        popt, pcov = curve_fit(
            logistic_step, ps, spanning,
            p0=[p0, span / 20],
            bounds=([ps.min(), 1e-6], [ps.max(), span]),
            maxfev=5000,
        )
    except (RuntimeError, ValueError) as exc:
        logger.warning("Threshold fit failed: %s", exc)
        return invalid

    perr = np.sqrt(np.diag(pcov))
    return {"p_c": float(popt[0]), "p_c_se": float(perr[0]), "width": float(popt[1]), "valid": True}


def fit_cluster_exponent(size_counts: Dict[int, int], s_min: int = 2) -> Dict:
    """Fisher exponent tau in n_s ~ s^-tau from pooled cluster-size counts.

    Discrete power-law MLE in the continuous approximation of Clauset,
    Shalizi & Newman (2009): tau = 1 + n / sum(log(s / (s_min - 1/2))),
    over the n clusters with size >= s_min.

    Args:
        size_counts: cluster size -> number of clusters of that size
        s_min: smallest size included in the fit (>= 1)

    Returns:
        Dictionary with 'tau', 'tau_err', 'n_samples' and 's_min'. 'tau' is
        NaN with fewer than 10 clusters above ``s_min``.
    """
    if s_min < 1:
        raise ValueError(f"s_min must be >= 1, got {s_min}")

    sizes = np.array([int(s) for s in size_counts], dtype=float)
    counts = np.array([int(c) for c in size_counts.values()], dtype=float)
    keep = sizes >= s_min
    n = int(counts[keep].sum())
    if n < 10:
        return {"tau": np.nan, "tau_err": np.nan, "n_samples": n, "s_min": s_min}

    log_sum = float(np.sum(counts[keep] * np.log(sizes[keep] / (s_min - 0.5))))
    tau = 1.0 + n / log_sum
    return {"tau": tau, "tau_err": (tau - 1.0) / np.sqrt(n), "n_samples": n, "s_min": s_min}


def cluster_size_exponent(results: List[Dict], p_target: float, s_min: int = 2) -> Dict:
    """Fit tau on the finite clusters of the sweep point closest to ``p_target``.

    Pools ``finite_cluster_sizes`` over every replicate at that probability.
    """
    if not results:
        raise ValueError("no sweep results to fit")
    ps = np.array(sorted({r["p"] for r in results}))
    p_fit = float(ps[np.argmin(np.abs(ps - p_target))])

    pooled: Dict[int, int] = {}
    for r in results:
        if r["p"] == p_fit:
            for s, c in r["finite_cluster_sizes"].items():
                pooled[int(s)] = pooled.get(int(s), 0) + int(c)

    fit = fit_cluster_exponent(pooled, s_min=s_min)
    fit["p"] = p_fit
    logger.info("Cluster exponent at p=%.4f: tau=%.3f from %d clusters", p_fit, fit["tau"], fit["n_samples"])
    return fit
