#!/usr/bin/env python3
"""
Percolation threshold sweep.

Runs site or bond percolation over a grid of occupation probabilities,
aggregates spanning probability and largest-cluster fraction per
probability, fits the spanning curve and writes everything to JSON.

Usage:
    python scripts/percolation_sweep.py --preset site           # square site percolation
    python scripts/percolation_sweep.py --preset bond --size 128
    python scripts/percolation_sweep.py --preset triangular --boundary periodic
    python scripts/percolation_sweep.py --dry-run               # Estimate runtime without running
"""

import argparse
import json
import logging
import os
import sys
import time
from dataclasses import asdict, replace
from pathlib import Path

project_root = str(Path(__file__).parents[1])
if project_root not in sys.path:
    sys.path.insert(0, project_root)

import numpy as np
from tqdm import tqdm

from phase_transitions.analysis import (
    aggregate_sweep,
    cluster_size_exponent,
    estimate_threshold,
    iter_sweep,
    sweep_jobs,
)
from phase_transitions.config import PRESET_CONFIGS, get_preset_config
from phase_transitions.numba_optimized import warmup_kernels


def main():
    parser = argparse.ArgumentParser(description="Percolation threshold sweep")
    parser.add_argument("--preset", type=str, default="site",
                        choices=[k for k in PRESET_CONFIGS if k != "dynamics"])
    parser.add_argument("--size", type=int, default=None, help="Linear extent of the lattice")
    parser.add_argument("--boundary", type=str, default=None, choices=["free", "periodic"])
    parser.add_argument("--replicates", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--output", type=str, default="results")
    parser.add_argument("--cores", type=int, default=-1)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    # Setup
    cfg = get_preset_config(args.preset)
    overrides = {}
    if args.size is not None:
        overrides["lattice_size"] = (args.size,) * len(cfg.lattice_size)
    if args.boundary is not None:
        overrides["boundary"] = args.boundary
    if args.replicates is not None:
        overrides["n_replicates"] = args.replicates
    if args.seed is not None:
        overrides["seed"] = args.seed
    overrides["n_jobs"] = args.cores if args.cores > 0 else int(os.environ.get("SLURM_CPUS_PER_TASK", -1))
    cfg = replace(cfg, **overrides)

    output_dir = Path(args.output)
    output_dir.mkdir(exist_ok=True)

    # Logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.FileHandler(output_dir / "sweep.log"),
            logging.StreamHandler(),
        ],
    )
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("Percolation threshold sweep")
    logger.info("=" * 60)
    logger.info(f"Preset: {args.preset}")
    logger.info(f"Output: {output_dir}")
    logger.info(f"Cores: {cfg.n_jobs}")

    n_cores = cfg.n_jobs if cfg.n_jobs > 0 else os.cpu_count()
    logger.info(f"Estimated: {cfg.estimate_runtime(n_cores)}")

    if args.dry_run:
        logger.info("Dry run - exiting")
        return

    with open(output_dir / "config.json", "w") as f:
        json.dump(asdict(cfg), f, indent=2, default=str)

    warmup_kernels()
    start_time = time.time()

    # Run with incremental saving
    n_runs = len(sweep_jobs(cfg))
    output_jsonl = output_dir / f"{args.preset}_runs.jsonl"
    results = []
    with open(output_jsonl, "w", encoding="utf-8") as f:
        for r in tqdm(iter_sweep(cfg, logger), total=n_runs, desc="Sweep"):
            f.write(json.dumps(r, default=str) + "\n")
            f.flush()
            results.append(r)
    logger.info(f"Runs saved to {output_jsonl}")

    summary = aggregate_sweep(results)
    fit = estimate_threshold(summary["p"], summary["spanning_probability"])

    out = {key: np.asarray(val).tolist() for key, val in summary.items()}
    out["threshold_fit"] = fit
    if fit["valid"]:
        out["cluster_exponent"] = cluster_size_exponent(results, fit["p_c"])
    with open(output_dir / f"{args.preset}_summary.json", "w") as f:
        json.dump(out, f, indent=2)

    logger.info("=" * 60)
    logger.info("SWEEP SUMMARY")
    logger.info("=" * 60)
    if fit["valid"]:
        logger.info(f"Estimated p_c = {fit['p_c']:.4f} +/- {fit['p_c_se']:.4f} (width {fit['width']:.4f})")
        tau = out["cluster_exponent"]
        logger.info(f"Fisher exponent tau = {tau['tau']:.3f} +/- {tau['tau_err']:.3f} at p = {tau['p']:.4f}")
    else:
        logger.warning("Spanning curve could not be fitted; widen p_range or add replicates")

    elapsed = time.time() - start_time
    logger.info(f"Total runtime: {elapsed:.1f} s")
    logger.info("Done!")


if __name__ == "__main__":
    main()
