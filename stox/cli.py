"""Command line interface.

    stox show  MODEL
    stox check MODEL [--config YAML]
    stox run   MODEL [--config YAML] [--seed N] [--iterations K]
                     [--initial N] [--eps E] [--output TSV] [--plot DIR]

Ctrl-C during ``run`` stops after the current iteration and keeps the
partial output.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional

from stox import __version__
from stox.checker import check
from stox.codec import load_model
from stox.config import SimulationConfig, default_config, load_config, validate_config
from stox.engine import CancellationToken
from stox.logging_config import configure_logging
from stox.model import run_simulation
from stox.types import RunPreconditionError, RunStatus, StructuralViolation

logger = logging.getLogger("stox.cli")


def _load_config(args) -> SimulationConfig:
    overrides: Dict[str, dict] = {'simulation': {}}
    for key in ('iterations', 'initial_population', 'eps', 'seed'):
        value = getattr(args, key, None)
        if value is not None:
            overrides['simulation'][key] = value
    if getattr(args, 'log_level', None):
        overrides['logging'] = {'level': args.log_level}

    if args.config:
        return load_config(args.config, overrides=overrides)
    config = default_config()
    for section, values in overrides.items():
        for key, value in values.items():
            setattr(getattr(config, section), key, value)
    validate_config(config)
    return config


def cmd_show(args) -> int:
    tree, castings = load_model(args.model)
    tree.assign_hierarchical_ids()
    print(tree.render())
    print()
    for table in castings:
        print(f"casting {table.name}: {table.row_count} rows x "
              f"{table.column_count} cols")
    return 0


def cmd_check(args) -> int:
    config = _load_config(args)
    tree, castings = load_model(args.model)
    report = check(tree, castings, tolerance=config.check.row_sum_tolerance)
    if report.first_error is not None:
        print(f"ERROR: {report.first_error}")
        return 1
    for warning in report.warnings:
        print(f"WARNING: {warning.message}")
    print(f"OK: {len(tree)} stages, {len(castings)} castings, "
          f"{len(report.reported)} reported, {len(report.warnings)} warning(s)")
    return 0


def cmd_run(args) -> int:
    config = _load_config(args)
    configure_logging(config.logging.level)
    tree, castings = load_model(args.model)

    token = CancellationToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: token.cancel())
    try:
        result = run_simulation(tree, castings, config=config, cancel=token)
    except (StructuralViolation, RunPreconditionError) as exc:
        logger.error("%s", exc)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    out = Path(args.output) if args.output else (
        Path(config.output.output_dir) / f"{Path(args.model).stem}_output.tsv"
    )
    result.matrix.to_tsv(out, precision=config.output.precision,
                         min_columns=config.output.min_columns)
    logger.info("Output written to %s (seed %d)", out, result.seed)

    plot_dir = args.plot or (config.output.output_dir
                             if config.output.save_plots else None)
    if plot_dir:
        from stox.viz import plot_iteration_traces, plot_stage_distributions
        plot_dir = Path(plot_dir)
        plot_dir.mkdir(parents=True, exist_ok=True)
        stem = Path(args.model).stem
        plot_stage_distributions(
            result, save_path=str(plot_dir / f"{stem}_distributions.png"))
        plot_iteration_traces(
            result, save_path=str(plot_dir / f"{stem}_traces.png"))

    for sid, stats in result.summary().items():
        print(f"{sid:<10} {stats['name']:<20} mean={stats['mean']:.4g} "
              f"[{stats['p2_5']:.4g}, {stats['p97_5']:.4g}] "
              f"effectiveness={stats['effectiveness']:.4g}")

    if result.status == RunStatus.FAILED:
        logger.error("Run failed: %s", result.failure)
        return 2
    if result.status == RunStatus.CANCELLED:
        logger.warning("Run cancelled after %d iteration(s)",
                       result.n_iterations)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stox",
        description="Stochastic multistage recruitment model for seed "
                    "dispersal effectiveness.",
    )
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    p_show = sub.add_parser("show", help="Print the stage tree and castings")
    p_show.add_argument("model", help="Model file (YAML)")
    p_show.set_defaults(func=cmd_show)

    p_check = sub.add_parser("check", help="Check model consistency")
    p_check.add_argument("model", help="Model file (YAML)")
    p_check.add_argument("--config", default=None, help="Config YAML")
    p_check.set_defaults(func=cmd_check)

    p_run = sub.add_parser("run", help="Check and run a model")
    p_run.add_argument("model", help="Model file (YAML)")
    p_run.add_argument("--config", default=None, help="Config YAML")
    p_run.add_argument("--seed", type=int, default=None,
                       help="RNG seed (default: config, else OS entropy)")
    p_run.add_argument("--iterations", type=int, default=None)
    p_run.add_argument("--initial", dest="initial_population", type=float,
                       default=None, help="Initial population")
    p_run.add_argument("--eps", type=float, default=None,
                       help="Quasi-zero for unobserved transitions")
    p_run.add_argument("--output", default=None, help="Output TSV path")
    p_run.add_argument("--plot", default=None,
                       help="Directory for distribution/trace plots")
    p_run.add_argument("--log-level", default=None,
                       choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    p_run.set_defaults(func=cmd_run)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"stox: error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
