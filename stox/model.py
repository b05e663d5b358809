"""Run orchestration: check → seed → propagate → collect.

run_simulation() is the one-call entry point used by the CLI and by
analysis scripts. It drives a PropagationEngine, collects its rows into an
OutputMatrix and keeps partial results when a run is cancelled or fails.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from stox.casting import CastingRegistry
from stox.checker import CheckReport, check
from stox.config import SimulationConfig, default_config, parameters_from_config
from stox.engine import CancellationToken, PropagationEngine
from stox.output import OutputMatrix
from stox.rng import create_rng, rng_entropy
from stox.tree import StageTree
from stox.types import (
    RunResolutionError,
    RunStatus,
    SimulationParameters,
)

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Results of one run.

    ``matrix`` holds every completed iteration, also when the run was
    cancelled or failed part-way.
    """
    matrix: OutputMatrix
    status: RunStatus
    params: SimulationParameters
    seed: int
    elapsed_s: float = 0.0
    failure: Optional[str] = None
    check: Optional[CheckReport] = None

    @property
    def n_iterations(self) -> int:
        return self.matrix.n_iterations

    def summary(self) -> dict:
        return self.matrix.summary()


def run_simulation(
    tree: StageTree,
    castings: CastingRegistry,
    params: Optional[SimulationParameters] = None,
    config: Optional[SimulationConfig] = None,
    seed: Optional[int] = None,
    cancel: Optional[CancellationToken] = None,
    check_first: bool = True,
) -> SimulationResult:
    """Check (optionally) and run a model.

    Args:
        tree: Stage tree.
        castings: Casting registry.
        params: Run parameters; taken from ``config`` when None.
        config: SimulationConfig; default_config() when None.
        seed: RNG seed; falls back to config.simulation.seed, then to
            high-entropy seeding. The seed actually used is returned.
        cancel: Optional cancellation token.
        check_first: Run check() before running. With False the tree must
            already have been checked.

    Returns:
        SimulationResult.

    Raises:
        StructuralViolation: The check found a structural error.
        RunPreconditionError: The tree is unchecked (check_first=False) or
            the check was aborted on a warning.
    """
    if config is None:
        config = default_config()
    if params is None:
        params = parameters_from_config(config)
    if seed is None:
        seed = config.simulation.seed

    report = None
    if check_first:
        abort = config.check.abort_on_warning
        report = check(tree, castings,
                       tolerance=config.check.row_sum_tolerance,
                       on_warning=(lambda w: False) if abort else None)
        report.raise_for_error()

    rng = create_rng(seed)
    used_seed = seed if seed is not None else rng_entropy(rng)
    logger.debug("Random source seeded with %d", used_seed)

    engine = PropagationEngine()
    rows = engine.start(tree, castings, params, rng, cancel)
    matrix = OutputMatrix.for_stages(params.initial_population, params.eps,
                                     engine.reported)

    failure = None
    t0 = time.perf_counter()
    try:
        for row in rows:
            matrix.append(row)
    except RunResolutionError as exc:
        failure = str(exc)
    elapsed = time.perf_counter() - t0

    logger.info("Run %s: %d/%d iteration(s) in %.3fs",
                engine.status.value, matrix.n_iterations, params.iterations,
                elapsed)
    return SimulationResult(
        matrix=matrix,
        status=engine.status,
        params=params,
        seed=used_seed,
        elapsed_s=elapsed,
        failure=failure,
        check=report,
    )
