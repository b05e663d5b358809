"""Propagation engine: bootstrap Monte Carlo over the stage tree.

Each iteration pushes the initial population down the whole tree:

  DIRECT   → the only child gets the same population
  CASTER   → one row of the casting is drawn uniformly at random (skipped
             when the casting has a single row) and child j receives
             n * f_j, or n * eps when f_j is zero
  SUCCESS / SINK → stop

Drawing a whole observed row resamples one empirical casting event, so
no parametric distribution is fitted. The eps floor keeps a branch alive
when a zero only means "not observed in this sample".

Run states: IDLE → RUNNING → COMPLETED | CANCELLED | FAILED.
Cancellation is honoured only between iterations, so every emitted row
comes from one complete traversal.
"""

from __future__ import annotations

import logging
import weakref
from typing import Dict, Iterator, List, Optional

import numpy as np

from stox.casting import CastingRegistry
from stox.tree import Stage, StageTree
from stox.types import (
    OutputRow,
    RunPreconditionError,
    RunResolutionError,
    RunStatus,
    SimulationParameters,
    StageType,
)

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancel flag shared between the caller and a running engine."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


def propagate(root: Stage, n: float, castings: CastingRegistry,
              eps: float, rng: np.random.Generator) -> Dict[int, float]:
    """One full traversal from ``root`` with population ``n``.

    The stack is walked in the same order as the recursive formulation
    (parent, then first child's subtree, then second child's ...), so the
    sequence of random draws is identical.

    Returns:
        Population reached at every visited stage, keyed by id(stage).

    Raises:
        RunResolutionError: A caster's casting is missing from ``castings``.
    """
    received: Dict[int, float] = {}
    stack = [(root, n)]
    while stack:
        stage, pop = stack.pop()
        received[id(stage)] = pop

        if stage.type in (StageType.SUCCESS, StageType.SINK):
            continue
        if stage.type == StageType.DIRECT:
            if stage.children:
                stack.append((stage.children[0], pop))
            continue

        table = castings.find(stage.casting)
        if table is None:
            raise RunResolutionError(
                f"Stage {stage.label()}: casting '{stage.casting}' "
                f"could not be resolved",
                stage_id=stage.stage_id, stage_name=stage.name,
                casting=stage.casting,
            )
        values = table.rows()
        row = int(rng.integers(0, table.row_count)) if table.row_count > 1 else 0
        fractions = values[row]
        passed = [
            pop * (f if f > 0.0 else eps)
            for f in fractions[:len(stage.children)]
        ]
        for child, child_pop in reversed(list(zip(stage.children, passed))):
            stack.append((child, child_pop))
    return received


class PropagationEngine:
    """Runs the bootstrap iterations of a checked model.

    Attributes:
        status: Current RunStatus.
        failure: Reason of the last FAILED run, else None.
        reported: Reported stages of the current/last run, in column order.
        completed_iterations: Rows emitted by the current/last run.
    """

    def __init__(self):
        self._status = RunStatus.IDLE
        self._rows: Optional[weakref.ref] = None
        self.failure: Optional[str] = None
        self.reported: List[Stage] = []
        self.completed_iterations = 0

    @property
    def status(self) -> RunStatus:
        # An iterator closed or dropped before its first row never reaches
        # _iterate's handlers
        if self._status == RunStatus.RUNNING and not self._iterator_alive():
            self._status = RunStatus.CANCELLED
        return self._status

    @status.setter
    def status(self, value: RunStatus) -> None:
        self._status = value

    def _iterator_alive(self) -> bool:
        rows = self._rows() if self._rows is not None else None
        return rows is not None and rows.gi_frame is not None

    def start(self, tree: StageTree, castings: CastingRegistry,
              params: SimulationParameters, rng: np.random.Generator,
              cancel: Optional[CancellationToken] = None,
              ) -> Iterator[OutputRow]:
        """Validate preconditions and return the lazy row iterator.

        Preconditions are checked here, before any iteration runs; the
        traversal itself only starts when the iterator is consumed.

        Args:
            tree: Stage tree that passed check() against ``castings``.
            castings: Casting registry.
            params: Initial population, iteration count and eps.
            rng: The run's single random stream.
            cancel: Optional token checked at every iteration boundary.

        Returns:
            Iterator yielding one OutputRow per completed iteration.

        Raises:
            RunPreconditionError: Engine already running, or tree unchecked.
        """
        if self.status == RunStatus.RUNNING:
            raise RunPreconditionError("A run is already in progress")
        if not tree.is_checked(castings):
            raise RunPreconditionError(
                "The model has not been checked in its current state"
            )
        self.failure = None
        self.completed_iterations = 0
        self.reported = tree.reported_stages()
        rows = self._iterate(tree, castings, params, rng,
                             cancel or CancellationToken())
        self._rows = weakref.ref(rows)
        self.status = RunStatus.RUNNING
        logger.info("Run started: N=%g, iterations=%d, eps=%g, %d reported stage(s)",
                    params.initial_population, params.iterations, params.eps,
                    len(self.reported))
        return rows

    def _iterate(self, tree, castings, params, rng, cancel) -> Iterator[OutputRow]:
        try:
            for i in range(1, params.iterations + 1):
                if cancel.cancelled:
                    self.status = RunStatus.CANCELLED
                    logger.info("Run cancelled after %d iteration(s)",
                                self.completed_iterations)
                    return
                received = propagate(tree.root, params.initial_population,
                                     castings, params.eps, rng)
                values = np.array([received[id(s)] for s in self.reported],
                                  dtype=np.float64)
                self.completed_iterations = i
                yield OutputRow(iteration=i, values=values)
        except RunResolutionError as exc:
            self.status = RunStatus.FAILED
            self.failure = str(exc)
            logger.error("Run failed at iteration %d: %s",
                         self.completed_iterations + 1, exc)
            raise
        except GeneratorExit:
            # Consumer stopped iterating: treat like a cancellation
            self.status = RunStatus.CANCELLED
            raise
        self.status = RunStatus.COMPLETED
        logger.info("Run completed: %d iteration(s)", self.completed_iterations)
