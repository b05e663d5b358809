"""Consistency checker for a stage tree and its casting tables.

Two passes:
  1. Structural, pre-order, fail-fast: the first stage breaking the
     arity/type/casting rules stops the check and is returned as a
     StructuralViolation carrying the stage id and name.
  2. Statistical: every row of every casting should sum to 1.0 within
     the tolerance. Offending rows are collected as RowSumWarning; they
     never block the structural result. Nothing is renormalized.

A successful check assigns hierarchical ids and marks the tree as
checked against the registry, which the propagation engine requires.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from stox.casting import CastingRegistry
from stox.tree import Stage, StageTree
from stox.types import ROW_SUM_TOLERANCE, StageType, StructuralViolation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RowSumWarning:
    """A casting row that does not sum to 1.0 (population shrinks or grows)."""
    casting: str
    row: int        # 0-based
    total: float

    @property
    def message(self) -> str:
        return (f"Row {self.row + 1} of casting '{self.casting}' sums to "
                f"{self.total:g}, which is not equal to 1")


@dataclass
class CheckReport:
    """Outcome of check().

    Attributes:
        ok: True when the structural pass succeeded and was not aborted.
        warnings: Row-sum warnings, in registry and row order.
        first_error: The structural violation that stopped the check.
        aborted: The warning callback asked to stop.
        reported: Reported stages in output column order.
    """
    ok: bool
    warnings: List[RowSumWarning] = field(default_factory=list)
    first_error: Optional[StructuralViolation] = None
    aborted: bool = False
    reported: List[Stage] = field(default_factory=list)

    def raise_for_error(self) -> None:
        if self.first_error is not None:
            raise self.first_error


def _violation(stage: Stage, kind: str, message: str,
               casting: Optional[str] = None) -> StructuralViolation:
    return StructuralViolation(
        f"Stage {stage.label()} {message}",
        stage_id=stage.stage_id, stage_name=stage.name,
        kind=kind, casting=casting,
    )


def check_stage(stage: Stage, castings: CastingRegistry) -> Optional[StructuralViolation]:
    """Apply the arity/type/casting rules to one stage."""
    n = len(stage.children)
    if n == 0:
        if not stage.is_terminal:
            return _violation(
                stage, "terminal",
                "has no following stages, it should be type 'Sink' or 'Success'.",
            )
        return None
    if n == 1:
        if stage.type != StageType.DIRECT:
            return _violation(
                stage, "direct",
                "has only one following stage, it should be type 'Direct'.",
            )
        return None

    if stage.type != StageType.CASTER or stage.casting is None:
        return _violation(
            stage, "missing_casting",
            "has more than one following stage but no casting, "
            "it should have a casting set.",
        )
    table = castings.find(stage.casting)
    if table is None:
        return _violation(
            stage, "missing_casting",
            f"uses casting '{stage.casting}', which does not exist.",
            casting=stage.casting,
        )
    if table.column_count != n:
        return _violation(
            stage, "column_mismatch",
            f"has {n} following stages but its casting '{table.name}' "
            f"has {table.column_count} columns.",
            casting=table.name,
        )
    if table.row_count == 0:
        return _violation(
            stage, "empty_casting",
            f"uses casting '{table.name}', which has no rows.",
            casting=table.name,
        )
    return None


def row_sum_warnings(castings: CastingRegistry,
                     tolerance: float = ROW_SUM_TOLERANCE) -> List[RowSumWarning]:
    """Every casting row whose sum differs from 1.0 by more than tolerance."""
    out = []
    for table in castings:
        sums = table.rows().sum(axis=1)
        for r, total in enumerate(sums):
            if abs(1.0 - total) > tolerance:
                out.append(RowSumWarning(table.name, r, float(total)))
    return out


def check(tree: StageTree, castings: CastingRegistry,
          tolerance: float = ROW_SUM_TOLERANCE,
          on_warning: Optional[Callable[[RowSumWarning], bool]] = None,
          ) -> CheckReport:
    """Check a model before running it.

    Args:
        tree: Stage tree; its hierarchical ids are (re)assigned.
        castings: Registry the tree's casting names resolve against.
        tolerance: Allowed |1 - row sum|.
        on_warning: Optional callback, called once per row-sum warning;
            returning False stops the check (ok=False, aborted=True).

    Returns:
        CheckReport. Structural violations are returned, not raised.
    """
    tree.mark_unchecked()
    tree.assign_hierarchical_ids()

    for stage in tree.iter_preorder():
        violation = check_stage(stage, castings)
        if violation is not None:
            logger.error("Check failed: %s", violation)
            return CheckReport(ok=False, first_error=violation)

    report = CheckReport(ok=True, reported=tree.reported_stages())
    for warning in row_sum_warnings(castings, tolerance):
        logger.warning(warning.message)
        report.warnings.append(warning)
        if on_warning is not None and on_warning(warning) is False:
            logger.info("Check aborted after warning on casting '%s'",
                        warning.casting)
            report.ok = False
            report.aborted = True
            return report

    tree.mark_checked(castings)
    logger.info("Model checked: %d stages, %d castings, %d warning(s)",
                len(tree), len(castings), len(report.warnings))
    return report
