"""Core data types for StoX.

This module is the SINGLE SOURCE OF TRUTH for:
  - StageType, RunStatus enumerations
  - Reserved stage-kind names and the persisted kind text form
  - Numerical constants (row-sum tolerance)
  - SimulationParameters and OutputRow transfer objects
  - The error taxonomy shared by checker, engine and codec

All modules import these types from here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class StageType(IntEnum):
    """Stage kinds in the recruitment tree.

    Arity rule (enforced by the checker, not by construction):
      0 children  →  SUCCESS or SINK
      1 child     →  DIRECT
      >1 children →  CASTER, with as many casting columns as children
    """
    DIRECT  = 0   # Whole population passes to the only child
    CASTER  = 1   # Population split by a bootstrapped casting row
    SUCCESS = 2   # Terminal: recruited
    SINK    = 3   # Terminal: lost


class RunStatus(Enum):
    """Propagation engine run states."""
    IDLE      = "idle"
    RUNNING   = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED    = "failed"


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

ROOT_NAME = "Start"

# A casting row should sum to 1.0 within this tolerance
ROW_SUM_TOLERANCE = 0.001

# Text form of non-caster kinds; a caster is written as its casting name
KIND_NAMES = {
    StageType.DIRECT:  "Direct",
    StageType.SUCCESS: "Success",
    StageType.SINK:    "Sink",
}

# Names that can never be used for a casting
RESERVED_NAMES = frozenset(["Direct", "Caster", "Success", "Sink"])


def parse_kind(text: str) -> Tuple[StageType, Optional[str]]:
    """Split a persisted kind string into (type, casting).

    "Direct", "Success" and "Sink" map to their types. Any other string is
    a casting name; the empty string is a caster with no casting assigned.
    """
    for stage_type, name in KIND_NAMES.items():
        if text == name:
            return stage_type, None
    if text == "Caster":
        raise ValueError("'Caster' is not a casting name")
    return StageType.CASTER, (text or None)


def kind_text(stage_type: StageType, casting: Optional[str] = None) -> str:
    """Inverse of parse_kind()."""
    if stage_type == StageType.CASTER:
        return casting or ""
    return KIND_NAMES[StageType(stage_type)]


# ═══════════════════════════════════════════════════════════════════════
# TRANSFER OBJECTS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SimulationParameters:
    """Inputs of one propagation run.

    Attributes:
        initial_population: Seeds entering the root stage (≥ 0).
        iterations: Number of bootstrap iterations (≥ 1).
        eps: Quasi-zero fraction substituted for a zero casting cell (> 0).
    """
    initial_population: float = 1000.0
    iterations: int = 1000
    eps: float = 1e-4

    def __post_init__(self):
        n = self.initial_population
        if not math.isfinite(n) or n < 0:
            raise ValueError(
                f"initial_population must be finite and >= 0, got {n}"
            )
        if isinstance(self.iterations, bool) or int(self.iterations) != self.iterations:
            raise ValueError(
                f"iterations must be an integer, got {self.iterations!r}"
            )
        if self.iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {self.iterations}")
        if not math.isfinite(self.eps) or self.eps <= 0:
            raise ValueError(f"eps must be > 0, got {self.eps}")


@dataclass
class OutputRow:
    """Populations of the reported stages after one iteration."""
    iteration: int          # 1-based
    values: np.ndarray      # (n_reported,) float64, reported-stage order


# ═══════════════════════════════════════════════════════════════════════
# ERRORS
# ═══════════════════════════════════════════════════════════════════════

class StoxError(Exception):
    """Base class for model and run errors."""


class StructuralViolation(StoxError, ValueError):
    """The stage tree breaks the arity/type/casting rules.

    Attributes:
        stage_id: Hierarchical id of the offending stage (e.g. "1.2.1").
        stage_name: Display name of the offending stage.
        kind: Short violation code: "terminal", "direct",
            "missing_casting", "column_mismatch" or "empty_casting".
        casting: Casting name involved, if any.
    """

    def __init__(self, message: str, stage_id: str, stage_name: str,
                 kind: str, casting: Optional[str] = None):
        super().__init__(message)
        self.stage_id = stage_id
        self.stage_name = stage_name
        self.kind = kind
        self.casting = casting


class RunPreconditionError(StoxError, RuntimeError):
    """A run was requested for an unchecked model or while running."""


class RunResolutionError(StoxError, LookupError):
    """A casting could not be resolved while propagating."""

    def __init__(self, message: str, stage_id: str, stage_name: str,
                 casting: Optional[str]):
        super().__init__(message)
        self.stage_id = stage_id
        self.stage_name = stage_name
        self.casting = casting
