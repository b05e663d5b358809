"""Tests for stox.types — enums, kind text, parameters and errors."""

import numpy as np
import pytest

from stox.types import (
    KIND_NAMES,
    RESERVED_NAMES,
    ROW_SUM_TOLERANCE,
    OutputRow,
    RunPreconditionError,
    RunResolutionError,
    RunStatus,
    SimulationParameters,
    StageType,
    StoxError,
    StructuralViolation,
    kind_text,
    parse_kind,
)


# ── Enum tests ────────────────────────────────────────────────────────

class TestStageTypeEnum:
    def test_values(self):
        assert StageType.DIRECT == 0
        assert StageType.CASTER == 1
        assert StageType.SUCCESS == 2
        assert StageType.SINK == 3

    def test_count(self):
        assert len(StageType) == 4


class TestRunStatusEnum:
    def test_terminal_states(self):
        names = {s.name for s in RunStatus}
        assert names == {"IDLE", "RUNNING", "COMPLETED", "CANCELLED", "FAILED"}


# ── Kind text ─────────────────────────────────────────────────────────

class TestKindText:
    def test_reserved_kinds(self):
        assert parse_kind("Direct") == (StageType.DIRECT, None)
        assert parse_kind("Success") == (StageType.SUCCESS, None)
        assert parse_kind("Sink") == (StageType.SINK, None)

    def test_casting_name_is_caster(self):
        assert parse_kind("Birds") == (StageType.CASTER, "Birds")

    def test_empty_is_caster_without_casting(self):
        assert parse_kind("") == (StageType.CASTER, None)

    def test_caster_keyword_rejected(self):
        with pytest.raises(ValueError, match="Caster"):
            parse_kind("Caster")

    def test_inverse(self):
        for text in ["Direct", "Success", "Sink", "Birds", ""]:
            assert kind_text(*parse_kind(text)) == text

    def test_reserved_names_cover_kind_names(self):
        assert set(KIND_NAMES.values()) < RESERVED_NAMES
        assert "Caster" in RESERVED_NAMES

    def test_tolerance(self):
        assert ROW_SUM_TOLERANCE == pytest.approx(0.001)


# ── SimulationParameters ──────────────────────────────────────────────

class TestSimulationParameters:
    def test_defaults_valid(self):
        p = SimulationParameters()
        assert p.iterations >= 1
        assert p.eps > 0

    def test_zero_population_allowed(self):
        assert SimulationParameters(0.0, 1, 0.1).initial_population == 0.0

    @pytest.mark.parametrize("kwargs, match", [
        (dict(initial_population=-1.0), "initial_population"),
        (dict(initial_population=float('nan')), "initial_population"),
        (dict(iterations=0), "iterations"),
        (dict(iterations=2.5), "iterations"),
        (dict(eps=0.0), "eps"),
        (dict(eps=-1e-3), "eps"),
    ])
    def test_invalid(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            SimulationParameters(**kwargs)

    def test_frozen(self):
        p = SimulationParameters()
        with pytest.raises(Exception):
            p.eps = 1.0


# ── Errors ────────────────────────────────────────────────────────────

class TestErrors:
    def test_structural_violation_fields(self):
        exc = StructuralViolation("bad", stage_id="1.2", stage_name="Fox",
                                  kind="direct")
        assert isinstance(exc, StoxError)
        assert isinstance(exc, ValueError)
        assert exc.stage_id == "1.2"
        assert exc.stage_name == "Fox"
        assert exc.casting is None

    def test_resolution_error_message(self):
        exc = RunResolutionError("casting 'X' missing", "1.1", "A", "X")
        assert str(exc) == "casting 'X' missing"
        assert isinstance(exc, LookupError)

    def test_precondition_is_runtime_error(self):
        assert issubclass(RunPreconditionError, RuntimeError)


def test_output_row_holds_values():
    row = OutputRow(iteration=3, values=np.array([1.0, 2.0]))
    assert row.iteration == 3
    np.testing.assert_array_equal(row.values, [1.0, 2.0])
