"""Tests for stox.checker — structural rules and row-sum warnings."""

import pytest

from stox.casting import CastingRegistry, CastingTable
from stox.checker import RowSumWarning, check, check_stage, row_sum_warnings
from stox.tree import StageTree
from stox.types import StageType, StructuralViolation


@pytest.fixture
def model():
    """Start → A (caster "X") → {B (Success), C (Sink)}"""
    tree = StageTree()
    a = tree.add_child(tree.root, "A", "X")
    tree.add_child(a, "B", "Success", reported=True)
    tree.add_child(a, "C", "Sink")
    reg = CastingRegistry([CastingTable("X", [[1.0, 0.0], [0.0, 1.0]])])
    return tree, reg


# ── Valid models ──────────────────────────────────────────────────────

class TestValid:
    def test_ok(self, model):
        tree, reg = model
        report = check(tree, reg)
        assert report.ok
        assert report.first_error is None
        assert report.warnings == []
        assert [s.name for s in report.reported] == ["B"]

    def test_marks_checked(self, model):
        tree, reg = model
        assert not tree.is_checked(reg)
        check(tree, reg)
        assert tree.is_checked(reg)

    def test_assigns_ids(self, model):
        tree, reg = model
        check(tree, reg)
        assert [s.stage_id for s in tree.iter_preorder()] == \
            ["1", "1.1", "1.1.1", "1.1.2"]

    def test_sample_model(self, sample_model):
        tree, reg = sample_model
        report = check(tree, reg)
        assert report.ok
        assert report.warnings == []
        assert len(report.reported) == 4


# ── Structural violations ─────────────────────────────────────────────

class TestStructural:
    def test_leaf_must_be_terminal(self, model):
        tree, reg = model
        c = tree.root.children[0].children[1]
        tree.set_kind(c, "Direct")
        report = check(tree, reg)
        assert not report.ok
        assert report.first_error.kind == "terminal"
        assert report.first_error.stage_id == "1.1.2"
        assert report.first_error.stage_name == "C"

    def test_single_child_must_be_direct(self, model):
        tree, reg = model
        tree.set_kind(tree.root, "Sink")
        report = check(tree, reg)
        assert report.first_error.kind == "direct"
        assert report.first_error.stage_id == "1"
        assert "only one following stage" in str(report.first_error)

    def test_three_children_on_direct_stage(self):
        tree = StageTree()
        hub = tree.add_child(tree.root, "Hub", "Direct")
        for name in ["p", "q", "r"]:
            tree.add_child(hub, name, "Sink")
        report = check(tree, CastingRegistry())
        assert not report.ok
        err = report.first_error
        assert err.kind == "missing_casting"
        assert err.stage_name == "Hub"
        assert err.stage_id == "1.1"
        assert "'Hub'" in str(err)

    def test_caster_without_casting(self, model):
        tree, reg = model
        tree.set_kind(tree.root.children[0], "")
        report = check(tree, reg)
        assert report.first_error.kind == "missing_casting"

    def test_unknown_casting(self, model):
        tree, reg = model
        tree.set_kind(tree.root.children[0], "Nope")
        report = check(tree, reg)
        assert report.first_error.kind == "missing_casting"
        assert report.first_error.casting == "Nope"

    def test_column_mismatch(self, model):
        tree, reg = model
        tree.add_child(tree.root.children[0], "D", "Sink")
        report = check(tree, reg)
        assert report.first_error.kind == "column_mismatch"
        assert "3 following stages" in str(report.first_error)

    def test_fail_fast_reports_first_in_preorder(self):
        tree = StageTree()
        bad1 = tree.add_child(tree.root, "first", "Direct")     # leaf, not terminal
        tree.add_child(tree.root, "second", "Direct")            # leaf, not terminal
        tree.set_kind(tree.root, "Q")
        reg = CastingRegistry([CastingTable("Q", [[0.5, 0.5]])])
        report = check(tree, reg)
        assert report.first_error.stage_name == bad1.name

    def test_failure_leaves_tree_unchecked(self, model):
        tree, reg = model
        check(tree, reg)
        tree.set_kind(tree.root, "Success")
        assert not check(tree, reg).ok
        assert not tree.is_checked(reg)

    def test_raise_for_error(self, model):
        tree, reg = model
        tree.set_kind(tree.root, "Sink")
        report = check(tree, reg)
        with pytest.raises(StructuralViolation):
            report.raise_for_error()

    def test_check_stage_on_terminal_leaf(self, model):
        tree, reg = model
        assert check_stage(tree.root.children[0].children[0], reg) is None


# ── Row-sum warnings ──────────────────────────────────────────────────

class TestRowSums:
    def test_single_warning(self, model):
        tree, reg = model
        reg.delete("X")
        reg.add(CastingTable("X", [[0.3, 0.3], [0.5, 0.5]]))
        report = check(tree, reg)
        assert report.ok
        assert len(report.warnings) == 1
        w = report.warnings[0]
        assert isinstance(w, RowSumWarning)
        assert (w.casting, w.row) == ("X", 0)
        assert w.total == pytest.approx(0.6)
        assert "Row 1 of casting 'X'" in w.message

    def test_within_tolerance(self):
        reg = CastingRegistry([CastingTable("X", [[0.4995, 0.5]])])
        assert row_sum_warnings(reg) == []
        assert len(row_sum_warnings(reg, tolerance=1e-4)) == 1

    def test_unused_casting_still_checked(self, model):
        tree, reg = model
        reg.add(CastingTable("Spare", [[2.0, 0.0]]))
        report = check(tree, reg)
        assert [w.casting for w in report.warnings] == ["Spare"]

    def test_nothing_renormalized(self, model):
        tree, reg = model
        reg.add(CastingTable("Spare", [[0.2, 0.2]]))
        check(tree, reg)
        assert reg.get("Spare").row_sum(0) == pytest.approx(0.4)

    def test_warning_callback_can_abort(self, model):
        tree, reg = model
        reg.add(CastingTable("Spare", [[0.2, 0.2], [0.1, 0.1]]))
        seen = []

        def stop(warning):
            seen.append(warning)
            return False

        report = check(tree, reg, on_warning=stop)
        assert not report.ok
        assert report.aborted
        assert len(seen) == 1
        assert not tree.is_checked(reg)

    def test_warning_callback_can_continue(self, model):
        tree, reg = model
        reg.add(CastingTable("Spare", [[0.2, 0.2], [0.1, 0.1]]))
        report = check(tree, reg, on_warning=lambda w: True)
        assert report.ok
        assert len(report.warnings) == 2
        assert tree.is_checked(reg)


# ── Checked state ─────────────────────────────────────────────────────

class TestCheckedState:
    def test_edit_after_check(self, model):
        tree, reg = model
        check(tree, reg)
        tree.rename(tree.root.children[0], "A2")
        assert not tree.is_checked(reg)

    def test_casting_value_edit_keeps_check(self, model):
        tree, reg = model
        check(tree, reg)
        reg.get("X").set(0, 0, 0.5)
        assert tree.is_checked(reg)

    def test_type_change(self, model):
        tree, reg = model
        check(tree, reg)
        tree.set_kind(tree.root.children[0], StageType.DIRECT)
        assert not tree.is_checked(reg)
