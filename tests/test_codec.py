"""Tests for stox.codec — flat model dumps and YAML model files."""

import numpy as np
import pytest
import yaml

from stox.casting import CastingRegistry, CastingTable
from stox.checker import check
from stox.codec import (
    CastingRecord,
    ModelDump,
    StageRecord,
    dump,
    from_document,
    load,
    load_model,
    load_tree,
    save_model,
    to_document,
)
from stox.tree import StageTree
from stox.types import StageType


def shape_of(tree):
    """Structure plus persisted fields, for comparing trees."""
    return [(d, s.name, s.type, s.casting, s.reported)
            for d, s in tree.iter_with_depth()]


@pytest.fixture
def model():
    tree = StageTree()
    tree.set_kind(tree.root, "R")
    a = tree.add_child(tree.root, "a", "Direct")
    tree.add_child(a, "a1", "Success", reported=True)
    b = tree.add_child(tree.root, "b", "R")
    tree.add_child(b, "b1", "Sink")
    tree.add_child(b, "b2", "Success", reported=True)
    tree.add_child(tree.root, "c", "Sink")
    reg = CastingRegistry([
        CastingTable("R", [[0.2, 0.3, 0.5], [0.1, 0.1, 0.8]]),
        CastingTable("Spare", [[1.0 / 3.0, 2.0 / 3.0]]),
    ])
    return tree, reg


# ── dump ──────────────────────────────────────────────────────────────

class TestDump:
    def test_preorder_depths(self, model):
        tree, reg = model
        out = dump(tree, reg)
        assert [(r.depth, r.name) for r in out.stages] == [
            (0, "Start"), (1, "a"), (2, "a1"), (1, "b"),
            (2, "b1"), (2, "b2"), (1, "c"),
        ]
        assert out.stages[0].kind == "R"
        assert out.stages[2] == StageRecord(2, "a1", "Success", True)

    def test_castings_row_major(self, model):
        tree, reg = model
        rec = dump(tree, reg).castings[0]
        assert (rec.name, rec.rows, rec.cols) == ("R", 2, 3)
        assert rec.values == (0.2, 0.3, 0.5, 0.1, 0.1, 0.8)


# ── load (nearest-ancestor reconstruction) ────────────────────────────

class TestLoad:
    def test_round_trip(self, model):
        tree, reg = model
        tree2, reg2 = load(dump(tree, reg))
        assert shape_of(tree2) == shape_of(tree)
        assert [t.name for t in reg2] == ["R", "Spare"]
        for t in reg:
            assert reg2.get(t.name) == t

    def test_loaded_tree_is_unchecked(self, model):
        tree, reg = model
        check(tree, reg)
        tree2, reg2 = load(dump(tree, reg))
        assert not tree2.is_checked(reg2)
        assert all(s.stage_id is None for s in tree2.iter_preorder())

    def test_sibling_order_kept(self):
        records = [StageRecord(0, "r", "X", False)] + [
            StageRecord(1, f"c{i}", "Sink", False) for i in range(6)
        ]
        tree = load_tree(records)
        assert [c.name for c in tree.root.children] == [f"c{i}" for i in range(6)]

    def test_deep_then_shallow(self):
        records = [
            StageRecord(0, "r", "X", False),
            StageRecord(1, "p", "Y", False),
            StageRecord(2, "p1", "Direct", False),
            StageRecord(3, "p1a", "Success", False),
            StageRecord(2, "p2", "Sink", False),
            StageRecord(1, "q", "Sink", False),
        ]
        tree = load_tree(records)
        p, q = tree.root.children
        assert [c.name for c in p.children] == ["p1", "p2"]
        assert p.children[0].children[0].name == "p1a"
        assert q.children == []

    def test_single_root(self):
        tree = load_tree([StageRecord(0, "only", "Success", True)])
        assert tree.root.name == "only"
        assert tree.root.type == StageType.SUCCESS

    @pytest.mark.parametrize("records, match", [
        ([], "no stages"),
        ([StageRecord(1, "x", "Sink", False)], "root"),
        ([StageRecord(0, "r", "Direct", False),
          StageRecord(0, "r2", "Direct", False)], "only the first"),
        ([StageRecord(0, "r", "Direct", False),
          StageRecord(2, "x", "Sink", False)], "jumps"),
    ])
    def test_malformed_depths(self, records, match):
        with pytest.raises(ValueError, match=match):
            load_tree(records)

    def test_value_count_mismatch(self):
        bad = ModelDump(
            stages=[StageRecord(0, "r", "Success", False)],
            castings=[CastingRecord("X", 2, 2, (1.0, 0.0, 0.5))],
        )
        with pytest.raises(ValueError, match="3 values"):
            load(bad)


# ── YAML files ────────────────────────────────────────────────────────

class TestFiles:
    def test_file_round_trip_is_exact(self, model, tmp_path):
        tree, reg = model
        path = save_model(tmp_path / "m" / "model.yaml", tree, reg)
        tree2, reg2 = load_model(path)
        assert shape_of(tree2) == shape_of(tree)
        np.testing.assert_array_equal(reg2.get("Spare").rows(),
                                      reg.get("Spare").rows())

    def test_document_tags(self, model, tmp_path):
        tree, reg = model
        path = save_model(tmp_path / "model.yaml", tree, reg)
        doc = yaml.safe_load(path.read_text())
        assert doc["format"] == "stox-model"
        assert doc["version"] == 1
        assert doc["stages"][0] == [0, "Start", "R", False]

    def test_caster_without_casting_survives(self, tmp_path):
        tree = StageTree()
        tree.set_kind(tree.root, "")
        path = save_model(tmp_path / "model.yaml", tree, CastingRegistry())
        tree2, _ = load_model(path)
        assert tree2.root.type == StageType.CASTER
        assert tree2.root.casting is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_model(tmp_path / "absent.yaml")

    @pytest.mark.parametrize("doc, match", [
        ({"format": "other"}, "Not a stox-model"),
        (["not", "a", "mapping"], "Not a stox-model"),
        ({"format": "stox-model", "version": 2}, "version"),
        ({"format": "stox-model", "version": 1,
          "stages": [[0, "r"]]}, "Malformed"),
        ({"format": "stox-model", "version": 1,
          "stages": [[0, "r", "Direct", False]],
          "castings": [{"name": "X", "rows": 1}]}, "Malformed"),
    ])
    def test_malformed_documents(self, doc, match):
        with pytest.raises(ValueError, match=match):
            from_document(doc)

    def test_document_round_trip(self, model):
        tree, reg = model
        d = dump(tree, reg)
        assert from_document(to_document(d)) == d

    def test_sample_model_loads(self, sample_model):
        tree, reg = sample_model
        assert len(tree) == 22
        assert reg.names() == ["BirdMicrohabitat", "Germination",
                               "Removal", "SeedPredation"]
