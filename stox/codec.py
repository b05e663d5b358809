"""Model (de)serialization.

dump() flattens the tree into pre-order (depth, stage) records followed
by the casting tables. load() rebuilds the tree WITHOUT parent pointers:

  Take records from the END of the buffer. For a record at depth d, the
  nearest earlier record still in the buffer with depth d-1 is its
  parent, because a pre-order listing always puts a parent before all of
  its descendants and any later d-1 record would be a sibling of that
  parent, listed after the record itself. The taken record becomes the
  FIRST child of that parent; records are taken in reverse order, so
  siblings end up in their original order. The depth-0 record is the
  root.

Hierarchical ids are not stored; check() derives them.

File form (save_model / load_model) is YAML:

    format: stox-model
    version: 1
    stages:
      - [0, Start, Direct, false]
      - [1, Dispersal, Birds, false]
      ...
    castings:
      - {name: Birds, rows: 2, cols: 3, values: [...row-major...]}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple, Union

import numpy as np
import yaml

from stox.casting import CastingRegistry, CastingTable
from stox.tree import Stage, StageTree
from stox.types import parse_kind

logger = logging.getLogger(__name__)

FORMAT_TAG = "stox-model"
FORMAT_VERSION = 1


# ═══════════════════════════════════════════════════════════════════════
# RECORDS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StageRecord:
    """One flattened stage: depth from the root plus persisted fields."""
    depth: int
    name: str
    kind: str          # "Direct" | "Success" | "Sink" | casting name | ""
    reported: bool


@dataclass(frozen=True)
class CastingRecord:
    name: str
    rows: int
    cols: int
    values: Tuple[float, ...]    # row-major


@dataclass
class ModelDump:
    """Flat persisted form of a tree and its castings."""
    stages: List[StageRecord] = field(default_factory=list)
    castings: List[CastingRecord] = field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════
# DUMP / LOAD
# ═══════════════════════════════════════════════════════════════════════

def dump(tree: StageTree, castings: CastingRegistry) -> ModelDump:
    """Flatten a model: pre-order stage records, then castings in registry order."""
    out = ModelDump()
    for depth, stage in tree.iter_with_depth():
        out.stages.append(
            StageRecord(depth, stage.name, stage.kind, stage.reported)
        )
    for table in castings:
        rows, cols = table.shape
        out.castings.append(CastingRecord(
            table.name, rows, cols,
            tuple(float(v) for v in table.rows().ravel()),
        ))
    return out


def _validate_depths(records: List[StageRecord]) -> None:
    if not records:
        raise ValueError("Model dump contains no stages")
    if records[0].depth != 0:
        raise ValueError(
            f"First stage must be the root (depth 0), got depth {records[0].depth}"
        )
    for i in range(1, len(records)):
        d = records[i].depth
        if d < 1:
            raise ValueError(
                f"Stage record {i} ('{records[i].name}') has depth {d}; "
                f"only the first record may be a root"
            )
        if d > records[i - 1].depth + 1:
            raise ValueError(
                f"Stage record {i} ('{records[i].name}') jumps from depth "
                f"{records[i - 1].depth} to {d}"
            )


def load_tree(records: List[StageRecord]) -> StageTree:
    """Rebuild a stage tree from pre-order (depth, fields) records."""
    _validate_depths(records)

    buffer: List[Tuple[int, Stage]] = []
    for rec in records:
        stage_type, casting = parse_kind(rec.kind)
        buffer.append((rec.depth, Stage(rec.name, stage_type, casting, rec.reported)))

    root = None
    while buffer:
        depth, stage = buffer.pop()
        parent_depth = depth - 1
        for j in range(len(buffer) - 1, -1, -1):
            if buffer[j][0] == parent_depth:
                buffer[j][1].children.insert(0, stage)
                break
        else:
            root = stage
    return StageTree(root)


def load_castings(records: List[CastingRecord]) -> CastingRegistry:
    registry = CastingRegistry()
    for rec in records:
        if len(rec.values) != rec.rows * rec.cols:
            raise ValueError(
                f"Casting '{rec.name}': {len(rec.values)} values for a "
                f"{rec.rows}x{rec.cols} table"
            )
        values = np.array(rec.values, dtype=np.float64).reshape(rec.rows, rec.cols)
        registry.add(CastingTable(rec.name, values))
    return registry


def load(model: ModelDump) -> Tuple[StageTree, CastingRegistry]:
    """Inverse of dump(). The returned tree is unchecked."""
    return load_tree(model.stages), load_castings(model.castings)


# ═══════════════════════════════════════════════════════════════════════
# YAML FILES
# ═══════════════════════════════════════════════════════════════════════

def to_document(model: ModelDump) -> dict:
    return {
        'format': FORMAT_TAG,
        'version': FORMAT_VERSION,
        'stages': [
            [r.depth, r.name, r.kind, r.reported] for r in model.stages
        ],
        'castings': [
            {'name': c.name, 'rows': c.rows, 'cols': c.cols,
             'values': list(c.values)}
            for c in model.castings
        ],
    }


def from_document(doc: dict) -> ModelDump:
    """Parse a model document; raises ValueError when malformed."""
    if not isinstance(doc, dict) or doc.get('format') != FORMAT_TAG:
        raise ValueError(f"Not a {FORMAT_TAG} document")
    version = doc.get('version')
    if version != FORMAT_VERSION:
        raise ValueError(f"Unsupported {FORMAT_TAG} version: {version!r}")
    model = ModelDump()
    try:
        for entry in doc.get('stages') or []:
            depth, name, kind, reported = entry
            model.stages.append(
                StageRecord(int(depth), str(name), str(kind or ""), bool(reported))
            )
        for entry in doc.get('castings') or []:
            model.castings.append(CastingRecord(
                str(entry['name']), int(entry['rows']), int(entry['cols']),
                tuple(float(v) for v in entry['values']),
            ))
    except (TypeError, KeyError, ValueError) as exc:
        raise ValueError(f"Malformed {FORMAT_TAG} document: {exc}") from exc
    return model


def save_model(path: Union[str, Path], tree: StageTree,
               castings: CastingRegistry) -> Path:
    """Write a model file (YAML)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    doc = to_document(dump(tree, castings))
    with open(path, 'w') as f:
        yaml.safe_dump(doc, f, sort_keys=False, default_flow_style=None)
    logger.debug("Saved model to %s (%d stages, %d castings)",
                 path, len(doc['stages']), len(doc['castings']))
    return path


def load_model(path: Union[str, Path]) -> Tuple[StageTree, CastingRegistry]:
    """Read a model file written by save_model().

    Raises:
        FileNotFoundError: If path doesn't exist.
        ValueError: If the document is malformed.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model file not found: {path}")
    with open(path) as f:
        doc = yaml.safe_load(f)
    tree, castings = load(from_document(doc))
    logger.debug("Loaded model from %s (%d stages, %d castings)",
                 path, len(tree), len(castings))
    return tree, castings
