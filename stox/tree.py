"""Stage tree: the hierarchy of seed fates.

The tree owns its stages (parents own children, no back-pointers). The
root stage, named "Start" by convention, always exists and receives the
initial population. Stages refer to casting tables by name only.

Traversals use an explicit stack so deep trees never hit the recursion
limit.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Tuple, Union

from stox.types import ROOT_NAME, StageType, kind_text, parse_kind

logger = logging.getLogger(__name__)

Kind = Union[StageType, str]


# ═══════════════════════════════════════════════════════════════════════
# STAGE
# ═══════════════════════════════════════════════════════════════════════

class Stage:
    """One node of the stage tree.

    Attributes:
        name: Display label.
        type: StageType.
        casting: Casting name; only meaningful for CASTER stages.
        reported: Include this stage's population in the run output.
        children: Ordered following stages.
        stage_id: Dotted hierarchical id ("1.2.1"), set by
            StageTree.assign_hierarchical_ids(); None until then.
    """

    __slots__ = ('name', 'type', 'casting', 'reported', 'children', 'stage_id')

    def __init__(self, name: str, stage_type: StageType = StageType.DIRECT,
                 casting: Optional[str] = None, reported: bool = False):
        self.name = name
        self.type = StageType(stage_type)
        self.casting = casting if self.type == StageType.CASTER else None
        self.reported = bool(reported)
        self.children: List[Stage] = []
        self.stage_id: Optional[str] = None

    @property
    def kind(self) -> str:
        """Kind text: "Direct", "Success", "Sink" or the casting name."""
        return kind_text(self.type, self.casting)

    @property
    def is_terminal(self) -> bool:
        return self.type in (StageType.SUCCESS, StageType.SINK)

    def label(self) -> str:
        """Name plus id, for messages."""
        return f"'{self.name}' ({self.stage_id or '?'})"

    def __repr__(self) -> str:
        return (f"Stage({self.name!r}, {self.type.name}, "
                f"casting={self.casting!r}, children={len(self.children)})")


def _resolve_kind(kind: Kind, casting: Optional[str]) -> Tuple[StageType, Optional[str]]:
    if isinstance(kind, str):
        stage_type, parsed = parse_kind(kind)
        if casting is not None and stage_type != StageType.CASTER:
            raise ValueError(f"Stage kind '{kind}' cannot take a casting")
        return stage_type, casting if casting is not None else parsed
    stage_type = StageType(kind)
    if stage_type != StageType.CASTER and casting is not None:
        raise ValueError(
            f"Only caster stages take a casting, got {stage_type.name}"
        )
    return stage_type, casting


# ═══════════════════════════════════════════════════════════════════════
# STAGE TREE
# ═══════════════════════════════════════════════════════════════════════

class StageTree:
    """Rooted, ordered tree of stages.

    Structural edits should go through the tree methods; any edit after a
    successful check makes the tree unchecked again (see fingerprint()).
    """

    def __init__(self, root: Optional[Stage] = None):
        self.root = root if root is not None else Stage(ROOT_NAME)
        self._checked_fingerprint: Optional[tuple] = None

    # ── construction ─────────────────────────────────────────────────

    def add_child(self, parent: Stage, name: str,
                  kind: Kind = StageType.DIRECT,
                  casting: Optional[str] = None,
                  reported: bool = False) -> Stage:
        """Append a new stage as the last child of ``parent``.

        ``kind`` is a StageType or its text form; a text that is not a
        reserved kind name is taken as a casting name.
        """
        if not name:
            raise ValueError("Stage name must not be empty")
        stage_type, casting = _resolve_kind(kind, casting)
        stage = Stage(name, stage_type, casting, reported)
        parent.children.append(stage)
        return stage

    def add_sibling(self, stage: Stage, name: str,
                    kind: Kind = StageType.DIRECT,
                    casting: Optional[str] = None,
                    reported: bool = False) -> Stage:
        """Append a new stage under the parent of ``stage``."""
        parent = self.parent_of(stage)
        if parent is None:
            raise ValueError("The root stage cannot have siblings")
        return self.add_child(parent, name, kind, casting, reported)

    def remove(self, stage: Stage) -> None:
        """Detach and discard ``stage`` and its whole subtree."""
        if stage is self.root:
            raise ValueError("The root stage cannot be removed")
        parent = self.parent_of(stage)
        if parent is None:
            raise ValueError(f"Stage {stage.label()} is not in this tree")
        parent.children = [c for c in parent.children if c is not stage]

    def clone(self, stage: Stage) -> Stage:
        """Detached deep copy of ``stage`` and its subtree, ids cleared."""
        dup = _copy_stage(stage)
        stack = [(stage, dup)]
        while stack:
            src, dst = stack.pop()
            for child in src.children:
                child_dup = _copy_stage(child)
                dst.children.append(child_dup)
                stack.append((child, child_dup))
        return dup

    def graft(self, target: Stage, subtree: Stage) -> Stage:
        """Append a detached subtree (e.g. from clone()) under ``target``."""
        if self.contains(subtree):
            raise ValueError("Graft a clone, not a stage already in the tree")
        target.children.append(subtree)
        return subtree

    # ── editing ──────────────────────────────────────────────────────

    def rename(self, stage: Stage, name: str) -> None:
        if not name:
            raise ValueError("Stage name must not be empty")
        stage.name = name

    def set_kind(self, stage: Stage, kind: Kind,
                 casting: Optional[str] = None) -> None:
        stage.type, stage.casting = _resolve_kind(kind, casting)

    def set_reported(self, stage: Stage, reported: bool) -> None:
        stage.reported = bool(reported)

    def report_all(self) -> None:
        """Report every stage except the root."""
        for stage in self._non_root():
            stage.reported = True

    def report_none(self) -> None:
        for stage in self._non_root():
            stage.reported = False

    def report_successes(self) -> None:
        """Report SUCCESS stages only."""
        for stage in self._non_root():
            stage.reported = stage.type == StageType.SUCCESS

    def _non_root(self) -> Iterator[Stage]:
        it = self.iter_preorder()
        next(it)
        return it

    # ── casting references ───────────────────────────────────────────

    def count_references(self, casting: str) -> int:
        return sum(1 for s in self.iter_preorder()
                   if s.type == StageType.CASTER and s.casting == casting)

    def rename_references(self, old: str, new: str) -> int:
        n = 0
        for stage in self.iter_preorder():
            if stage.type == StageType.CASTER and stage.casting == old:
                stage.casting = new
                n += 1
        return n

    def clear_references(self, casting: str) -> int:
        """Unset the casting of every stage using ``casting``."""
        n = 0
        for stage in self.iter_preorder():
            if stage.type == StageType.CASTER and stage.casting == casting:
                stage.casting = None
                n += 1
        return n

    # ── traversal ────────────────────────────────────────────────────

    def iter_preorder(self) -> Iterator[Stage]:
        """Stages in pre-order: every parent before its descendants."""
        return _preorder(self.root)

    def iter_with_depth(self) -> Iterator[Tuple[int, Stage]]:
        """(depth, stage) pairs in pre-order, root at depth 0."""
        stack = [(0, self.root)]
        while stack:
            depth, stage = stack.pop()
            yield depth, stage
            for child in reversed(stage.children):
                stack.append((depth + 1, child))

    def parent_of(self, stage: Stage) -> Optional[Stage]:
        for node in self.iter_preorder():
            for child in node.children:
                if child is stage:
                    return node
        return None

    def contains(self, stage: Stage) -> bool:
        return any(s is stage for s in self.iter_preorder())

    def find(self, stage_id: str) -> Stage:
        """Stage with the given hierarchical id (ids must be assigned)."""
        for stage in self.iter_preorder():
            if stage.stage_id == stage_id:
                return stage
        raise KeyError(f"No stage with id '{stage_id}'")

    def reported_stages(self) -> List[Stage]:
        """Reported stages in pre-order, i.e. output column order."""
        return [s for s in self.iter_preorder() if s.reported]

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_preorder())

    # ── ids ──────────────────────────────────────────────────────────

    def assign_hierarchical_ids(self) -> None:
        """Label stages "1", "1.1", "1.2", "1.2.1", ...

        The root is "1"; the k-th child (1-based) of a stage gets
        parent_id + "." + k. Parents are always labelled before their
        children because the walk is pre-order.
        """
        self.root.stage_id = "1"
        for stage in self.iter_preorder():
            for k, child in enumerate(stage.children, start=1):
                child.stage_id = f"{stage.stage_id}.{k}"

    # ── check bookkeeping ────────────────────────────────────────────

    def fingerprint(self, castings=None) -> tuple:
        """Hashable summary of everything the structural check depends on."""
        stages = tuple(
            (depth, s.name, int(s.type), s.casting, s.reported, len(s.children))
            for depth, s in self.iter_with_depth()
        )
        tables = ()
        if castings is not None:
            tables = tuple((t.name, t.shape) for t in castings)
        return stages, tables

    def mark_checked(self, castings) -> None:
        self._checked_fingerprint = self.fingerprint(castings)

    def mark_unchecked(self) -> None:
        self._checked_fingerprint = None

    def is_checked(self, castings) -> bool:
        """True if unchanged since the last successful check with ``castings``."""
        return (self._checked_fingerprint is not None
                and self._checked_fingerprint == self.fingerprint(castings))

    def render(self) -> str:
        """Indented text outline: id, name, kind, report mark."""
        lines = []
        for depth, stage in self.iter_with_depth():
            mark = " *" if stage.reported else ""
            sid = stage.stage_id or "-"
            lines.append(f"{'  ' * depth}{sid:<8} {stage.name} [{stage.kind}]{mark}")
        return "\n".join(lines)


def _preorder(root: Stage) -> Iterator[Stage]:
    stack = [root]
    while stack:
        stage = stack.pop()
        yield stage
        stack.extend(reversed(stage.children))


def _copy_stage(stage: Stage) -> Stage:
    return Stage(stage.name, stage.type, stage.casting, stage.reported)
