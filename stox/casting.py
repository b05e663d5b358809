"""Casting tables: empirical stochastic transition matrices.

Each row of a casting is one observed casting event (e.g. the fate of the
seeds in one dropping, one tray or one plot), expressed as the fraction
of the incoming population that went to each following stage. Rows are
resampled as a whole by the propagation engine, so no distribution is
fitted to the data.

CastingRegistry owns the tables. Stages only hold casting names.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional

import numpy as np

from stox.types import RESERVED_NAMES

if TYPE_CHECKING:
    from stox.tree import StageTree

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CASTING TABLE
# ═══════════════════════════════════════════════════════════════════════

class CastingTable:
    """Named R × C matrix of non-negative transition fractions.

    Rows should each sum to 1.0; the checker reports rows that do not,
    the table itself never renormalizes.
    """

    def __init__(self, name: str, values):
        arr = np.array(values, dtype=np.float64)
        if arr.ndim != 2:
            raise ValueError(
                f"Casting '{name}' must be 2-D, got shape {arr.shape}"
            )
        if arr.shape[0] < 1 or arr.shape[1] < 1:
            raise ValueError(
                f"Casting '{name}' needs at least one row and one column, "
                f"got {arr.shape[0]}x{arr.shape[1]}"
            )
        if not np.all(np.isfinite(arr)):
            raise ValueError(f"Casting '{name}' contains non-finite values")
        if np.any(arr < 0):
            raise ValueError(f"Casting '{name}' contains negative values")
        self.name = name
        self._values = arr

    @classmethod
    def zeros(cls, name: str, rows: int, cols: int) -> 'CastingTable':
        """Create an all-zero table of the given shape."""
        return cls(name, np.zeros((rows, cols), dtype=np.float64))

    @classmethod
    def from_text(cls, name: str, text: str) -> 'CastingTable':
        """Parse tab-separated columns and newline-separated rows.

        This is the layout a spreadsheet puts on the clipboard. Blank lines
        are ignored.

        Raises:
            ValueError: If the text is not a rectangular block of numbers.
        """
        rows = [line.split('\t') for line in text.splitlines() if line.strip()]
        if not rows:
            raise ValueError(f"Casting '{name}': no rows in text")
        width = len(rows[0])
        for i, row in enumerate(rows):
            if len(row) != width:
                raise ValueError(
                    f"Casting '{name}': row {i + 1} has {len(row)} columns, "
                    f"expected {width}"
                )
        try:
            values = [[float(cell) for cell in row] for row in rows]
        except ValueError as exc:
            raise ValueError(f"Casting '{name}': {exc}") from exc
        return cls(name, values)

    def copy(self, name: Optional[str] = None) -> 'CastingTable':
        """Independent copy, optionally under a new name."""
        return CastingTable(self.name if name is None else name,
                            self._values.copy())

    # ── shape ────────────────────────────────────────────────────────

    @property
    def row_count(self) -> int:
        return self._values.shape[0]

    @property
    def column_count(self) -> int:
        return self._values.shape[1]

    @property
    def shape(self):
        return self._values.shape

    def rows(self) -> np.ndarray:
        """Read-only view of the whole matrix."""
        view = self._values.view()
        view.flags.writeable = False
        return view

    # ── cell access ──────────────────────────────────────────────────

    def _check_index(self, row: int, col: Optional[int] = None) -> None:
        if not 0 <= row < self.row_count:
            raise IndexError(
                f"Casting '{self.name}': row {row} out of range "
                f"[0, {self.row_count})"
            )
        if col is not None and not 0 <= col < self.column_count:
            raise IndexError(
                f"Casting '{self.name}': column {col} out of range "
                f"[0, {self.column_count})"
            )

    def get(self, row: int, col: int) -> float:
        self._check_index(row, col)
        return float(self._values[row, col])

    def row_sum(self, row: int) -> float:
        self._check_index(row)
        return float(self._values[row].sum())

    def set(self, row: int, col: int, value: float) -> float:
        """Store a value clamped to [0, 1] without pushing the row sum past 1.

        Only the cell being set is reduced; the rest of the row is left
        as it is.

        Returns:
            The value actually stored.
        """
        self._check_index(row, col)
        v = min(max(float(value), 0.0), 1.0)
        others = float(self._values[row].sum() - self._values[row, col])
        if others + v > 1.0:
            v = max(1.0 - others, 0.0)
        self._values[row, col] = v
        return v

    def __eq__(self, other) -> bool:
        if not isinstance(other, CastingTable):
            return NotImplemented
        return (self.name == other.name
                and self._values.shape == other._values.shape
                and np.array_equal(self._values, other._values))

    def __repr__(self) -> str:
        return (f"CastingTable({self.name!r}, "
                f"{self.row_count}x{self.column_count})")


# ═══════════════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════════════

def _validate_name(name: str) -> None:
    if not name:
        raise ValueError("Casting name must not be empty")
    if name in RESERVED_NAMES:
        raise ValueError(
            f"'{name}' is not allowed as a casting name "
            f"(reserved: {sorted(RESERVED_NAMES)})"
        )


class CastingRegistry:
    """Flat, insertion-ordered collection of casting tables keyed by name."""

    def __init__(self, tables: Optional[List[CastingTable]] = None):
        self._tables: Dict[str, CastingTable] = {}
        for table in tables or []:
            self.add(table)

    def add(self, table: CastingTable) -> CastingTable:
        _validate_name(table.name)
        if table.name in self._tables:
            raise ValueError(f"Casting '{table.name}' already exists")
        self._tables[table.name] = table
        return table

    def create(self, name: str, rows: int, cols: int) -> CastingTable:
        """Add an all-zero table."""
        return self.add(CastingTable.zeros(name, rows, cols))

    def duplicate(self, source: str, new_name: str) -> CastingTable:
        return self.add(self.get(source).copy(new_name))

    def import_text(self, name: str, text: str) -> CastingTable:
        """Add a table parsed from tab-separated text."""
        _validate_name(name)
        if name in self._tables:
            raise ValueError(f"Casting '{name}' already exists")
        return self.add(CastingTable.from_text(name, text))

    def rename(self, old: str, new: str,
               tree: Optional['StageTree'] = None) -> None:
        """Rename a casting and every stage reference to it in ``tree``."""
        table = self.get(old)
        if new == old:
            return
        _validate_name(new)
        if new in self._tables:
            raise ValueError(f"A casting named '{new}' already exists")
        # Rebuild to keep insertion order
        self._tables = {
            (new if k == old else k): v for k, v in self._tables.items()
        }
        table.name = new
        if tree is not None:
            n = tree.rename_references(old, new)
            logger.debug("Renamed casting %r -> %r (%d stage references)",
                         old, new, n)

    def delete(self, name: str, tree: Optional['StageTree'] = None) -> int:
        """Remove a casting and clear the references to it in ``tree``.

        Returns:
            Number of stages whose casting reference was cleared.
        """
        self.get(name)
        del self._tables[name]
        cleared = tree.clear_references(name) if tree is not None else 0
        if cleared:
            logger.info("Deleted casting %r; %d stage(s) now need a casting",
                        name, cleared)
        return cleared

    def get(self, name: str) -> CastingTable:
        try:
            return self._tables[name]
        except KeyError:
            raise KeyError(f"No casting named '{name}'") from None

    def find(self, name: Optional[str]) -> Optional[CastingTable]:
        """Like get() but returns None for unknown or missing names."""
        if name is None:
            return None
        return self._tables.get(name)

    def names(self) -> List[str]:
        """Casting names in alphabetical order."""
        return sorted(self._tables)

    def __contains__(self, name) -> bool:
        return name in self._tables

    def __iter__(self) -> Iterator[CastingTable]:
        return iter(list(self._tables.values()))

    def __len__(self) -> int:
        return len(self._tables)

    def __repr__(self) -> str:
        return f"CastingRegistry({list(self._tables)})"
