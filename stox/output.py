"""Output matrix of a run: one row per iteration, one column per reported stage.

The text table keeps the layout of the model output view:

    row 0   |       | Initial | <N>    | Eps    | <eps>
    row 1   |       | <id 1>  | <id 2> | ...
    row 2   | Iter  | <name1> | <name2>| ...
    row 3+  |    1  | 12.345  | ...

It is at least five (or ``min_columns``) columns wide so the header fits.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Union

import numpy as np

from stox.types import OutputRow

N_HEADER_ROWS = 3


class OutputMatrix:
    """Populations reached by each reported stage, per iteration."""

    def __init__(self, initial_population: float, eps: float,
                 stage_ids: Sequence[str], stage_names: Sequence[str]):
        if len(stage_ids) != len(stage_names):
            raise ValueError("stage_ids and stage_names must have equal length")
        self.initial_population = float(initial_population)
        self.eps = float(eps)
        self.stage_ids = list(stage_ids)
        self.stage_names = list(stage_names)
        self._iterations: List[int] = []
        self._rows: List[np.ndarray] = []

    @classmethod
    def for_stages(cls, initial_population: float, eps: float,
                   stages) -> 'OutputMatrix':
        return cls(initial_population, eps,
                   [s.stage_id for s in stages], [s.name for s in stages])

    def append(self, row: OutputRow) -> None:
        if len(row.values) != len(self.stage_ids):
            raise ValueError(
                f"Row has {len(row.values)} values, expected {len(self.stage_ids)}"
            )
        self._iterations.append(row.iteration)
        self._rows.append(np.asarray(row.values, dtype=np.float64))

    # ── numeric access ───────────────────────────────────────────────

    @property
    def n_iterations(self) -> int:
        return len(self._rows)

    @property
    def iterations(self) -> np.ndarray:
        return np.array(self._iterations, dtype=np.int64)

    @property
    def values(self) -> np.ndarray:
        """(n_iterations, n_reported) float64 array."""
        if not self._rows:
            return np.zeros((0, len(self.stage_ids)), dtype=np.float64)
        return np.vstack(self._rows)

    def column(self, stage_id: str) -> np.ndarray:
        try:
            j = self.stage_ids.index(stage_id)
        except ValueError:
            raise KeyError(f"Stage '{stage_id}' is not reported") from None
        return self.values[:, j]

    def summary(self) -> Dict[str, dict]:
        """Per reported stage: distribution of the population reached.

        ``effectiveness`` is the mean population reached divided by the
        initial population, i.e. recruitment per seed.
        """
        vals = self.values
        out = {}
        for j, (sid, name) in enumerate(zip(self.stage_ids, self.stage_names)):
            col = vals[:, j]
            if col.size == 0:
                stats = dict(mean=np.nan, std=np.nan, median=np.nan,
                             p2_5=np.nan, p97_5=np.nan, min=np.nan, max=np.nan)
            else:
                stats = dict(
                    mean=float(col.mean()),
                    std=float(col.std(ddof=1)) if col.size > 1 else 0.0,
                    median=float(np.median(col)),
                    p2_5=float(np.percentile(col, 2.5)),
                    p97_5=float(np.percentile(col, 97.5)),
                    min=float(col.min()),
                    max=float(col.max()),
                )
            n0 = self.initial_population
            stats['effectiveness'] = (stats['mean'] / n0) if n0 > 0 else 0.0
            stats['name'] = name
            out[sid] = stats
        return out

    # ── text table ───────────────────────────────────────────────────

    def as_table(self, precision: int = 3, min_columns: int = 5) -> List[List[str]]:
        """Render header rows plus one formatted row per iteration."""
        cols = max(1 + len(self.stage_ids), min_columns, 5)
        table = [[""] * cols for _ in range(N_HEADER_ROWS + self.n_iterations)]

        table[0][1] = "Initial"
        table[0][2] = f"{self.initial_population:g}"
        table[0][3] = "Eps"
        table[0][4] = f"{self.eps:g}"
        table[2][0] = "Iter"
        for j, (sid, name) in enumerate(zip(self.stage_ids, self.stage_names), start=1):
            table[1][j] = sid
            table[2][j] = name

        for r, (it, row) in enumerate(zip(self._iterations, self._rows),
                                      start=N_HEADER_ROWS):
            table[r][0] = f"{it:4d}"
            for j, v in enumerate(row, start=1):
                table[r][j] = f"{v:10.{precision}f}"
        return table

    def to_text(self, precision: int = 3, min_columns: int = 5) -> str:
        """Tab-separated text, one line per table row."""
        return "".join(
            "\t".join(row) + "\n"
            for row in self.as_table(precision, min_columns)
        )

    def to_tsv(self, path: Union[str, Path], precision: int = 3,
               min_columns: int = 5) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_text(precision, min_columns))
        return path
