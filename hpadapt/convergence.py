"""
Append-only convergence history of adaptive runs.

Each completed adaptivity step contributes one entry holding the working DOF
count, the error estimate, the exact error (NaN when no exact solution is
known) and the elapsed wall-clock time. The pairs are what convergence graphs
are drawn from; writing them to disk is left to the caller, e.g. through
``to_dataframe().to_csv(...)``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd

from .adaptive.hp.data_structures import AdaptivityOutcome, SolveStatus


__all__ = ["ConvergenceEntry", "ConvergenceHistory"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConvergenceEntry:
    """One completed adaptivity step."""

    time_step: int
    adaptivity_step: int
    num_dofs: int
    num_reference_dofs: int
    error_estimate: float
    error_exact: float
    cpu_time: float
    solve_status: SolveStatus
    outcome: AdaptivityOutcome | None = None


class ConvergenceHistory:
    """Ordered, append-only list of convergence entries."""

    def __init__(self) -> None:
        self._entries: list[ConvergenceEntry] = []

    def append(self, entry: ConvergenceEntry) -> None:
        self._entries.append(entry)
        logger.debug(
            "History entry: ts=%d, as=%d, ndof=%d, err_est=%g%%",
            entry.time_step,
            entry.adaptivity_step,
            entry.num_dofs,
            entry.error_estimate,
        )

    @property
    def entries(self) -> tuple[ConvergenceEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ConvergenceEntry]:
        return iter(tuple(self._entries))

    def for_time_step(self, time_step: int) -> list[ConvergenceEntry]:
        return [entry for entry in self._entries if entry.time_step == time_step]

    def dof_estimate_pairs(self) -> list[tuple[int, float]]:
        """(DOFs, error estimate %) per step."""
        return [(entry.num_dofs, entry.error_estimate) for entry in self._entries]

    def dof_exact_pairs(self) -> list[tuple[int, float]]:
        """(DOFs, exact error %) per step; empty when no exact solution was supplied."""
        return [
            (entry.num_dofs, entry.error_exact)
            for entry in self._entries
            if not np.isnan(entry.error_exact)
        ]

    def cpu_estimate_pairs(self) -> list[tuple[float, float]]:
        """(elapsed seconds, error estimate %) per step."""
        return [(entry.cpu_time, entry.error_estimate) for entry in self._entries]

    def cpu_exact_pairs(self) -> list[tuple[float, float]]:
        """(elapsed seconds, exact error %) per step."""
        return [
            (entry.cpu_time, entry.error_exact)
            for entry in self._entries
            if not np.isnan(entry.error_exact)
        ]

    def to_dataframe(self) -> pd.DataFrame:
        """Export all entries as a DataFrame, one row per adaptivity step."""
        columns = [
            "time_step",
            "adaptivity_step",
            "num_dofs",
            "num_reference_dofs",
            "error_estimate",
            "error_exact",
            "cpu_time",
            "solve_status",
            "outcome",
        ]
        rows = []
        for entry in self._entries:
            row = asdict(entry)
            row["solve_status"] = entry.solve_status.value
            row["outcome"] = entry.outcome.value if entry.outcome is not None else None
            rows.append(row)
        return pd.DataFrame(rows, columns=columns)
