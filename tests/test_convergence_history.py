import math

import pandas as pd
from numpy.testing import assert_allclose

from hpadapt.adaptive.hp.data_structures import AdaptivityOutcome, SolveStatus
from hpadapt.convergence import ConvergenceEntry, ConvergenceHistory


def _entry(time_step, step, ndof, err, exact=math.nan, outcome=None):
    return ConvergenceEntry(
        time_step=time_step,
        adaptivity_step=step,
        num_dofs=ndof,
        num_reference_dofs=3 * ndof,
        error_estimate=err,
        error_exact=exact,
        cpu_time=0.1 * step,
        solve_status=SolveStatus.SUCCESS,
        outcome=outcome,
    )


class TestConvergenceHistory:
    def test_pairs_in_append_order(self):
        history = ConvergenceHistory()
        history.append(_entry(1, 1, 10, 5.0, exact=6.0))
        history.append(_entry(1, 2, 14, 0.5, exact=0.7, outcome=AdaptivityOutcome.CONVERGED))

        assert len(history) == 2
        assert history.dof_estimate_pairs() == [(10, 5.0), (14, 0.5)]
        assert history.dof_exact_pairs() == [(10, 6.0), (14, 0.7)]
        assert_allclose([t for t, _ in history.cpu_estimate_pairs()], [0.1, 0.2])
        assert [err for _, err in history.cpu_exact_pairs()] == [6.0, 0.7]

    def test_missing_exact_errors_are_skipped(self):
        history = ConvergenceHistory()
        history.append(_entry(1, 1, 10, 5.0))
        history.append(_entry(1, 2, 14, 0.5))

        assert history.dof_exact_pairs() == []
        assert history.cpu_exact_pairs() == []

    def test_entries_are_read_only_snapshot(self):
        history = ConvergenceHistory()
        history.append(_entry(1, 1, 10, 5.0))
        snapshot = history.entries
        history.append(_entry(1, 2, 14, 0.5))

        assert len(snapshot) == 1
        assert [e.adaptivity_step for e in history] == [1, 2]

    def test_filter_by_time_step(self):
        history = ConvergenceHistory()
        for ts in (1, 2, 2, 3):
            history.append(_entry(ts, 1, 10, 1.0))

        assert len(history.for_time_step(2)) == 2
        assert history.for_time_step(4) == []

    def test_dataframe_export(self):
        history = ConvergenceHistory()
        history.append(_entry(1, 1, 10, 5.0))
        history.append(_entry(1, 2, 14, 0.5, outcome=AdaptivityOutcome.CONVERGED))

        df = history.to_dataframe()

        assert isinstance(df, pd.DataFrame)
        assert list(df["num_dofs"]) == [10, 14]
        assert list(df["solve_status"]) == ["success", "success"]
        assert pd.isna(df["outcome"].iloc[0])
        assert df["outcome"].iloc[1] == "converged"
        assert df["error_exact"].isna().all()

    def test_empty_dataframe_has_columns(self):
        df = ConvergenceHistory().to_dataframe()
        assert df.empty
        assert "error_estimate" in df.columns
