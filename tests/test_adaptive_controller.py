import numpy as np
import pytest
from numpy.testing import assert_allclose

from hpadapt import (
    AdaptiveParameters,
    AdaptivityOutcome,
    ConfigurationError,
    ConvergenceHistory,
    DataIntegrityError,
    SolverConvergenceError,
    SolveStatus,
    solve_adaptive,
)
from hpadapt.adaptive.hp import solve_hp_adaptive_internal


TEN_PERCENT = [0.02, 0.0]
CONVERGED = [1e-6, 1e-6]


class FailingSolver:
    def __init__(self, error, failures=1):
        self.error = error
        self.failures = failures
        self.calls = 0

    def solve(self, discretization, previous=None, time=None, time_step=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return np.zeros(sum(discretization.degrees.values()) + 1)


def _run(working, provider, solver, norms, evaluator, history=None, **params):
    return solve_hp_adaptive_internal(
        working,
        provider,
        solver,
        provider,
        norms,
        evaluator,
        AdaptiveParameters(**params),
        history=history,
    )


class TestStoppingCriteria:
    def test_converges_without_refinement(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([CONVERGED]),
            decade_evaluator,
        )

        assert result.outcome is AdaptivityOutcome.CONVERGED
        assert result.success
        assert result.num_steps == 1
        assert fake_provider.reference_builds == 1
        assert not any(isinstance(c, tuple) for c in fake_provider.calls)
        assert_allclose(result.error_estimate.relative_error_percent, 0.1)

    def test_refines_then_converges(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        history = ConvergenceHistory()
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([TEN_PERCENT, CONVERGED]),
            decade_evaluator,
            history=history,
        )

        assert result.outcome is AdaptivityOutcome.CONVERGED
        assert result.num_steps == 2
        # p+1 buys the largest error decrease per added DOF
        assert fake_discretization.degrees == {0: 3, 1: 2}
        assert result.num_dofs == 6
        assert result.steps[0].num_refined_elements == 1
        assert [ndof for ndof, _ in history.dof_estimate_pairs()] == [5, 6]
        assert_allclose([err for _, err in history.dof_estimate_pairs()], [10.0, 0.1])

    def test_dof_ceiling_reached_before_refinement(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([TEN_PERCENT]),
            decade_evaluator,
            dof_ceiling=5,
        )

        assert result.outcome is AdaptivityOutcome.DOF_CEILING
        assert not result.success
        assert fake_discretization.degrees == {0: 2, 1: 2}
        assert "ceiling" in result.message

    def test_dof_ceiling_reached_by_refinement_stops_immediately(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([TEN_PERCENT]),
            decade_evaluator,
            dof_ceiling=6,
        )

        assert result.outcome is AdaptivityOutcome.DOF_CEILING
        assert result.num_dofs == 6
        assert fake_provider.reference_builds == 1

    def test_stagnation_when_no_candidate_exists(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([TEN_PERCENT]),
            decade_evaluator,
            max_polynomial_degree=2,
        )

        assert result.outcome is AdaptivityOutcome.STAGNATED
        assert result.num_steps == 1
        # no further reference space is built after stagnation
        assert fake_provider.reference_builds == 1
        assert "assign_dofs" not in fake_provider.calls

    def test_max_adaptivity_steps(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([TEN_PERCENT]),
            decade_evaluator,
            max_adaptivity_steps=2,
        )

        assert result.outcome is AdaptivityOutcome.MAX_STEPS
        assert result.num_steps == 2
        assert fake_provider.reference_builds == 2

    def test_dofs_grow_monotonically(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([TEN_PERCENT] * 4 + [CONVERGED]),
            decade_evaluator,
        )

        dofs = [step.num_dofs for step in result.steps]
        assert len(dofs) == 5
        assert all(b > a for a, b in zip(dofs[:-1], dofs[1:], strict=True))


class TestRefinementCommit:
    def test_all_elements_scored_before_any_refinement(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([[0.02, 0.02], CONVERGED]),
            decade_evaluator,
        )

        assert decade_evaluator.seen_degrees[:2] == [{0: 2, 1: 2}, {0: 2, 1: 2}]
        assert fake_provider.calls[:5] == [
            "create_reference",
            ("apply_refinement", 0),
            ("apply_refinement", 1),
            "assign_dofs",
            "create_reference",
        ]


class TestSolveFailures:
    def test_degraded_solve_continues_with_last_iterate(
        self, fake_discretization, fake_provider, scripted_norms, decade_evaluator
    ):
        fields = []
        original = fake_provider.create_field

        def recording_create_field(discretization, coefficients):
            fields.append(np.array(coefficients))
            return original(discretization, coefficients)

        fake_provider.create_field = recording_create_field
        error = SolverConvergenceError("newton diverged", last_iterate=np.ones(7), iterations=20)
        result = _run(
            fake_discretization,
            fake_provider,
            FailingSolver(error),
            scripted_norms([TEN_PERCENT, CONVERGED]),
            decade_evaluator,
        )

        assert result.outcome is AdaptivityOutcome.CONVERGED
        assert result.steps[0].solve_status is SolveStatus.DEGRADED
        assert result.steps[1].solve_status is SolveStatus.SUCCESS
        assert result.degraded_steps == [1]
        assert_allclose(fields[0], np.ones(7))
        assert len(fields) == 2
        assert not np.any(fields[1])

    def test_degraded_solve_without_iterate_uses_zero_vector(
        self, fake_discretization, fake_provider, scripted_norms, decade_evaluator
    ):
        fields = []
        original = fake_provider.create_field

        def recording_create_field(discretization, coefficients):
            fields.append(np.array(coefficients))
            return original(discretization, coefficients)

        fake_provider.create_field = recording_create_field
        _run(
            fake_discretization,
            fake_provider,
            FailingSolver(SolverConvergenceError("no iterate")),
            scripted_norms([CONVERGED]),
            decade_evaluator,
        )

        assert_allclose(fields[0], np.zeros(7))

    def test_fatal_solve_error_propagates(
        self, fake_discretization, fake_provider, scripted_norms, decade_evaluator
    ):
        with pytest.raises(ConfigurationError):
            _run(
                fake_discretization,
                fake_provider,
                FailingSolver(ConfigurationError("bad form")),
                scripted_norms([TEN_PERCENT]),
                decade_evaluator,
            )
        assert fake_discretization.degrees == {0: 2, 1: 2}

    def test_wrong_coefficient_count_is_integrity_error(
        self, fake_discretization, fake_provider, scripted_norms, decade_evaluator
    ):
        class ShortSolver:
            def solve(self, discretization, previous=None, time=None, time_step=None):
                return np.zeros(3)

        with pytest.raises(DataIntegrityError):
            _run(
                fake_discretization,
                fake_provider,
                ShortSolver(),
                scripted_norms([TEN_PERCENT]),
                decade_evaluator,
            )


class TestPublicEntryPoint:
    def test_exact_errors_are_recorded(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        history = ConvergenceHistory()
        result = solve_adaptive(
            fake_discretization,
            fake_provider,
            zero_solver,
            norm_provider=scripted_norms([TEN_PERCENT, CONVERGED], [[0.08, 0.0], [0.0, 0.0]]),
            evaluator=decade_evaluator,
            exact_solution=lambda x: (x, np.ones_like(x)),
            history=history,
        )

        assert result.success
        assert_allclose(result.error_exact.relative_error_percent, 0.0)
        assert_allclose([err for _, err in history.dof_exact_pairs()], [20.0, 0.0])

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"error_tolerance": -1.0},
            {"error_tolerance": float("nan")},
            {"threshold": 1.0},
            {"dof_ceiling": 0},
            {"min_polynomial_degree": 5, "max_polynomial_degree": 3},
            {"conv_exp": 0.0},
        ],
    )
    def test_invalid_parameters_rejected_before_any_work(
        self, kwargs, fake_discretization, fake_provider, zero_solver, scripted_norms
    ):
        with pytest.raises(ConfigurationError):
            solve_adaptive(
                fake_discretization,
                fake_provider,
                zero_solver,
                norm_provider=scripted_norms([CONVERGED]),
                **kwargs,
            )
        assert fake_provider.reference_builds == 0
        assert zero_solver.calls == []
