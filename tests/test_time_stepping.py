import pytest
from numpy.testing import assert_allclose

from hpadapt import (
    AdaptivityOutcome,
    ConfigurationError,
    ConvergenceHistory,
    DofMapDesyncError,
    solve_transient_adaptive,
)
from hpadapt.adaptive.hp.data_structures import AdaptiveParameters, TransientParameters
from hpadapt.adaptive.hp.time_stepping import (
    compute_num_time_steps,
    derefine_working,
    solve_transient_hp_adaptive_internal,
)
from hpadapt.hp_types import DerefinementPolicy


CONVERGED = [1e-6, 1e-6]


def _run(working, provider, solver, norms, evaluator, history=None, **transient):
    return solve_transient_hp_adaptive_internal(
        working,
        provider,
        solver,
        provider,
        norms,
        evaluator,
        AdaptiveParameters(),
        TransientParameters(**transient),
        initial_condition="u0",
        history=history,
    )


class TestTimeStepCount:
    @pytest.mark.parametrize(
        "time_step, final_time, initial_time, expected",
        [
            (0.05, 2.0, 0.0, 40),
            (0.25, 1.0, 0.0, 4),
            (0.3, 1.0, 0.0, 4),
            (0.1, 0.3, 0.0, 3),
            (0.1, 1.0, 0.5, 5),
        ],
    )
    def test_integer_step_count(self, time_step, final_time, initial_time, expected):
        params = TransientParameters(
            time_step=time_step, final_time=final_time, initial_time=initial_time
        )
        assert compute_num_time_steps(params) == expected


class TestTransientDriver:
    def test_previous_solution_chaining_and_times(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        history = ConvergenceHistory()
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([CONVERGED]),
            decade_evaluator,
            history=history,
            time_step=0.25,
            final_time=1.0,
        )

        assert result.num_time_steps == 4
        assert result.outcomes == [AdaptivityOutcome.CONVERGED] * 4
        assert_allclose(result.times, [0.25, 0.5, 0.75, 1.0])
        assert_allclose([call["time"] for call in zero_solver.calls], [0.0, 0.25, 0.5, 0.75])
        assert all(call["time_step"] == 0.25 for call in zero_solver.calls)

        assert zero_solver.calls[0]["previous"] == "u0"
        for ts in range(1, 4):
            assert zero_solver.calls[ts]["previous"] == result.time_steps[ts - 1].reference_solution
        assert result.final_solution == result.time_steps[-1].reference_solution
        assert [entry.time_step for entry in history] == [1, 2, 3, 4]

    def test_derefinement_before_every_step_but_the_first(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([CONVERGED]),
            decade_evaluator,
            time_step=0.25,
            final_time=1.0,
            derefinement_policy=DerefinementPolicy.UNREFINE_DECREMENT_DEGREE,
        )

        calls = fake_provider.calls
        derefinements = [i for i, call in enumerate(calls) if isinstance(call, tuple)]
        assert len(derefinements) == 3
        assert all(calls[i] == ("derefine", 3, 2) for i in derefinements)
        assert all(calls[i + 1] == "assign_dofs" for i in derefinements)
        assert calls[0] == "create_reference"

    def test_derefinement_frequency(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([CONVERGED]),
            decade_evaluator,
            time_step=0.2,
            final_time=1.0,
            derefinement_frequency=2,
        )

        derefinements = [c for c in fake_provider.calls if isinstance(c, tuple)]
        assert len(derefinements) == 2

    def test_refinement_carries_over_between_steps(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        result = _run(
            fake_discretization,
            fake_provider,
            zero_solver,
            scripted_norms([[0.02, 0.0], CONVERGED]),
            decade_evaluator,
            time_step=0.5,
            final_time=1.0,
            derefinement_frequency=5,
        )

        assert [sol.num_steps for sol in result.time_steps] == [2, 1]
        assert fake_discretization.degrees == {0: 3, 1: 2}


class TestDerefinement:
    def test_derefine_reassigns_dofs(self, fake_discretization, fake_provider):
        fake_discretization.degrees = {0: 5, 1: 4}

        num_dofs = derefine_working(
            fake_discretization, fake_provider, DerefinementPolicy.UNREFINE_RESET_DEGREE, 2
        )

        assert num_dofs == 5
        assert fake_discretization.synced
        assert fake_provider.calls == [("derefine", 2, 2), "assign_dofs"]

    def test_unsynchronized_dof_map_is_fatal(
        self, fake_discretization, fake_provider, zero_solver, scripted_norms, decade_evaluator
    ):
        def get_num_dofs(discretization):
            if not discretization.synced:
                raise DofMapDesyncError("stale DOF map")
            return sum(discretization.degrees.values()) + 1

        fake_provider.get_num_dofs = get_num_dofs
        fake_provider.assign_dofs = lambda discretization: None

        with pytest.raises(DofMapDesyncError):
            _run(
                fake_discretization,
                fake_provider,
                zero_solver,
                scripted_norms([CONVERGED]),
                decade_evaluator,
                time_step=0.5,
                final_time=1.0,
            )
        assert len(zero_solver.calls) == 1


class TestPublicEntryPoint:
    @pytest.mark.parametrize(
        "kwargs",
        [{"time_step": 0.0}, {"final_time": -1.0}, {"derefinement_policy": 7}],
    )
    def test_invalid_transient_parameters(
        self,
        kwargs,
        fake_discretization,
        fake_provider,
        zero_solver,
        scripted_norms,
        decade_evaluator,
    ):
        with pytest.raises(ConfigurationError):
            solve_transient_adaptive(
                fake_discretization,
                fake_provider,
                zero_solver,
                "u0",
                norm_provider=scripted_norms([CONVERGED]),
                evaluator=decade_evaluator,
                **kwargs,
            )
        assert zero_solver.calls == []
