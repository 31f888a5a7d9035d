import numpy as np
import pytest

from hpadapt.hp_types import RefinementType


class FakeDiscretization:
    """Elements that only carry a degree; DOFs = sum of degrees + 1."""

    def __init__(self, degrees):
        self.degrees = dict(enumerate(degrees))
        self.synced = True


class FakeProvider:
    def __init__(self, splittable=False):
        self.splittable = splittable
        self.calls = []
        self.reference_builds = 0

    def create_reference(self, discretization):
        self.reference_builds += 1
        self.calls.append("create_reference")
        return FakeDiscretization([p + 1 for p in discretization.degrees.values()])

    def get_num_dofs(self, discretization):
        return sum(discretization.degrees.values()) + 1

    def element_ids(self, discretization):
        return sorted(discretization.degrees)

    def element_degree(self, discretization, element_id):
        return discretization.degrees[element_id]

    def can_split(self, discretization, element_id):
        return self.splittable

    def son_count(self, discretization, element_id):
        return 2

    def apply_refinement(self, discretization, element_id, candidate):
        self.calls.append(("apply_refinement", element_id))
        if candidate.refinement is RefinementType.P_INCREASE:
            discretization.degrees[element_id] = candidate.son_degrees[0]
        discretization.synced = False

    def assign_dofs(self, discretization):
        self.calls.append("assign_dofs")
        discretization.synced = True

    def derefine(self, discretization, policy, base_degree):
        self.calls.append(("derefine", int(policy), base_degree))
        for element_id in discretization.degrees:
            discretization.degrees[element_id] = base_degree
        discretization.synced = False

    def create_field(self, discretization, coefficients):
        return ("field", self.reference_builds, tuple(coefficients))

    def project(self, reference_field, target):
        return ("coarse", reference_field)


class ScriptedNormProvider:
    """Returns scripted per-element squared errors, one entry per call."""

    def __init__(self, error_script, exact_script=None):
        self.error_script = list(error_script)
        self.exact_script = list(exact_script or [])
        self.calls = 0

    def element_error_contributions(self, coarse, reference, discretization, norm):
        err_sq = np.asarray(self.error_script[min(self.calls, len(self.error_script) - 1)])
        self.calls += 1
        return err_sq, np.ones_like(err_sq)

    def element_exact_error_contributions(self, coarse, exact, discretization, norm):
        index = min(self.calls - 1, len(self.exact_script) - 1)
        err_sq = np.asarray(self.exact_script[index])
        return err_sq, np.ones_like(err_sq)


class DecadeEvaluator:
    """Projection error 10**-(1 + log2(p)): every extra degree helps a bit less."""

    def __init__(self):
        self.seen_degrees = []

    def candidate_projection_error(self, reference, discretization, element_id, candidate, norm):
        if candidate.refinement is RefinementType.NONE:
            self.seen_degrees.append(dict(discretization.degrees))
        if candidate.is_split:
            return 10.0 ** -(1.0 + np.log2(min(candidate.son_degrees)))
        return 10.0 ** -(1.0 + np.log2(candidate.son_degrees[0]))

    def candidate_dof_count(self, candidate):
        return sum(candidate.son_degrees) + 1


class ZeroSolver:
    def __init__(self):
        self.calls = []

    def solve(self, discretization, previous=None, time=None, time_step=None):
        self.calls.append({"previous": previous, "time": time, "time_step": time_step})
        return np.zeros(sum(discretization.degrees.values()) + 1)


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def fake_discretization():
    return FakeDiscretization([2, 2])


@pytest.fixture
def decade_evaluator():
    return DecadeEvaluator()


@pytest.fixture
def zero_solver():
    return ZeroSolver()


@pytest.fixture
def scripted_norms():
    return ScriptedNormProvider
