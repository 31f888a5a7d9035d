import numpy as np
import pytest
from numpy.testing import assert_allclose

from hpadapt.adaptive.hp.data_structures import ErrorKind, ErrorNormalization
from hpadapt.adaptive.hp.error_estimation import (
    calculate_error_record,
    calculate_exact_error_record,
    calculate_relative_error_percent,
    normalize_element_errors,
)
from hpadapt.exceptions import DataIntegrityError
from hpadapt.hp_types import ErrorNorm


class FixedNormProvider:
    def __init__(self, error_squared, norm_squared):
        self.error_squared = np.asarray(error_squared, dtype=np.float64)
        self.norm_squared = np.asarray(norm_squared, dtype=np.float64)
        self.norms = []

    def element_error_contributions(self, coarse, reference, discretization, norm):
        self.norms.append(norm)
        return self.error_squared, self.norm_squared

    def element_exact_error_contributions(self, coarse, exact, discretization, norm):
        self.norms.append(norm)
        return self.error_squared, self.norm_squared


class TestRelativeError:
    def test_global_relative_error(self):
        error = calculate_relative_error_percent(np.array([0.01, 0.03]), np.array([1.0, 3.0]))
        assert_allclose(error, 10.0)

    def test_zero_solution_zero_error(self):
        assert calculate_relative_error_percent(np.zeros(3), np.zeros(3)) == 0.0

    def test_zero_norm_nonzero_error_is_infinite(self):
        assert np.isinf(calculate_relative_error_percent(np.array([1e-4]), np.zeros(1)))

    def test_invariant_under_scaling(self):
        err_sq = np.array([0.01, 0.04, 0.002])
        norm_sq = np.array([1.0, 2.0, 0.5])
        scaled = calculate_relative_error_percent(1e-12 * err_sq, 1e-12 * norm_sq)
        assert_allclose(scaled, calculate_relative_error_percent(err_sq, norm_sq))


class TestNormalization:
    def test_relative_to_global_norm(self):
        errors = normalize_element_errors(
            np.array([0.04, 0.01]),
            np.array([4.0, 0.01]),
            ErrorNormalization.RELATIVE_TO_GLOBAL_NORM,
        )
        assert_allclose(errors, np.array([0.2, 0.1]) / np.sqrt(4.01))

    def test_relative_to_element_norm(self):
        errors = normalize_element_errors(
            np.array([0.04, 0.01]),
            np.array([4.0, 0.01]),
            ErrorNormalization.RELATIVE_TO_ELEMENT_NORM,
        )
        assert_allclose(errors, [0.1, 1.0])

    def test_element_with_vanishing_norm(self):
        errors = normalize_element_errors(
            np.array([0.0, 0.01, 0.01]),
            np.array([0.0, 0.0, 1.0]),
            ErrorNormalization.RELATIVE_TO_ELEMENT_NORM,
        )
        assert errors[0] == 0.0
        assert np.isinf(errors[1])
        assert_allclose(errors[2], 0.1)


class TestErrorRecord:
    def test_record_from_norm_provider(self, fake_provider, fake_discretization):
        norms = FixedNormProvider([0.02, 0.0], [1.0, 1.0])
        record = calculate_error_record(
            "coarse", "reference", fake_discretization, fake_provider, norms, ErrorNorm.L2
        )

        assert record.kind is ErrorKind.ESTIMATE
        assert record.norm is ErrorNorm.L2
        assert norms.norms == [ErrorNorm.L2]
        assert record.element_ids == (0, 1)
        assert_allclose(record.relative_error_percent, 10.0)
        assert_allclose(record.element_error(0), 0.1)
        assert_allclose(record.max_element_error, 0.1)

    def test_global_value_independent_of_normalization(self, fake_provider, fake_discretization):
        norms = FixedNormProvider([0.02, 0.001], [3.0, 0.5])
        by_global = calculate_error_record(
            None,
            None,
            fake_discretization,
            fake_provider,
            norms,
            normalization=ErrorNormalization.RELATIVE_TO_GLOBAL_NORM,
        )
        by_element = calculate_error_record(
            None,
            None,
            fake_discretization,
            fake_provider,
            norms,
            normalization=ErrorNormalization.RELATIVE_TO_ELEMENT_NORM,
        )
        assert by_global.relative_error_percent == by_element.relative_error_percent

    def test_exact_record(self, fake_provider, fake_discretization):
        norms = FixedNormProvider([0.0, 0.0], [1.0, 1.0])
        record = calculate_exact_error_record(
            None, lambda x: (x, x), fake_discretization, fake_provider, norms
        )
        assert record.kind is ErrorKind.EXACT
        assert record.relative_error_percent == 0.0

    @pytest.mark.parametrize(
        "error_squared, norm_squared",
        [
            ([np.nan, 0.0], [1.0, 1.0]),
            ([0.01, 0.0], [np.nan, 1.0]),
            ([-0.01, 0.0], [1.0, 1.0]),
            ([0.01], [1.0]),
        ],
    )
    def test_corrupt_contributions_rejected(
        self, error_squared, norm_squared, fake_provider, fake_discretization
    ):
        norms = FixedNormProvider(error_squared, norm_squared)
        with pytest.raises(DataIntegrityError):
            calculate_error_record(None, None, fake_discretization, fake_provider, norms)
