import numpy as np
import pytest

from mpaspv.budget import BudgetTerms, TendencyCategory
from mpaspv.calc.constants import MISSING_VALUE
from mpaspv.interp import (
    Bracket,
    IsobaricAccumulators,
    interpolate,
    interpolate_isobaric,
    isobaric_bracket,
    isobaric_brackets,
)

PRESSURE = np.array([
    [1.0e5, 8.0e4, 6.0e4, 4.0e4],
    [9.0e4, 7.5e4, 5.5e4, 3.5e4],
])


def test_interpolate_single_surface():
    field = np.array([[0.0, 1.0, 2.0, 3.0], [10.0, 20.0, 30.0, 40.0]])
    bracket = Bracket(np.array([1, -1]), np.array([0.25, np.nan]))
    out = interpolate(field, bracket)
    np.testing.assert_allclose(out, [1.25, MISSING_VALUE])

    out = interpolate(field, bracket, fill_value=np.nan)
    assert np.isnan(out[1])


def test_interpolate_surface_axis():
    field = np.arange(8.0).reshape(2, 4)
    bracket = Bracket(np.array([[0, 2], [1, -1]]), np.array([[0.5, 1.0], [0.0, np.nan]]))
    out = interpolate(field, bracket, fill_value=-1.0)
    assert out.shape == (2, 2)
    np.testing.assert_allclose(out, [[0.5, 3.0], [5.0, -1.0]])


def test_interpolate_shape_mismatch():
    bracket = Bracket(np.zeros((2, 3, 1), dtype=int), np.zeros((2, 3, 1)))
    with pytest.raises(ValueError):
        interpolate(np.zeros((2, 4)), bracket)


def test_isobaric_bracket_is_linear_in_log_pressure():
    bracket = isobaric_bracket(PRESSURE, 7.0e4)
    np.testing.assert_array_equal(bracket.level, [1, 1])
    expected = np.log(7.0e4 / 8.0e4) / np.log(6.0e4 / 8.0e4)
    assert bracket.weight[0] == pytest.approx(expected)

    out = interpolate_isobaric(np.log(PRESSURE), PRESSURE, [7.0e4, 5.0e4])
    np.testing.assert_allclose(out, np.log([[7.0e4, 5.0e4], [7.0e4, 5.0e4]]))


def test_isobaric_bracket_on_a_model_level():
    bracket = isobaric_bracket(PRESSURE, 1.0e5)
    np.testing.assert_array_equal(bracket.level, [0, -1])
    assert bracket.weight[0] == pytest.approx(0.0)


def test_isobaric_levels_outside_column():
    bracket = isobaric_brackets(PRESSURE, [1.2e5, 3.8e4, 3.0e4])
    assert bracket.level.shape == (2, 3)
    np.testing.assert_array_equal(bracket.valid, [[False, False, False], [False, True, False]])
    out = interpolate_isobaric(np.ones((2, 4)), PRESSURE, [1.2e5, 3.8e4, 3.0e4])
    np.testing.assert_allclose(out, [[MISSING_VALUE] * 3, [MISSING_VALUE, 1.0, MISSING_VALUE]])


def test_non_positive_target_pressure():
    with pytest.raises(ValueError):
        isobaric_bracket(PRESSURE, 0.0)


def test_isobaric_accumulators_only_add_valid_points():
    accs = IsobaricAccumulators(2, [7.0e4, 3.8e4], [TendencyCategory.DIABATIC], interval=600.0)
    assert accs.shape == (2, 2)
    assert accs.levels == (7.0e4, 3.8e4)

    term = np.tile([1.0, 2.0, 3.0, 4.0], (2, 1))
    terms = BudgetTerms(terms={TendencyCategory.DIABATIC: term})
    bracket = isobaric_brackets(PRESSURE, accs.levels)
    accs.add(terms, 60.0, bracket=bracket)

    value = accs['diabatic'].value
    expected_level = interpolate(term, bracket, fill_value=0.0)
    assert value[0, 1] == 0.0
    np.testing.assert_allclose(value[0, 0], 60.0 * expected_level[0, 0])
    np.testing.assert_allclose(value[1], 60.0 * expected_level[1])
    assert accs.elapsed == 60.0


def test_isobaric_accumulators_need_brackets():
    accs = IsobaricAccumulators(2, [7.0e4], [TendencyCategory.DIABATIC])
    terms = BudgetTerms(terms={TendencyCategory.DIABATIC: np.ones((2, 4))})
    with pytest.raises(ValueError):
        accs.add(terms, 60.0)
