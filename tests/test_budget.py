import numpy as np
import pandas as pd
import pytest

from mpaspv.budget import (
    CLOSURE_CATEGORIES,
    MICROPHYSICS_PROCESSES,
    TIME_LEVELS,
    Accumulator,
    AccumulatorSet,
    BudgetTerms,
    TendencyBudget,
    TendencyCategory,
    TendencyInputs,
    closure_table,
    density_term,
    friction_term,
    heating_term,
)
from mpaspv.calc.pv import kinematic_state
from mpaspv.state import SnapshotError
from conftest import advance, make_state, make_tendencies

ALL_CATEGORIES = frozenset(TendencyCategory)
DT = 10.0


def step_states(mesh, tendencies, dt=DT):
    fields = make_state(mesh)
    previous = kinematic_state(mesh, fields['u'], fields['theta'], fields['rho'])
    advance(fields, tendencies, dt)
    current = kinematic_state(mesh, fields['u'], fields['theta'], fields['rho'])
    return previous, current


def test_time_level_table():
    assert set(TIME_LEVELS) == set(TendencyCategory)
    assert TIME_LEVELS[TendencyCategory.DIABATIC].abs_vorticity == 't'
    for category, levels in TIME_LEVELS.items():
        assert levels.rho == 't+dt'
        assert levels.grad_theta == 't+dt'
        if category is not TendencyCategory.DIABATIC:
            assert levels.abs_vorticity == 't+dt'


def test_category_groups():
    assert TendencyCategory.FRICTIONAL_PBL_GWD.group == 'frictional'
    assert TendencyCategory.MP_MELTING.group == 'microphysics'
    assert TendencyCategory.DYNAMICS.group is None
    assert not any(c.group == 'microphysics' for c in CLOSURE_CATEGORIES)
    assert set(MICROPHYSICS_PROCESSES.values()) == {
        c for c in TendencyCategory if c.group == 'microphysics'
    }


def test_term_formulas():
    eta = np.array([1.0e-3, 2.0e-3, 1.0e-4])
    grad = np.array([1.0e-5, -2.0e-5, 4.0e-3])
    rho = 0.5
    assert heating_term(eta, grad, rho) == pytest.approx((1e-8 - 4e-8 + 4e-7) / 0.5 / 1e-6)
    assert friction_term(grad, eta, rho) == pytest.approx(heating_term(eta, grad, rho))
    assert density_term(2.0, 1.0e-6, 0.5) == pytest.approx(-4.0e-6)


def test_budget_closes(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    previous, current = step_states(hex_mesh, tendencies)
    terms = TendencyBudget(hex_mesh, ALL_CATEGORIES).compute(tendencies, current, previous)

    observed = (current.pv - previous.pv) / DT
    scale = max(np.abs(terms[c]).max() for c in CLOSURE_CATEGORIES)
    assert scale > 0
    residual = observed - terms.closure_sum
    assert np.abs(residual).max() < 1.0e-3 * scale

    # Dropping any closure term breaks the balance
    for category in CLOSURE_CATEGORIES:
        partial = terms.closure_sum - terms[category]
        assert np.abs(observed - partial).max() > 1.0e-2 * np.abs(terms[category]).max()


def test_closure_error_shrinks_with_dt(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    budget = TendencyBudget(hex_mesh, CLOSURE_CATEGORIES)
    errors = []
    for dt in (20.0, 10.0):
        previous, current = step_states(hex_mesh, tendencies, dt)
        terms = budget.compute(tendencies, current, previous)
        errors.append(np.abs((current.pv - previous.pv) / dt - terms.closure_sum).max())
    assert errors[1] < 0.75 * errors[0]


def test_vorticity_at_t_only_affects_diabatic(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    previous, current = step_states(hex_mesh, tendencies)
    budget = TendencyBudget(hex_mesh, ALL_CATEGORIES)

    base = budget.compute(tendencies, current, previous)
    perturbed = budget.compute(
        tendencies, current,
        previous._replace(abs_vorticity=previous.abs_vorticity * 1.1),
    )
    for category in TendencyCategory:
        if category is TendencyCategory.DIABATIC:
            assert not np.allclose(perturbed[category], base[category], atol=0.0)
        else:
            np.testing.assert_array_equal(perturbed[category], base[category])
    assert not np.allclose(perturbed.microphysics_net, base.microphysics_net, atol=0.0)


def test_theta_gradient_at_t_plus_dt_affects_frictional_terms(hex_mesh):
    tendencies = make_tendencies(hex_mesh, dynamics=False)
    previous, current = step_states(hex_mesh, tendencies)
    budget = TendencyBudget(hex_mesh, ALL_CATEGORIES)

    base = budget.compute(tendencies, current, previous)
    perturbed = budget.compute(
        tendencies,
        current._replace(grad_theta=current.grad_theta * 1.1),
        previous,
    )
    for category in TendencyCategory:
        if category.group == 'frictional':
            assert not np.allclose(perturbed[category], base[category], atol=0.0)
        else:
            np.testing.assert_array_equal(perturbed[category], base[category])


def test_t_level_without_snapshot_raises(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    _, current = step_states(hex_mesh, tendencies)

    with pytest.raises(SnapshotError):
        TendencyBudget(hex_mesh, [TendencyCategory.DIABATIC]).compute(tendencies, current)

    frictional = [c for c in TendencyCategory if c.group == 'frictional']
    terms = TendencyBudget(hex_mesh, frictional).compute(tendencies, current)
    assert set(terms.terms) == set(frictional)


def test_missing_input_raises(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    previous, current = step_states(hex_mesh, tendencies)
    tendencies.u_cu = None
    budget = TendencyBudget(hex_mesh, [TendencyCategory.FRICTIONAL_CUMULUS])
    with pytest.raises(ValueError, match='u_cu'):
        budget.compute(tendencies, current, previous)


def test_wrong_tendency_shape_raises(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    previous, current = step_states(hex_mesh, tendencies)
    tendencies.theta_diab = tendencies.theta_diab[:-1]
    with pytest.raises(ValueError):
        TendencyBudget(hex_mesh, [TendencyCategory.DIABATIC]).compute(tendencies, current, previous)


def test_microphysics_breakdown(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    previous, current = step_states(hex_mesh, tendencies)
    categories = set(MICROPHYSICS_PROCESSES.values()) | {TendencyCategory.DIABATIC}
    terms = TendencyBudget(hex_mesh, categories).compute(tendencies, current, previous)

    processes = [terms[c] for c in MICROPHYSICS_PROCESSES.values()]
    np.testing.assert_allclose(terms.microphysics_sum, np.sum(processes, axis=0))
    np.testing.assert_allclose(terms.group('microphysics'), terms.microphysics_sum)

    # Net tendency is 0.6 of the diabatic heating, and the aggregate uses eta at t
    np.testing.assert_allclose(
        terms.microphysics_net, 0.6 * terms[TendencyCategory.DIABATIC], rtol=1e-10, atol=1e-20
    )

    same = TendencyBudget(hex_mesh, categories).compute(tendencies, current, current)
    np.testing.assert_allclose(same.microphysics_net, same.microphysics_sum, rtol=1e-10, atol=1e-20)


def test_from_coupled():
    rho_d = np.full((2, 3), 0.5)
    rho_edge = np.full((4, 3), 0.25)
    qv = np.full((2, 3), 0.01)
    coupling = 0.5 * (1.0 + 461.6 / 287.0 * 0.01)
    inputs = TendencyInputs.from_coupled(
        rho_d, rho_edge, qv,
        tend_rtheta_diab=np.ones((2, 3)),
        tend_ru_pbl_gwd=np.ones((4, 3)),
        tend_rho_dyn=np.full((2, 3), 3.0),
        tend_rtheta_mp={'melting': np.ones((2, 3))},
    )
    np.testing.assert_allclose(inputs.theta_diab, 1.0 / coupling)
    np.testing.assert_allclose(inputs.u_pbl_gwd, 4.0)
    np.testing.assert_allclose(inputs.rho_dyn, 3.0)
    np.testing.assert_allclose(inputs.theta_mp['melting'], 1.0 / coupling)
    assert inputs.u_dyn is None


def test_from_coupled_averages_density_to_edges(hex_mesh):
    rho_d = np.repeat(np.arange(1.0, hex_mesh.n_cells + 1.0)[:, None], hex_mesh.n_levels, axis=1)
    tend_ru = np.ones((hex_mesh.n_edges, hex_mesh.n_levels))
    inputs = TendencyInputs.from_coupled(rho_d, mesh=hex_mesh, tend_ru_cu=tend_ru)

    c1, c2 = hex_mesh.cells_on_edge.T
    np.testing.assert_allclose(inputs.u_cu, 2.0 / (rho_d[c1] + rho_d[c2]))

    with pytest.raises(ValueError, match='rho_edge'):
        TendencyInputs.from_coupled(rho_d, tend_ru_cu=tend_ru)


# =============================================================================
# Accumulators
# =============================================================================

def test_accumulator_add_and_reset():
    acc = Accumulator((2, 2), name='diabatic')
    acc.add(np.ones((2, 2)), 60.0)
    acc.add(np.full((2, 2), 2.0), 30.0)
    np.testing.assert_allclose(acc.value, 120.0)
    assert acc.elapsed == 90.0

    acc.reset()
    np.testing.assert_array_equal(acc.value, 0.0)
    assert acc.elapsed == 0.0


def test_accumulator_value_is_read_only():
    acc = Accumulator((3,))
    with pytest.raises(ValueError):
        acc.value[0] = 1.0


def test_accumulator_masked_add():
    acc = Accumulator((3,))
    acc.add(np.array([1.0, 2.0, 3.0]), 10.0, where=np.array([True, False, True]))
    np.testing.assert_allclose(acc.value, [10.0, 0.0, 30.0])


def test_accumulator_rejects_bad_input():
    acc = Accumulator((3,))
    with pytest.raises(ValueError):
        acc.add(np.ones(4), 1.0)
    with pytest.raises(ValueError):
        acc.add(np.ones(3), 0.0)
    with pytest.raises(ValueError):
        acc.restore(np.ones(2), 5.0)


def test_accumulator_set_groups_and_schedule():
    categories = [
        TendencyCategory.DIABATIC,
        TendencyCategory.FRICTIONAL_MIXING,
        TendencyCategory.FRICTIONAL_CUMULUS,
    ]
    accs = AccumulatorSet((2,), categories, interval=120.0)
    terms = BudgetTerms(terms={
        TendencyCategory.DIABATIC: np.array([1.0, 1.0]),
        TendencyCategory.FRICTIONAL_MIXING: np.array([2.0, 0.0]),
        TendencyCategory.FRICTIONAL_CUMULUS: np.array([0.5, 0.5]),
    })

    accs.add(terms, 60.0)
    assert not accs.maybe_reset()
    accs.add(terms, 60.0)
    np.testing.assert_allclose(accs.group('frictional'), [300.0, 60.0])
    assert accs.group('microphysics') is None
    assert accs.elapsed == 120.0

    assert accs.maybe_reset()
    np.testing.assert_array_equal(accs['diabatic'].value, 0.0)
    assert accs.elapsed == 0.0


def test_accumulator_set_requires_terms():
    accs = AccumulatorSet((2,), [TendencyCategory.DYNAMICS])
    with pytest.raises(ValueError):
        accs.add(BudgetTerms(terms={}), 1.0)


def test_closure_table(hex_mesh):
    tendencies = make_tendencies(hex_mesh)
    previous, current = step_states(hex_mesh, tendencies)
    terms = TendencyBudget(hex_mesh, ALL_CATEGORIES).compute(tendencies, current, previous)
    observed = (current.pv - previous.pv) / DT

    table = closure_table(terms, observed, weights=hex_mesh.area_cell)
    assert isinstance(table, pd.DataFrame)
    assert list(table.columns) == ['mean', 'rms']
    assert {'dynamics', 'diabatic', 'closure_sum', 'observed', 'residual',
            'microphysics_net', 'microphysics_sum'} <= set(table.index)
    assert table.loc['residual', 'rms'] < 1.0e-3 * table.loc['observed', 'rms']
