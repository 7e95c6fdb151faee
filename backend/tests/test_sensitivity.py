"""
Unit tests for sensitivity.py
"""

import math

import pytest

from dcf_engine.core.errors import InvalidAssumption
from dcf_engine.services.modeling.dcf import run_model
from dcf_engine.services.modeling.sensitivity import (
    default_growth_deltas,
    default_wacc_deltas,
    run_sensitivity,
)


def test_default_deltas():
    wacc = default_wacc_deltas()
    growth = default_growth_deltas()
    assert wacc == pytest.approx([-0.02, -0.015, -0.01, -0.005, 0.0, 0.005, 0.01, 0.015, 0.02])
    assert growth == pytest.approx([-0.01, -0.0075, -0.005, -0.0025, 0.0, 0.0025, 0.005, 0.0075, 0.01])


def test_base_cell_equals_standalone_valuation(golden_assumptions):
    matrix = run_sensitivity(golden_assumptions)
    assert matrix.base_cell == (4, 4)
    assert matrix.base_value == pytest.approx(run_model(golden_assumptions).valuation.implied_share_price)
    assert len(matrix.values) == 9
    assert all(len(row) == 9 for row in matrix.values)
    assert matrix.invalid_cells == []


def test_grid_is_monotonic(golden_assumptions):
    matrix = run_sensitivity(golden_assumptions)
    # Down a column WACC rises, so price falls
    for j in range(len(matrix.growth_values)):
        column = [row[j] for row in matrix.values]
        assert column == sorted(column, reverse=True)
    # Across a row terminal growth rises, so price rises
    for row in matrix.values:
        assert row == sorted(row)


def test_cells_with_wacc_not_above_growth_are_nan(golden_assumptions):
    a = golden_assumptions.with_changes(wacc=0.03, terminal_growth_rate=0.025)
    matrix = run_sensitivity(a, wacc_deltas=[-0.01, 0.0, 0.01], growth_deltas=[0.0, 0.01])
    assert math.isnan(matrix.values[0][0])  # 2% vs 2.5%
    assert math.isnan(matrix.values[0][1])
    assert math.isnan(matrix.values[1][1])  # 3% vs 3.5%
    assert not math.isnan(matrix.values[1][0])
    assert not math.isnan(matrix.values[2][1])
    assert {(c.wacc_index, c.growth_index) for c in matrix.invalid_cells} == {(0, 0), (0, 1), (1, 1)}


def test_metrics(golden_assumptions):
    result = run_model(golden_assumptions)
    deltas = dict(wacc_deltas=[0.0], growth_deltas=[0.0])

    equity = run_sensitivity(golden_assumptions, metric="equity_value", **deltas)
    ev_revenue = run_sensitivity(golden_assumptions, metric="ev_revenue", **deltas)

    assert equity.values[0][0] == pytest.approx(result.valuation.equity_value)
    assert ev_revenue.values[0][0] == pytest.approx(
        result.valuation.enterprise_value / result.statements.income_statement[0].revenue
    )


def test_unknown_metric(golden_assumptions):
    with pytest.raises(InvalidAssumption):
        run_sensitivity(golden_assumptions, metric="irr")


def test_base_cell_missing_without_zero_delta(golden_assumptions):
    matrix = run_sensitivity(golden_assumptions, wacc_deltas=[0.01], growth_deltas=[0.0])
    assert matrix.base_cell is None
    assert matrix.base_value is None


def test_input_assumptions_untouched(golden_assumptions):
    run_sensitivity(golden_assumptions)
    assert golden_assumptions.wacc == 0.09
    assert golden_assumptions.terminal_growth_rate == 0.025


def test_to_dict_replaces_nan(golden_assumptions):
    a = golden_assumptions.with_changes(wacc=0.03, terminal_growth_rate=0.025)
    data = run_sensitivity(a, wacc_deltas=[-0.01, 0.0], growth_deltas=[0.0]).to_dict()
    assert data["values"][0][0] is None
    assert data["values"][1][0] is not None
    assert data["base_cell"] == [1, 0]
