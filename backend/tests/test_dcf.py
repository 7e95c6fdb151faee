"""
Unit tests for dcf.py

Golden valuation, terminal value policy, WACC derivation and domain checks.
"""

import pytest

from dcf_engine.core.config import Settings
from dcf_engine.core.errors import InvalidAssumption
from dcf_engine.services.modeling.dcf import (
    DcfOptions,
    discount_factor,
    run_dcf,
    run_model,
)
from dcf_engine.services.modeling.three_statement import run_three_statement
from dcf_engine.services.modeling.types import compute_wacc


def _price(assumptions, options=None):
    return run_model(assumptions, options).valuation.implied_share_price


def test_golden_share_price(golden_assumptions):
    v = run_model(golden_assumptions).valuation
    # With r = 1.1 / 1.09: sum PV = 15.8M x 110 x (r^5 - 1), PV(TV) = 15.8M x r^5 x 1.025 / 0.065
    assert v.implied_share_price == pytest.approx(34.199565493391, rel=1e-9)
    assert v.sum_pv_ufcf == pytest.approx(81_201_092.6945, rel=1e-9)
    assert v.pv_terminal_value == pytest.approx(260_794_562.2394, rel=1e-9)
    assert v.enterprise_value == pytest.approx(341_995_654.9339, rel=1e-9)
    assert v.equity_value == v.enterprise_value
    assert v.terminal_value_method == "perpetuity"


def test_golden_terminal_value_denominator(golden_assumptions):
    result = run_model(golden_assumptions)
    v = result.valuation
    final_fcf = result.statements.cash_flow[-1].unlevered_fcf
    assert v.wacc - v.terminal_growth_rate == pytest.approx(0.065)
    assert v.terminal_value_perpetuity == pytest.approx(final_fcf * 1.025 / 0.065)
    assert v.terminal_value == v.terminal_value_perpetuity


def test_discounting(golden_assumptions):
    v = run_model(golden_assumptions).valuation
    for row in v.yearly_results:
        assert row.discount_factor == pytest.approx(1 / 1.09 ** row.year)
        assert row.pv_ufcf == pytest.approx(row.ufcf * row.discount_factor)
    assert discount_factor(0.10, 2) == pytest.approx(1 / 1.21)


def test_price_decreases_with_wacc(golden_assumptions):
    prices = [_price(golden_assumptions.with_changes(wacc=w)) for w in (0.08, 0.09, 0.10, 0.12)]
    assert prices == sorted(prices, reverse=True)


def test_price_increases_with_terminal_growth(golden_assumptions):
    prices = [_price(golden_assumptions.with_changes(terminal_growth_rate=g)) for g in (0.0, 0.01, 0.02, 0.03)]
    assert prices == sorted(prices)


@pytest.mark.parametrize("wacc,growth", [(0.03, 0.03), (0.03, 0.04)])
def test_wacc_at_or_below_growth_rejected(golden_assumptions, wacc, growth):
    a = golden_assumptions.with_changes(wacc=wacc, terminal_growth_rate=growth)
    statements = run_three_statement(golden_assumptions)
    with pytest.raises(InvalidAssumption) as exc:
        run_dcf(a, statements.cash_flow, statements.latest_balance)
    assert exc.value.field == "terminal_growth_rate"


def test_compute_wacc():
    # (4% + 1.2 x 5%) x 70% + 6% x (1 - 25%) x 30%
    assert compute_wacc(0.04, 1.2, 0.05, 0.06, 0.25, 0.30) == pytest.approx(0.0835)


def test_wacc_derived_from_components(golden_assumptions):
    a = golden_assumptions.with_changes(
        wacc=None,
        risk_free_rate=0.04,
        beta=1.2,
        equity_risk_premium=0.05,
        cost_of_debt=0.06,
        debt_to_total_capital=0.30,
    )
    expected = compute_wacc(0.04, 1.2, 0.05, 0.06, 0.21, 0.30)
    assert run_model(a).valuation.wacc == pytest.approx(expected)
    assert _price(a) == pytest.approx(_price(golden_assumptions.with_changes(wacc=expected)))


def test_missing_wacc_components_rejected(golden_assumptions):
    a = golden_assumptions.with_changes(wacc=None, risk_free_rate=0.04, beta=1.0)
    with pytest.raises(InvalidAssumption) as exc:
        run_model(a)
    assert [v.field for v in exc.value.violations] == [
        "equity_risk_premium",
        "cost_of_debt",
        "debt_to_total_capital",
    ]


def test_exit_multiple_explicit_is_clamped(golden_assumptions):
    high = run_model(golden_assumptions.with_changes(exit_multiple=25.0)).valuation
    low = run_model(golden_assumptions.with_changes(exit_multiple=2.0)).valuation
    assert high.exit_multiple_used == 15.0
    assert low.exit_multiple_used == 6.0


def test_exit_multiple_default(golden_assumptions):
    result = run_model(golden_assumptions)
    v = result.valuation
    assert v.exit_multiple_used == 10.0
    assert v.terminal_value_exit_multiple == pytest.approx(result.statements.income_statement[-1].ebitda * 10)


def test_exit_multiple_from_market_price(golden_assumptions):
    result = run_model(golden_assumptions.with_changes(market_price=30.0))
    ebitda_1 = result.statements.income_statement[0].ebitda
    expected = (30.0 * 10_000_000) / ebitda_1
    assert 6.0 <= expected <= 15.0
    assert result.valuation.exit_multiple_used == pytest.approx(expected)


def test_blended_terminal_value(golden_assumptions):
    perpetuity = run_model(golden_assumptions).valuation
    blended = run_model(golden_assumptions, DcfOptions(terminal_value_method="blended")).valuation
    assert blended.terminal_value_method == "blended"
    assert blended.terminal_value == pytest.approx(
        (blended.terminal_value_perpetuity + blended.terminal_value_exit_multiple) / 2
    )
    assert blended.terminal_value_perpetuity == pytest.approx(perpetuity.terminal_value_perpetuity)
    assert blended.implied_share_price != pytest.approx(perpetuity.implied_share_price)


def test_unknown_terminal_value_method():
    with pytest.raises(InvalidAssumption):
        DcfOptions(terminal_value_method="gordon")


def test_options_from_settings():
    options = DcfOptions.from_settings(Settings(TERMINAL_VALUE_METHOD="Blended", EXIT_MULTIPLE_CAP=12.0))
    assert options.terminal_value_method == "blended"
    assert options.exit_multiple_cap == 12.0


def test_upside_downside(golden_assumptions):
    v = run_model(golden_assumptions.with_changes(market_price=30.0)).valuation
    assert v.upside_downside == pytest.approx((v.implied_share_price - 30.0) / 30.0)
    assert run_model(golden_assumptions).valuation.upside_downside is None


def test_net_debt_bridge(golden_assumptions):
    base = run_model(golden_assumptions).valuation
    levered = run_model(golden_assumptions.with_changes(net_debt=50_000_000.0)).valuation
    assert levered.enterprise_value == pytest.approx(base.enterprise_value)
    assert levered.implied_share_price == pytest.approx(base.implied_share_price - 5.0)


def test_net_debt_falls_back_to_balance_sheet(default_assumptions):
    result = run_model(default_assumptions.with_changes(net_debt=None))
    latest = result.statements.latest_balance
    assert result.valuation.net_debt == pytest.approx(latest.debt_balance - latest.cash)


def test_implied_metrics(golden_assumptions):
    result = run_model(golden_assumptions)
    v = result.valuation
    assert v.implied_ev_to_ebitda == pytest.approx(v.enterprise_value / result.statements.income_statement[0].ebitda)
    assert v.implied_fcf_yield == pytest.approx(v.yearly_results[0].ufcf / v.equity_value)
    assert v.terminal_value_share == pytest.approx(v.pv_terminal_value / v.enterprise_value)


def test_empty_cash_flow_rejected(golden_assumptions):
    statements = run_three_statement(golden_assumptions)
    with pytest.raises(InvalidAssumption):
        run_dcf(golden_assumptions, [], statements.latest_balance)


def test_model_result_to_dict(golden_assumptions):
    data = run_model(golden_assumptions).to_dict()
    assert set(data) == {"assumptions", "statements", "valuation"}
    assert data["valuation"]["implied_share_price"] == pytest.approx(34.1996, rel=1e-4)
