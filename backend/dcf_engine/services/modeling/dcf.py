"""
dcf.py — Discounted Cash Flow Valuation Engine

Purpose:
- Discount projected Unlevered Free Cash Flow at WACC
- Compute terminal value (Gordon growth, exit multiple, or their blend)
- Bridge Enterprise Value → Equity Value → implied share price
- Compose the Statement Builder and the engine in run_model()

Inputs:
- Assumptions (validated here before any arithmetic)
- Cash flow rows and the latest balance sheet from run_three_statement()

Outputs:
- DcfOutput (see types.py)

This module is pure: it never reads settings directly. Callers pass a
DcfOptions, typically DcfOptions.from_settings(settings).
"""

import math
from dataclasses import dataclass
from typing import List, Optional

from dcf_engine.core.config import TERMINAL_VALUE_METHODS
from dcf_engine.core.errors import InvalidAssumption, NumericDivergence
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.three_statement import DEFAULT_BALANCE_TOLERANCE, run_three_statement
from dcf_engine.services.modeling.types import (
    Assumptions,
    BalanceSheetRow,
    CashFlowRow,
    DcfOutput,
    DcfYearResult,
    IncomeStatementRow,
    ModelResult,
)
from dcf_engine.services.modeling.validation import validate_assumptions

logger = get_logger(__name__)


@dataclass(frozen=True)
class DcfOptions:
    """Valuation knobs that are policy rather than company assumptions."""
    terminal_value_method: str = "perpetuity"
    exit_multiple_floor: float = 6.0
    exit_multiple_cap: float = 15.0
    default_exit_multiple: float = 10.0
    balance_tolerance: float = DEFAULT_BALANCE_TOLERANCE

    def __post_init__(self):
        if self.terminal_value_method not in TERMINAL_VALUE_METHODS:
            raise InvalidAssumption.single(
                "terminal_value_method",
                f"must be one of {TERMINAL_VALUE_METHODS}",
                self.terminal_value_method,
            )

    @classmethod
    def from_settings(cls, settings) -> "DcfOptions":
        return cls(
            terminal_value_method=settings.TERMINAL_VALUE_METHOD,
            exit_multiple_floor=settings.EXIT_MULTIPLE_FLOOR,
            exit_multiple_cap=settings.EXIT_MULTIPLE_CAP,
            default_exit_multiple=settings.DEFAULT_EXIT_MULTIPLE,
            balance_tolerance=settings.BALANCE_TOLERANCE,
        )


DEFAULT_OPTIONS = DcfOptions()


# ============================================================================
# Helpers
# ============================================================================


def discount_factor(wacc: float, year: int) -> float:
    """1 / (1 + WACC)^year, end-of-year convention."""
    return 1.0 / (1.0 + wacc) ** year


def _ebitda(
    index: int,
    cash_flow: List[CashFlowRow],
    income_statement: Optional[List[IncomeStatementRow]],
) -> float:
    if income_statement:
        return income_statement[index].ebitda
    row = cash_flow[index]
    return row.ebit + row.depreciation


def resolve_net_debt(assumptions: Assumptions, latest_balance: BalanceSheetRow) -> float:
    """Supplied net debt, else debt less cash from the latest projected balance sheet."""
    if assumptions.net_debt is not None:
        return assumptions.net_debt
    return latest_balance.debt_balance - latest_balance.cash


def resolve_exit_multiple(
    assumptions: Assumptions,
    first_year_ebitda: float,
    net_debt: float,
    options: DcfOptions = DEFAULT_OPTIONS,
) -> float:
    """
    EV/EBITDA multiple for the exit-multiple terminal value.

    Priority:
        1. assumptions.exit_multiple
        2. current EV / year-1 EBITDA, with EV = market price x shares + net debt
        3. options.default_exit_multiple
    The result is clamped to [floor, cap].
    """
    if assumptions.exit_multiple is not None:
        multiple = assumptions.exit_multiple
    elif assumptions.market_price is not None and first_year_ebitda > 0:
        current_ev = assumptions.market_price * assumptions.shares_outstanding + net_debt
        multiple = current_ev / first_year_ebitda
    else:
        multiple = options.default_exit_multiple
    return min(max(multiple, options.exit_multiple_floor), options.exit_multiple_cap)


def _finite(value: float, location: str) -> float:
    if not math.isfinite(value):
        raise NumericDivergence(location, value)
    return value


def _positive_ratio(numerator: float, denominator: float) -> Optional[float]:
    if denominator <= 0:
        return None
    return numerator / denominator


# ============================================================================
# Main Entrypoints
# ============================================================================


def run_dcf(
    assumptions: Assumptions,
    cash_flow: List[CashFlowRow],
    latest_balance: BalanceSheetRow,
    income_statement: Optional[List[IncomeStatementRow]] = None,
    options: Optional[DcfOptions] = None,
) -> DcfOutput:
    """
    Value the projected cash flows.

    Args:
        assumptions: the assumptions the cash flows were built from
        cash_flow: cash flow rows for years 1..N
        latest_balance: final-year balance sheet (net debt fallback)
        income_statement: optional, used for EBITDA when supplied
        options: terminal value policy; defaults to perpetuity only

    Returns:
        DcfOutput

    Raises:
        InvalidAssumption: WACC <= terminal growth, or any other invalid input
        NumericDivergence: a non-finite intermediate
    """
    options = options or DEFAULT_OPTIONS
    wacc = validate_assumptions(assumptions)
    if not cash_flow:
        raise InvalidAssumption.single("cash_flow", "must contain at least one projection year")

    g = assumptions.terminal_growth_rate

    yearly_results: List[DcfYearResult] = []
    for row in cash_flow:
        factor = discount_factor(wacc, row.year)
        yearly_results.append(DcfYearResult(
            year=row.year,
            ufcf=row.unlevered_fcf,
            discount_factor=factor,
            pv_ufcf=row.unlevered_fcf * factor,
        ))
    sum_pv_ufcf = _finite(sum(r.pv_ufcf for r in yearly_results), "dcf.sum_pv_ufcf")

    final_fcf = cash_flow[-1].unlevered_fcf
    net_debt = resolve_net_debt(assumptions, latest_balance)

    # Gordon growth: FCF_N x (1 + g) / (WACC - g)
    tv_perpetuity = _finite(final_fcf * (1 + g) / (wacc - g), "dcf.terminal_value_perpetuity")

    first_ebitda = _ebitda(0, cash_flow, income_statement)
    final_ebitda = _ebitda(len(cash_flow) - 1, cash_flow, income_statement)
    multiple = resolve_exit_multiple(assumptions, first_ebitda, net_debt, options)
    tv_exit = _finite(final_ebitda * multiple, "dcf.terminal_value_exit_multiple")

    if options.terminal_value_method == "blended":
        terminal_value = (tv_perpetuity + tv_exit) / 2
    else:
        terminal_value = tv_perpetuity

    pv_terminal_value = terminal_value * yearly_results[-1].discount_factor
    enterprise_value = _finite(sum_pv_ufcf + pv_terminal_value, "dcf.enterprise_value")
    equity_value = enterprise_value - net_debt
    implied_share_price = _finite(equity_value / assumptions.shares_outstanding, "dcf.implied_share_price")

    upside_downside = None
    if assumptions.market_price is not None:
        upside_downside = (implied_share_price - assumptions.market_price) / assumptions.market_price

    logger.debug(
        f"DCF: wacc={wacc:.4f} g={g:.4f} EV={enterprise_value:,.0f} "
        f"price={implied_share_price:.2f} method={options.terminal_value_method}"
    )

    return DcfOutput(
        yearly_results=yearly_results,
        sum_pv_ufcf=sum_pv_ufcf,
        terminal_value_perpetuity=tv_perpetuity,
        terminal_value_exit_multiple=tv_exit,
        exit_multiple_used=multiple,
        terminal_value_method=options.terminal_value_method,
        terminal_value=terminal_value,
        pv_terminal_value=pv_terminal_value,
        enterprise_value=enterprise_value,
        net_debt=net_debt,
        equity_value=equity_value,
        shares_outstanding=assumptions.shares_outstanding,
        implied_share_price=implied_share_price,
        wacc=wacc,
        terminal_growth_rate=g,
        market_price=assumptions.market_price,
        upside_downside=upside_downside,
        implied_ev_to_ebitda=_positive_ratio(enterprise_value, first_ebitda),
        implied_fcf_yield=_positive_ratio(cash_flow[0].unlevered_fcf, equity_value),
        terminal_value_share=_positive_ratio(pv_terminal_value, enterprise_value),
    )


def run_model(assumptions: Assumptions, options: Optional[DcfOptions] = None) -> ModelResult:
    """
    Build the three statements and value them in one call.

    Nothing is cached: every call recomputes from the assumptions given.
    """
    options = options or DEFAULT_OPTIONS
    statements = run_three_statement(assumptions, balance_tolerance=options.balance_tolerance)
    valuation = run_dcf(
        assumptions,
        statements.cash_flow,
        statements.latest_balance,
        income_statement=statements.income_statement,
        options=options,
    )
    return ModelResult(assumptions=assumptions, statements=statements, valuation=valuation)
