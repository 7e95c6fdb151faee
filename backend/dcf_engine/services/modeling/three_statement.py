"""
three_statement.py — Forward Financial Projections (Statement Builder)

Purpose:
- Generate, for projection years 1..N:
    * Depreciation schedule (PP&E roll-forward)
    * Debt schedule (interest + repayment)
    * Income Statement (Revenue → EBIT → Net Income)
    * Balance Sheet (cash is the balancing plug)
    * Cash Flow Statement (Unlevered Free Cash Flow focus)

Build order matters: depreciation and debt feed the income statement,
which feeds the balance sheet and the cash flow statement.

This module is unit-testable on its own and returns structured dataclass
outputs. It performs no I/O and reads no global state.
"""

import math
from dataclasses import fields
from typing import List, Optional, Tuple

from dcf_engine.core.errors import NumericDivergence
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.types import (
    DAYS_IN_YEAR,
    INITIAL_PPE_YEARS,
    Assumptions,
    BalanceSheetRow,
    CashFlowRow,
    DebtRow,
    DepreciationRow,
    IncomeStatementRow,
    ThreeStatementOutput,
)
from dcf_engine.services.modeling.validation import validate_assumptions

logger = get_logger(__name__)

DEFAULT_BALANCE_TOLERANCE = 1e-6


def _working_capital(revenue: float, cogs: float, a: Assumptions) -> Tuple[float, float, float, float]:
    """
    Working capital components from day counts.

    AR = Revenue / 365 x DSO
    Inventory = COGS / 365 x DIO
    AP = COGS / 365 x DPO
    NWC = AR + Inventory - AP
    """
    ar = revenue / DAYS_IN_YEAR * a.days_receivables
    inventory = cogs / DAYS_IN_YEAR * a.days_inventory
    ap = cogs / DAYS_IN_YEAR * a.days_payables
    return ar, inventory, ap, ar + inventory - ap


def _opening_ppe(a: Assumptions) -> float:
    if a.opening_ppe is not None:
        return a.opening_ppe
    return a.base_revenue * a.capex_pct * INITIAL_PPE_YEARS


def _depreciation(a: Assumptions, beginning_ppe: float, capex: float, revenue: float) -> float:
    if a.depreciation_method == "pct_of_ppe":
        return beginning_ppe * a.depreciation_rate
    if a.depreciation_method == "pct_of_revenue":
        return revenue * a.depreciation_rate
    # straight_line over the depreciable base (existing PP&E + this year's CapEx)
    return (beginning_ppe + capex) / a.depreciation_years


def _margin_weight(path: str, year: int, years: int) -> float:
    """Fraction of the start→target margin gap closed by `year`."""
    progress = year / years
    if path == "front-loaded":
        return math.sqrt(progress)
    if path == "back-loaded":
        return progress * progress
    return progress


def starting_operating_margin(a: Assumptions) -> float:
    """
    Base-year EBIT margin used as the start of a margin expansion path.

    Defaults to 1 - COGS% - SG&A% - base-year D&A / base revenue, where the
    base-year D&A applies the configured depreciation rule to opening PP&E.
    """
    if a.starting_operating_margin is not None:
        return a.starting_operating_margin
    ppe = _opening_ppe(a)
    base_capex = a.base_revenue * a.capex_pct
    if a.depreciation_method == "straight_line":
        base_depreciation = ppe / a.depreciation_years
    else:
        base_depreciation = _depreciation(a, ppe, base_capex, a.base_revenue)
    return 1 - a.cogs_pct - a.sga_pct - base_depreciation / a.base_revenue


def calculate_revenues(a: Assumptions) -> List[float]:
    """
    Project revenue: Revenue(y) = Revenue(y-1) x (1 + growth(y)).

    growth(y) is the flat rate or, when a growth path is configured, the
    path entry for that year (last entry carries forward).
    """
    revenues: List[float] = []
    current = a.base_revenue
    for year in range(1, int(a.projection_years) + 1):
        current = current * (1 + a.growth_for_year(year))
        revenues.append(current)
    return revenues


def calculate_depreciation_schedule(a: Assumptions, revenues: List[float]) -> List[DepreciationRow]:
    """
    PP&E roll-forward: ending = beginning + CapEx - depreciation.

    CapEx = revenue x CapEx %. Opening PP&E defaults to two years of
    base-year CapEx.
    """
    schedule: List[DepreciationRow] = []
    beginning_ppe = _opening_ppe(a)

    for i, revenue in enumerate(revenues):
        capex = revenue * a.capex_pct
        depreciation = _depreciation(a, beginning_ppe, capex, revenue)
        ending_ppe = beginning_ppe + capex - depreciation
        schedule.append(DepreciationRow(
            year=i + 1,
            beginning_ppe=beginning_ppe,
            capex=capex,
            depreciation=depreciation,
            ending_ppe=ending_ppe,
        ))
        beginning_ppe = ending_ppe

    return schedule


def calculate_debt_schedule(a: Assumptions) -> List[DebtRow]:
    """
    Debt roll-forward.

    Interest = beginning balance x rate
    Repayment = min(yearly repayment, beginning balance)
    Ending = beginning - repayment (never below zero)
    """
    schedule: List[DebtRow] = []
    balance = a.debt_balance

    for i in range(int(a.projection_years)):
        interest_expense = balance * a.interest_rate
        repayment = min(a.yearly_repayment, balance)
        ending_balance = max(0.0, balance - repayment)
        schedule.append(DebtRow(
            year=i + 1,
            beginning_balance=balance,
            interest_expense=interest_expense,
            repayment=repayment,
            ending_balance=ending_balance,
        ))
        balance = ending_balance

    return schedule


def calculate_income_statement(
    a: Assumptions,
    revenues: List[float],
    depreciation_schedule: List[DepreciationRow],
    debt_schedule: List[DebtRow],
) -> List[IncomeStatementRow]:
    """
    Revenue → COGS → Gross Profit → SG&A → D&A → EBIT → Interest → EBT → Taxes → Net Income

    Gross margin is held at 1 - COGS %. Without a margin target SG&A is a
    flat % of revenue. With target_operating_margin the EBIT margin glides
    from the base-year margin to the target by year N and SG&A absorbs the
    difference. Taxes apply to positive EBT only.
    """
    years = len(revenues)
    use_margin_path = a.target_operating_margin is not None
    start_margin = starting_operating_margin(a) if use_margin_path else 0.0

    rows: List[IncomeStatementRow] = []
    previous_revenue = a.base_revenue

    for i, revenue in enumerate(revenues):
        year = i + 1
        cogs = revenue * a.cogs_pct
        gross_profit = revenue - cogs
        depreciation = depreciation_schedule[i].depreciation

        if use_margin_path:
            weight = _margin_weight(a.margin_expansion_path, year, years)
            margin = start_margin + (a.target_operating_margin - start_margin) * weight
            ebit = revenue * margin
            sga = gross_profit - depreciation - ebit
        else:
            sga = revenue * a.sga_pct
            ebit = gross_profit - sga - depreciation

        interest_expense = debt_schedule[i].interest_expense
        ebt = ebit - interest_expense
        taxes = max(0.0, ebt * a.tax_rate)
        net_income = ebt - taxes

        rows.append(IncomeStatementRow(
            year=year,
            revenue=revenue,
            revenue_growth=_ratio(revenue - previous_revenue, previous_revenue, f"income.year{year}.revenue_growth"),
            cogs=cogs,
            gross_profit=gross_profit,
            sga=sga,
            depreciation=depreciation,
            ebit=ebit,
            ebitda=ebit + depreciation,
            operating_margin=_ratio(ebit, revenue, f"income.year{year}.operating_margin"),
            interest_expense=interest_expense,
            ebt=ebt,
            taxes=taxes,
            net_income=net_income,
        ))
        previous_revenue = revenue

    return rows


def calculate_opening_balance(a: Assumptions) -> BalanceSheetRow:
    """
    Year-0 balance sheet implied by the base-year assumptions.

    Contributed capital is whatever balances the sheet given opening cash,
    so projected equity = contributed capital + cumulative net income.
    """
    ar, inventory, ap, nwc = _working_capital(a.base_revenue, a.base_revenue * a.cogs_pct, a)
    ppe = _opening_ppe(a)
    cash = a.opening_cash
    total_assets = cash + ar + inventory + ppe
    total_liabilities = ap + a.debt_balance
    contributed_capital = total_assets - total_liabilities

    return BalanceSheetRow(
        year=0,
        cash=cash,
        accounts_receivable=ar,
        inventory=inventory,
        total_current_assets=cash + ar + inventory,
        ppe=ppe,
        total_assets=total_assets,
        accounts_payable=ap,
        debt_balance=a.debt_balance,
        total_liabilities=total_liabilities,
        contributed_capital=contributed_capital,
        retained_earnings=0.0,
        total_equity=contributed_capital,
        net_working_capital=nwc,
    )


def calculate_balance_sheet(
    a: Assumptions,
    income_statement: List[IncomeStatementRow],
    depreciation_schedule: List[DepreciationRow],
    debt_schedule: List[DebtRow],
    opening_balance: BalanceSheetRow,
) -> List[BalanceSheetRow]:
    """
    Project the balance sheet with cash as the plug.

    cash = total liabilities + total equity - (AR + inventory + PP&E)

    Cash is derived, never computed independently, and is left signed: a
    negative balance is a funding need. Total assets therefore equal total
    liabilities + equity by construction.
    """
    rows: List[BalanceSheetRow] = []
    retained_earnings = 0.0
    contributed_capital = opening_balance.contributed_capital

    for i, inc in enumerate(income_statement):
        ar, inventory, ap, nwc = _working_capital(inc.revenue, inc.cogs, a)
        retained_earnings += inc.net_income

        ppe = depreciation_schedule[i].ending_ppe
        debt_balance = debt_schedule[i].ending_balance

        total_liabilities = ap + debt_balance
        total_equity = contributed_capital + retained_earnings
        cash = total_liabilities + total_equity - (ar + inventory + ppe)

        total_current_assets = cash + ar + inventory
        rows.append(BalanceSheetRow(
            year=inc.year,
            cash=cash,
            accounts_receivable=ar,
            inventory=inventory,
            total_current_assets=total_current_assets,
            ppe=ppe,
            total_assets=total_current_assets + ppe,
            accounts_payable=ap,
            debt_balance=debt_balance,
            total_liabilities=total_liabilities,
            contributed_capital=contributed_capital,
            retained_earnings=retained_earnings,
            total_equity=total_equity,
            net_working_capital=nwc,
        ))

    return rows


def calculate_cash_flow(
    a: Assumptions,
    income_statement: List[IncomeStatementRow],
    depreciation_schedule: List[DepreciationRow],
    debt_schedule: List[DebtRow],
    opening_balance: BalanceSheetRow,
) -> List[CashFlowRow]:
    """
    Cash flow statement and Unlevered Free Cash Flow.

    UFCF = EBIT x (1 - tax rate) + D&A - change in NWC - CapEx

    Change in NWC is year over year; year 1 is measured against the base
    year NWC from base revenue. net_change_in_cash is the levered view
    (net income + D&A - change in NWC - CapEx - debt repayment) and
    reconciles with the balance sheet cash plug.
    """
    rows: List[CashFlowRow] = []
    previous_nwc = opening_balance.net_working_capital

    for i, inc in enumerate(income_statement):
        _, _, _, nwc = _working_capital(inc.revenue, inc.cogs, a)
        change_in_nwc = nwc - previous_nwc
        previous_nwc = nwc

        capex = depreciation_schedule[i].capex
        repayment = debt_schedule[i].repayment
        nopat = inc.ebit * (1 - a.tax_rate)
        unlevered_fcf = nopat + inc.depreciation - change_in_nwc - capex

        rows.append(CashFlowRow(
            year=inc.year,
            net_income=inc.net_income,
            depreciation=inc.depreciation,
            change_in_nwc=change_in_nwc,
            capex=capex,
            ebit=inc.ebit,
            nopat=nopat,
            unlevered_fcf=unlevered_fcf,
            debt_repayment=repayment,
            net_change_in_cash=inc.net_income + inc.depreciation - change_in_nwc - capex - repayment,
        ))

    return rows


def _ratio(numerator: float, denominator: float, location: str) -> float:
    if denominator == 0 or not math.isfinite(denominator):
        raise NumericDivergence(location, denominator)
    return numerator / denominator


def _check_finite(rows, schedule: str) -> None:
    for row in rows:
        for f in fields(row):
            value = getattr(row, f.name)
            if isinstance(value, float) and not math.isfinite(value):
                raise NumericDivergence(f"{schedule}.year{row.year}.{f.name}", value)


def check_balance(
    balance_sheet: List[BalanceSheetRow],
    tolerance: float = DEFAULT_BALANCE_TOLERANCE,
) -> None:
    """
    Verify total assets == total liabilities + total equity for every year.

    Raises:
        NumericDivergence: naming the first year that does not balance
    """
    for row in balance_sheet:
        rhs = row.total_liabilities + row.total_equity
        scale = max(1.0, abs(row.total_assets), abs(rhs))
        if abs(row.total_assets - rhs) > tolerance * scale:
            raise NumericDivergence(f"balance.year{row.year}.total_assets", row.total_assets - rhs)


def run_three_statement(
    assumptions: Assumptions,
    balance_tolerance: Optional[float] = None,
) -> ThreeStatementOutput:
    """
    Main entrypoint for generating forward projections.

    Args:
        assumptions: fully-populated Assumptions record
        balance_tolerance: relative tolerance for the balance identity check

    Returns:
        ThreeStatementOutput with income, balance, cash flow, depreciation and
        debt schedules for years 1..N plus the year-0 opening balance sheet

    Raises:
        InvalidAssumption: inputs fail validation (nothing is computed)
        NumericDivergence: a computed value is non-finite or the sheet does not balance
    """
    validate_assumptions(assumptions)

    revenues = calculate_revenues(assumptions)
    depreciation_schedule = calculate_depreciation_schedule(assumptions, revenues)
    debt_schedule = calculate_debt_schedule(assumptions)
    income_statement = calculate_income_statement(assumptions, revenues, depreciation_schedule, debt_schedule)
    opening_balance = calculate_opening_balance(assumptions)
    balance_sheet = calculate_balance_sheet(
        assumptions, income_statement, depreciation_schedule, debt_schedule, opening_balance
    )
    cash_flow = calculate_cash_flow(
        assumptions, income_statement, depreciation_schedule, debt_schedule, opening_balance
    )

    _check_finite(depreciation_schedule, "depreciation")
    _check_finite(debt_schedule, "debt")
    _check_finite(income_statement, "income")
    _check_finite(balance_sheet, "balance")
    _check_finite(cash_flow, "cashflow")
    check_balance(
        balance_sheet,
        DEFAULT_BALANCE_TOLERANCE if balance_tolerance is None else balance_tolerance,
    )

    logger.debug(
        f"Projected {len(revenues)} years: revenue {revenues[0]:,.0f} -> {revenues[-1]:,.0f}"
    )

    return ThreeStatementOutput(
        years=[row.year for row in income_statement],
        income_statement=income_statement,
        balance_sheet=balance_sheet,
        cash_flow=cash_flow,
        depreciation_schedule=depreciation_schedule,
        debt_schedule=debt_schedule,
        opening_balance=opening_balance,
    )
