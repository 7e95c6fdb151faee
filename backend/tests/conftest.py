"""
Shared fixtures for modeling and API tests.
"""

import pytest

from dcf_engine.services.modeling.types import Assumptions


@pytest.fixture
def golden_assumptions() -> Assumptions:
    """
    Hand-checkable case: no working capital, no debt, D&A equal to CapEx.

    UFCF_y = 0.20 x revenue_y x (1 - 0.21); implied price ≈ 34.1996.
    """
    return Assumptions(
        base_revenue=100_000_000.0,
        projection_years=5,
        revenue_growth_rate=0.10,
        cogs_pct=0.60,
        sga_pct=0.15,
        tax_rate=0.21,
        days_receivables=0.0,
        days_inventory=0.0,
        days_payables=0.0,
        capex_pct=0.05,
        depreciation_method="pct_of_revenue",
        depreciation_rate=0.05,
        debt_balance=0.0,
        interest_rate=0.0,
        yearly_repayment=0.0,
        wacc=0.09,
        terminal_growth_rate=0.025,
        shares_outstanding=10_000_000.0,
        net_debt=0.0,
    )


@pytest.fixture
def default_assumptions() -> Assumptions:
    """Engine defaults: working capital, debt and straight-line depreciation all active."""
    return Assumptions()
