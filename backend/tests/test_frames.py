"""
Unit tests for frames.py (pandas views)
"""

import math

import pytest

from dcf_engine.services.modeling.dcf import run_model
from dcf_engine.services.modeling.frames import (
    SCHEDULE_NAMES,
    sensitivity_to_frame,
    statements_to_frames,
    valuation_to_frame,
)
from dcf_engine.services.modeling.sensitivity import run_sensitivity


def test_statement_frames_indexed_by_year(golden_assumptions):
    result = run_model(golden_assumptions)
    frames = statements_to_frames(result.statements)

    assert set(frames) == set(SCHEDULE_NAMES)
    assert list(frames["income_statement"].index) == [1, 2, 3, 4, 5]
    assert list(frames["balance_sheet"].index) == [0, 1, 2, 3, 4, 5]
    assert frames["income_statement"].loc[1, "revenue"] == pytest.approx(110_000_000.0)
    assert "unlevered_fcf" in frames["cash_flow"].columns


def test_statement_frames_without_opening(golden_assumptions):
    frames = statements_to_frames(run_model(golden_assumptions).statements, include_opening=False)
    assert list(frames["balance_sheet"].index) == [1, 2, 3, 4, 5]


def test_valuation_frame(golden_assumptions):
    frame = valuation_to_frame(run_model(golden_assumptions).valuation)
    assert list(frame.columns) == ["ufcf", "discount_factor", "pv_ufcf"]
    assert frame["pv_ufcf"].sum() == pytest.approx(81_201_080, rel=1e-4)


def test_sensitivity_frame(golden_assumptions):
    a = golden_assumptions.with_changes(wacc=0.03, terminal_growth_rate=0.025)
    matrix = run_sensitivity(a, wacc_deltas=[-0.01, 0.0, 0.01], growth_deltas=[0.0, 0.01])
    frame = sensitivity_to_frame(matrix)

    assert frame.shape == (3, 2)
    assert frame.index.name == "wacc"
    assert frame.columns.name == "terminal_growth_rate"
    assert math.isnan(frame.iloc[0, 0])
    assert frame.iloc[1, 0] == pytest.approx(matrix.values[1][0])
