"""
Unit tests for scenario_migrations.py
"""

import copy

import pytest

from dcf_engine.core.errors import ScenarioError
from dcf_engine.services.modeling.scenario_migrations import (
    CURRENT_VERSION,
    load_document,
    migrate_document,
)
from dcf_engine.services.modeling.scenarios import ScenarioManager


@pytest.fixture
def legacy_assumptions():
    """A v1 record: camelCase keys, rates in percent, money in raw dollars."""
    return {
        "baseRevenue": 1_000_000_000,
        "projectionYears": 5,
        "revenueGrowthRate": 8,
        "cogsPercent": 60,
        "sgaPercent": 20,
        "taxRate": 25,
        "daysReceivables": 45,
        "daysInventory": 60,
        "daysPayables": 30,
        "capexPercent": 5,
        "depreciationYears": 10,
        "debtBalance": 200_000_000,
        "interestRate": 5,
        "yearlyRepayment": 20_000_000,
        "wacc": 10,
        "terminalGrowthRate": 2.5,
        "sharesOutstanding": 100_000_000,
        "netDebt": 200_000_000,
    }


def test_v1_without_version_migrates_to_current(legacy_assumptions):
    doc = migrate_document(legacy_assumptions)
    assert doc["version"] == CURRENT_VERSION
    assert doc["active_scenario_id"] == "base"

    base = doc["scenarios"]["base"]
    assert base["type"] == "base"
    assert base["color"] == "#3b82f6"
    assert base["created_at"] == base["updated_at"]

    a = base["assumptions"]
    assert a["wacc"] == pytest.approx(0.10)
    assert a["terminal_growth_rate"] == pytest.approx(0.025)
    assert a["cogs_pct"] == pytest.approx(0.60)
    assert a["base_revenue"] == 1_000_000_000
    assert a["days_receivables"] == 45


def test_v1_envelope(legacy_assumptions):
    doc = migrate_document({"version": 1, "assumptions": legacy_assumptions})
    assert doc["scenarios"]["base"]["assumptions"]["revenue_growth_rate"] == pytest.approx(0.08)


def test_v2_migrates_scenario_map(legacy_assumptions):
    v2 = {
        "version": 2,
        "activeScenarioId": "custom-1a2b3c4d",
        "scenarios": {
            "base": {"id": "base", "name": "Base Case", "assumptions": legacy_assumptions},
            "custom-1a2b3c4d": {
                "id": "custom-1a2b3c4d",
                "name": "Mine",
                "createdAt": "2024-03-01T12:00:00+00:00",
                "assumptions": {**legacy_assumptions, "wacc": 12},
            },
        },
    }
    doc = migrate_document(v2)
    custom = doc["scenarios"]["custom-1a2b3c4d"]
    assert doc["active_scenario_id"] == "custom-1a2b3c4d"
    assert custom["type"] == "custom"
    assert custom["color"] == "#a855f7"
    assert custom["created_at"] == "2024-03-01T12:00:00+00:00"
    assert custom["assumptions"]["wacc"] == pytest.approx(0.12)


def test_migration_does_not_mutate_input(legacy_assumptions):
    original = copy.deepcopy(legacy_assumptions)
    migrate_document(legacy_assumptions)
    assert legacy_assumptions == original


def test_current_version_passes_through(golden_assumptions):
    doc = ScenarioManager.with_defaults(golden_assumptions).to_document()
    assert migrate_document(doc) == doc


def test_future_version_rejected():
    with pytest.raises(ScenarioError):
        migrate_document({"version": CURRENT_VERSION + 1, "scenarios": {}})


def test_invalid_document_rejected(legacy_assumptions):
    with pytest.raises(ScenarioError):
        load_document({**legacy_assumptions, "mysteryField": 1})


def test_manager_loads_v1_and_derives_bull_bear(legacy_assumptions):
    manager = ScenarioManager.from_document(legacy_assumptions)
    assert [s.id for s in manager.list()] == ["base", "bull", "bear"]
    assert manager.get("bull").assumptions.wacc == pytest.approx(0.09)
    assert manager.get("bear").assumptions.wacc == pytest.approx(0.11)
    price = manager.get_valuation().valuation.implied_share_price
    assert price > 0
