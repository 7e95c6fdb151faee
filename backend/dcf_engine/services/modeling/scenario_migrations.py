"""
scenario_migrations.py — Versioned Scenario Document Schema

Purpose:
- Upgrade persisted scenario documents to the current layout
- Validate the upgraded document with pydantic before it is loaded

Versions:
- v1: a single assumptions record, camelCase keys, rates in percent
      {"version": 1, "assumptions": {"baseRevenue": ..., "wacc": 10, ...}}
      (a bare assumptions record with no envelope is also accepted)
- v2: scenario map keyed by id plus activeScenarioId, still camelCase/percent
- v3: current. snake_case keys, decimal-fraction rates, colors and ISO
      timestamps on every scenario, active_scenario_id

Every step is a pure function of its input; the input dict is never mutated.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from dcf_engine.core.errors import ScenarioError
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.types import CORE_SCENARIO_IDS, SCENARIO_COLORS, Assumptions

logger = get_logger(__name__)

CURRENT_VERSION = 3

# camelCase (v1/v2) → snake_case (v3)
LEGACY_FIELD_MAP: Dict[str, str] = {
    "baseRevenue": "base_revenue",
    "projectionYears": "projection_years",
    "revenueGrowthRate": "revenue_growth_rate",
    "revenueGrowthPath": "revenue_growth_path",
    "cogsPercent": "cogs_pct",
    "sgaPercent": "sga_pct",
    "taxRate": "tax_rate",
    "daysReceivables": "days_receivables",
    "daysInventory": "days_inventory",
    "daysPayables": "days_payables",
    "capexPercent": "capex_pct",
    "depreciationYears": "depreciation_years",
    "debtBalance": "debt_balance",
    "interestRate": "interest_rate",
    "yearlyRepayment": "yearly_repayment",
    "wacc": "wacc",
    "terminalGrowthRate": "terminal_growth_rate",
    "sharesOutstanding": "shares_outstanding",
    "netDebt": "net_debt",
    "targetOperatingMargin": "target_operating_margin",
    "marginExpansionPath": "margin_expansion_path",
    "exitMultiple": "exit_multiple",
    "marketPrice": "market_price",
}

# Legacy fields stored in percent (8 == 8%)
LEGACY_PERCENT_FIELDS = frozenset({
    "revenueGrowthRate",
    "revenueGrowthPath",
    "cogsPercent",
    "sgaPercent",
    "taxRate",
    "capexPercent",
    "interestRate",
    "wacc",
    "terminalGrowthRate",
    "targetOperatingMargin",
})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _legacy_scenario_type(scenario_id: str) -> str:
    return scenario_id if scenario_id in CORE_SCENARIO_IDS else "custom"


# ============================================================================
# Migration Steps
# ============================================================================


def _v1_to_v2(data: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap the single assumptions record as the base scenario."""
    assumptions = data.get("assumptions")
    if assumptions is None:
        assumptions = {k: v for k, v in data.items() if k != "version"}
    return {
        "version": 2,
        "activeScenarioId": "base",
        "scenarios": {
            "base": {
                "id": "base",
                "name": "Base Case",
                "type": "base",
                "assumptions": copy.deepcopy(assumptions),
            }
        },
    }


def _convert_legacy_assumptions(assumptions: Dict[str, Any]) -> Dict[str, Any]:
    converted: Dict[str, Any] = {}
    for key, value in assumptions.items():
        new_key = LEGACY_FIELD_MAP.get(key, key)
        if key in LEGACY_PERCENT_FIELDS and value is not None:
            if isinstance(value, list):
                value = [v / 100.0 for v in value]
            else:
                value = value / 100.0
        converted[new_key] = value
    return converted


def _v2_to_v3(data: Dict[str, Any]) -> Dict[str, Any]:
    """snake_case, fractions, colors and timestamps."""
    stamp = _now_iso()
    scenarios: Dict[str, Any] = {}
    for scenario_id, raw in (data.get("scenarios") or {}).items():
        scenario_type = raw.get("type") or _legacy_scenario_type(scenario_id)
        created_at = raw.get("createdAt") or stamp
        scenarios[scenario_id] = {
            "id": raw.get("id", scenario_id),
            "name": raw.get("name", scenario_id),
            "type": scenario_type,
            "color": raw.get("color") or SCENARIO_COLORS.get(scenario_type, SCENARIO_COLORS["custom"]),
            "assumptions": _convert_legacy_assumptions(raw.get("assumptions") or {}),
            "created_at": created_at,
            "updated_at": raw.get("updatedAt") or created_at,
        }
    return {
        "version": 3,
        "active_scenario_id": data.get("activeScenarioId") or "base",
        "scenarios": scenarios,
    }


MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def migrate_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Upgrade a persisted document to CURRENT_VERSION.

    A missing "version" key means v1.

    Raises:
        ScenarioError: the document is newer than this code understands
    """
    version = data.get("version", 1)
    if not isinstance(version, int) or version < 1:
        raise ScenarioError(f"Invalid scenario document version: {version!r}")
    if version > CURRENT_VERSION:
        raise ScenarioError(
            f"Scenario document version {version} is newer than supported version {CURRENT_VERSION}"
        )

    migrated = copy.deepcopy(data)
    while version < CURRENT_VERSION:
        logger.info(f"Migrating scenario document v{version} -> v{version + 1}")
        migrated = MIGRATIONS[version](migrated)
        version = migrated["version"]
    return migrated


# ============================================================================
# Current (v3) Document Models
# ============================================================================


class ScenarioRecord(BaseModel):
    id: str
    name: str = Field(..., min_length=1)
    type: Literal["base", "bull", "bear", "custom"]
    color: str
    assumptions: Dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @field_validator("assumptions")
    @classmethod
    def check_assumptions(cls, v):
        """Reject unknown assumption fields early (InvalidAssumption is a ValueError)."""
        Assumptions.from_dict(v)
        return v


class ScenarioDocument(BaseModel):
    version: Literal[3]
    active_scenario_id: str
    scenarios: Dict[str, ScenarioRecord]

    @model_validator(mode="after")
    def check_consistency(self) -> "ScenarioDocument":
        """Keys match ids, a base scenario exists and the active id resolves."""
        for key, record in self.scenarios.items():
            if key != record.id:
                raise ValueError(f"Scenario key {key!r} does not match id {record.id!r}")
        if "base" not in self.scenarios:
            raise ValueError("Document has no base scenario")
        if self.active_scenario_id not in self.scenarios:
            raise ValueError(f"Active scenario {self.active_scenario_id!r} is not in the document")
        return self


def load_document(data: Dict[str, Any]) -> ScenarioDocument:
    """Migrate then validate. Validation failures surface as ScenarioError."""
    migrated = migrate_document(data)
    try:
        return ScenarioDocument.model_validate(migrated)
    except ValueError as e:
        raise ScenarioError(f"Invalid scenario document: {e}") from e
