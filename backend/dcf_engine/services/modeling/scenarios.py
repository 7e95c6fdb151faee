"""
scenarios.py — Base/Bull/Bear and Custom Scenario Management

Purpose:
- Hold named, independent assumption sets (base, bull, bear, custom)
- Track the active scenario
- Value any scenario on demand (always recomputed, never cached)
- Convert to / from a versioned plain-dict document for persistence

Key Rules:
- base, bull and bear always exist; they cannot be deleted or renamed
- deleting the active scenario makes base active
- scenarios never share mutable state: Scenario and Assumptions are frozen
"""

import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from dcf_engine.core.errors import ModelingError, ScenarioError, ScenarioNotFoundError
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.dcf import DcfOptions, run_model
from dcf_engine.services.modeling.scenario_migrations import CURRENT_VERSION, load_document
from dcf_engine.services.modeling.types import (
    CORE_SCENARIO_IDS,
    SCENARIO_COLORS,
    Assumptions,
    ModelResult,
    resolve_wacc,
)

logger = get_logger(__name__)

# Bull / bear derivation factors
BULL_GROWTH_MULTIPLIER = 1.5
BEAR_GROWTH_MULTIPLIER = 0.5
BULL_COST_MULTIPLIER = 0.95
BEAR_COST_MULTIPLIER = 1.05
WACC_SHIFT = 0.01

CORE_SCENARIO_NAMES = {
    "base": "Base Case",
    "bull": "Bull Case",
    "bear": "Bear Case",
}

_TYPE_ORDER = {"base": 0, "bull": 1, "bear": 2, "custom": 3}


class ScenarioType(str, Enum):
    BASE = "base"
    BULL = "bull"
    BEAR = "bear"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Scenario:
    id: str
    name: str
    type: ScenarioType
    color: str
    assumptions: Assumptions
    created_at: datetime
    updated_at: datetime

    @property
    def is_core(self) -> bool:
        return self.id in CORE_SCENARIO_IDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "color": self.color,
            "assumptions": self.assumptions.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    """Naive timestamps from older documents are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _scale_growth(a: Assumptions, factor: float) -> Dict[str, Any]:
    return {
        "revenue_growth_rate": a.revenue_growth_rate * factor,
        "revenue_growth_path": tuple(rate * factor for rate in a.revenue_growth_path),
    }


def derive_bull_assumptions(base: Assumptions) -> Assumptions:
    """Growth x1.5, COGS and SG&A x0.95, WACC -1pt."""
    return base.with_changes(
        cogs_pct=base.cogs_pct * BULL_COST_MULTIPLIER,
        sga_pct=base.sga_pct * BULL_COST_MULTIPLIER,
        wacc=resolve_wacc(base) - WACC_SHIFT,
        **_scale_growth(base, BULL_GROWTH_MULTIPLIER),
    )


def derive_bear_assumptions(base: Assumptions) -> Assumptions:
    """Growth x0.5, COGS and SG&A x1.05, WACC +1pt."""
    return base.with_changes(
        cogs_pct=base.cogs_pct * BEAR_COST_MULTIPLIER,
        sga_pct=base.sga_pct * BEAR_COST_MULTIPLIER,
        wacc=resolve_wacc(base) + WACC_SHIFT,
        **_scale_growth(base, BEAR_GROWTH_MULTIPLIER),
    )


def _core_scenario(scenario_type: ScenarioType, assumptions: Assumptions, stamp: datetime) -> Scenario:
    return Scenario(
        id=scenario_type.value,
        name=CORE_SCENARIO_NAMES[scenario_type.value],
        type=scenario_type,
        color=SCENARIO_COLORS[scenario_type.value],
        assumptions=assumptions,
        created_at=stamp,
        updated_at=stamp,
    )


class ScenarioManager:
    """
    In-memory scenario collection with an active pointer.

    Usage:
        manager = ScenarioManager.with_defaults(Assumptions())
        custom = manager.create("Downside capex")
        manager.update_assumptions(custom.id, capex_pct=0.08)
        result = manager.get_valuation(custom.id)
    """

    def __init__(
        self,
        scenarios: Dict[str, Scenario],
        active_id: str = "base",
        options: Optional[DcfOptions] = None,
    ):
        missing = [sid for sid in CORE_SCENARIO_IDS if sid not in scenarios]
        if missing:
            raise ScenarioError(f"Missing core scenarios: {missing}")
        if active_id not in scenarios:
            raise ScenarioNotFoundError(active_id)
        self._scenarios: Dict[str, Scenario] = dict(scenarios)
        self._active_id = active_id
        self.options = options

    @classmethod
    def with_defaults(
        cls,
        base_assumptions: Optional[Assumptions] = None,
        options: Optional[DcfOptions] = None,
    ) -> "ScenarioManager":
        """Seed base, derived bull and derived bear; base is active."""
        base = base_assumptions or Assumptions()
        stamp = _now()
        scenarios = {
            "base": _core_scenario(ScenarioType.BASE, base, stamp),
            "bull": _core_scenario(ScenarioType.BULL, derive_bull_assumptions(base), stamp),
            "bear": _core_scenario(ScenarioType.BEAR, derive_bear_assumptions(base), stamp),
        }
        return cls(scenarios, "base", options)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, scenario_id: str) -> Scenario:
        try:
            return self._scenarios[scenario_id]
        except KeyError:
            raise ScenarioNotFoundError(scenario_id) from None

    def list(self) -> List[Scenario]:
        """base, bull, bear, then custom scenarios by creation time."""
        return sorted(
            self._scenarios.values(),
            key=lambda s: (_TYPE_ORDER[s.type.value], s.created_at),
        )

    def __len__(self) -> int:
        return len(self._scenarios)

    def __contains__(self, scenario_id: str) -> bool:
        return scenario_id in self._scenarios

    @property
    def active_id(self) -> str:
        return self._active_id

    @property
    def active(self) -> Scenario:
        return self._scenarios[self._active_id]

    def set_active(self, scenario_id: str) -> Scenario:
        scenario = self.get(scenario_id)
        self._active_id = scenario_id
        return scenario

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, name: str, assumptions: Optional[Assumptions] = None) -> Scenario:
        """New custom scenario; copies the active scenario's assumptions when none given."""
        name = self._check_name(name)
        stamp = _now()
        scenario = Scenario(
            id=f"custom-{uuid.uuid4().hex[:8]}",
            name=name,
            type=ScenarioType.CUSTOM,
            color=SCENARIO_COLORS["custom"],
            assumptions=assumptions if assumptions is not None else self.active.assumptions,
            created_at=stamp,
            updated_at=stamp,
        )
        self._scenarios[scenario.id] = scenario
        logger.info(f"Created scenario {scenario.id} ({name})")
        return scenario

    def duplicate(self, scenario_id: str, name: Optional[str] = None) -> Scenario:
        source = self.get(scenario_id)
        return self.create(name or f"{source.name} (Copy)", source.assumptions)

    def rename(self, scenario_id: str, name: str) -> Scenario:
        scenario = self.get(scenario_id)
        if scenario.is_core:
            raise ScenarioError(f"Core scenario {scenario_id!r} cannot be renamed")
        return self._store(replace(scenario, name=self._check_name(name), updated_at=_now()))

    def update_assumptions(self, scenario_id: str, **changes: Any) -> Scenario:
        """Replace individual assumption fields; unknown fields raise InvalidAssumption."""
        scenario = self.get(scenario_id)
        updated = Assumptions.from_dict({**scenario.assumptions.to_dict(), **changes})
        return self._store(replace(scenario, assumptions=updated, updated_at=_now()))

    def replace_assumptions(self, scenario_id: str, assumptions: Assumptions) -> Scenario:
        scenario = self.get(scenario_id)
        return self._store(replace(scenario, assumptions=assumptions, updated_at=_now()))

    def delete(self, scenario_id: str) -> None:
        scenario = self.get(scenario_id)
        if scenario.is_core:
            raise ScenarioError(f"Core scenario {scenario_id!r} cannot be deleted")
        del self._scenarios[scenario_id]
        if self._active_id == scenario_id:
            self._active_id = "base"
        logger.info(f"Deleted scenario {scenario_id}")

    def _store(self, scenario: Scenario) -> Scenario:
        self._scenarios[scenario.id] = scenario
        return scenario

    @staticmethod
    def _check_name(name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ScenarioError("Scenario name must not be empty")
        return name

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def get_valuation(self, scenario_id: Optional[str] = None) -> ModelResult:
        """Run the full model for a scenario (the active one by default)."""
        scenario = self.get(scenario_id) if scenario_id is not None else self.active
        return run_model(scenario.assumptions, self.options)

    def list_valuations(self) -> List[Tuple[Scenario, Optional[ModelResult]]]:
        """Every scenario with its valuation, or None when it cannot be valued."""
        results: List[Tuple[Scenario, Optional[ModelResult]]] = []
        for scenario in self.list():
            try:
                results.append((scenario, run_model(scenario.assumptions, self.options)))
            except ModelingError as e:
                logger.warning(f"Scenario {scenario.id} could not be valued: {e}")
                results.append((scenario, None))
        return results

    # ------------------------------------------------------------------
    # Persistence seam
    # ------------------------------------------------------------------

    def to_document(self) -> Dict[str, Any]:
        """Versioned plain dict with inputs only (no derived schedules)."""
        return {
            "version": CURRENT_VERSION,
            "active_scenario_id": self._active_id,
            "scenarios": {s.id: s.to_dict() for s in self.list()},
        }

    @classmethod
    def from_document(
        cls,
        document: Dict[str, Any],
        options: Optional[DcfOptions] = None,
    ) -> "ScenarioManager":
        """
        Load a persisted document of any supported version.

        Missing bull/bear scenarios (v1 documents) are derived from base.

        Raises:
            ScenarioError: unsupported version or invalid document
        """
        doc = load_document(document)
        scenarios: Dict[str, Scenario] = {}
        for scenario_id, record in doc.scenarios.items():
            scenarios[scenario_id] = Scenario(
                id=record.id,
                name=record.name,
                type=ScenarioType(record.type),
                color=record.color,
                assumptions=Assumptions.from_dict(record.assumptions),
                created_at=_as_utc(record.created_at),
                updated_at=_as_utc(record.updated_at),
            )

        base = scenarios["base"]
        if "bull" not in scenarios:
            scenarios["bull"] = _core_scenario(
                ScenarioType.BULL, derive_bull_assumptions(base.assumptions), base.created_at)
        if "bear" not in scenarios:
            scenarios["bear"] = _core_scenario(
                ScenarioType.BEAR, derive_bear_assumptions(base.assumptions), base.created_at)

        return cls(scenarios, doc.active_scenario_id, options)
