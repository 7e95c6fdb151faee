"""
scenarios.py — Scenario API Endpoints (in-memory, no database)

Purpose:
- CRUD over base/bull/bear and custom scenarios
- Switch the active scenario
- Value any scenario on demand

State lives in a process-wide ScenarioManager; get_scenario_manager() is a
FastAPI dependency so tests can swap it out.

Endpoints:
- GET    /api/v1/scenarios
- POST   /api/v1/scenarios
- GET    /api/v1/scenarios/{scenario_id}
- PATCH  /api/v1/scenarios/{scenario_id}
- DELETE /api/v1/scenarios/{scenario_id}
- POST   /api/v1/scenarios/{scenario_id}/duplicate
- POST   /api/v1/scenarios/{scenario_id}/activate
- GET    /api/v1/scenarios/{scenario_id}/valuation
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from dcf_engine.api.v1.schemas import (
    ScenarioCreateRequest,
    ScenarioDuplicateRequest,
    ScenarioUpdateRequest,
    to_http_exception,
)
from dcf_engine.core.config import settings
from dcf_engine.core.errors import ModelingError
from dcf_engine.core.logging import get_logger
from dcf_engine.services.modeling.dcf import DcfOptions
from dcf_engine.services.modeling.scenarios import Scenario, ScenarioManager

logger = get_logger(__name__)

router = APIRouter(
    prefix="/scenarios",
    tags=["scenarios"]
)

_manager: Optional[ScenarioManager] = None


def get_scenario_manager() -> ScenarioManager:
    """Lazily create the shared manager seeded with the default assumptions."""
    global _manager
    if _manager is None:
        _manager = ScenarioManager.with_defaults(options=DcfOptions.from_settings(settings))
        logger.info("Scenario manager initialized with default scenarios")
    return _manager


def _serialize(scenario: Scenario, manager: ScenarioManager) -> Dict[str, Any]:
    data = scenario.to_dict()
    data["is_active"] = scenario.id == manager.active_id
    data["is_core"] = scenario.is_core
    return data


@router.get("")
async def list_scenarios(manager: ScenarioManager = Depends(get_scenario_manager)):
    return {
        "active_scenario_id": manager.active_id,
        "scenarios": [_serialize(s, manager) for s in manager.list()],
    }


@router.post("", status_code=201)
async def create_scenario(
    request: ScenarioCreateRequest,
    manager: ScenarioManager = Depends(get_scenario_manager),
):
    """Create a custom scenario (copies the active scenario when no assumptions are posted)."""
    try:
        assumptions = request.assumptions.to_assumptions() if request.assumptions is not None else None
        return _serialize(manager.create(request.name, assumptions), manager)
    except ModelingError as e:
        raise to_http_exception(e)


@router.get("/{scenario_id}")
async def get_scenario(scenario_id: str, manager: ScenarioManager = Depends(get_scenario_manager)):
    try:
        return _serialize(manager.get(scenario_id), manager)
    except ModelingError as e:
        raise to_http_exception(e)


@router.patch("/{scenario_id}")
async def update_scenario(
    scenario_id: str,
    request: ScenarioUpdateRequest,
    manager: ScenarioManager = Depends(get_scenario_manager),
):
    try:
        if request.name is not None:
            manager.rename(scenario_id, request.name)
        if request.assumptions:
            manager.update_assumptions(scenario_id, **request.assumptions)
        return _serialize(manager.get(scenario_id), manager)
    except ModelingError as e:
        raise to_http_exception(e)


@router.delete("/{scenario_id}", status_code=204)
async def delete_scenario(scenario_id: str, manager: ScenarioManager = Depends(get_scenario_manager)):
    try:
        manager.delete(scenario_id)
    except ModelingError as e:
        raise to_http_exception(e)
    return Response(status_code=204)


@router.post("/{scenario_id}/duplicate", status_code=201)
async def duplicate_scenario(
    scenario_id: str,
    request: Optional[ScenarioDuplicateRequest] = None,
    manager: ScenarioManager = Depends(get_scenario_manager),
):
    try:
        name = request.name if request is not None else None
        return _serialize(manager.duplicate(scenario_id, name), manager)
    except ModelingError as e:
        raise to_http_exception(e)


@router.post("/{scenario_id}/activate")
async def activate_scenario(scenario_id: str, manager: ScenarioManager = Depends(get_scenario_manager)):
    try:
        return _serialize(manager.set_active(scenario_id), manager)
    except ModelingError as e:
        raise to_http_exception(e)


@router.get("/{scenario_id}/valuation")
def value_scenario(scenario_id: str, manager: ScenarioManager = Depends(get_scenario_manager)):
    """Full model run for the scenario; recomputed on every request."""
    try:
        result = manager.get_valuation(scenario_id)
        return {"scenario_id": scenario_id, **result.to_dict()}
    except ModelingError as e:
        raise to_http_exception(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error valuing scenario {scenario_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to value scenario: {str(e)}")
