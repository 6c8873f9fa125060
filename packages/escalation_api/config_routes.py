"""API routes for keyword and escalation rule administration.

Changes apply to the running engine at once. With a state file configured they
are also written beside it and reloaded on restart; without one they last
until the process exits.
"""

from typing import Any, Optional

from escalation_config import Channel, EscalationRule, UrgentKeyword
from escalation_core import EscalationEngine, PolicyNotFoundError
from fastapi import APIRouter, HTTPException, Response  # type: ignore[import-not-found]
from pydantic import BaseModel, Field

from .app import get_app_state

config_router = APIRouter(prefix="/config", tags=["configuration"])


class KeywordCreateRequest(BaseModel):
    """Request model for adding an urgent keyword."""

    keyword: str = Field(..., min_length=1, description="Keyword text")
    priority_level: int = Field(3, ge=1, le=5, description="Priority level (1-5)")
    auto_escalate: bool = Field(True, description="Whether a match opens a case")
    is_active: bool = Field(True, description="Whether the keyword is matched")


class RuleCreateRequest(BaseModel):
    """Request model for adding an escalation rule."""

    rule_name: str = Field(..., min_length=1, description="Rule name")
    priority_level: int = Field(..., ge=1, le=5, description="Priority level (1-5)")
    wait_time_minutes: int = Field(15, ge=0, description="Minutes to wait before the next step")
    escalate_to: Channel = Field(..., description="Channel for this step")
    step_order: Optional[int] = Field(None, ge=0, description="Position in the chain")
    is_active: bool = Field(True, description="Whether the rule is part of the policy")


class ActiveUpdateRequest(BaseModel):
    """Request model for enabling or soft-disabling an entry."""

    is_active: bool = Field(..., description="New active flag")


class CurrentConfigResponse(BaseModel):
    """Response model for the current configuration summary."""

    loaded: bool = Field(..., description="Whether a configuration is loaded")
    keywords: int = Field(0, description="Number of keywords")
    rules: int = Field(0, description="Number of escalation rules")
    priorities: list[int] = Field(default_factory=list, description="Levels with a policy")
    channels: list[str] = Field(default_factory=list, description="Channels with a provider")
    webhooks: list[dict[str, Any]] = Field(default_factory=list, description="Webhooks")
    scheduler: Optional[dict[str, Any]] = Field(None, description="Scheduler settings")


def _require_engine() -> EscalationEngine:
    engine = get_app_state().engine
    if engine is None:
        raise HTTPException(status_code=503, detail="Escalation engine not configured.")
    return engine


@config_router.get("/current", response_model=CurrentConfigResponse)  # type: ignore[misc]
async def get_current_config() -> CurrentConfigResponse:
    """Summarize the running configuration.

    Returns:
        Current configuration details
    """
    engine = get_app_state().engine
    if engine is None:
        return CurrentConfigResponse(loaded=False)

    return CurrentConfigResponse(
        loaded=True,
        keywords=len(engine.detector.list()),
        rules=len(engine.policies.list()),
        priorities=engine.policies.priorities(),
        channels=sorted(c.value for c in engine.config.communication.configured_channels()),
        webhooks=[
            {
                "id": w.id,
                "name": w.name,
                "events": [e.value for e in w.events],
                "is_active": w.is_active,
            }
            for w in engine.notifier.list()
        ],
        scheduler={
            "tick_interval_seconds": engine.config.scheduler.tick_interval_seconds,
            "run_loop": engine.config.scheduler.run_loop,
            "persistent": engine.config.scheduler.state_file is not None,
        },
    )


@config_router.get("/keywords", response_model=list[UrgentKeyword])  # type: ignore[misc]
async def list_keywords() -> list[UrgentKeyword]:
    """List all urgent keywords, highest priority first."""
    return _require_engine().detector.list()


@config_router.post(
    "/keywords", response_model=UrgentKeyword, status_code=201
)  # type: ignore[misc]
async def add_keyword(request: KeywordCreateRequest) -> UrgentKeyword:
    """Add an urgent keyword.

    Raises:
        HTTPException: 409 if the keyword already exists
    """
    engine = _require_engine()
    try:
        keyword = engine.detector.add(UrgentKeyword(**request.model_dump()))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    engine.save_config_changes()
    return keyword


@config_router.patch("/keywords/{keyword_id}", response_model=UrgentKeyword)  # type: ignore[misc]
async def update_keyword(keyword_id: str, request: ActiveUpdateRequest) -> UrgentKeyword:
    """Enable or soft-disable a keyword."""
    engine = _require_engine()
    keyword = engine.detector.set_active(keyword_id, request.is_active)
    if keyword is None:
        raise HTTPException(status_code=404, detail=f"Keyword '{keyword_id}' not found.")
    engine.save_config_changes()
    return keyword


@config_router.delete("/keywords/{keyword_id}", status_code=204)  # type: ignore[misc]
async def delete_keyword(keyword_id: str) -> Response:
    """Hard-delete a keyword."""
    engine = _require_engine()
    if not engine.detector.remove(keyword_id):
        raise HTTPException(status_code=404, detail=f"Keyword '{keyword_id}' not found.")
    engine.save_config_changes()
    return Response(status_code=204)


@config_router.get("/rules", response_model=list[EscalationRule])  # type: ignore[misc]
async def list_rules(priority_level: Optional[int] = None) -> list[EscalationRule]:
    """List escalation rules.

    With ``priority_level`` set, returns that level's active chain in step order.
    """
    engine = _require_engine()
    if priority_level is None:
        return engine.policies.list()

    try:
        return engine.policies.rules_for(priority_level)
    except PolicyNotFoundError:
        return []


@config_router.post(
    "/rules", response_model=EscalationRule, status_code=201
)  # type: ignore[misc]
async def add_rule(request: RuleCreateRequest) -> EscalationRule:
    """Add an escalation rule.

    Raises:
        HTTPException: 409 if the step collides with an active rule
    """
    engine = _require_engine()
    try:
        rule = engine.policies.add(EscalationRule(**request.model_dump()))
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    engine.save_config_changes()
    return rule


@config_router.patch("/rules/{rule_id}", response_model=EscalationRule)  # type: ignore[misc]
async def update_rule(rule_id: str, request: ActiveUpdateRequest) -> EscalationRule:
    """Enable or soft-disable a rule.

    Raises:
        HTTPException: 404 if missing, 409 if re-enabling collides with another step
    """
    engine = _require_engine()
    try:
        rule = engine.policies.set_active(rule_id, request.is_active)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    if rule is None:
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found.")
    engine.save_config_changes()
    return rule


@config_router.delete("/rules/{rule_id}", status_code=204)  # type: ignore[misc]
async def delete_rule(rule_id: str) -> Response:
    """Hard-delete a rule. Pending cases at that level follow the remaining chain."""
    engine = _require_engine()
    if not engine.policies.remove(rule_id):
        raise HTTPException(status_code=404, detail=f"Rule '{rule_id}' not found.")
    engine.save_config_changes()
    return Response(status_code=204)
