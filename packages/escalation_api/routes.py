"""API routes for message intake, cases and webhook events."""

import time
from typing import Optional

from escalation_config import EventType
from escalation_core import CaseNotFoundError, EscalationEngine
from escalation_core.metrics import HTTP_LATENCY, HTTP_REQUESTS
from escalation_runtime import CaseStatus
from fastapi import APIRouter, HTTPException, Query  # type: ignore[import-not-found]

from .app import get_app_state
from .models import (
    AcknowledgeRequest,
    AttemptResponse,
    CaseResponse,
    ErrorResponse,
    EventRequest,
    EventResponse,
    IntakeResponse,
    MessageRequest,
    TickResponse,
    TransitionResponse,
    WebhookDeliveryResponse,
)

router = APIRouter(tags=["escalation"])


def _require_engine() -> EscalationEngine:
    """Get the configured engine or fail with 503."""
    engine = get_app_state().engine
    if engine is None:
        raise HTTPException(
            status_code=503,
            detail="Escalation engine not configured. Please load a configuration first.",
        )
    return engine


def _observe(method: str, endpoint: str, start_time: float, status_code: str) -> None:
    HTTP_LATENCY.labels(method=method, endpoint=endpoint).observe(time.perf_counter() - start_time)
    HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status=status_code).inc()


@router.post(
    "/messages",
    response_model=IntakeResponse,
    responses={503: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def process_message(request: MessageRequest) -> IntakeResponse:
    """Scan an inbound message and open an escalation case when it is urgent.

    Args:
        request: Message text, recipient and optional trigger source

    Returns:
        IntakeResponse describing detection and escalation
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        engine = _require_engine()
        result = await engine.service.process_message(
            request.text, request.recipient, request.trigger_source
        )
        return IntakeResponse.from_result(result)
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _observe("POST", "/messages", start_time, status_code)


@router.get("/cases", response_model=list[CaseResponse])  # type: ignore[misc]
async def list_cases(
    status: Optional[CaseStatus] = None,
    limit: int = Query(50, ge=1, le=500),
) -> list[CaseResponse]:
    """List escalation cases, most recent first.

    Args:
        status: Optional status filter
        limit: Maximum number of cases

    Returns:
        Matching cases
    """
    engine = _require_engine()
    return [
        CaseResponse.from_case(case, engine.scheduler.next_due_at(case))
        for case in engine.store.list(status=status, limit=limit)
    ]


@router.get(
    "/cases/{case_id}",
    response_model=CaseResponse,
    responses={404: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def get_case(case_id: str) -> CaseResponse:
    """Get a single escalation case.

    Raises:
        HTTPException: If the case does not exist
    """
    engine = _require_engine()
    case = engine.store.get(case_id)
    if case is None:
        raise HTTPException(status_code=404, detail=f"Escalation case '{case_id}' not found.")
    return CaseResponse.from_case(case, engine.scheduler.next_due_at(case))


@router.get(
    "/cases/{case_id}/attempts",
    response_model=list[AttemptResponse],
    responses={404: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def get_case_attempts(case_id: str) -> list[AttemptResponse]:
    """Get the delivery history of a case, oldest first."""
    engine = _require_engine()
    if engine.store.get(case_id) is None:
        raise HTTPException(status_code=404, detail=f"Escalation case '{case_id}' not found.")
    return [AttemptResponse.from_attempt(a) for a in engine.ledger.history(case_id)]


@router.post(
    "/cases/{case_id}/acknowledge",
    response_model=CaseResponse,
    responses={404: {"model": ErrorResponse}},
)  # type: ignore[misc]
async def acknowledge_case(
    case_id: str, request: Optional[AcknowledgeRequest] = None
) -> CaseResponse:
    """Acknowledge a case, stopping further escalation.

    Acknowledging a terminal case is a no-op that returns the case as is.

    Args:
        case_id: Case to acknowledge
        request: Optional acknowledgment source

    Returns:
        The case after acknowledgment

    Raises:
        HTTPException: If the case does not exist
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        engine = _require_engine()
        source = request.source if request else None
        case = await engine.scheduler.acknowledge(case_id, source)
        return CaseResponse.from_case(case)
    except CaseNotFoundError as e:
        status_code = "404"
        raise HTTPException(status_code=404, detail=str(e)) from e
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _observe("POST", "/cases/acknowledge", start_time, status_code)


@router.post("/scheduler/tick", response_model=TickResponse)  # type: ignore[misc]
async def run_tick() -> TickResponse:
    """Advance every expired case once.

    Lets an external cron drive escalation when the in-process loop is disabled.
    Cases are evaluated against the engine clock; callers cannot move it.
    """
    start_time = time.perf_counter()
    status_code = "200"

    try:
        engine = _require_engine()
        transitions = await engine.scheduler.tick()
        return TickResponse(
            transitions=[TransitionResponse.from_transition(t) for t in transitions],
            pending_cases=engine.store.count(CaseStatus.PENDING),
        )
    except HTTPException as e:
        status_code = str(e.status_code)
        raise
    except Exception:
        status_code = "500"
        raise
    finally:
        _observe("POST", "/scheduler/tick", start_time, status_code)


@router.post("/events", response_model=EventResponse, status_code=202)  # type: ignore[misc]
async def fire_event(request: EventRequest) -> EventResponse:
    """Fire an event at every subscribed webhook in the background."""
    engine = _require_engine()
    tasks = engine.service.fire_event(request.event, request.data)
    return EventResponse(event=request.event, webhooks_triggered=len(tasks))


@router.get(
    "/webhooks/deliveries", response_model=list[WebhookDeliveryResponse]
)  # type: ignore[misc]
async def list_webhook_deliveries(
    webhook_id: Optional[str] = None,
    event_type: Optional[EventType] = None,
) -> list[WebhookDeliveryResponse]:
    """List webhook delivery attempts with optional filtering."""
    engine = _require_engine()
    return [
        WebhookDeliveryResponse.from_delivery(d)
        for d in engine.webhook_log.query(webhook_id=webhook_id, event_type=event_type)
    ]
