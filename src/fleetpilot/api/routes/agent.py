"""
Agent API Routes
================

Endpoints called by the browser runner while it drives a session.

Endpoints:
- POST /api/v1/agent/start - Derive goal and start URL, mark session running
- POST /api/v1/agent/decide - Next action for the observed state
- POST /api/v1/agent/report - Record an action outcome and decide again
- POST /api/v1/agent/verify - Rule based verification of an executed action
- POST /api/v1/agent/bots - Generate a bot from a successful session
- GET /api/v1/agent/bots - List active bots
- POST /api/v1/agent/bots/{bot_id}/execute - Queue sessions running a bot
- GET /api/v1/agent/cost-stats - AI spend over the last hours
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fleetpilot.api.dependencies import get_engine, to_http_exception
from fleetpilot.api.schemas import (
    CreateBotRequest,
    DecideRequest,
    ExecuteBotRequest,
    ExecuteBotResponse,
    ReportRequest,
    StartRequest,
    VerifyRequest,
)
from fleetpilot.application.engine import AutomationEngine
from fleetpilot.core.domain.errors import EngineError

router = APIRouter(prefix="/agent")


@router.post("/start")
async def start_session(
    request: StartRequest, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        result = await engine.start(request.session_id, request.task.to_descriptor())
    except EngineError as e:
        raise to_http_exception(e)
    return result.to_dict()


@router.post("/decide")
async def decide(
    request: DecideRequest, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    """
    Return exactly one next action.

    Malformed model output and unavailable models yield synthesized
    responses, never errors.
    """
    try:
        response = await engine.decide(request.to_state())
    except EngineError as e:
        raise to_http_exception(e)
    return response.to_dict()


@router.post("/report")
async def report(
    request: ReportRequest, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        response = await engine.report(request.to_outcome())
    except EngineError as e:
        raise to_http_exception(e)
    return response.to_dict()


@router.post("/verify")
async def verify(
    request: VerifyRequest, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        result = await engine.verify(
            request.verification_criteria,
            session_id=request.session_id,
            action_index=request.action_index,
            action_type=request.action_type,
            before_state=request.before_state,
            after_state=request.after_state,
            dom_changes=request.dom_changes,
            network_requests=request.network_requests,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid verification criteria: {e}",
        )
    return result.to_dict()


@router.post("/bots", status_code=status.HTTP_201_CREATED)
async def create_bot(
    request: CreateBotRequest, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        bot = await engine.create_bot(
            request.session_id,
            task_id=request.task_id,
            name=request.name,
            description=request.description,
        )
    except EngineError as e:
        raise to_http_exception(e)
    return {"success": True, "bot_id": bot.id, "bot": bot.to_dict()}


@router.get("/bots")
async def list_bots(engine: AutomationEngine = Depends(get_engine)) -> Dict[str, Any]:
    bots = await engine.list_bots()
    return {"bots": [bot.to_dict() for bot in bots]}


@router.post("/bots/{bot_id}/execute", response_model=ExecuteBotResponse)
async def execute_bot(
    bot_id: str,
    request: ExecuteBotRequest,
    engine: AutomationEngine = Depends(get_engine),
) -> ExecuteBotResponse:
    try:
        sessions = await engine.execute_bot(bot_id, request.profile_id, request.count)
    except EngineError as e:
        raise to_http_exception(e)
    return ExecuteBotResponse(
        success=True,
        sessions_created=len(sessions),
        session_ids=[s.id for s in sessions],
    )


@router.get("/cost-stats")
async def cost_stats(
    hours: int = Query(default=24, ge=1, le=24 * 30),
    engine: AutomationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return await engine.cost_stats(hours)
