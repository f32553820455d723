from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from fleetpilot.api.dependencies import get_engine, to_http_exception
from fleetpilot.api.schemas import CancelSessionRequest, CreateSessionRequest
from fleetpilot.application.engine import AutomationEngine
from fleetpilot.core.domain.errors import EngineError

router = APIRouter()


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    """Create a queued session."""
    session = await engine.create_session(
        goal=request.goal,
        task_id=request.task_id,
        profile_id=request.profile_id,
        priority=request.priority,
        metadata=request.metadata,
    )
    return session.to_dict()


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        session = await engine.get_session(session_id)
    except EngineError as e:
        raise to_http_exception(e)
    return session.to_dict()


@router.get("/sessions/{session_id}/logs")
async def get_session_logs(
    session_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    engine: AutomationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        logs = await engine.get_logs(session_id, limit=limit)
    except EngineError as e:
        raise to_http_exception(e)
    return {"session_id": session_id, "logs": [entry.to_dict() for entry in logs]}


@router.post("/sessions/{session_id}/pause")
async def pause_session(
    session_id: str, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        session = await engine.pause(session_id)
    except EngineError as e:
        raise to_http_exception(e)
    return session.to_dict()


@router.post("/sessions/{session_id}/resume")
async def resume_session(
    session_id: str, engine: AutomationEngine = Depends(get_engine)
) -> Dict[str, Any]:
    try:
        session = await engine.resume(session_id)
    except EngineError as e:
        raise to_http_exception(e)
    return session.to_dict()


@router.post("/sessions/{session_id}/cancel")
async def cancel_session(
    session_id: str,
    request: Optional[CancelSessionRequest] = None,
    engine: AutomationEngine = Depends(get_engine),
) -> Dict[str, Any]:
    try:
        session = await engine.cancel(session_id, request.reason if request else None)
    except EngineError as e:
        raise to_http_exception(e)
    return session.to_dict()
