"""
Request scoped access to the wired engine components and the mapping of
domain errors to HTTP errors.
"""

from fastapi import HTTPException, Request, status

from fleetpilot.application.engine import AutomationEngine
from fleetpilot.application.factory import EngineComponents
from fleetpilot.application.optimizer import ModelOptimizer
from fleetpilot.core.domain.errors import (
    BotGenerationError,
    BotNotFoundError,
    ConfigurationError,
    EngineError,
    InvalidTransitionError,
    SessionNotFoundError,
)


def get_components(request: Request) -> EngineComponents:
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialized",
        )
    return components


def get_engine(request: Request) -> AutomationEngine:
    return get_components(request).engine


def get_optimizer(request: Request) -> ModelOptimizer:
    return get_components(request).optimizer


def to_http_exception(error: EngineError) -> HTTPException:
    if isinstance(error, (SessionNotFoundError, BotNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, BotGenerationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
