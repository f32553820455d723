from typing import Any, Dict

from fastapi import APIRouter, Request

from fleetpilot import __version__

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    components = getattr(request.app.state, "components", None)
    if components is None:
        return {"status": "starting", "version": __version__}
    return {
        "status": "healthy",
        "version": __version__,
        "store": await components.store.stats(),
    }
