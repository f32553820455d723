"""
Model routing endpoints: catalog refresh and cost optimization.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status

from fleetpilot.api.dependencies import get_optimizer
from fleetpilot.application.optimizer import ModelOptimizer
from fleetpilot.infrastructure.catalog.openrouter_catalog import CatalogFetchError

router = APIRouter(prefix="/models")


@router.get("/check")
async def check_models(optimizer: ModelOptimizer = Depends(get_optimizer)) -> Dict[str, Any]:
    return await optimizer.check()


@router.post("/optimize")
async def optimize_models(optimizer: ModelOptimizer = Depends(get_optimizer)) -> Dict[str, Any]:
    return await optimizer.optimize()


@router.post("/refresh")
async def refresh_catalog(optimizer: ModelOptimizer = Depends(get_optimizer)) -> Dict[str, Any]:
    try:
        return await optimizer.refresh()
    except CatalogFetchError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
