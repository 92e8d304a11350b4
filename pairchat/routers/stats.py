from __future__ import annotations

from fastapi import APIRouter, Depends

from ..hub import Switchboard
from ..schemas import HealthResponse, StatsSnapshot
from ..state import get_switchboard

router = APIRouter(prefix="", tags=["stats"])


@router.get("/health", response_model=HealthResponse)
async def health(switchboard: Switchboard = Depends(get_switchboard)):
    return HealthResponse(connected_count=len(switchboard.manager.registry))


@router.get("/stats", response_model=StatsSnapshot)
async def stats(switchboard: Switchboard = Depends(get_switchboard)):
    return switchboard.manager.snapshot()
