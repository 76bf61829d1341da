# api/tip.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from api.session import get_controller
from services.session import SessionController

router = APIRouter()


@router.get("/tip")
async def tip(ctl: SessionController = Depends(get_controller)):
    monitor = ctl.monitor
    if monitor is None:
        return JSONResponse(status_code=503, content={"error": "tip telemetry disabled"})
    remaining = 0
    if ctl.busy and ctl.session is not None:
        remaining = len(ctl.session.block_set.missing)
    return monitor.snapshot(remaining)
