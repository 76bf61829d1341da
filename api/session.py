# api/session.py
from typing import Optional
from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse
from errors import ConfigError, ProviderError, SessionBusyError
from models import BeginIn, CommitIn
from services.session import SessionController

router = APIRouter()


def get_controller(request: Request) -> SessionController:
    return request.app.state.controller


def _error(e: Exception) -> JSONResponse:
    if isinstance(e, ConfigError):
        return JSONResponse(status_code=400, content={"error": str(e)})
    if isinstance(e, SessionBusyError):
        return JSONResponse(status_code=409, content={"error": str(e)})
    return JSONResponse(status_code=502, content={"error": f"provider error: {e}"})


@router.post("/session/commit")
async def session_commit(body: CommitIn = Body(...), ctl: SessionController = Depends(get_controller)):
    try:
        c = await ctl.prepare(body.provider, body.min, body.max, body.n, body.k)
    except (ConfigError, SessionBusyError, ProviderError) as e:
        return _error(e)
    return c.to_dict()


@router.post("/session/begin")
async def session_begin(body: Optional[BeginIn] = Body(None),
                        ctl: SessionController = Depends(get_controller)):
    # with a prepared commitment the body may be empty; fields it does carry must match
    body = body or BeginIn()
    try:
        c, _ = await ctl.launch(body.provider, body.min, body.max, body.n, body.k)
    except (ConfigError, SessionBusyError, ProviderError) as e:
        return _error(e)
    return {"ok": True, "commitment": c.to_dict()}


@router.post("/session/stop")
async def session_stop(ctl: SessionController = Depends(get_controller)):
    return {"ok": ctl.stop()}


@router.get("/session")
async def session_current(ctl: SessionController = Depends(get_controller)):
    return {
        "busy": ctl.busy,
        "pending": ctl.pending.to_dict() if ctl.pending else None,
        "session": ctl.session.to_dict() if ctl.session else None,
    }
