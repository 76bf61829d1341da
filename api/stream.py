# api/stream.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from api.session import get_controller
from services.session import SessionController
from streams import SESSION_CHANNEL, sse

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/session/stream")
async def session_stream(ctl: SessionController = Depends(get_controller)):
    hub = ctl.hub
    if hub is None:
        return JSONResponse(status_code=503, content={"error": "event stream disabled"})

    async def gen():
        # late subscribers first get the state they missed
        if ctl.session is not None:
            yield sse({"type": "current", **ctl.session.to_dict()})
        async for chunk in hub.subscribe(SESSION_CHANNEL):
            yield chunk

    return StreamingResponse(gen(), media_type="text/event-stream", headers=SSE_HEADERS)
