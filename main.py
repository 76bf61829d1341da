# main.py
import logging
from asyncio import create_task
from typing import Optional

from fastapi import FastAPI

from settings import settings, Settings
from api.session import router as session_router
from api.stream import router as stream_router
from api.tip import router as tip_router
from api.proof import router as proof_router
from services.session import SessionController
from services.tip import TipMonitor
from sources.bitcoin import build_sources, failover_for
from streams import StreamHub

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("bbrng")


def build_controller(cfg: Settings = settings) -> SessionController:
    sources = build_sources(cfg)
    monitor = TipMonitor(failover_for(cfg.BTC_PROVIDER, sources), cfg.TIP_REFRESH_S, cfg.BLOCK_INTERVAL_S)
    return SessionController(
        sources,
        monitor=monitor,
        hub=StreamHub(),
        poll_interval=cfg.POLL_INTERVAL_S,
        cancel_check=cfg.CANCEL_CHECK_S,
        max_iterations=cfg.MAX_ITERATIONS,
        tag=cfg.COMMIT_TAG,
        default_provider=cfg.BTC_PROVIDER,
    )


def create_app(controller: Optional[SessionController] = None) -> FastAPI:
    app = FastAPI(title="BBRNG (Bitcoin block RNG)")
    app.state.controller = controller or build_controller()

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(session_router)  # /session/commit, /session/begin, /session/stop, /session
    app.include_router(stream_router)   # /session/stream
    app.include_router(tip_router)      # /tip
    app.include_router(proof_router)    # /proof/verify, /draws/recompute

    @app.on_event("startup")
    async def _start_tip_monitor():
        monitor = app.state.controller.monitor
        if monitor is None:
            return
        # paused by the controller while a session waits for its blocks
        app.state.tip_task = create_task(monitor.run())
        logger.info("tip telemetry every %ss via %s", monitor.interval, monitor.source.code)

    @app.on_event("shutdown")
    async def _stop_tip_monitor():
        task = getattr(app.state, "tip_task", None)
        if task is not None:
            task.cancel()

    return app


app = create_app()
