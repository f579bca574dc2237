from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from talentscout.api.routes import router as api_router
from talentscout.config import get_settings
from talentscout.core.runtime import get_event_bus
from talentscout.core.worker import resume_in_flight, start_background_worker
from talentscout.db.init import init_database
from talentscout.logging_config import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        init_database()
        get_event_bus().attach_loop(asyncio.get_running_loop())
        if settings.worker_enabled:
            resume_in_flight()
            app.state.worker = start_background_worker()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        worker = getattr(app.state, "worker", None)
        if worker is not None:
            _, stop_event = worker
            stop_event.set()

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(api_router)
    return app
