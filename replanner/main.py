from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from replanner.api.routes_plan import router as plan_router
from replanner.core.config import get_settings
from replanner.core.errors import install_error_handlers


def create_app() -> FastAPI:
    settings = get_settings()
    logging.getLogger("replanner").setLevel(settings.log_level.upper())
    app = FastAPI(
        title="Replanner API",
        version="0.1.0",
        description="In-memory D* Lite replanning sessions over occupancy grids.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(plan_router, prefix="/v1")

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    @app.get("/")
    def root() -> dict:
        return {"service": "replanner-api", "docs": "/docs"}

    return app


app = create_app()
