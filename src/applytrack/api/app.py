from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from applytrack.api.routes import router as api_router
from applytrack.config import Settings, get_settings
from applytrack.core.runtime import Services, build_services
from applytrack.db.init import init_database
from applytrack.db.session import SessionLocal
from applytrack.web.routes import router as web_router


def create_app(settings: Settings | None = None, *, services: Services | None = None) -> FastAPI:
    """Build the ASGI app. Gateways are wired here so missing configuration fails at startup."""
    settings = settings or get_settings()
    services = services or build_services(settings, SessionLocal)
    static_dir = Path(__file__).resolve().parents[1] / "web" / "static"

    app = FastAPI(title=settings.app_name)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        init_database()

    @app.get("/health")
    def health() -> JSONResponse:
        return JSONResponse({"status": "ok", "file_store": settings.file_store_backend})

    app.include_router(api_router)
    if settings.web_ui_enabled:
        app.include_router(web_router)

    app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")
    if settings.file_store_backend == "local":
        settings.upload_dir.mkdir(parents=True, exist_ok=True)
        app.mount("/files", StaticFiles(directory=str(settings.upload_dir)), name="files")
    return app
