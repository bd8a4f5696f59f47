"""Application factory for the FastAPI service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import PROJECT_ROOT, Settings, get_settings
from .routers.engage import router as engage_router
from .routers.projects import router as projects_router
from .routers.sync import router as sync_router
from .routers.tasks import router as tasks_router
from .routers.timer import router as timer_router
from .services.session import EngagementSession

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    handlers: list[logging.Handler] = []
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("gtd_engage").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Quiet transport chatter unless debugging
    for name in ("httpx", "httpcore", "websockets"):
        logging.getLogger(name).setLevel(
            log_level if log_level <= logging.DEBUG else logging.WARNING
        )


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(
    settings: Optional[Settings] = None,
    session: Optional[EngagementSession] = None,
) -> FastAPI:
    """Build the API; ``session`` replaces the settings-built one when given."""
    _configure_logging()

    if session is None:
        settings = settings or get_settings()
        storage_path = _resolve_under(PROJECT_ROOT, settings.local_storage_path)
        session = EngagementSession.from_settings(settings, storage_path=storage_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await session.start()
        try:
            yield
        finally:
            try:
                await session.close()
            except Exception as exc:
                logging.warning("Error during session shutdown: %s", exc)

    app = FastAPI(
        title="GTD Engage",
        version="0.1.0",
        description="Task sync, offline queue and engagement suggestions.",
        lifespan=lifespan,
    )

    app.state.engagement_session = session

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tasks_router)
    app.include_router(engage_router)
    app.include_router(sync_router)
    app.include_router(projects_router)
    app.include_router(timer_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | int | bool | None]:
        return {
            "status": "ok",
            "online": session.is_online,
            "pending_actions": session.pending_count,
            "subscription": session.subscription_state.value,
        }

    return app


__all__ = ["create_app"]
