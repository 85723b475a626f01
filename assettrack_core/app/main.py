import os
import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .db import create_db_and_tables
from .logging_config import configure_logging
from .auth import router as auth_router
from .users import router as users_router
from .routers.assets import router as assets_router
from .routers.employees import router as employees_router
from .routers.assignments import router as assignments_router
from .routers.dashboard import router as dashboard_router
from .routers.notifications import router as notifications_router

logger = logging.getLogger(__name__)


def get_cors_origins():
    """Get CORS origins from environment or use defaults for development"""
    origins_env = os.getenv("CORS_ORIGINS", "")
    if origins_env:
        return [o.strip() for o in origins_env.split(",") if o.strip()]
    # Default development origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ]


def create_app(create_tables: bool = True) -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="AssetTrack",
        description="Asset lifecycle and assignment ledger",
        version="1.0.0"
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(assets_router)
    app.include_router(employees_router)
    app.include_router(assignments_router)
    app.include_router(dashboard_router)
    app.include_router(notifications_router)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    if create_tables:
        @app.on_event("startup")
        def on_startup():
            logger.info("Creating database tables at startup")
            create_db_and_tables()

    return app


app = create_app()
