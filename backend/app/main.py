import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings, settings as default_settings
from app.database import Database
from app.middleware.exceptions import register_exception_handlers
from app.routers import (
    actions,
    auth,
    health,
    ministries,
    permissions,
    teams,
    user_permissions,
    users,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting in {app.state.settings.environment} mode")
    yield
    await app.state.database.dispose()
    logger.info("Database pool disposed")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    app = FastAPI(
        title="SGG Actions",
        description="Governmental action tracking across ministries",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = Database.from_settings(settings)

    # ── Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Middleware ───────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routers ──────────────────────────────────────────────────
    # Public
    app.include_router(health.router)
    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    app.include_router(ministries.router, prefix="/api/ministries", tags=["ministries"])

    # Ministry-scoped
    app.include_router(actions.router, prefix="/api/actions", tags=["actions"])
    app.include_router(teams.router, prefix="/api/teams", tags=["teams"])

    # Administration
    app.include_router(users.router, prefix="/api/users", tags=["users"])
    app.include_router(permissions.router, prefix="/api/permissions", tags=["permissions"])
    app.include_router(
        user_permissions.router, prefix="/api/user-permissions", tags=["permissions"]
    )

    return app


app = create_app()
