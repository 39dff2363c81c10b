"""
goalcircle.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn goalcircle.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import HTTPConnection

load_dotenv()

from goalcircle import __version__  # noqa: E402
from goalcircle.api.chat_rooms import registry_for  # noqa: E402
from goalcircle.api.deps import get_engine  # noqa: E402
from goalcircle.api.routes.chat import router as chat_router  # noqa: E402
from goalcircle.api.routes.goals import router as goals_router  # noqa: E402
from goalcircle.database.engine import init_db  # noqa: E402
from goalcircle.services.errors import GoalCircleError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — create tables and the chat registry."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    init_db(engine)
    rooms = registry_for(app)
    logger.info("GoalCircle API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("GoalCircle API shutting down (%d live chat rooms)", rooms.room_count())


app = FastAPI(
    title="GoalCircle API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def goalcircle_error_handler(conn: HTTPConnection, exc: GoalCircleError) -> JSONResponse:
    # Also reached from WebSocket scopes, which have no method and ignore the response.
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            conn.scope.get("method", "WS"), conn.url.path, exc.message,
        )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


app.add_exception_handler(GoalCircleError, goalcircle_error_handler)

# Mount routers
app.include_router(goals_router, prefix="/api")
app.include_router(chat_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
