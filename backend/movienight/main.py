"""Movie Night — FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from movienight.config import settings
from movienight.errors import EngineError
from movienight.api import health, rounds, votes, ratings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup: create tables, probe integrations
    from movienight.database import engine, init_db
    from movienight.services.integration_probe import probe_all

    await init_db()
    app.state.integrations = await probe_all(settings, engine)
    logger.info(f"Integrations: {app.state.integrations}")
    yield
    # Shutdown: close DB pool
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Family movie-night rounds: slates, votes and picks",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 500:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ── Mount routers ────────────────────────────────────────────────
app.include_router(health.router,   prefix="/api/v1", tags=["system"])
app.include_router(rounds.router,   prefix="/api/v1", tags=["rounds"])
app.include_router(votes.router,    prefix="/api/v1", tags=["votes"])
app.include_router(ratings.router,  prefix="/api/v1", tags=["ratings"])
