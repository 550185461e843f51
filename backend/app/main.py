# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import assert_env, settings
from .core.constants import (
    ALLOWED_ORIGINS,
    API_DESCRIPTION,
    API_TITLE,
    API_V1_PREFIX,
    API_VERSION,
    BRAND_NAME,
)
from .database import Base, engine
from .middleware.prometheus_middleware import PrometheusMiddleware
from .routes.v1 import (
    credits as credits_v1,
    health as health_v1,
    prometheus as prometheus_v1,
    sessions as sessions_v1,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def _create_tables() -> None:
    # Importing the models package registers every table on Base.metadata
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} API starting up...")
    logger.info(f"Environment: {settings.environment} (SITE_MODE={settings.site_mode})")
    assert_env()
    _create_tables()

    yield

    logger.info(f"{BRAND_NAME} API shutting down...")
    engine.dispose()


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(PrometheusMiddleware)

api_v1 = APIRouter(prefix=API_V1_PREFIX)
api_v1.include_router(sessions_v1.router, prefix="/sessions")
api_v1.include_router(credits_v1.router, prefix="/credits")
api_v1.include_router(health_v1.router)
api_v1.include_router(prometheus_v1.router)

app.include_router(api_v1)
# Prometheus scrapes the conventional root path
app.include_router(prometheus_v1.router)
