"""FastAPI server exposing the integration apps to the host platform.

Run with:
    uvicorn integration_apps.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from integration_apps.api.routes import router
from integration_apps.config import CORS_ORIGINS, SERVER_HOST, SERVER_PORT, provision_env
from integration_apps.registry import APPS
from integration_apps.services.metrics import metrics

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: resolve provision-level secrets once and keep them in app state."""
    application.state.provision_env = provision_env()
    logger.info("Serving apps: %s", ", ".join(sorted(APPS)))
    yield
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Integration Apps",
    description=(
        "Vendor integrations for the host platform: Petbooqz booking, "
        "Meta WhatsApp/Instagram and Twilio phone."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header and prefixes
    every route log line for the request.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info(
        "[%s] %s %s", request_id, request.method, request.url.path,
    )
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Integration Apps",
        "version": "1.0.0",
        "apps": sorted(APPS),
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting integration apps server on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "integration_apps.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
