"""Registry Audit FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from registry_audit import config
from registry_audit.db import connection, migrations
from registry_audit.observability import initialize as initialize_observability, shutdown as shutdown_observability
from registry_audit.routers.orphans import orphans_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("regaudit")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Registry audit backend starting up")
    initialize_observability(app)

    db = await connection.get_connection()
    await migrations.run_migrations(db)
    logger.info("Static registry source: %s", config.REGISTRY_PATH)

    yield

    logger.info("Registry audit backend shutting down")
    shutdown_observability(app)
    await connection.close_connection()


app = FastAPI(
    title="Registry Audit API",
    description="Feature registry reconciliation and orphan management for the admin console",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS: allow the console dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(orphans_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "db": "connected" if connection._connection else "disconnected",
        "registry": str(config.REGISTRY_PATH),
        "registryPresent": config.REGISTRY_PATH.exists(),
    }


def main() -> None:
    import uvicorn

    uvicorn.run("registry_audit.main:app", host=config.HOST, port=config.PORT)
