"""FastAPI application entry-point."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from provisioner import __version__
from provisioner.config import settings
from provisioner.routers import cloud, health, install
from provisioner.utils.logging import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown hooks."""
    setup_logging(settings.prov_log_level, json=settings.prov_log_json)
    yield


app = FastAPI(
    title="Debian Host Provisioner",
    description="Idempotent SSH provisioning of Debian hosts and EC2 instance lifecycle",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(install.router)
app.include_router(cloud.router)
