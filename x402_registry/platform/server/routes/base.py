"""Operational endpoints: readiness, process info and Prometheus metrics."""

import logging
from enum import Enum

from fastapi import APIRouter, Depends, Response

from x402_registry.platform.observability.metrics import metrics as prom_metrics
from x402_registry.platform.server.dependencies.registry import get_catalog, get_settings
from x402_registry.platform.server.health import HealthCheck, metadata
from x402_registry.platform.settings import Settings
from x402_registry.registry.catalog import AgentCatalog

logger = logging.getLogger(__name__)

base_router = APIRouter()
base_tags: list[Enum | str] = ["base"]


@base_router.get("/health", tags=base_tags)
async def health():
    """200 while the instance takes traffic, 404 once it is draining."""
    if not HealthCheck.status():
        logger.info("health-check: fail. disabled")
        return Response(status_code=404)
    return {"status": "OK"}


@base_router.get("/info", tags=base_tags)
async def info(
    settings: Settings = Depends(get_settings),
    catalog: AgentCatalog = Depends(get_catalog),
):
    return metadata.info(
        version=settings.registry.version,
        network=settings.registry.network,
        agents=len(catalog),
    )


@base_router.get("/metrics", tags=base_tags)
async def metrics():
    body, media_type = prom_metrics()
    return Response(body, media_type=media_type)
