"""Configuration inspection API endpoints."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from llm_relay.utils import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/config", tags=["configuration"])


class ProviderResponse(BaseModel):
    """Provider response (no sensitive data)."""

    name: str
    endpoint: str
    models: dict[str, str]
    has_credential: bool


class ReloadResponse(BaseModel):
    """Result of a forced catalog reload."""

    status: str
    models: int
    providers: int


@router.get("/providers")
async def list_providers(request: Request) -> dict[str, list[ProviderResponse]]:
    """List configured providers with credential presence."""
    catalog = request.app.state.catalogs.current
    credentials = request.app.state.credentials
    return {
        "providers": [
            ProviderResponse(**p.to_dict(has_credential=credentials.has(p.name)))
            for p in catalog.providers.list_providers()
        ]
    }


@router.post("/reload")
async def reload_catalog(request: Request) -> ReloadResponse:
    """Reload model and provider tables from disk."""
    reloader = request.app.state.reloader
    catalog = reloader.force_reload()
    if catalog is None:
        raise HTTPException(status_code=422, detail="Catalog reload failed; previous catalog kept")

    logger.info("config.reloaded", models=len(catalog.models))
    return ReloadResponse(
        status="reloaded",
        models=len(catalog.models),
        providers=len(catalog.providers.list_providers()),
    )


def describe_catalog(request: Request) -> dict[str, Any]:
    """Summary of the current catalog for readiness reporting."""
    catalog = request.app.state.catalogs.current
    return {
        "models": len(catalog.models),
        "providers": len(catalog.providers.list_providers()),
        "loaded_at": catalog.loaded_at,
    }
