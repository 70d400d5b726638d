"""Main FastAPI application entry point."""

from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse

from llm_relay import __version__
from llm_relay.auth import FileKeyStore, get_caller
from llm_relay.config import Settings, get_settings
from llm_relay.config_api import describe_catalog, router as config_router
from llm_relay.config_reload import CatalogReloader
from llm_relay.core import ErrorKind, GatewayError, create_client, create_pipeline
from llm_relay.metrics import MetricsExporter
from llm_relay.models import CallerIdentity
from llm_relay.providers import CatalogHolder, CredentialStore, load_catalog
from llm_relay.utils import configure_logging, get_logger

logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Application settings, defaults to the cached environment settings
        transport: Transport for the upstream HTTP client (tests inject a mock)

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(settings.log_level, settings.log_format, settings.log_cache_loggers)

        logger.info(
            "startup",
            version=__version__,
            host=settings.host,
            port=settings.port,
            auth=settings.auth_enabled,
        )

        catalogs = CatalogHolder(
            load_catalog(settings.models_config_full_path, settings.providers_config_full_path)
        )
        credentials = CredentialStore(settings.provider_credentials)
        for provider in catalogs.current.providers.list_providers():
            if not credentials.has(provider.name):
                logger.warning("startup.missing_credential", provider=provider.name)

        reloader = CatalogReloader(
            catalogs,
            settings.models_config_full_path,
            settings.providers_config_full_path,
            poll_interval=settings.config_poll_interval,
        )
        if settings.config_auto_reload:
            reloader.start()

        http_client = httpx.AsyncClient(transport=transport)

        app.state.settings = settings
        app.state.catalogs = catalogs
        app.state.credentials = credentials
        app.state.key_store = FileKeyStore(settings.api_keys_dir)
        app.state.reloader = reloader
        app.state.pipeline = create_pipeline(
            settings, catalogs, create_client(http_client), credentials
        )

        try:
            yield
        finally:
            reloader.stop()
            await http_client.aclose()
            logger.info("shutdown")

    app = FastAPI(
        title="LLM Relay",
        description="OpenAI-compatible chat completion gateway with provider failover",
        version=__version__,
        lifespan=lifespan,
    )

    # Include config API router
    app.include_router(config_router)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    @app.get("/ready")
    async def readiness_check(request: Request) -> dict:
        """Readiness check endpoint."""
        return {"status": "ready", "catalog": describe_catalog(request)}

    @app.get("/metrics")
    async def metrics() -> PlainTextResponse:
        """Prometheus metrics endpoint."""
        content_type, metrics_body = MetricsExporter.get_prometheus_format()
        return PlainTextResponse(
            content=metrics_body.decode("utf-8"),
            media_type=content_type
        )

    @app.get("/v1/models")
    async def list_models(request: Request) -> JSONResponse:
        """List the model table in configuration order."""
        catalog = request.app.state.catalogs.current
        return JSONResponse(
            content=jsonable_encoder([m.to_dict() for m in catalog.models.list_models()])
        )

    @app.post("/v1/chat/completions", response_model=None)
    async def chat_completions(
        request: Request,
        caller: CallerIdentity | None = Depends(get_caller),
    ) -> Response:
        """Chat completions endpoint."""
        try:
            payload = await request.json()
        except ValueError:
            raise GatewayError(
                ErrorKind.VALIDATION, "Invalid request", ["body: Malformed JSON"]
            ) from None

        pipeline = request.app.state.pipeline
        return await pipeline.handle(payload, caller, request.is_disconnected)

    return app


app = create_app()


def main():
    """CLI entry point."""
    import uvicorn
    settings = get_settings()

    uvicorn.run(
        "llm_relay.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
