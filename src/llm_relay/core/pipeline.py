"""Processing pipeline - coordinates one chat completion request."""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from fastapi import Response

from llm_relay.config import Settings
from llm_relay.core.errors import ErrorKind, GatewayError
from llm_relay.core.failover import FailoverExecutor
from llm_relay.core.policy import AccessPolicy, ImagePolicy
from llm_relay.core.proxy_client import UpstreamClient
from llm_relay.core.relay import DisconnectProbe, relay_response
from llm_relay.core.request_builder import create_request_builder
from llm_relay.core.sanitizer import RequestSanitizer, create_sanitizer
from llm_relay.core.validator import RequestValidator, create_validator
from llm_relay.metrics import MetricsExporter
from llm_relay.models import CallerIdentity
from llm_relay.providers.registry import Catalog, CatalogHolder, CredentialStore, ModelNotFound
from llm_relay.utils import bind_request_context, get_logger

logger = get_logger(__name__)


class RequestState(str, Enum):
    """Lifecycle of one request."""

    RECEIVED = "received"
    VALIDATED = "validated"
    SANITIZED = "sanitized"
    ACCESS_CHECKED = "access_checked"
    IMAGE_CHECKED = "image_checked"
    PROVIDER_RESOLVED = "provider_resolved"
    RELAYING = "relaying"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RequestContext:
    """Per-request bookkeeping, owned by the request task."""

    request_id: str
    started: float = field(default_factory=time.perf_counter)
    state: RequestState = RequestState.RECEIVED
    model: str = "unknown"
    stream: bool = False

    @property
    def elapsed(self) -> float:
        return time.perf_counter() - self.started


class ChatCompletionPipeline:
    """Main processing pipeline for chat completions.

    Coordinates:
    1. Schema validation
    2. Sanitization
    3. Model lookup and premium gating
    4. Image capability check
    5. Provider resolution and failover
    6. Response relay

    No retries happen here; failover is internal to the executor. Every
    failure leaves as a GatewayError.
    """

    def __init__(
        self,
        catalogs: CatalogHolder,
        executor: FailoverExecutor,
        validator: RequestValidator | None = None,
        sanitizer: RequestSanitizer | None = None,
        access_policy: AccessPolicy | None = None,
        image_policy: ImagePolicy | None = None,
    ) -> None:
        """Initialize pipeline.

        Args:
            catalogs: Published model/provider catalog
            executor: Failover executor
            validator: Request validator
            sanitizer: Request sanitizer
            access_policy: Premium gating policy
            image_policy: Image capability policy
        """
        self.catalogs = catalogs
        self.executor = executor
        self.validator = validator or create_validator()
        self.sanitizer = sanitizer or create_sanitizer()
        self.access_policy = access_policy or AccessPolicy()
        self.image_policy = image_policy or ImagePolicy()

    async def handle(
        self,
        payload: Any,
        caller: CallerIdentity | None = None,
        disconnected: DisconnectProbe | None = None,
    ) -> Response:
        """Process one request.

        Args:
            payload: Decoded JSON body
            caller: Authenticated caller, None when anonymous
            disconnected: Client disconnect probe for streaming

        Returns:
            Caller response (JSON or SSE stream)

        Raises:
            GatewayError: On any failure before relaying starts
        """
        ctx = RequestContext(request_id=uuid.uuid4().hex[:8])
        bind_request_context(request_id=ctx.request_id)
        # One snapshot for the whole request, even if a reload lands meanwhile
        catalog = self.catalogs.current

        logger.info("pipeline.start", caller=caller.id if caller else None)

        try:
            response = await self._run(ctx, catalog, payload, caller, disconnected)
        except GatewayError as e:
            self._fail(ctx, e)
            raise
        except Exception as e:
            logger.exception("pipeline.unexpected_error", state=ctx.state.value)
            error = GatewayError(ErrorKind.INTERNAL, "Internal server error")
            self._fail(ctx, error)
            raise error from e

        self._advance(ctx, RequestState.COMPLETED)
        MetricsExporter.record_request(ctx.model, "completed", ctx.stream, ctx.elapsed)
        logger.info(
            "pipeline.complete",
            model=ctx.model,
            stream=ctx.stream,
            elapsed_ms=round(ctx.elapsed * 1000, 2),
        )
        return response

    async def _run(
        self,
        ctx: RequestContext,
        catalog: Catalog,
        payload: Any,
        caller: CallerIdentity | None,
        disconnected: DisconnectProbe | None,
    ) -> Response:
        request = self.validator.validate(payload)
        ctx.stream = request.is_streaming
        self._advance(ctx, RequestState.VALIDATED)

        request = self.sanitizer.sanitize(request)
        self._advance(ctx, RequestState.SANITIZED)

        try:
            model = catalog.models.lookup(request.model)
        except ModelNotFound:
            raise GatewayError(ErrorKind.UNROUTABLE, f"Unsupported model: {request.model}") from None
        ctx.model = model.id

        decision = self.access_policy.authorize(model, caller)
        if not decision.allowed:
            raise GatewayError(ErrorKind.POLICY, decision.reason)
        self._advance(ctx, RequestState.ACCESS_CHECKED)

        providers = catalog.providers.resolve(request.model)
        decision = self.image_policy.check_image_support(request.model, request, providers)
        if not decision.allowed:
            raise GatewayError(ErrorKind.POLICY, decision.reason, status_code=400)
        self._advance(ctx, RequestState.IMAGE_CHECKED)

        if not providers:
            raise GatewayError(ErrorKind.UNROUTABLE, f"Unsupported model: {request.model}")
        self._advance(ctx, RequestState.PROVIDER_RESOLVED)

        result = await self.executor.execute(request, providers)
        self._advance(ctx, RequestState.RELAYING)

        return relay_response(result, request.model, disconnected)

    def _advance(self, ctx: RequestContext, state: RequestState) -> None:
        logger.debug("pipeline.state", from_state=ctx.state.value, to_state=state.value)
        ctx.state = state

    def _fail(self, ctx: RequestContext, error: GatewayError) -> None:
        failed_in = ctx.state
        self._advance(ctx, RequestState.FAILED)
        MetricsExporter.record_request(ctx.model, error.kind.value, ctx.stream)
        logger.warning(
            "pipeline.failed",
            kind=error.kind.value,
            status=error.status_code,
            message=error.message,
            failed_in=failed_in.value,
            elapsed_ms=round(ctx.elapsed * 1000, 2),
        )


def create_pipeline(
    settings: Settings,
    catalogs: CatalogHolder,
    client: UpstreamClient,
    credentials: CredentialStore | None = None,
) -> ChatCompletionPipeline:
    """Factory for processing pipeline.

    Args:
        settings: Application settings
        catalogs: Published model/provider catalog
        client: Upstream client
        credentials: Provider credential lookup

    Returns:
        Configured pipeline
    """
    credentials = credentials or CredentialStore(settings.provider_credentials)
    executor = FailoverExecutor(
        client=client,
        builder=create_request_builder(settings.upstream_timeout),
        credentials=credentials,
        timeout=settings.upstream_timeout,
        strategy=settings.primary_provider_strategy,
    )
    return ChatCompletionPipeline(
        catalogs=catalogs,
        executor=executor,
        image_policy=ImagePolicy(
            vision_models=settings.vision_models,
            assume_all_models_support_images=settings.assume_all_models_support_images,
        ),
    )
