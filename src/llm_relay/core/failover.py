"""Sequential provider failover."""

import asyncio
import random
from dataclasses import dataclass, field

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
)

from llm_relay.core.errors import ErrorKind, GatewayError, UpstreamAttemptError
from llm_relay.core.proxy_client import UpstreamClient, UpstreamResponse
from llm_relay.core.request_builder import OutboundCallSpec, RequestBuilder
from llm_relay.metrics import MetricsExporter
from llm_relay.models import ChatCompletionRequest
from llm_relay.providers.registry import CredentialStore, ProviderEntry
from llm_relay.utils import get_logger

logger = get_logger(__name__)

ALL_PROVIDERS_FAILED = "All providers failed to process the request"


@dataclass(frozen=True)
class AttemptRecord:
    """Outcome of one candidate attempt."""

    provider: str
    succeeded: bool
    reason: str | None = None


@dataclass
class FailoverResult:
    """The winning attempt."""

    provider: ProviderEntry
    spec: OutboundCallSpec
    response: UpstreamResponse
    attempts: list[AttemptRecord] = field(default_factory=list)


class FailoverExecutor:
    """Tries each provider serving a model until one answers.

    Candidates are attempted once each, in order: the primary provider, then
    every other provider for the model in configuration order. The winning
    attempt has already received a 2xx status (and, for JSON calls, its whole
    body) when ``execute`` returns, so nothing is relayed before failover is
    over.
    """

    def __init__(
        self,
        client: UpstreamClient,
        builder: RequestBuilder,
        credentials: CredentialStore,
        timeout: float = 15.0,
        strategy: str = "first",
        rng: random.Random | None = None,
    ) -> None:
        """Initialize executor.

        Args:
            client: Upstream client
            builder: Request builder
            credentials: Provider credential lookup
            timeout: Bound on a single attempt, in seconds
            strategy: "first" or "random" choice of primary provider
            rng: Random source for the "random" strategy
        """
        self.client = client
        self.builder = builder
        self.credentials = credentials
        self.timeout = timeout
        self.strategy = strategy
        self._rng = rng or random.Random()

    def candidates(self, providers: list[ProviderEntry]) -> list[ProviderEntry]:
        """Order providers for failover.

        Args:
            providers: Providers resolved for the model, configuration order

        Returns:
            Primary first, then the rest in order, no duplicate names
        """
        if not providers:
            return []

        primary = providers[0] if self.strategy == "first" else self._rng.choice(providers)
        ordered = [primary]
        seen = {primary.name}
        for provider in providers:
            if provider.name not in seen:
                seen.add(provider.name)
                ordered.append(provider)
        return ordered

    async def execute(
        self, request: ChatCompletionRequest, providers: list[ProviderEntry]
    ) -> FailoverResult:
        """Run the request against candidates until one succeeds.

        Args:
            request: Sanitized request
            providers: Providers resolved for the model

        Returns:
            Winning attempt

        Raises:
            GatewayError: UNROUTABLE without candidates, UPSTREAM_EXHAUSTED
                when every candidate failed
        """
        candidates = self.candidates(providers)
        if not candidates:
            raise GatewayError(ErrorKind.UNROUTABLE, f"Unsupported model: {request.model}")

        attempts: list[AttemptRecord] = []
        retrying = AsyncRetrying(
            stop=stop_after_attempt(len(candidates)),
            wait=wait_none(),
            retry=retry_if_exception_type(UpstreamAttemptError),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    provider = candidates[attempt.retry_state.attempt_number - 1]
                    result = await self._attempt(provider, request, attempts)
        except RetryError:
            logger.error(
                "failover.exhausted",
                model=request.model,
                attempts=[{"provider": a.provider, "reason": a.reason} for a in attempts],
            )
            raise GatewayError(ErrorKind.UPSTREAM_EXHAUSTED, ALL_PROVIDERS_FAILED) from None

        return result

    async def _attempt(
        self,
        provider: ProviderEntry,
        request: ChatCompletionRequest,
        attempts: list[AttemptRecord],
    ) -> FailoverResult:
        try:
            spec, response = await self._call(provider, request)
        except UpstreamAttemptError as e:
            attempts.append(AttemptRecord(provider=provider.name, succeeded=False, reason=e.reason))
            MetricsExporter.record_attempt(provider.name, "failure")
            logger.warning(
                "failover.attempt_failed",
                provider=provider.name,
                reason=e.reason,
                attempt=len(attempts),
            )
            raise

        attempts.append(AttemptRecord(provider=provider.name, succeeded=True))
        MetricsExporter.record_attempt(provider.name, "success")
        logger.info(
            "failover.provider_selected",
            provider=provider.name,
            model=spec.body.get("model"),
            attempt=len(attempts),
        )
        return FailoverResult(provider=provider, spec=spec, response=response, attempts=list(attempts))

    async def _call(
        self, provider: ProviderEntry, request: ChatCompletionRequest
    ) -> tuple[OutboundCallSpec, UpstreamResponse]:
        credential = self.credentials.get(provider.name)
        if credential is None:
            raise UpstreamAttemptError(provider.name, "missing credential")

        spec = self.builder.build(provider, credential, request, stream=request.is_streaming)
        try:
            response = await asyncio.wait_for(self.client.open(spec), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamAttemptError(provider.name, f"timeout after {self.timeout}s") from e
        return spec, response
