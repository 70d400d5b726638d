"""Upstream client for forwarding requests."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from llm_relay.core.errors import UpstreamAttemptError
from llm_relay.core.request_builder import OutboundCallSpec
from llm_relay.utils import get_logger

logger = get_logger(__name__)


@dataclass
class UpstreamResponse:
    """Successful upstream answer.

    JSON calls carry the parsed ``body``; streaming calls keep the open
    ``raw`` response until the relay closes it.
    """

    status_code: int
    provider: str
    body: Any = None
    raw: httpx.Response | None = None

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """Iterate the streamed body."""
        if self.raw is None:
            return
        async for chunk in self.raw.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        """Release the upstream connection."""
        if self.raw is not None:
            await self.raw.aclose()


class UpstreamClient:
    """Client for upstream LLM providers."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        """Initialize client.

        Args:
            http_client: Shared async HTTP client
        """
        self.http_client = http_client

    async def open(self, spec: OutboundCallSpec) -> UpstreamResponse:
        """Perform one upstream call.

        Streaming calls return as soon as a 2xx status arrives; the body is
        left unread. JSON calls read and parse the whole body.

        Args:
            spec: Outbound call

        Returns:
            Upstream response

        Raises:
            UpstreamAttemptError: On transport errors, timeouts, non-2xx
                status or an unparsable JSON body
        """
        logger.debug(
            "upstream.request",
            url=spec.url,
            provider=spec.provider,
            model=spec.body.get("model"),
            stream=spec.stream,
        )
        request = self.http_client.build_request(
            spec.method,
            spec.url,
            headers=spec.headers,
            json=spec.body,
            timeout=spec.timeout,
        )

        try:
            response = await self.http_client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise UpstreamAttemptError(spec.provider, f"timeout: {type(e).__name__}") from e
        except httpx.HTTPError as e:
            raise UpstreamAttemptError(spec.provider, f"transport error: {type(e).__name__}") from e

        if not response.is_success:
            await self._discard(response, spec.provider)
            raise UpstreamAttemptError(spec.provider, f"HTTP {response.status_code}")

        if spec.stream:
            return UpstreamResponse(
                status_code=response.status_code,
                provider=spec.provider,
                raw=response,
            )

        try:
            await response.aread()
            body = response.json()
        except httpx.HTTPError as e:
            raise UpstreamAttemptError(spec.provider, f"body read failed: {type(e).__name__}") from e
        except ValueError as e:
            raise UpstreamAttemptError(spec.provider, "invalid JSON body") from e
        finally:
            await response.aclose()

        return UpstreamResponse(
            status_code=response.status_code,
            provider=spec.provider,
            body=body,
        )

    async def _discard(self, response: httpx.Response, provider: str) -> None:
        """Read a short error excerpt for debugging, then close."""
        try:
            await response.aread()
            logger.debug(
                "upstream.error_body",
                provider=provider,
                status=response.status_code,
                body=response.text[:500],
            )
        except httpx.HTTPError as e:
            logger.debug("upstream.error_body_unreadable", provider=provider, error=str(e))
        finally:
            await response.aclose()


def create_client(http_client: httpx.AsyncClient) -> UpstreamClient:
    """Factory for upstream client.

    Args:
        http_client: Shared async HTTP client

    Returns:
        Configured client
    """
    return UpstreamClient(http_client)
