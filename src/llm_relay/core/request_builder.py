"""Outbound request construction."""

from dataclasses import dataclass
from typing import Any

from llm_relay.models import ChatCompletionRequest
from llm_relay.providers.registry import ProviderEntry


@dataclass(frozen=True)
class OutboundCallSpec:
    """One upstream attempt: where to send what."""

    method: str
    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    stream: bool = False
    timeout: float = 15.0
    provider: str = ""

    @property
    def response_type(self) -> str:
        """Expected upstream body: "stream" or "json"."""
        return "stream" if self.stream else "json"


class RequestBuilder:
    """Builds provider calls from validated requests."""

    def __init__(self, timeout: float = 15.0) -> None:
        """Initialize builder.

        Args:
            timeout: Per-attempt timeout in seconds
        """
        self.timeout = timeout

    def build(
        self,
        provider: ProviderEntry,
        credential: str,
        request: ChatCompletionRequest,
        stream: bool,
    ) -> OutboundCallSpec:
        """Build the call for one provider.

        Unset optional fields are omitted, explicit nulls (such as
        ``content: null``) are kept, and the model id is replaced with the
        provider's own id.

        Args:
            provider: Target provider
            credential: Provider API key
            request: Sanitized request, left untouched
            stream: Whether to ask for an SSE body

        Returns:
            Outbound call
        """
        body = request.model_dump(mode="json", exclude_unset=True)
        body["model"] = provider.models[request.model]
        body["stream"] = stream

        return OutboundCallSpec(
            method="POST",
            url=provider.endpoint,
            headers={
                "Authorization": f"Bearer {credential}",
                "Content-Type": "application/json",
            },
            body=body,
            stream=stream,
            timeout=self.timeout,
            provider=provider.name,
        )


def create_request_builder(timeout: float = 15.0) -> RequestBuilder:
    """Factory for request builder.

    Args:
        timeout: Per-attempt timeout in seconds

    Returns:
        Configured builder
    """
    return RequestBuilder(timeout)
