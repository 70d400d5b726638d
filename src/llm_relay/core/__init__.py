"""Core processing modules."""

from llm_relay.core.errors import ErrorKind, GatewayError, UpstreamAttemptError
from llm_relay.core.failover import FailoverExecutor, FailoverResult
from llm_relay.core.pipeline import ChatCompletionPipeline, RequestState, create_pipeline
from llm_relay.core.policy import AccessPolicy, ImagePolicy, PolicyDecision
from llm_relay.core.proxy_client import UpstreamClient, UpstreamResponse, create_client
from llm_relay.core.relay import StreamRelay, StreamState, relay_response
from llm_relay.core.request_builder import OutboundCallSpec, RequestBuilder, create_request_builder
from llm_relay.core.sanitizer import RequestSanitizer, create_sanitizer
from llm_relay.core.validator import RequestValidator, create_validator

__all__ = [
    "ErrorKind",
    "GatewayError",
    "UpstreamAttemptError",
    "FailoverExecutor",
    "FailoverResult",
    "ChatCompletionPipeline",
    "RequestState",
    "create_pipeline",
    "AccessPolicy",
    "ImagePolicy",
    "PolicyDecision",
    "UpstreamClient",
    "UpstreamResponse",
    "create_client",
    "StreamRelay",
    "StreamState",
    "relay_response",
    "OutboundCallSpec",
    "RequestBuilder",
    "create_request_builder",
    "RequestSanitizer",
    "create_sanitizer",
    "RequestValidator",
    "create_validator",
]
