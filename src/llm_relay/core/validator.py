"""Request validator - checks inbound payloads against the request schema."""

from typing import Any

from pydantic import ValidationError

from llm_relay.core.errors import ErrorKind, GatewayError
from llm_relay.models import ChatCompletionRequest
from llm_relay.utils import get_logger

logger = get_logger(__name__)


# (first field, second field, message) pairs that may not appear together
EXCLUSIVE_FIELDS: list[tuple[str, str, str]] = [
    ("functions", "tools", "You can provide either 'functions' or 'tools', but not both."),
    (
        "function_call",
        "tool_choice",
        "You can use either 'function_call' or 'tool_choice', but not both.",
    ),
    ("functions", "tool_choice", "'functions' is used with 'tool_choice'. Use 'function_call' instead."),
    ("tools", "function_call", "'tools' is used with 'function_call'. Use 'tool_choice' instead."),
]


def format_location(loc: tuple[Any, ...]) -> str:
    """Render a pydantic error location as a dotted path."""
    if not loc:
        return "body"
    return ".".join(str(part) for part in loc)


class RequestValidator:
    """Validates chat completion payloads.

    Every violation found is reported, not just the first one. Validation
    has no side effects beyond logging.
    """

    def validate(self, payload: Any) -> ChatCompletionRequest:
        """Validate a raw payload into a typed request.

        Args:
            payload: Decoded JSON request body

        Returns:
            Typed request

        Raises:
            GatewayError: With kind VALIDATION and every violation listed
        """
        if not isinstance(payload, dict):
            self._reject(["body: Request body must be a JSON object"])

        errors: list[str] = []
        request: ChatCompletionRequest | None = None
        try:
            request = ChatCompletionRequest.model_validate(payload)
        except ValidationError as e:
            errors.extend(
                f"{format_location(err['loc'])}: {err['msg']}" for err in e.errors()
            )

        errors.extend(self.check_consistency(payload))

        if errors or request is None:
            self._reject(errors)

        return request

    def check_consistency(self, payload: dict[str, Any]) -> list[str]:
        """Check the functions/tools exclusivity and pairing rules.

        Args:
            payload: Raw request body

        Returns:
            Violation messages, empty when consistent
        """
        return [
            f"{first}.{second}: {message}"
            for first, second, message in EXCLUSIVE_FIELDS
            if payload.get(first) is not None and payload.get(second) is not None
        ]

    def _reject(self, errors: list[str]) -> None:
        logger.info("request.validation_failed", errors=errors)
        raise GatewayError(ErrorKind.VALIDATION, "Invalid request", errors=errors)


def create_validator() -> RequestValidator:
    """Factory for validator.

    Returns:
        Configured validator
    """
    return RequestValidator()
