"""Request sanitizer - strips markup from caller-controlled strings."""

import re

from llm_relay.models import (
    ChatCompletionRequest,
    FunctionChoice,
    FunctionDefinition,
    Message,
    NamedToolChoice,
    TextPart,
)
from llm_relay.utils import get_logger

logger = get_logger(__name__)


class RequestSanitizer:
    """Removes markup and script injection from user-supplied text.

    Cleans:
    - Message text content, string or text parts
    - Message, function and tool names, including assistant function calls
    - Function and tool descriptions
    - The caller's user id

    Structure is never changed: null content stays null, image parts and
    numeric fields pass through, list lengths are preserved.
    """

    # Elements whose body is executable and dropped entirely
    BLOCK_PATTERN = re.compile(
        r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
    )
    TAG_PATTERN = re.compile(r"</?[a-zA-Z!][^<>]*>")
    SCHEME_PATTERN = re.compile(r"(javascript|vbscript|script)\s*:", re.IGNORECASE)

    def clean(self, text: str) -> str:
        """Sanitize a single string.

        Repeats until nothing changes, so nested or split payloads such as
        ``<scr<b></b>ipt>`` cannot reassemble and sanitizing is idempotent.

        Args:
            text: Raw caller text

        Returns:
            Cleaned and trimmed text
        """
        previous = None
        while previous != text:
            previous = text
            text = self.BLOCK_PATTERN.sub("", text)
            text = self.TAG_PATTERN.sub("", text)
            text = self.SCHEME_PATTERN.sub("", text)
            text = text.strip()
        return text

    def sanitize(self, request: ChatCompletionRequest) -> ChatCompletionRequest:
        """Return a sanitized copy of the request.

        Args:
            request: Validated request

        Returns:
            New request with cleaned string leaves
        """
        update: dict = {
            "messages": [self._sanitize_message(msg) for msg in request.messages],
        }
        if request.user is not None:
            update["user"] = self.clean(request.user)
        if request.functions is not None:
            update["functions"] = [self._sanitize_function(f) for f in request.functions]
        if request.tools is not None:
            update["tools"] = [
                tool.model_copy(update={"function": self._sanitize_function(tool.function)})
                for tool in request.tools
            ]
        if isinstance(request.function_call, FunctionChoice):
            update["function_call"] = FunctionChoice(name=self.clean(request.function_call.name))
        if isinstance(request.tool_choice, NamedToolChoice):
            update["tool_choice"] = request.tool_choice.model_copy(
                update={"function": FunctionChoice(name=self.clean(request.tool_choice.function.name))}
            )

        sanitized = request.model_copy(update=update)
        logger.debug("request.sanitized", messages=len(sanitized.messages))
        return sanitized

    def _sanitize_message(self, msg: Message) -> Message:
        update: dict = {}
        if isinstance(msg.content, str):
            update["content"] = self.clean(msg.content)
        elif isinstance(msg.content, list):
            update["content"] = [
                part.model_copy(update={"text": self.clean(part.text)})
                if isinstance(part, TextPart) and part.text is not None
                else part
                for part in msg.content
            ]
        if msg.name is not None:
            update["name"] = self.clean(msg.name)
        if msg.function_call is not None:
            update["function_call"] = msg.function_call.model_copy(
                update={"name": self.clean(msg.function_call.name)}
            )
        return msg.model_copy(update=update) if update else msg

    def _sanitize_function(self, func: FunctionDefinition) -> FunctionDefinition:
        update: dict = {"name": self.clean(func.name)}
        if func.description is not None:
            update["description"] = self.clean(func.description)
        return func.model_copy(update=update)


def create_sanitizer() -> RequestSanitizer:
    """Factory function for sanitizer.

    Returns:
        Configured sanitizer instance
    """
    return RequestSanitizer()
