"""Pydantic models for API requests and caller identity."""

from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    field_validator,
)


Role = Literal["system", "user", "assistant", "function", "tool"]


class ImageURL(BaseModel):
    """Image reference inside an image content part."""

    url: str
    detail: Literal["auto", "low", "high"] = "auto"

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Accept absolute http(s) URLs and data URLs."""
        parsed = urlparse(v)
        if parsed.scheme == "data":
            return v
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("Invalid url")
        return v


class TextPart(BaseModel):
    """Text content part."""

    type: Literal["text"]
    text: str | None = None


class ImagePart(BaseModel):
    """Image content part."""

    type: Literal["image_url"]
    image_url: ImageURL


ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class FunctionCall(BaseModel):
    """Function call emitted by an assistant message."""

    name: str
    arguments: str


class Message(BaseModel):
    """Chat message model."""

    model_config = ConfigDict(extra="allow")

    role: Role
    content: str | list[ContentPart] | None = None
    name: str | None = None
    function_call: FunctionCall | None = None

    @property
    def has_image(self) -> bool:
        """Whether the content carries at least one image part."""
        if not isinstance(self.content, list):
            return False
        return any(isinstance(part, ImagePart) for part in self.content)


class FunctionDefinition(BaseModel):
    """Callable function offered to the model."""

    name: str
    description: str | None = None
    parameters: dict[str, Any]


class Tool(BaseModel):
    """Tool wrapper around a function definition."""

    type: Literal["function"]
    function: FunctionDefinition


class FunctionChoice(BaseModel):
    """Forces a specific function by name."""

    name: str


class NamedToolChoice(BaseModel):
    """Forces a specific tool by function name."""

    type: Literal["function"]
    function: FunctionChoice


class ChatCompletionRequest(BaseModel):
    """OpenAI-compatible chat completion request.

    Unknown top-level fields are kept and passed through to the provider.
    """

    model_config = ConfigDict(extra="allow")

    model: str = Field(..., min_length=1)
    messages: list[Message] = Field(..., min_length=1)
    # Strict scalars: numeric strings and booleans are rejected, not coerced
    temperature: StrictFloat | None = Field(default=None, ge=0, le=2)
    top_p: StrictFloat | None = Field(default=None, ge=0, le=1)
    n: StrictInt | None = Field(default=None, ge=1)
    max_tokens: StrictInt | None = Field(default=None, ge=1)
    presence_penalty: StrictFloat | None = Field(default=None, ge=-2, le=2)
    frequency_penalty: StrictFloat | None = Field(default=None, ge=-2, le=2)
    stream: StrictBool | None = None
    stop: str | list[str] | None = None
    user: str | None = None
    functions: list[FunctionDefinition] | None = None
    function_call: Literal["auto", "none"] | FunctionChoice | None = None
    tools: list[Tool] | None = None
    tool_choice: Literal["auto", "none", "required"] | NamedToolChoice | None = None

    @property
    def is_streaming(self) -> bool:
        """Whether the caller asked for a streamed response."""
        return bool(self.stream)

    @property
    def has_image_content(self) -> bool:
        """Whether any message carries an image part."""
        return any(msg.has_image for msg in self.messages)


class CallerIdentity(BaseModel):
    """Authenticated caller, as resolved from a bearer API key."""

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    premium: bool = False
    generated: str | None = None
