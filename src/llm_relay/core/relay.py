"""Response relay - forwards upstream answers to the caller."""

import codecs
import json
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Iterator
from typing import Any

import httpx
from fastapi import Response
from fastapi.responses import JSONResponse, StreamingResponse

from llm_relay.core.failover import FailoverResult
from llm_relay.core.proxy_client import UpstreamResponse
from llm_relay.metrics import MetricsExporter
from llm_relay.utils import get_logger

logger = get_logger(__name__)

DONE_MARKER = "[DONE]"
DONE_FRAME = b"data: [DONE]\n\n"
ERROR_FRAME = (
    b'data: {"error":{"message":"Stream processing failed","type":"upstream_error"}}\n\n'
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

CALL_KEYS = ("name", "arguments")

DisconnectProbe = Callable[[], Awaitable[bool]]


def _prune_call(fragment: dict[str, Any]) -> dict[str, Any]:
    return {key: fragment[key] for key in CALL_KEYS if fragment.get(key) is not None}


def normalize_chunk(payload: Any) -> Any:
    """Normalize function and tool call fragments in a stream chunk.

    A ``delta.function_call`` keeps only the keys the fragment actually
    carries, and ``delta.content`` becomes null. Each ``delta.tool_calls``
    entry gets the same pruning on its ``function`` object.

    Args:
        payload: Parsed chunk, modified in place

    Returns:
        The same payload
    """
    if not isinstance(payload, dict):
        return payload
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return payload
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return payload

    if isinstance(delta.get("function_call"), dict):
        delta["function_call"] = _prune_call(delta["function_call"])
        delta["content"] = None

    if isinstance(delta.get("tool_calls"), list):
        for call in delta["tool_calls"]:
            if isinstance(call, dict) and isinstance(call.get("function"), dict):
                call["function"] = _prune_call(call["function"])
        delta["content"] = None

    return payload


def normalize_completion(body: Any) -> Any:
    """Null the content of choices that carry a function or tool call.

    Args:
        body: Parsed upstream completion, modified in place

    Returns:
        The same body
    """
    if not isinstance(body, dict) or not isinstance(body.get("choices"), list):
        return body
    for choice in body["choices"]:
        message = choice.get("message") if isinstance(choice, dict) else None
        if isinstance(message, dict) and (message.get("function_call") or message.get("tool_calls")):
            message["content"] = None
    return body


class StreamState:
    """Incremental line framer for one streamed response.

    Accepts arbitrarily split byte chunks, decodes UTF-8 across chunk
    boundaries and hands out complete lines only. The partial tail stays
    buffered until the next chunk or ``flush``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Buffered text not yet terminated by a newline."""
        return self._buffer

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add a chunk and return the lines it completed."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        *lines, self._buffer = (self._buffer + text).split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        """Return the unterminated tail at end of stream."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return [line.rstrip("\r") for line in tail.split("\n") if line.strip()]

    def clear(self) -> None:
        """Drop everything buffered."""
        self._buffer = ""
        self._decoder.reset()


class StreamRelay:
    """Re-frames an upstream SSE body for the caller.

    Every ``data:`` line is parsed, normalized and re-emitted as
    ``data: <json>\\n\\n`` in upstream order. Other SSE lines are dropped.
    Unparsable frames are logged and skipped. ``[DONE]`` is forwarded and
    ends the relay; one is appended if the upstream closes without it.
    A client disconnect stops the relay quietly.
    """

    def __init__(
        self,
        upstream: UpstreamResponse,
        model: str,
        disconnected: DisconnectProbe | None = None,
    ) -> None:
        """Initialize relay.

        Args:
            upstream: Open streaming response of the winning provider
            model: Public model id, for logs and metrics
            disconnected: Probe returning True once the caller is gone
        """
        self.upstream = upstream
        self.model = model
        self.disconnected = disconnected
        self.state = StreamState()
        self.frames_sent = 0
        self.done = False

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield caller frames until [DONE], upstream EOF or disconnect."""
        try:
            async for chunk in self.upstream.aiter_bytes():
                if await self._client_gone():
                    return
                for frame in self._frames_for(self.state.feed(chunk)):
                    yield frame
                    if self.done:
                        return

            for frame in self._frames_for(self.state.flush()):
                yield frame
                if self.done:
                    return

            logger.warning("relay.missing_done", model=self.model, provider=self.upstream.provider)
            self.done = True
            yield DONE_FRAME
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.error(
                "relay.upstream_failed",
                model=self.model,
                provider=self.upstream.provider,
                frames=self.frames_sent,
                error=str(e),
            )
            yield ERROR_FRAME
        finally:
            self.state.clear()
            await self.upstream.aclose()
            logger.info(
                "relay.stream_closed",
                model=self.model,
                provider=self.upstream.provider,
                frames=self.frames_sent,
                completed=self.done,
            )

    def process_line(self, line: str) -> bytes | None:
        """Turn one upstream line into a caller frame.

        Args:
            line: Complete line without its newline

        Returns:
            Frame bytes, or None when the line produces no frame
        """
        line = line.strip()
        if not line.startswith("data:"):
            return None

        data = line[len("data:"):].strip()
        if data == DONE_MARKER:
            self.done = True
            return DONE_FRAME

        try:
            payload = json.loads(data)
        except ValueError as e:
            logger.error("relay.frame_parse_failed", model=self.model, error=str(e), data=data[:200])
            return None

        payload = normalize_chunk(payload)
        return b"data: " + json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8") + b"\n\n"

    def _frames_for(self, lines: Iterable[str]) -> Iterator[bytes]:
        for line in lines:
            frame = self.process_line(line)
            if frame is None:
                continue
            self.frames_sent += 1
            MetricsExporter.record_frame(self.model)
            yield frame
            if self.done:
                return

    async def _client_gone(self) -> bool:
        if self.disconnected is None or not await self.disconnected():
            return False
        logger.info("relay.client_disconnected", model=self.model, frames=self.frames_sent)
        return True


def relay_response(
    result: FailoverResult,
    model: str,
    disconnected: DisconnectProbe | None = None,
) -> Response:
    """Build the caller's response from the winning attempt.

    Args:
        result: Successful failover result
        model: Public model id
        disconnected: Client disconnect probe for streaming

    Returns:
        StreamingResponse for SSE calls, JSONResponse otherwise
    """
    upstream = result.response
    if result.spec.stream:
        relay = StreamRelay(upstream, model, disconnected)
        return StreamingResponse(
            relay.frames(),
            status_code=upstream.status_code,
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    body = normalize_completion(upstream.body)
    logger.info("relay.json_complete", model=model, provider=upstream.provider)
    return JSONResponse(content=body, status_code=upstream.status_code)
