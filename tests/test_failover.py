"""Tests for sequential provider failover."""

import asyncio

import httpx
import pytest
from structlog.testing import capture_logs

from llm_relay.core.errors import ErrorKind, GatewayError
from llm_relay.core.failover import ALL_PROVIDERS_FAILED, FailoverExecutor
from llm_relay.core.proxy_client import UpstreamClient
from llm_relay.core.request_builder import RequestBuilder
from llm_relay.providers import CredentialStore
from tests.conftest import CREDENTIALS, UpstreamStub, completion, make_request


class PickSecond:
    """Deterministic stand-in for random.Random."""

    def choice(self, seq):
        return seq[1]


@pytest.fixture
def stub() -> UpstreamStub:
    return UpstreamStub()


def make_executor(
    stub: UpstreamStub,
    credentials: CredentialStore | None = None,
    timeout: float = 15.0,
    **kwargs,
) -> FailoverExecutor:
    http_client = httpx.AsyncClient(transport=stub.transport())
    return FailoverExecutor(
        client=UpstreamClient(http_client),
        builder=RequestBuilder(timeout),
        credentials=credentials or CredentialStore(CREDENTIALS, environ={}),
        timeout=timeout,
        **kwargs,
    )


class TestCandidates:
    """Candidate ordering."""

    def test_first_strategy_keeps_configuration_order(self, catalog, stub) -> None:
        providers = catalog.providers.resolve("m-basic")
        ordered = make_executor(stub).candidates(providers)
        assert [p.name for p in ordered] == ["A", "B", "C"]

    def test_random_primary_then_rest_in_order(self, catalog, stub) -> None:
        providers = catalog.providers.resolve("m-basic")
        ordered = make_executor(stub, strategy="random", rng=PickSecond()).candidates(providers)
        assert [p.name for p in ordered] == ["B", "A", "C"]

    def test_no_providers(self, stub) -> None:
        assert make_executor(stub).candidates([]) == []


class TestExecute:
    """Attempt sequencing."""

    @pytest.mark.asyncio
    async def test_primary_success(self, catalog, stub) -> None:
        stub.reply_json("a.example", completion("from A"))
        executor = make_executor(stub)

        result = await executor.execute(make_request(), catalog.providers.resolve("m-basic"))

        assert result.provider.name == "A"
        assert result.response.body["choices"][0]["message"]["content"] == "from A"
        assert stub.hosts == ["a.example"]
        assert stub.bodies()[0]["model"] == "a-basic"

    @pytest.mark.asyncio
    async def test_timeout_fails_over_to_next(self, catalog, stub) -> None:
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(1.0)
            return httpx.Response(200, json=completion("too late"))

        stub.route("a.example", slow)
        stub.reply_json("b.example", completion("from B"))
        stub.reply_json("c.example", completion("from C"))
        executor = make_executor(stub, timeout=0.05)

        with capture_logs() as logs:
            result = await executor.execute(make_request(), catalog.providers.resolve("m-basic"))

        assert result.provider.name == "B"
        assert stub.hosts == ["a.example", "b.example"]
        assert [(a.provider, a.succeeded) for a in result.attempts] == [("A", False), ("B", True)]

        failed = [e for e in logs if e["event"] == "failover.attempt_failed"]
        assert len(failed) == 1
        assert failed[0]["provider"] == "A"
        assert failed[0]["reason"].startswith("timeout")

    @pytest.mark.asyncio
    async def test_transport_error_and_bad_status_fail_over(self, catalog, stub) -> None:
        stub.time_out("a.example")
        stub.fail("b.example", status_code=503)
        stub.reply_json("c.example", completion("from C"))
        executor = make_executor(stub)

        result = await executor.execute(make_request(), catalog.providers.resolve("m-basic"))

        assert result.provider.name == "C"
        assert [a.reason for a in result.attempts[:2]] == ["timeout: ReadTimeout", "HTTP 503"]

    @pytest.mark.asyncio
    async def test_invalid_json_body_fails_over(self, catalog, stub) -> None:
        stub.route("a.example", lambda request: httpx.Response(200, content=b"<html>oops"))
        stub.reply_json("b.example")
        executor = make_executor(stub)

        result = await executor.execute(make_request(), catalog.providers.resolve("m-basic"))

        assert result.provider.name == "B"
        assert result.attempts[0].reason == "invalid JSON body"

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, catalog, stub) -> None:
        for host in ("a.example", "b.example", "c.example"):
            stub.fail(host)
        executor = make_executor(stub)

        with capture_logs() as logs:
            with pytest.raises(GatewayError) as exc_info:
                await executor.execute(make_request(), catalog.providers.resolve("m-basic"))

        error = exc_info.value
        assert error.kind is ErrorKind.UPSTREAM_EXHAUSTED
        assert error.status_code == 502
        assert error.message == ALL_PROVIDERS_FAILED
        # Each candidate exactly once
        assert stub.hosts == ["a.example", "b.example", "c.example"]
        assert [e["event"] for e in logs].count("failover.exhausted") == 1

    @pytest.mark.asyncio
    async def test_missing_credential_skips_network_call(self, catalog, stub) -> None:
        stub.reply_json("b.example")
        credentials = CredentialStore({"B": "key-b", "C": "key-c"}, environ={})
        executor = make_executor(stub, credentials=credentials)

        result = await executor.execute(make_request(), catalog.providers.resolve("m-basic"))

        assert result.provider.name == "B"
        assert stub.hosts == ["b.example"]
        assert result.attempts[0].reason == "missing credential"
        assert stub.calls[0].headers["Authorization"] == "Bearer key-b"

    @pytest.mark.asyncio
    async def test_no_candidates_is_unroutable(self, stub) -> None:
        with pytest.raises(GatewayError) as exc_info:
            await make_executor(stub).execute(make_request(model="m-orphan"), [])

        assert exc_info.value.kind is ErrorKind.UNROUTABLE
        assert exc_info.value.message == "Unsupported model: m-orphan"
        assert stub.calls == []

    @pytest.mark.asyncio
    async def test_streaming_failover_before_first_byte(self, catalog, stub) -> None:
        stub.fail("a.example", status_code=500)
        stub.reply_stream("b.example", b'data: {"id":"1"}\n\n', b"data: [DONE]\n\n")
        executor = make_executor(stub)

        result = await executor.execute(
            make_request(stream=True), catalog.providers.resolve("m-basic")
        )

        assert result.provider.name == "B"
        assert result.spec.stream is True
        assert stub.bodies()[1]["stream"] is True
        chunks = [chunk async for chunk in result.response.aiter_bytes()]
        await result.response.aclose()
        assert b"".join(chunks) == b'data: {"id":"1"}\n\ndata: [DONE]\n\n'
