"""Shared fixtures: catalog files, caller keys and a scripted upstream."""

import json
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
import structlog
from fastapi import FastAPI
from fastapi.testclient import TestClient

from llm_relay.config import Settings
from llm_relay.main import create_app
from llm_relay.models import ChatCompletionRequest
from llm_relay.providers import CredentialStore, load_catalog

MODELS = {
    "models": [
        {"id": "m-basic", "name": "Basic", "owned_by": "acme", "premium": False},
        {"id": "m-premium", "name": "Premium", "owned_by": "acme", "premium": True},
        {"id": "m-vision", "name": "Vision", "owned_by": "acme", "premium": False},
        {"id": "m-orphan", "name": "Orphan", "owned_by": "acme", "premium": False},
    ]
}

PROVIDERS = {
    "providers": [
        {
            "name": "A",
            "endpoint": "https://a.example/v1/chat/completions",
            "models": {
                "m-basic": "a-basic",
                "m-premium": "a-premium",
                "m-vision": "gpt-4o-2024-08-06",
            },
        },
        {
            "name": "B",
            "endpoint": "https://b.example/v1/chat/completions",
            "models": {"m-basic": "b-basic", "m-vision": "gpt-4o-2024-08-06"},
        },
        {
            "name": "C",
            "endpoint": "https://c.example/v1/chat/completions",
            "models": {"m-basic": "c-basic"},
        },
    ]
}

CREDENTIALS = {"A": "key-a", "B": "key-b", "C": "key-c"}

BASIC_KEY = "basic-key"
PREMIUM_KEY = "premium-key"


def completion(content: str = "Hello!", model: str = "upstream-model") -> dict:
    """Minimal upstream chat completion body."""
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
    }


def sse_body(*chunks: bytes) -> Callable[[], object]:
    """Streamed body yielding the given raw chunks in order."""

    async def body():
        for chunk in chunks:
            yield chunk

    return body


class UpstreamStub:
    """Scripted upstream providers keyed by host name.

    Every request is recorded; hosts without a route answer 500.
    """

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get(request.url.host)
        if handler is None:
            return httpx.Response(500, json={"error": "no route"})
        return handler(request)

    def route(self, host: str, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[host] = handler

    def reply_json(self, host: str, body: dict | None = None, status_code: int = 200) -> None:
        self.route(host, lambda request: httpx.Response(status_code, json=body or completion()))

    def reply_stream(self, host: str, *chunks: bytes) -> None:
        self.route(
            host,
            lambda request: httpx.Response(
                200,
                headers={"Content-Type": "text/event-stream"},
                content=sse_body(*chunks)(),
            ),
        )

    def fail(self, host: str, status_code: int = 500) -> None:
        self.route(host, lambda request: httpx.Response(status_code, json={"error": "down"}))

    def time_out(self, host: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        self.route(host, handler)

    @property
    def hosts(self) -> list[str]:
        return [call.url.host for call in self.calls]

    def bodies(self) -> list[dict]:
        return [json.loads(call.content) for call in self.calls]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration made by the app lifespan."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def catalog_paths(tmp_path: Path) -> tuple[Path, Path]:
    """Model and provider tables on disk."""
    models_path = tmp_path / "models.json"
    providers_path = tmp_path / "providers.json"
    models_path.write_text(json.dumps(MODELS), encoding="utf-8")
    providers_path.write_text(json.dumps(PROVIDERS), encoding="utf-8")
    return models_path, providers_path


@pytest.fixture
def catalog(catalog_paths):
    """Loaded catalog snapshot."""
    return load_catalog(*catalog_paths)


@pytest.fixture
def credentials() -> CredentialStore:
    """Credentials for every test provider, isolated from the environment."""
    return CredentialStore(CREDENTIALS, environ={})


@pytest.fixture
def keys_dir(tmp_path: Path) -> Path:
    """Caller key records."""
    keys = tmp_path / "keys"
    keys.mkdir()
    (keys / f"{BASIC_KEY}.json").write_text(
        json.dumps({"id": "user-basic", "premium": False, "generated": "2024-05-01"}),
        encoding="utf-8",
    )
    (keys / f"{PREMIUM_KEY}.json").write_text(
        json.dumps({"id": "user-premium", "premium": True, "generated": "2024-05-01"}),
        encoding="utf-8",
    )
    return keys


@pytest.fixture
def settings(catalog_paths, keys_dir) -> Settings:
    """Settings pointing at the temporary catalog and keys."""
    models_path, providers_path = catalog_paths
    return Settings(
        models_config_path=str(models_path),
        providers_config_path=str(providers_path),
        api_keys_dir=str(keys_dir),
        provider_credentials=CREDENTIALS,
        auth_enabled=True,
        log_format="json",
        log_cache_loggers=False,
    )


@pytest.fixture
def upstream() -> UpstreamStub:
    """Scripted upstream providers."""
    return UpstreamStub()


@pytest.fixture
def app(settings: Settings, upstream: UpstreamStub) -> FastAPI:
    """Application wired to the scripted upstream."""
    return create_app(settings, transport=upstream.transport())


@pytest.fixture
def client(app: FastAPI):
    """Test client with lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


def make_request(**overrides) -> ChatCompletionRequest:
    """Validated request for m-basic with one user message."""
    payload = {
        "model": "m-basic",
        "messages": [{"role": "user", "content": "Hi"}],
    }
    payload.update(overrides)
    return ChatCompletionRequest.model_validate(payload)
