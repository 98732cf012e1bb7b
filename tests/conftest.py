"""Shared pytest fixtures for Pixie tests."""

from __future__ import annotations

import inspect
from collections.abc import Callable, Generator
from typing import Any, Union

import httpx
import pytest
from fastapi.testclient import TestClient

from pixie.api.client import PixieClient
from pixie.api.main import create_app
from pixie.core.config import PixieConfig

Route = Union[httpx.Response, Callable[[httpx.Request], Any]]


def make_image(image_id: str, **overrides) -> dict:
    """Build a gallery record as the API returns it."""
    record = {
        "id": image_id,
        "url": f"https://cdn.test/{image_id}.png",
        "thumbnail_url": f"https://cdn.test/{image_id}_thumb.png",
        "prompt": f"prompt for {image_id}",
        "user_id": "user-123",
        "created_at": "2025-01-01T00:00:00Z",
    }
    record.update(overrides)
    return record


def make_page(ids: list[str], page: int = 1, per_page: int = 20) -> dict:
    return {
        "images": [make_image(i) for i in ids],
        "total": len(ids),
        "page": page,
        "per_page": per_page,
    }


def error_response(
    status: int, code: str, message: str | None = None, **details
) -> httpx.Response:
    body: dict = {"error": {"type": "api_error", "code": code}}
    if message is not None:
        body["error"]["message"] = message
    if details:
        body["error"]["details"] = details
    return httpx.Response(status, json=body)


class FakeApi:
    """Scriptable stand-in for the remote API, served through ``httpx.MockTransport``.

    Routes are keyed by ``(method, path)``.  A route is either a fixed
    response, a list of responses consumed in order, or a (sync or async)
    handler called with the request.  Unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route | list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, route: Route | list[httpx.Response]) -> None:
        self.routes[(method.upper(), path)] = route

    def add_json(self, method: str, path: str, body: Any, status: int = 200) -> None:
        self.add(method, path, httpx.Response(status, json=body))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return error_response(404, "not_found", "Not found")
        if isinstance(route, list):
            return route.pop(0)
        if isinstance(route, httpx.Response):
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        result = route(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def paged_gallery(pages: dict[int, list[str]]) -> Callable[[httpx.Request], httpx.Response]:
    """Handler serving ``pages[page]`` ids for the requested ``page`` param."""

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        per_page = int(request.url.params["per_page"])
        return httpx.Response(200, json=make_page(pages.get(page, []), page, per_page))

    return handler


@pytest.fixture
def test_config() -> PixieConfig:
    """Create a test configuration that ignores any local ``.env`` file.

    Returns:
        PixieConfig pointing at a fake API host with fast progress ticks
    """
    return PixieConfig(
        _env_file=None,
        api_url="https://api.test",
        api_key="sk-test",
        user_id="user-123",
        progress_interval=0.01,
        gallery_page_size=20,
        public_page_limit=5,
    )


@pytest.fixture
def fake_api() -> FakeApi:
    api = FakeApi()
    api.add(
        "GET",
        "/",
        httpx.Response(200, text="OpenAI Image API Proxy - Powered by Cloudflare Workers\n"),
    )
    return api


@pytest.fixture
def pixie_client(test_config: PixieConfig, fake_api: FakeApi) -> PixieClient:
    """PixieClient wired to :class:`FakeApi`.

    The connection pool is created lazily by httpx, so tests using it inside
    ``asyncio.run`` need no explicit close.
    """
    return PixieClient(test_config, transport=fake_api.transport)


@pytest.fixture
def test_client(
    test_config: PixieConfig, fake_api: FakeApi
) -> Generator[TestClient, None, None]:
    """Bridge application with its lifespan running against :class:`FakeApi`.

    Yields:
        FastAPI TestClient
    """
    app = create_app(test_config, transport=fake_api.transport)
    with TestClient(app) as client:
        yield client
