from __future__ import annotations

from typing import Any, Callable

import httpx
import orjson
import pytest
from fastapi.testclient import TestClient

from tamanomi_admin.app import create_app
from tamanomi_admin.config import Settings
from tamanomi_admin.gateway import RemoteDataGateway

API_BASE = "http://api.test/api"

MERCHANT_ID = "2f1b6a0e-4c3d-4e5f-8a9b-0c1d2e3f4a5b"
GENRE_ID = "7d9e8f10-1a2b-4c3d-9e8f-7a6b5c4d3e2f"
SHOP_ID = "c3a2b1d0-9e8f-4a7b-8c6d-5e4f3a2b1c0d"


class FakeApi:
    """httpx.MockTransport の裏で動く、記録付きの偽 API。"""

    def __init__(self) -> None:
        self.responses: dict[tuple[str, str], Any] = {}
        self.requests: list[httpx.Request] = []
        self.hooks: dict[tuple[str, str], Callable[[], None]] = {}

    def on(self, method: str, path: str, json: Any = None, status: int = 200) -> None:
        self.responses[(method, "/api/" + path.lstrip("/"))] = (status, json)

    def fail(self, method: str, path: str, exc: Exception) -> None:
        self.responses[(method, "/api/" + path.lstrip("/"))] = exc

    def before(self, method: str, path: str, hook: Callable[[], None]) -> None:
        self.hooks[(method, "/api/" + path.lstrip("/"))] = hook

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        hook = self.hooks.get(key)
        if hook is not None:
            hook()
        entry = self.responses.get(key)
        if entry is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(entry, Exception):
            raise entry
        status, body = entry
        return httpx.Response(status, json=body if body is not None else {})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        target = "/api/" + path.lstrip("/")
        return [r for r in self.requests if r.method == method and r.url.path == target]

    def body(self, request: httpx.Request) -> Any:
        return orjson.loads(request.content)


@pytest.fixture()
def api() -> FakeApi:
    fake = FakeApi()
    fake.on("GET", "genres", {"data": [{"id": GENRE_ID, "name": "居酒屋"}]})
    fake.on("GET", "scenes", {"data": [{"id": "1", "name": "デート"}]})
    fake.on("GET", "shops", {"data": []})
    fake.on("GET", "companies", {"data": []})
    return fake


@pytest.fixture()
def gateway(api: FakeApi) -> RemoteDataGateway:
    return RemoteDataGateway(API_BASE, transport=api.transport)


@pytest.fixture()
def settings(tmp_path, monkeypatch) -> Settings:
    monkeypatch.setenv("TAMANOMI_API_BASE_URL", API_BASE)
    monkeypatch.setenv("DRAFT_BACKEND", "memory")
    monkeypatch.setenv("AUTH_MODE", "none")
    monkeypatch.setenv("DRAFT_PATH", str(tmp_path / "drafts.json"))
    return Settings()


@pytest.fixture()
def client(settings: Settings, api: FakeApi) -> TestClient:
    app = create_app(settings, transport=api.transport)
    with TestClient(app) as test_client:
        yield test_client
