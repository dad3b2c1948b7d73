from __future__ import annotations

import logging
from typing import Any

import httpx
import orjson

from tamanomi_admin.config import Settings

logger = logging.getLogger(__name__)

LIST_KEYS = ("items", "merchants", "shops", "coupons", "users", "admins", "genres", "scenes", "results")


class GatewayError(Exception):
    def __init__(self, status: int | None, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.data = data

    @property
    def is_conflict(self) -> bool:
        return self.status == 409


def extract_error_message(status: int, data: Any, text: str = "") -> str:
    if isinstance(data, dict):
        message = data.get("message")
        if isinstance(message, str) and message.strip():
            return message
        inner = data.get("error")
        if isinstance(inner, dict) and inner.get("message"):
            return str(inner["message"])
        if isinstance(inner, str) and inner.strip():
            return inner
    if isinstance(data, str) and data.strip():
        return data
    if text.strip():
        return text.strip()[:200]
    return f"HTTP error! status: {status}"


def unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload and payload["data"] is not None:
        return payload["data"]
    return payload


def unwrap_list(payload: Any) -> list[Any]:
    data = unwrap(payload)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in LIST_KEYS:
            if isinstance(data.get(key), list):
                return data[key]
    return []


class RemoteDataGateway:
    """たまのみ API への薄いクライアント。"""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "RemoteDataGateway":
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        url = path.lstrip("/")
        query = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        try:
            response = await self._client.request(method, url, json=json, params=query or None)
        except httpx.HTTPError as exc:
            logger.exception("API request failed: %s %s", method, path)
            raise GatewayError(None, "通信に失敗しました。時間をおいて再度お試しください。") from exc

        if response.status_code >= 400:
            data = _decode(response)
            message = extract_error_message(response.status_code, data, response.text)
            logger.warning("API error %s %s -> %s: %s", method, path, response.status_code, message)
            raise GatewayError(response.status_code, message, data)
        return _decode(response)

    async def list(self, resource: str, params: dict[str, Any] | None = None) -> list[Any]:
        return unwrap_list(await self.request("GET", resource, params=params))

    async def get(self, resource: str, entity_id: str) -> dict[str, Any]:
        data = unwrap(await self.request("GET", f"{resource}/{entity_id}"))
        if not isinstance(data, dict):
            raise GatewayError(None, "不正なレスポンスです", data)
        return data

    async def create(self, resource: str, payload: dict[str, Any]) -> Any:
        return unwrap(await self.request("POST", resource, json=payload))

    async def update(
        self, resource: str, entity_id: str, payload: dict[str, Any], method: str = "PUT"
    ) -> Any:
        return unwrap(await self.request(method, f"{resource}/{entity_id}", json=payload))

    async def delete(self, resource: str, entity_id: str) -> None:
        await self.request("DELETE", f"{resource}/{entity_id}")

    async def update_status(self, resource: str, entity_id: str, status: str) -> Any:
        return unwrap(await self.request("PATCH", f"{resource}/{entity_id}/status", json={"status": status}))


def _decode(response: httpx.Response) -> Any:
    if not response.content or not response.content.strip():
        return {}
    try:
        return orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return response.text
