from __future__ import annotations

import logging
from typing import Any

import httpx

from tamanomi_admin import validators

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ("prefecture", "city", "address1")


class AddressLookup:
    """郵便番号から住所を引く。失敗しても画面は止めない。"""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def lookup(self, postal_code: str) -> dict[str, str] | None:
        code = (postal_code or "").replace("-", "").strip()
        if validators.postal_code(code) or not code:
            return None
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url, params={"zipcode": code})
                response.raise_for_status()
                data = response.json()
        except Exception:
            logger.exception("Address lookup failed: %s", code)
            return None
        return parse_result(data)


def parse_result(data: Any) -> dict[str, str] | None:
    if not isinstance(data, dict):
        return None
    results = data.get("results") or []
    if not results:
        return None
    first = results[0]
    return {
        "prefecture": str(first.get("address1") or ""),
        "city": str(first.get("address2") or ""),
        "address1": str(first.get("address3") or ""),
    }
