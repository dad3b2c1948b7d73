from __future__ import annotations

import logging
from typing import Any

from tamanomi_admin.auth import AccountContext
from tamanomi_admin.form_state import FormState
from tamanomi_admin.gateway import GatewayError, RemoteDataGateway

logger = logging.getLogger(__name__)

# kind -> (API リソース, 表示名, 補足列)
SELECTION_KINDS: dict[str, tuple[str, str, str]] = {
    "merchants": ("merchants", "事業者", "accountEmail"),
    "shops": ("shops", "店舗", "address"),
    "companies": ("companies", "法人", "address"),
}


class SelectionModal:
    """事業者・店舗・法人を検索して選ぶモーダルの状態。"""

    def __init__(self, kind: str, gateway: RemoteDataGateway, account: AccountContext | None = None) -> None:
        if kind not in SELECTION_KINDS:
            raise KeyError(kind)
        self.kind = kind
        self.resource, self.label, self._detail_key = SELECTION_KINDS[kind]
        self.gateway = gateway
        self.account = account or AccountContext()
        self.is_open = False
        self.search_query = ""
        self.results: list[dict[str, Any]] = []
        self.selected_id: str | None = None
        self.error = ""
        self._searched = False

    def open(self) -> None:
        self.is_open = True
        self.search_query = ""
        self.results = []
        self.error = ""
        self._searched = False

    def close(self) -> None:
        self.is_open = False
        self.search_query = ""
        self.results = []
        self.error = ""
        self._searched = False

    @property
    def overlay_active(self) -> bool:
        return self.is_open

    def _params(self, query: str) -> dict[str, Any]:
        params: dict[str, Any] = {"search": query}
        if self.kind == "shops" and self.account.is_merchant:
            params["merchantId"] = self.account.merchant_id
        return params

    async def search(self, query: str = "") -> list[dict[str, Any]]:
        if not self.is_open:
            raise RuntimeError("selection modal is closed")
        self.search_query = query.strip()
        self.error = ""
        try:
            items = await self.gateway.list(self.resource, self._params(self.search_query))
        except GatewayError as exc:
            logger.warning("Selection search failed: %s (%s)", self.resource, exc.message)
            self.error = exc.message
            items = []
        self.results = [item for item in items if isinstance(item, dict) and item.get("id") is not None]
        self._searched = True
        return self.results

    @property
    def empty_message(self) -> str:
        if self._searched and not self.results and not self.error:
            return f"該当する{self.label}が見つかりません"
        return ""

    def rows(self) -> list[dict[str, str]]:
        return [
            {
                "id": str(item["id"]),
                "name": str(item.get("name") or item.get("title") or ""),
                "detail": str(item.get(self._detail_key) or ""),
            }
            for item in self.results
        ]

    def select(self, entity_id: str, state: FormState, field_key: str, display_key: str = "") -> dict[str, Any]:
        """選んだ行の ID と名称をフォームへ書き込み、モーダルを閉じる。"""
        for item in self.results:
            if str(item["id"]) == str(entity_id):
                break
        else:
            raise KeyError(entity_id)
        state.set(field_key, str(item["id"]))
        if display_key:
            state.set(display_key, str(item.get("name") or ""))
        state.clear_error(field_key)
        state.touch(field_key)
        self.selected_id = str(item["id"])
        self.close()
        return item
