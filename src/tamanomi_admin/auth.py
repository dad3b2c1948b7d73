from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from fastapi import HTTPException, Request

from tamanomi_admin.config import Settings

ACCOUNT_TYPES = ("admin", "merchant", "shop")


@dataclass(frozen=True)
class AccountContext:
    """ログイン中のアカウント。画面の分岐はこの値だけを見て行う。"""

    account_type: str = "admin"
    merchant_id: str | None = None
    shop_id: str | None = None
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.account_type == "admin"

    @property
    def is_merchant(self) -> bool:
        return self.account_type == "merchant"

    @property
    def is_shop(self) -> bool:
        return self.account_type == "shop"


class AuthProvider(Protocol):
    def account(self, request: Request) -> AccountContext: ...


class NoAuthProvider:
    def account(self, request: Request) -> AccountContext:
        return AccountContext()


class HeaderAuthProvider:
    """前段のプロキシが付与するヘッダーからアカウントを組み立てる。"""

    def account(self, request: Request) -> AccountContext:
        account_type = request.headers.get("X-Account-Type", "").strip().lower()
        if not account_type:
            raise HTTPException(status_code=401, detail="ログインが必要です")
        if account_type not in ACCOUNT_TYPES:
            raise HTTPException(status_code=403, detail="アカウント種別が不正です")
        merchant_id = request.headers.get("X-Merchant-Id") or None
        shop_id = request.headers.get("X-Shop-Id") or None
        if account_type == "merchant" and not merchant_id:
            raise HTTPException(status_code=403, detail="事業者IDが指定されていません")
        if account_type == "shop" and not shop_id:
            raise HTTPException(status_code=403, detail="店舗IDが指定されていません")
        return AccountContext(
            account_type=account_type,
            merchant_id=merchant_id,
            shop_id=shop_id,
            email=request.headers.get("X-Account-Email") or None,
        )


def get_auth_provider(settings: Settings) -> AuthProvider:
    if settings.auth_mode == "header":
        return HeaderAuthProvider()
    return NoAuthProvider()


def current_account(request: Request) -> AccountContext:
    return request.app.state.auth_provider.account(request)
