from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import httpx
import markupsafe
from fastapi import FastAPI
from fastapi.templating import Jinja2Templates

from tamanomi_admin.address import AddressLookup
from tamanomi_admin.auth import get_auth_provider
from tamanomi_admin.config import BASE_DIR, Settings, ensure_dirs
from tamanomi_admin.drafts import init_draft_store
from tamanomi_admin.entities import ENTITIES
from tamanomi_admin.fields import (
    field_input_type,
    get_nested_value,
    reference_options,
)
from tamanomi_admin.gateway import RemoteDataGateway
from tamanomi_admin.routes.api import router as api_router
from tamanomi_admin.routes.forms import router as forms_router
from tamanomi_admin.utils import dumps_json


def _tojson_attr(value: Any) -> markupsafe.Markup:
    """JSON文字列をHTML属性に安全に埋め込めるようエスケープする。"""
    return markupsafe.Markup(markupsafe.escape(dumps_json(value)))


def build_query(base: dict[str, Any], **overrides: Any) -> str:
    params = {k: v for k, v in {**base, **overrides}.items() if v not in (None, "")}
    return urlencode(params)


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    address_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or Settings()
    ensure_dirs(settings)

    app = FastAPI(
        openapi_tags=[
            {"name": "admin", "description": "管理画面（HTML）"},
            {"name": "api", "description": "画面補助 API"},
            {"name": "system", "description": "システム"},
        ]
    )

    app.state.settings = settings
    app.state.gateway = RemoteDataGateway.from_settings(settings, transport=transport)
    app.state.address_lookup = AddressLookup(
        settings.address_lookup_url, timeout=settings.request_timeout, transport=address_transport
    )
    app.state.drafts = init_draft_store(settings)
    app.state.auth_provider = get_auth_provider(settings)

    templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
    app.state.templates = templates

    templates.env.filters["tojson_attr"] = _tojson_attr
    templates.env.globals["field_input_type"] = field_input_type
    templates.env.globals["reference_options"] = reference_options
    templates.env.globals["get_value"] = get_nested_value
    templates.env.globals["build_query"] = build_query
    templates.env.globals["entities"] = ENTITIES

    app.include_router(api_router)
    app.include_router(forms_router)

    return app
