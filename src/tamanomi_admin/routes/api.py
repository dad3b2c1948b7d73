from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from tamanomi_admin import validators
from tamanomi_admin.auth import current_account
from tamanomi_admin.entities import entity_for_route
from tamanomi_admin.orchestrator import build_orchestrator
from tamanomi_admin.selection import SELECTION_KINDS, SelectionModal

router = APIRouter()


@router.get("/healthz", tags=["system"])
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/api/validate/{entity_name}", tags=["api"])
async def api_validate_field(request: Request, entity_name: str) -> JSONResponse:
    """入力欄の blur / change ごとに検証し、相関チェックで変わった他の欄のエラーも返す。"""
    entity = entity_for_route(entity_name)
    if entity is None:
        raise HTTPException(status_code=404, detail="画面が見つかりません")
    mode = request.query_params.get("mode") or "create"
    entity_id = request.query_params.get("entity_id") or None
    field_key = request.query_params.get("field") or ""
    if mode not in {"create", "edit"} or (mode == "edit" and not entity_id):
        raise HTTPException(status_code=400, detail="modeが不正です")

    orchestrator = build_orchestrator(entity, request.app.state.gateway, current_account(request), mode, entity_id)
    if field_key not in orchestrator.specs:
        raise HTTPException(status_code=400, detail="フィールドが不正です")
    form_data = await request.form()
    orchestrator.apply_form(form_data)
    if request.query_params.get("event") == "change":
        orchestrator.change(field_key, orchestrator.state.get(field_key))
    else:
        orchestrator.blur(field_key)

    return JSONResponse(
        {
            "field": field_key,
            "errors": {key: orchestrator.state.visible_error(key) for key in orchestrator.specs},
            "touched": sorted(orchestrator.state.touched),
            "can_submit": orchestrator.required_filled,
        }
    )


@router.get("/api/address", tags=["api"])
async def api_address(request: Request, postal_code: str = "") -> JSONResponse:
    code = postal_code.replace("-", "").strip()
    message = validators.required("郵便番号")(code) or validators.postal_code(code)
    if message:
        raise HTTPException(status_code=400, detail=message)
    result = await request.app.state.address_lookup.lookup(code)
    if result is None:
        raise HTTPException(status_code=404, detail="住所が見つかりませんでした")
    return JSONResponse(result)


@router.get("/select/{kind}", tags=["api"])
async def select_rows(request: Request, kind: str, q: str = "") -> JSONResponse:
    if kind not in SELECTION_KINDS:
        raise HTTPException(status_code=404, detail="選択対象が見つかりません")
    modal = SelectionModal(kind, request.app.state.gateway, current_account(request))
    modal.open()
    await modal.search(q)
    payload = {"items": modal.rows(), "message": modal.empty_message, "error": modal.error}
    modal.close()
    return JSONResponse(payload)
