from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from tamanomi_admin.auth import current_account
from tamanomi_admin.confirmation import ConfirmationFlow
from tamanomi_admin.entities import EntityConfig, entity_for_route
from tamanomi_admin.fields import group_by_section
from tamanomi_admin.gateway import GatewayError
from tamanomi_admin.notifications import toast_from_query, with_toast
from tamanomi_admin.orchestrator import FormOrchestrator, Phase, SubmissionResult, build_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _entity_or_404(entity_name: str) -> EntityConfig:
    entity = entity_for_route(entity_name)
    if entity is None:
        raise HTTPException(status_code=404, detail="画面が見つかりません")
    return entity


def _segment(entity: EntityConfig) -> str:
    return entity.name if entity.is_composite else entity.route.strip("/")


def _form_action(orchestrator: FormOrchestrator) -> str:
    segment = _segment(orchestrator.entity)
    if orchestrator.mode == "edit":
        return f"/{segment}/{orchestrator.entity_id}/edit"
    return f"/{segment}/new"


def _render_form(request: Request, orchestrator: FormOrchestrator, status_code: int = 200) -> HTMLResponse:
    templates = request.app.state.templates
    entity = orchestrator.entity
    query = {"mode": orchestrator.mode}
    if orchestrator.entity_id:
        query["entity_id"] = orchestrator.entity_id
    return templates.TemplateResponse(
        request,
        "entity_form.html",
        {
            "entity": entity,
            "orchestrator": orchestrator,
            "state": orchestrator.state,
            "sections": group_by_section(orchestrator.fields),
            "references": orchestrator.references,
            "notifications": list(orchestrator.notifications),
            "action_url": _form_action(orchestrator),
            "validate_url": f"/api/validate/{_segment(entity)}",
            "validate_query": query,
            "list_url": entity.route,
            "first_error": orchestrator.first_error_field,
            "load_failed": orchestrator.phase == Phase.LOAD_FAILED,
        },
        status_code=status_code,
    )


def _draft_token(request: Request) -> str | None:
    return request.cookies.get(request.app.state.settings.draft_cookie)


async def _open_form(
    request: Request, entity: EntityConfig, mode: str, entity_id: str | None = None
) -> FormOrchestrator:
    orchestrator = build_orchestrator(
        entity,
        request.app.state.gateway,
        current_account(request),
        mode,
        entity_id,
        request.app.state.drafts,
    )
    await orchestrator.load()
    return orchestrator


async def _handle_post(request: Request, orchestrator: FormOrchestrator):
    if orchestrator.phase == Phase.LOAD_FAILED:
        return _render_form(request, orchestrator)

    form_data = await request.form()
    orchestrator.apply_form(form_data)
    action = form_data.get("_action") or "submit"

    if action == "lookup_address":
        await orchestrator.apply_address(request.app.state.address_lookup, str(form_data.get("_prefix") or ""))
        return _render_form(request, orchestrator)
    if action == "copy_merchant":
        await orchestrator.copy_merchant()
        return _render_form(request, orchestrator)
    if action != "submit":
        raise HTTPException(status_code=400, detail="操作が不正です")

    result = await orchestrator.submit()
    if result.kind == SubmissionResult.PENDING_CONFIRMATION:
        response = RedirectResponse(result.redirect_to, status_code=303)
        response.set_cookie(
            request.app.state.settings.draft_cookie,
            result.draft_token,
            httponly=True,
            samesite="lax",
        )
        return response
    if result.ok and orchestrator.entity.redirect_on_success:
        return RedirectResponse(result.redirect_to, status_code=303)
    return _render_form(request, orchestrator)


@router.get("/", tags=["admin"])
async def index() -> RedirectResponse:
    return RedirectResponse("/merchants")


@router.get("/{entity_name}", response_class=HTMLResponse, tags=["admin"])
async def entity_list(request: Request, entity_name: str, q: str = "") -> HTMLResponse:
    entity = _entity_or_404(entity_name)
    if entity.is_composite:
        return RedirectResponse(entity.route)
    account = current_account(request)
    params: dict[str, Any] = {"search": q}
    if entity.name == "shop" and account.is_merchant:
        params["merchantId"] = account.merchant_id
    errors: list[str] = []
    try:
        items = await request.app.state.gateway.list(entity.resource, params)
    except GatewayError as exc:
        items = []
        errors.append(exc.message)
    return request.app.state.templates.TemplateResponse(
        request,
        "entity_list.html",
        {
            "entity": entity,
            "segment": _segment(entity),
            "items": items,
            "q": q,
            "errors": errors,
            "toast": toast_from_query(request.query_params),
        },
    )


@router.get("/{entity_name}/new", response_class=HTMLResponse, tags=["admin"])
async def entity_new(request: Request, entity_name: str) -> HTMLResponse:
    entity = _entity_or_404(entity_name)
    orchestrator = await _open_form(request, entity, "create")
    return _render_form(request, orchestrator)


@router.post("/{entity_name}/new", tags=["admin"])
async def entity_create(request: Request, entity_name: str):
    entity = _entity_or_404(entity_name)
    orchestrator = await _open_form(request, entity, "create")
    return await _handle_post(request, orchestrator)


@router.get("/{entity_name}/confirm", response_class=HTMLResponse, tags=["admin"])
async def entity_confirm_page(request: Request, entity_name: str) -> HTMLResponse:
    entity = _entity_or_404(entity_name)
    if not entity.confirm:
        raise HTTPException(status_code=404, detail="確認画面はありません")
    flow = ConfirmationFlow(
        entity, request.app.state.gateway, current_account(request), request.app.state.drafts, _draft_token(request)
    )
    return _render_confirm(request, flow)


def _render_confirm(request: Request, flow: ConfirmationFlow, errors: list[str] | None = None) -> HTMLResponse:
    return request.app.state.templates.TemplateResponse(
        request,
        "entity_confirm.html",
        {
            "entity": flow.entity,
            "segment": _segment(flow.entity),
            "flow": flow,
            "sections": flow.sections() if flow.has_draft else [],
            "errors": errors or [],
        },
    )


@router.post("/{entity_name}/confirm", tags=["admin"])
async def entity_confirm(request: Request, entity_name: str):
    entity = _entity_or_404(entity_name)
    if not entity.confirm:
        raise HTTPException(status_code=404, detail="確認画面はありません")
    form_data = await request.form()
    action = form_data.get("action") or ""
    flow = ConfirmationFlow(
        entity, request.app.state.gateway, current_account(request), request.app.state.drafts, _draft_token(request)
    )
    if not flow.has_draft:
        return _render_confirm(request, flow)

    if action == "modify":
        return await _back_to_form(request, flow)
    if action != "confirm":
        raise HTTPException(status_code=400, detail="操作が不正です")

    result = await flow.confirm()
    if result.ok:
        response = RedirectResponse(result.redirect_to, status_code=303)
        response.delete_cookie(request.app.state.settings.draft_cookie)
        return response
    if result.kind == SubmissionResult.CONFLICT:
        return await _back_to_form(request, flow, result)
    return _render_confirm(request, flow, [result.message])


async def _back_to_form(request: Request, flow: ConfirmationFlow, result: SubmissionResult | None = None):
    draft = flow.modify()
    orchestrator = await _open_form(request, flow.entity, flow.mode, flow.entity_id)
    if orchestrator.phase == Phase.LOAD_FAILED:
        return _render_form(request, orchestrator)
    orchestrator.restore(draft.get("values") or {})
    if result is not None:
        orchestrator.apply_result(result)
    return _render_form(request, orchestrator)


@router.get("/{entity_name}/{entity_id}/edit", response_class=HTMLResponse, tags=["admin"])
async def entity_edit(request: Request, entity_name: str, entity_id: str) -> HTMLResponse:
    entity = _entity_or_404(entity_name)
    if entity.is_composite:
        raise HTTPException(status_code=404, detail="画面が見つかりません")
    orchestrator = await _open_form(request, entity, "edit", entity_id)
    return _render_form(request, orchestrator)


@router.post("/{entity_name}/{entity_id}/edit", tags=["admin"])
async def entity_update(request: Request, entity_name: str, entity_id: str):
    entity = _entity_or_404(entity_name)
    if entity.is_composite:
        raise HTTPException(status_code=404, detail="画面が見つかりません")
    orchestrator = await _open_form(request, entity, "edit", entity_id)
    return await _handle_post(request, orchestrator)


@router.post("/{entity_name}/{entity_id}/delete", tags=["admin"])
async def entity_delete(request: Request, entity_name: str, entity_id: str) -> RedirectResponse:
    entity = _entity_or_404(entity_name)
    if entity.is_composite:
        raise HTTPException(status_code=404, detail="画面が見つかりません")
    try:
        await request.app.state.gateway.delete(entity.resource, entity_id)
    except GatewayError as exc:
        return RedirectResponse(with_toast(entity.route, exc.message, "error"), status_code=303)
    logger.info("Deleted %s %s", entity.name, entity_id)
    message = entity.delete_message or f"{entity.label}を削除しました"
    return RedirectResponse(with_toast(entity.route, message), status_code=303)


@router.post("/{entity_name}/{entity_id}/status", tags=["admin"])
async def entity_status(request: Request, entity_name: str, entity_id: str) -> RedirectResponse:
    """一覧画面のステータス選択を API に反映する。"""
    entity = _entity_or_404(entity_name)
    if not entity.status_options:
        raise HTTPException(status_code=404, detail="ステータスを変更できません")
    form_data = await request.form()
    status = str(form_data.get("status") or "")
    labels = dict(entity.status_options)
    if status not in labels:
        raise HTTPException(status_code=400, detail="ステータスが不正です")
    try:
        await request.app.state.gateway.update_status(entity.resource, entity_id, status)
    except GatewayError as exc:
        return RedirectResponse(with_toast(entity.route, exc.message, "error"), status_code=303)
    return RedirectResponse(with_toast(entity.route, f"ステータスを「{labels[status]}」に変更しました"), status_code=303)
