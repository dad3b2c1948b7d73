from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any

from tamanomi_admin import validators
from tamanomi_admin.address import ADDRESS_FIELDS, AddressLookup
from tamanomi_admin.auth import AccountContext
from tamanomi_admin.drafts import DraftStore
from tamanomi_admin.entities import (
    ENTITIES,
    EntityConfig,
    ValidationContext,
    copy_from_merchant,
    default_values_for,
)
from tamanomi_admin.fields import (
    build_defaults,
    build_payload,
    collect_values,
    field_map,
    parse_touched,
    set_nested_value,
    values_from_record,
)
from tamanomi_admin.form_state import FormState
from tamanomi_admin.gateway import GatewayError, RemoteDataGateway
from tamanomi_admin.notifications import Notifications, with_toast
from tamanomi_admin.schema import MODES, build_schema, missing_required, structural_errors, validate_field

logger = logging.getLogger(__name__)

INVALID_INPUT_MESSAGE = "入力内容に誤りがあります。各項目を確認してください。"
LOAD_FAILED_MESSAGE = "データの取得に失敗しました"


class Phase(str, Enum):
    LOADING = "loading"
    READY = "ready"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    VALIDATION_FAILED = "validation_failed"
    CONFLICT = "conflict"
    LOAD_FAILED = "load_failed"


EDITABLE_PHASES = {Phase.READY, Phase.VALIDATION_FAILED, Phase.CONFLICT}


@dataclass(frozen=True)
class SubmissionResult:
    kind: str
    redirect_to: str = ""
    toast_message: str = ""
    errors: dict[str, str] = dataclass_field(default_factory=dict)
    field: str = ""
    message: str = ""
    draft_token: str = ""

    SUCCESS = "success"
    VALIDATION_FAILURE = "validation_failure"
    CONFLICT = "conflict"
    UNKNOWN_ERROR = "unknown_error"
    PENDING_CONFIRMATION = "pending_confirmation"

    @classmethod
    def success(cls, redirect_to: str, toast_message: str) -> "SubmissionResult":
        return cls(cls.SUCCESS, redirect_to=redirect_to, toast_message=toast_message)

    @classmethod
    def validation_failure(cls, errors: dict[str, str]) -> "SubmissionResult":
        return cls(cls.VALIDATION_FAILURE, errors=dict(errors))

    @classmethod
    def conflict(cls, field_key: str, message: str) -> "SubmissionResult":
        return cls(cls.CONFLICT, field=field_key, message=message)

    @classmethod
    def unknown_error(cls, message: str) -> "SubmissionResult":
        return cls(cls.UNKNOWN_ERROR, message=message)

    @classmethod
    def pending_confirmation(cls, draft_token: str, redirect_to: str) -> "SubmissionResult":
        return cls(cls.PENDING_CONFIRMATION, draft_token=draft_token, redirect_to=redirect_to)

    @property
    def ok(self) -> bool:
        return self.kind == self.SUCCESS


async def execute_submission(
    entity: EntityConfig,
    gateway: RemoteDataGateway,
    account: AccountContext,
    mode: str,
    entity_id: str | None,
    values: dict[str, Any],
) -> SubmissionResult:
    """検証済みの値を API に送り、結果を SubmissionResult に変換する。"""
    payload = build_payload(entity.fields_for(account), values, mode)
    if entity.finalize_payload:
        payload = entity.finalize_payload(payload, values, mode)
    try:
        if mode == "edit":
            await gateway.update(entity.resource, entity_id or "", payload, method=entity.update_method)
        else:
            await gateway.create(entity.resource, payload)
    except GatewayError as exc:
        if exc.is_conflict:
            logger.info("Conflict on %s %s: %s", entity.name, mode, exc.message)
            return SubmissionResult.conflict(entity.conflict_field, exc.message)
        return SubmissionResult.unknown_error(exc.message)
    message = entity.success_message(mode)
    logger.info("Submitted %s (%s)", entity.name, mode)
    return SubmissionResult.success(with_toast(entity.route, message), message)


class FormOrchestrator:
    """1画面分のフォームを読み込みから送信まで管理する。

    エンティティ固有の振る舞いは ``EntityConfig`` から受け取り、
    アカウント情報も引数で明示的に渡す。
    """

    def __init__(
        self,
        entity: EntityConfig,
        gateway: RemoteDataGateway,
        account: AccountContext | None = None,
        mode: str = "create",
        entity_id: str | None = None,
        draft_store: DraftStore | None = None,
    ) -> None:
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode}")
        if mode == "edit" and not entity_id:
            raise ValueError("edit mode requires entity_id")
        self.entity = entity
        self.gateway = gateway
        self.account = account or AccountContext()
        self.mode = mode
        self.entity_id = entity_id
        self.draft_store = draft_store
        self.fields = entity.fields_for(self.account)
        self.specs = field_map(self.fields)
        self.schema = build_schema(self.fields, mode)
        self.defaults = default_values_for(entity, self.account, build_defaults(self.fields))
        self.state = FormState.from_defaults(self.defaults, self.specs)
        self.references: dict[str, list[Any]] = {}
        self.original: dict[str, Any] = {}
        self.notifications = Notifications()
        self.phase = Phase.LOADING
        self.load_error = ""
        self._closed = False
        self._server_errors: dict[str, str] = {}

    # 読み込み

    async def load(self) -> Phase:
        refs = list(self.entity.references)
        calls = [self.gateway.list(ref.resource) for ref in refs]
        if self.mode == "edit":
            calls.append(self.gateway.get(self.entity.resource, self.entity_id or ""))
        results = await asyncio.gather(*calls, return_exceptions=True)
        if self._closed:
            logger.info("Ignoring late load results for %s", self.entity.name)
            return self.phase

        for ref, result in zip(refs, results):
            if isinstance(result, BaseException):
                logger.warning("Reference fetch failed: %s (%s)", ref.resource, result)
                self.references[ref.name] = []
                self.notifications.error(f"{ref.label}の取得に失敗しました")
            else:
                self.references[ref.name] = result

        if self.mode == "edit":
            record = results[-1]
            if isinstance(record, BaseException):
                logger.warning("Entity fetch failed: %s/%s (%s)", self.entity.resource, self.entity_id, record)
                self.load_error = record.message if isinstance(record, GatewayError) else LOAD_FAILED_MESSAGE
                self.phase = Phase.LOAD_FAILED
                return self.phase
            self.populate(record)

        self.phase = Phase.READY
        return self.phase

    def populate(self, record: dict[str, Any]) -> None:
        values = values_from_record(self.fields, record)
        if self.entity.from_record:
            self.entity.from_record(values, record)
        self.state.values = values
        self.original = copy.deepcopy(values)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    # 入力

    def apply_form(self, form_data: Any) -> None:
        """POST されたフォームの内容で値と touched を置き換える。"""
        values = collect_values(self.fields, form_data)
        for spec in self.fields:
            if not spec.get("editable", True):
                set_nested_value(values, spec["key"], self.state.get(spec["key"]))
        if self.entity.normalize:
            self.entity.normalize(values)
        self.state.values = values
        touched = parse_touched(form_data.get("_touched"))
        self.state.touched = {key for key in touched if key in self.specs}

    def restore(self, values: dict[str, Any]) -> None:
        self.state.values = copy.deepcopy(values)

    def change(self, key: str, value: Any) -> None:
        """値を反映して検証する。未入力のままの未 touched 欄には必須エラーを出さない。"""
        self._require_field(key)
        self._resume()
        self.state.set(key, value)
        if not validators.is_blank(value):
            self.state.touch(key)
        self._revalidate(key)

    def blur(self, key: str) -> None:
        self._require_field(key)
        self._resume()
        self.state.touch(key)
        self._revalidate(key)

    def _require_field(self, key: str) -> None:
        if key not in self.specs:
            raise KeyError(key)

    def _resume(self) -> None:
        if self.phase in {Phase.VALIDATION_FAILED, Phase.CONFLICT}:
            self.phase = Phase.READY

    def partners(self, key: str) -> list[str]:
        partners = []
        for first, second, _ in self.entity.pairs:
            if key == first:
                partners.append(second)
            elif key == second:
                partners.append(first)
        return partners

    def _revalidate(self, key: str) -> None:
        cross = self._cross_errors()
        targets = [key, *self.partners(key)]
        for target in targets:
            self._server_errors.pop(target, None)
            message = self._field_error(target, cross)
            if message:
                if target != key:
                    self.state.touch(target)
                self.state.set_error(target, message)
            else:
                self.state.clear_error(target)
        # 他の touched 欄も今回の相関チェック結果で再計算する
        for spec in self.fields:
            other = spec["key"]
            if other in targets or other in self._server_errors:
                continue
            message = self._field_error(other, cross) if self.state.is_touched(other) else None
            if message:
                self.state.set_error(other, message)
            else:
                self.state.clear_error(other)

    @property
    def server_error_fields(self) -> list[str]:
        return sorted(self._server_errors)

    # 検証

    def _context(self) -> ValidationContext:
        return ValidationContext(self.mode, self.account, self.references, self.original)

    def _cross_errors(self) -> dict[str, str]:
        if not self.entity.cross_validate:
            return {}
        return self.entity.cross_validate(self.state.values, self._context())

    def _pair_error(self, key: str) -> str | None:
        """ペアの片側だけが入力されている場合、空いている側にだけエラーを返す。"""
        for first, second, message in self.entity.pairs:
            if key not in (first, second):
                continue
            value = self.state.get(key)
            partner = self.state.get(second if key == first else first)
            if validators.is_blank(value) and validators.paired(value, partner, message):
                return message
        return None

    def _field_error(self, key: str, cross: dict[str, str]) -> str | None:
        message = validate_field(self.specs[key], self.state.get(key), self.mode)
        return message or self._pair_error(key) or cross.get(key)

    def validate_field(self, key: str) -> str | None:
        self._require_field(key)
        return self._field_error(key, self._cross_errors())

    def _structural_errors(self) -> dict[str, str]:
        return structural_errors(self.schema, self.fields, self.state.values, self.mode)

    def validate_all(self) -> dict[str, str]:
        """touched に関係なく全フィールドを検証し、続けて構造検証を行う。"""
        cross = self._cross_errors()
        errors: dict[str, str] = {}
        for spec in self.fields:
            message = self._field_error(spec["key"], cross)
            if message:
                errors[spec["key"]] = message
        for key, message in self._structural_errors().items():
            errors.setdefault(key, message)
        return errors

    @property
    def first_error_field(self) -> str | None:
        return self.state.first_error_field()

    @property
    def required_filled(self) -> bool:
        if not self.entity.gate_on_required:
            return True
        return not missing_required(self.fields, self.state.values, self.mode)

    @property
    def can_submit(self) -> bool:
        return self.phase in EDITABLE_PHASES and self.required_filled

    # 送信

    def draft(self) -> dict[str, Any]:
        return {"mode": self.mode, "entity_id": self.entity_id, "values": copy.deepcopy(self.state.values)}

    async def submit(self) -> SubmissionResult:
        if self.phase == Phase.LOAD_FAILED:
            return SubmissionResult.unknown_error(self.load_error or LOAD_FAILED_MESSAGE)
        if self.phase not in EDITABLE_PHASES:
            raise RuntimeError(f"cannot submit in phase {self.phase.value}")

        self.phase = Phase.SUBMITTING
        self.state.mark_submit_attempt()
        self._server_errors.clear()
        errors = self.validate_all()
        self.state.replace_errors(errors)
        if errors:
            self.phase = Phase.VALIDATION_FAILED
            self.notifications.error(INVALID_INPUT_MESSAGE)
            return SubmissionResult.validation_failure(errors)

        if self.entity.confirm:
            if self.draft_store is None:
                raise RuntimeError(f"{self.entity.name} requires a draft store")
            token = self.draft_store.save(self.entity.name, self.draft())
            self.phase = Phase.READY
            return SubmissionResult.pending_confirmation(token, f"{self.entity.route}/confirm")

        result = await execute_submission(
            self.entity, self.gateway, self.account, self.mode, self.entity_id, self.state.values
        )
        if self._closed:
            return result
        return self.apply_result(result)

    def apply_result(self, result: SubmissionResult) -> SubmissionResult:
        if result.kind == SubmissionResult.SUCCESS:
            self.phase = Phase.SUCCESS
            if self.mode == "create" and not self.entity.redirect_on_success:
                self.reset()
                self.notifications.success(result.toast_message)
            return result
        if result.kind == SubmissionResult.CONFLICT and result.field in self.specs:
            self.phase = Phase.CONFLICT
            self.state.touch(result.field)
            self.state.set_error(result.field, result.message)
            self._server_errors[result.field] = result.message
            return result
        self.phase = Phase.READY
        self.notifications.error(result.message or "送信に失敗しました")
        return result

    def reset(self) -> None:
        self.state.reset(self.defaults)
        self._server_errors.clear()
        self.phase = Phase.READY

    # 補助操作

    async def apply_address(self, lookup: AddressLookup, prefix: str = "") -> bool:
        """郵便番号から住所欄を埋め、該当欄のエラーを消す。"""
        result = await lookup.lookup(self.state.get(f"{prefix}postalCode") or "")
        if result is None:
            self.notifications.error("住所が見つかりませんでした")
            return False
        for key in ADDRESS_FIELDS:
            target = f"{prefix}{key}"
            if target in self.specs:
                self.state.set(target, result[key])
                self.state.clear_error(target)
        return True

    async def copy_merchant(self) -> bool:
        merchant_id = self.state.get("merchantId")
        if validators.is_blank(merchant_id):
            self.notifications.error("事業者を選択してください")
            return False
        try:
            merchant = await self.gateway.get("merchants", str(merchant_id))
        except GatewayError as exc:
            self.notifications.error(exc.message)
            return False
        for key in copy_from_merchant(self.state.values, merchant):
            self.state.clear_error(key)
        self.notifications.info("事業者情報をコピーしました")
        return True


class CompositeFormOrchestrator(FormOrchestrator):
    """事業所と管理者のように複数の下書きを名前空間ごとに検証し、1回で登録する。"""

    def __init__(self, entity: EntityConfig, gateway: RemoteDataGateway, account: AccountContext | None = None,
                 draft_store: DraftStore | None = None) -> None:
        if not entity.is_composite:
            raise ValueError(f"{entity.name} is not a composite entity")
        super().__init__(entity, gateway, account, mode="create", draft_store=draft_store)

    def _part_fields(self, namespace: str) -> list[dict[str, Any]]:
        prefix = f"{namespace}."
        return [
            {**spec, "key": spec["key"][len(prefix):]}
            for spec in self.fields
            if spec["key"].startswith(prefix)
        ]

    def _cross_errors(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        for namespace, name in self.entity.parts:
            part = ENTITIES[name]
            if not part.cross_validate:
                continue
            sub_values = self.state.values.get(namespace) or {}
            for key, message in part.cross_validate(sub_values, self._context()).items():
                errors[f"{namespace}.{key}"] = message
        return errors

    def _structural_errors(self) -> dict[str, str]:
        errors: dict[str, str] = {}
        for namespace, _ in self.entity.parts:
            part_fields = self._part_fields(namespace)
            schema = build_schema(part_fields, self.mode)
            sub_values = self.state.values.get(namespace) or {}
            for key, message in structural_errors(schema, part_fields, sub_values, self.mode).items():
                errors[f"{namespace}.{key}"] = message
        return errors

    def errors_by_part(self) -> dict[str, dict[str, str]]:
        grouped: dict[str, dict[str, str]] = {namespace: {} for namespace, _ in self.entity.parts}
        for key, message in self.state.errors.items():
            namespace, _, rest = key.partition(".")
            grouped.setdefault(namespace, {})[rest] = message
        return grouped


def build_orchestrator(
    entity: EntityConfig,
    gateway: RemoteDataGateway,
    account: AccountContext,
    mode: str = "create",
    entity_id: str | None = None,
    draft_store: DraftStore | None = None,
) -> FormOrchestrator:
    if entity.is_composite:
        return CompositeFormOrchestrator(entity, gateway, account, draft_store=draft_store)
    return FormOrchestrator(entity, gateway, account, mode, entity_id, draft_store)
