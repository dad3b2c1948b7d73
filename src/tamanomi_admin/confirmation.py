from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from tamanomi_admin.auth import AccountContext
from tamanomi_admin.drafts import DraftStore
from tamanomi_admin.entities import EntityConfig
from tamanomi_admin.fields import display_value, get_nested_value, group_by_section
from tamanomi_admin.gateway import RemoteDataGateway
from tamanomi_admin.orchestrator import SubmissionResult, execute_submission

logger = logging.getLogger(__name__)

NO_DRAFT_MESSAGE = "確認する入力内容がありません。入力画面からやり直してください。"


class ConfirmPhase(str, Enum):
    DISPLAYING = "displaying"
    CONFIRMING = "confirming"
    DONE = "done"
    FAILED = "failed"


class ConfirmationFlow:
    """確認画面。保存済みの下書きを表示し、確定時にだけ API を呼ぶ。"""

    def __init__(
        self,
        entity: EntityConfig,
        gateway: RemoteDataGateway,
        account: AccountContext,
        store: DraftStore,
        token: str | None,
    ) -> None:
        self.entity = entity
        self.gateway = gateway
        self.account = account
        self.store = store
        self.token = token or ""
        self.draft = store.load(self.token, entity.name) if self.token else None
        self.phase = ConfirmPhase.DISPLAYING
        self.result: SubmissionResult | None = None

    @property
    def has_draft(self) -> bool:
        return bool(self.draft)

    @property
    def mode(self) -> str:
        return (self.draft or {}).get("mode") or "create"

    @property
    def entity_id(self) -> str | None:
        return (self.draft or {}).get("entity_id")

    @property
    def values(self) -> dict[str, Any]:
        return (self.draft or {}).get("values") or {}

    def sections(self) -> list[tuple[str, list[tuple[str, str]]]]:
        fields = [spec for spec in self.entity.fields_for(self.account) if spec.get("submit", True)]
        rows = []
        for name, specs in group_by_section(fields):
            items = []
            for spec in specs:
                if spec.get("display_key"):
                    value = get_nested_value(self.values, spec["display_key"]) or get_nested_value(
                        self.values, spec["key"]
                    )
                    items.append((spec["label"], str(value or "")))
                else:
                    items.append((spec["label"], display_value(spec, get_nested_value(self.values, spec["key"]))))
            rows.append((name, items))
        return rows

    def modify(self) -> dict[str, Any]:
        """入力画面に戻すための下書きを返す。下書きは消さない。"""
        return self.draft or {}

    async def confirm(self) -> SubmissionResult:
        if not self.has_draft:
            self.phase = ConfirmPhase.FAILED
            self.result = SubmissionResult.unknown_error(NO_DRAFT_MESSAGE)
            return self.result
        if self.phase != ConfirmPhase.DISPLAYING:
            raise RuntimeError(f"cannot confirm in phase {self.phase.value}")

        self.phase = ConfirmPhase.CONFIRMING
        result = await execute_submission(
            self.entity, self.gateway, self.account, self.mode, self.entity_id, self.values
        )
        self.result = result
        if result.ok:
            self.phase = ConfirmPhase.DONE
            self.store.discard(self.token)
        else:
            logger.info("Confirmation failed for %s: %s", self.entity.name, result.kind)
            self.phase = ConfirmPhase.FAILED
        return result
