from __future__ import annotations

import copy
from contextlib import contextmanager
from datetime import timedelta
from pathlib import Path
from typing import Any, Iterable, Protocol

from filelock import FileLock
from tinydb import Query, TinyDB

from tamanomi_admin.config import Settings
from tamanomi_admin.utils import new_ulid, now_utc, parse_dt, to_iso


class DraftStore(Protocol):
    def save(self, entity: str, draft: dict[str, Any], token: str | None = None) -> str: ...

    def load(self, token: str, entity: str) -> dict[str, Any] | None: ...

    def discard(self, token: str) -> None: ...


def _expired(created_at: Any, ttl_seconds: int) -> bool:
    created = parse_dt(created_at)
    if created is None:
        return True
    return now_utc() - created > timedelta(seconds=ttl_seconds)


class MemoryDraftStore:
    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._ttl = ttl_seconds
        self._items: dict[str, dict[str, Any]] = {}

    def save(self, entity: str, draft: dict[str, Any], token: str | None = None) -> str:
        token = token or new_ulid()
        self._items[token] = {
            "entity": entity,
            "draft": copy.deepcopy(draft),
            "created_at": to_iso(now_utc()),
        }
        return token

    def load(self, token: str, entity: str) -> dict[str, Any] | None:
        item = self._items.get(token)
        if not item:
            return None
        if _expired(item["created_at"], self._ttl):
            self._items.pop(token, None)
            return None
        if item["entity"] != entity:
            return None
        return copy.deepcopy(item["draft"])

    def discard(self, token: str) -> None:
        self._items.pop(token, None)


class JSONDraftStore:
    """確認画面へ持ち越す下書きを TinyDB ファイルに保存する。"""

    def __init__(self, path: Path, ttl_seconds: int = 3600) -> None:
        self._path = path
        self._lock = FileLock(str(path) + ".lock")
        self._ttl = ttl_seconds

    @contextmanager
    def _db(self) -> Iterable[TinyDB]:
        with self._lock:
            db = TinyDB(self._path)
            try:
                yield db
            finally:
                db.close()

    def save(self, entity: str, draft: dict[str, Any], token: str | None = None) -> str:
        token = token or new_ulid()
        record = {
            "token": token,
            "entity": entity,
            "draft": draft,
            "created_at": to_iso(now_utc()),
        }
        with self._db() as db:
            db.table("drafts").upsert(record, Query().token == token)
        return token

    def load(self, token: str, entity: str) -> dict[str, Any] | None:
        with self._db() as db:
            table = db.table("drafts")
            item = table.get(Query().token == token)
            if item and _expired(item.get("created_at"), self._ttl):
                table.remove(Query().token == token)
                return None
        if not item or item.get("entity") != entity:
            return None
        return copy.deepcopy(item["draft"])

    def discard(self, token: str) -> None:
        with self._db() as db:
            db.table("drafts").remove(Query().token == token)

    def purge_expired(self) -> int:
        with self._db() as db:
            table = db.table("drafts")
            expired = [item.doc_id for item in table.all() if _expired(item.get("created_at"), self._ttl)]
            table.remove(doc_ids=expired)
        return len(expired)


def init_draft_store(settings: Settings) -> DraftStore:
    if settings.draft_backend == "json":
        return JSONDraftStore(settings.draft_path, settings.draft_ttl_seconds)
    return MemoryDraftStore(settings.draft_ttl_seconds)
