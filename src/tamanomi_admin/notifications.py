from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

LEVELS = ("success", "error", "info")
TOAST_PARAM = "toast"


@dataclass(frozen=True)
class Toast:
    message: str
    level: str = "success"


@dataclass
class Notifications:
    """画面上部に出す一時的な通知。永続化しない。"""

    items: list[Toast] = field(default_factory=list)

    def success(self, message: str) -> None:
        self.items.append(Toast(message, "success"))

    def error(self, message: str) -> None:
        self.items.append(Toast(message, "error"))

    def info(self, message: str) -> None:
        self.items.append(Toast(message, "info"))

    def clear(self) -> None:
        self.items.clear()

    @property
    def errors(self) -> list[str]:
        return [item.message for item in self.items if item.level == "error"]

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def with_toast(url: str, message: str, level: str = "success") -> str:
    """遷移先で表示するメッセージをクエリパラメータに載せる。"""
    parts = urlsplit(url)
    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if k not in {TOAST_PARAM, "toast_level"}
    ]
    query.append((TOAST_PARAM, message))
    if level != "success":
        query.append(("toast_level", level))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def toast_from_query(params) -> Toast | None:
    message = (params.get(TOAST_PARAM) or "").strip()
    if not message:
        return None
    level = params.get("toast_level") or "success"
    return Toast(message, level if level in LEVELS else "info")
