from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Iterable

from tamanomi_admin.fields import get_nested_value, set_nested_value


@dataclass
class FormState:
    """1つの編集セッションが占有するフォームの状態。"""

    values: dict[str, Any]
    field_keys: tuple[str, ...]
    touched: set[str] = field(default_factory=set)
    errors: dict[str, str] = field(default_factory=dict)
    submit_attempted: bool = False

    @classmethod
    def from_defaults(cls, defaults: dict[str, Any], field_keys: Iterable[str]) -> "FormState":
        return cls(values=copy.deepcopy(defaults), field_keys=tuple(field_keys))

    def get(self, key: str) -> Any:
        return get_nested_value(self.values, key)

    def set(self, key: str, value: Any) -> None:
        set_nested_value(self.values, key, value)

    def touch(self, key: str) -> None:
        self.touched.add(key)

    def is_touched(self, key: str) -> bool:
        return self.submit_attempted or key in self.touched

    def set_error(self, key: str, message: str) -> None:
        if key not in self.field_keys:
            raise KeyError(key)
        self.errors[key] = message

    def clear_error(self, key: str) -> None:
        self.errors.pop(key, None)

    def replace_errors(self, errors: dict[str, str]) -> None:
        self.errors = {key: message for key, message in errors.items() if key in self.field_keys}

    def mark_submit_attempt(self) -> None:
        self.submit_attempted = True
        self.touched.update(self.field_keys)

    def visible_error(self, key: str) -> str:
        if not self.is_touched(key):
            return ""
        return self.errors.get(key, "")

    def first_error_field(self) -> str | None:
        for key in self.field_keys:
            if key in self.errors:
                return key
        return None

    def reset(self, defaults: dict[str, Any]) -> None:
        self.values = copy.deepcopy(defaults)
        self.touched = set()
        self.errors = {}
        self.submit_attempted = False

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
