from __future__ import annotations

import math
from typing import Any, Iterable

FIELD_TYPES = {
    "string",
    "textarea",
    "email",
    "tel",
    "url",
    "kana",
    "postal_code",
    "password",
    "number",
    "integer",
    "date",
    "time",
    "enum",
    "boolean",
    "checkboxes",
    "reference",
}

NUMERIC_TYPES = {"number", "integer"}

WEEKDAYS: tuple[tuple[str, str], ...] = (
    ("monday", "月曜日"),
    ("tuesday", "火曜日"),
    ("wednesday", "水曜日"),
    ("thursday", "木曜日"),
    ("friday", "金曜日"),
    ("saturday", "土曜日"),
    ("sunday", "日曜日"),
)

COUPON_USAGE_DAYS = ("月", "火", "水", "木", "金", "土", "日", "祝")

MASKED_VALUE = "********"


def field(key: str, label: str, field_type: str = "string", **options: Any) -> dict[str, Any]:
    if field_type not in FIELD_TYPES:
        raise ValueError(f"unknown field type: {field_type}")
    required = bool(options.get("required"))
    required_on = options.get("required_on")
    if required_on is None:
        required_on = ("create", "edit") if required else ()
    enum = options.get("enum") or []
    return {
        "key": key,
        "label": label,
        "type": field_type,
        "required": bool(required_on),
        "required_on": tuple(required_on),
        "required_message": options.get("required_message", ""),
        "max_length": options.get("max_length"),
        "min": options.get("min"),
        "max": options.get("max"),
        "enum": [_option(item) for item in enum],
        "join": options.get("join", ""),
        "reference": options.get("reference", ""),
        "modal": options.get("modal", False),
        "id_format": options.get("id_format", ""),
        "display_key": options.get("display_key", ""),
        "api_key": options.get("api_key", ""),
        "placeholder": options.get("placeholder", ""),
        "description": options.get("description", ""),
        "section": options.get("section", ""),
        "default": options.get("default"),
        "submit": options.get("submit", True),
        "editable": options.get("editable", True),
    }


def _option(item: Any) -> dict[str, str]:
    if isinstance(item, dict):
        return {"value": str(item["value"]), "label": str(item.get("label") or item["value"])}
    if isinstance(item, (tuple, list)):
        return {"value": str(item[0]), "label": str(item[1])}
    return {"value": str(item), "label": str(item)}


def operating_hours_fields(prefix: str = "operatingHours", section: str = "営業時間") -> list[dict[str, Any]]:
    fields: list[dict[str, Any]] = []
    for day, day_label in WEEKDAYS:
        fields.append(field(f"{prefix}.{day}.isOpen", f"{day_label}営業", "boolean", section=section))
        fields.append(field(f"{prefix}.{day}.openTime", f"{day_label}開始", "time", section=section))
        fields.append(field(f"{prefix}.{day}.closeTime", f"{day_label}終了", "time", section=section))
    return fields


def field_map(fields: Iterable[dict[str, Any]]) -> dict[str, dict[str, Any]]:
    return {item["key"]: item for item in fields}


def get_nested_value(data: dict[str, Any], dotted_key: str) -> Any:
    parts = dotted_key.split(".")
    current: Any = data
    for part in parts:
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def set_nested_value(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    parts = dotted_key.split(".")
    current = data
    for part in parts[:-1]:
        if part not in current or not isinstance(current[part], dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


def clean_empty_recursive(data: Any) -> Any:
    if isinstance(data, dict):
        cleaned = {}
        for k, v in data.items():
            result = clean_empty_recursive(v)
            if result is not None and result != "":
                cleaned[k] = result
        return cleaned if cleaned else None
    if isinstance(data, list):
        cleaned_list = []
        for item in data:
            result = clean_empty_recursive(item)
            if result is not None and result != "":
                cleaned_list.append(result)
        return cleaned_list if cleaned_list else None
    if isinstance(data, str) and not data.strip():
        return None
    return data


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in {"1", "true", "on", "yes"}


def normalize_number(value: Any, is_int: bool) -> Any:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return int(value) if is_int else value
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return text
    if not math.isfinite(number) or (is_int and not number.is_integer()):
        return text
    return int(number) if is_int else number


def default_value(spec: dict[str, Any]) -> Any:
    if spec.get("default") is not None:
        default = spec["default"]
        return list(default) if isinstance(default, (list, tuple)) else default
    field_type = spec["type"]
    if field_type in NUMERIC_TYPES:
        return None
    if field_type == "boolean":
        return False
    if field_type == "checkboxes":
        return []
    return ""


def build_defaults(fields: Iterable[dict[str, Any]]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for spec in fields:
        set_nested_value(values, spec["key"], default_value(spec))
        if spec.get("display_key"):
            set_nested_value(values, spec["display_key"], "")
    return values


def coerce_value(spec: dict[str, Any], raw: Any) -> Any:
    field_type = spec["type"]
    if field_type in NUMERIC_TYPES:
        return normalize_number(raw, field_type == "integer")
    if field_type == "boolean":
        return parse_bool(raw) if raw is not None else False
    if field_type == "checkboxes":
        if raw is None or raw == "":
            return []
        if isinstance(raw, str):
            separator = spec.get("join") or ","
            return [item.strip() for item in raw.split(separator) if item.strip()]
        return [str(item) for item in raw if str(item).strip()]
    if raw is None:
        return ""
    return str(raw)


def collect_values(fields: Iterable[dict[str, Any]], form_data: Any) -> dict[str, Any]:
    """POSTされたフォームから下書きの値を組み立てる。"""
    values: dict[str, Any] = {}
    for spec in fields:
        key = spec["key"]
        if spec["type"] == "checkboxes":
            raw: Any = [v for v in form_data.getlist(key) if v not in (None, "")]
        elif spec["type"] == "boolean":
            raw = form_data.get(key)
            raw = parse_bool(raw) if raw is not None else False
        else:
            raw = form_data.get(key)
        set_nested_value(values, key, coerce_value(spec, raw))
        display_key = spec.get("display_key")
        if display_key:
            set_nested_value(values, display_key, str(form_data.get(display_key) or ""))
    return values


def values_from_record(fields: Iterable[dict[str, Any]], record: dict[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for spec in fields:
        source_key = spec.get("api_key") or spec["key"]
        raw = get_nested_value(record, source_key)
        if raw is None and source_key != spec["key"]:
            raw = get_nested_value(record, spec["key"])
        if raw is None:
            value = default_value(spec)
        elif spec["type"] == "password":
            value = ""
        else:
            value = coerce_value(spec, raw)
        set_nested_value(values, spec["key"], value)
        display_key = spec.get("display_key")
        if display_key:
            set_nested_value(values, display_key, str(get_nested_value(record, display_key) or ""))
    return values


def build_payload(fields: Iterable[dict[str, Any]], values: dict[str, Any], mode: str) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for spec in fields:
        if not spec.get("submit", True):
            continue
        value = get_nested_value(values, spec["key"])
        if spec["type"] == "password" and not value:
            continue
        if spec["type"] == "checkboxes" and spec.get("join"):
            value = spec["join"].join(value or [])
        elif isinstance(value, str) and not value.strip() and mode == "edit" and not spec["required"]:
            value = None
        set_nested_value(payload, spec.get("api_key") or spec["key"], value)
    if mode == "create":
        return clean_empty_recursive(payload) or {}
    return payload


def reference_options(spec: dict[str, Any], references: dict[str, list[Any]]) -> list[dict[str, str]]:
    """参照リスト（ジャンル・利用シーンなど）を選択肢に変換する。"""
    if spec.get("enum"):
        return spec["enum"]
    options: list[dict[str, str]] = []
    for item in references.get(spec.get("reference") or "", []):
        if isinstance(item, dict) and item.get("id") is not None:
            options.append({"value": str(item["id"]), "label": str(item.get("name") or item["id"])})
    return options


def parse_touched(raw: Any) -> set[str]:
    if not raw:
        return set()
    if isinstance(raw, (list, tuple, set)):
        items: Iterable[str] = raw
    else:
        items = str(raw).split(",")
    return {item.strip() for item in items if item and item.strip()}


def field_input_type(spec: dict[str, Any]) -> str:
    field_type = spec["type"]
    if field_type in {"email", "url", "password", "date", "time"}:
        return field_type
    if field_type == "tel":
        return "tel"
    if field_type in NUMERIC_TYPES:
        return "number"
    if field_type == "postal_code":
        return "text"
    return "text"


def option_label(spec: dict[str, Any], value: Any) -> str:
    for option in spec.get("enum") or []:
        if option["value"] == str(value):
            return option["label"]
    return str(value)


def display_value(spec: dict[str, Any], value: Any) -> str:
    field_type = spec["type"]
    if field_type == "password":
        return MASKED_VALUE if value else ""
    if field_type == "boolean":
        return "はい" if value else "いいえ"
    if value is None:
        return ""
    if field_type == "enum":
        return option_label(spec, value) if value != "" else ""
    if field_type == "checkboxes":
        items = value if isinstance(value, list) else coerce_value(spec, value)
        return "、".join(option_label(spec, item) for item in items)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def group_by_section(fields: Iterable[dict[str, Any]]) -> list[tuple[str, list[dict[str, Any]]]]:
    sections: list[tuple[str, list[dict[str, Any]]]] = []
    index: dict[str, int] = {}
    for spec in fields:
        name = spec.get("section") or ""
        if name not in index:
            index[name] = len(sections)
            sections.append((name, []))
        sections[index[name]][1].append(spec)
    return sections
