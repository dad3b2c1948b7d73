from __future__ import annotations

from typing import Any, Iterable

from jsonschema import Draft7Validator

from tamanomi_admin import validators
from tamanomi_admin.fields import NUMERIC_TYPES, field_map, get_nested_value

MODES = ("create", "edit")

_PATTERNS = {
    "email": validators.EMAIL_PATTERN.pattern,
    "postal_code": validators.POSTAL_CODE_PATTERN.pattern,
    "kana": validators.KANA_PATTERN.pattern,
    "time": validators.TIME_PATTERN.pattern,
    "date": validators.DATE_PATTERN.pattern,
    "tel": r"^\d{2,4}-?\d{2,4}-?\d{3,4}$",
}


def is_required(spec: dict[str, Any], mode: str) -> bool:
    return mode in spec.get("required_on", ())


def required_message(spec: dict[str, Any]) -> str:
    return spec.get("required_message") or f"{spec['label']}は必須です"


def field_rules(spec: dict[str, Any], mode: str) -> list[validators.Rule]:
    """フィールド定義から入力時に適用するルール列を組み立てる。"""
    label = spec["label"]
    field_type = spec["type"]
    rules: list[validators.Rule] = []
    if is_required(spec, mode):
        rules.append(validators.required(label, spec.get("required_message") or None))
    if spec.get("max_length"):
        rules.append(validators.max_length(spec["max_length"], label))
    format_rule = {
        "email": validators.email,
        "tel": validators.phone,
        "url": validators.url,
        "postal_code": validators.postal_code,
        "date": validators.date_iso,
        "password": validators.password,
        "kana": validators.kana(label),
        "time": validators.time_hhmm(label),
    }.get(field_type)
    if format_rule:
        rules.append(format_rule)
    if field_type in NUMERIC_TYPES:
        rules.append(validators.number_range(label, spec.get("min"), spec.get("max")))
        if field_type == "integer":
            rules.append(validators.integer(label))
    if field_type in {"enum", "checkboxes"} and spec.get("enum"):
        rules.append(validators.one_of(label, [option["value"] for option in spec["enum"]]))
    if spec.get("id_format") == "uuid":
        rules.append(validators.uuid)
    return rules


def validate_field(spec: dict[str, Any], value: Any, mode: str) -> str | None:
    return validators.first_error(value, *field_rules(spec, mode))


def build_property(spec: dict[str, Any], mode: str) -> dict[str, Any]:
    field_type = spec["type"]
    enum_values = [option["value"] for option in spec.get("enum") or []]
    if field_type in NUMERIC_TYPES:
        prop: dict[str, Any] = {"type": field_type}
        if spec.get("min") is not None:
            prop["minimum"] = spec["min"]
        if spec.get("max") is not None:
            prop["maximum"] = spec["max"]
    elif field_type == "boolean":
        prop = {"type": "boolean"}
    elif field_type == "checkboxes":
        items: dict[str, Any] = {"type": "string"}
        if enum_values:
            items["enum"] = enum_values
        prop = {"type": "array", "items": items}
        if is_required(spec, mode):
            prop["minItems"] = 1
    elif field_type == "enum":
        prop = {"type": "string"}
        if enum_values:
            prop["enum"] = enum_values
    else:
        prop = {"type": "string"}
        if field_type in _PATTERNS:
            prop["pattern"] = _PATTERNS[field_type]
        if field_type == "reference" and is_required(spec, mode):
            prop["minLength"] = 1
    if spec.get("max_length") and prop.get("type") == "string":
        prop["maxLength"] = spec["max_length"]
    prop["title"] = spec["label"]
    return prop


def build_schema(fields: Iterable[dict[str, Any]], mode: str) -> dict[str, Any]:
    """フィールド定義から作成用/編集用の JSON Schema を組み立てる。"""
    if mode not in MODES:
        raise ValueError(f"unknown mode: {mode}")
    root: dict[str, Any] = {"type": "object", "properties": {}}
    for spec in fields:
        parts = spec["key"].split(".")
        required = is_required(spec, mode)
        node = root
        for part in parts[:-1]:
            properties = node.setdefault("properties", {})
            child = properties.setdefault(part, {"type": "object", "properties": {}})
            if required and part not in node.setdefault("required", []):
                node["required"].append(part)
            node = child
        node.setdefault("properties", {})[parts[-1]] = build_property(spec, mode)
        if required:
            node.setdefault("required", []).append(parts[-1])
    return root


def prepare_for_validation(data: Any) -> Any:
    """空文字や None を「未入力」として取り除く。数値欄の空文字で型エラーを出さないため。"""
    if isinstance(data, dict):
        prepared: dict[str, Any] = {}
        for key, value in data.items():
            result = prepare_for_validation(value)
            if result is None:
                continue
            prepared[key] = result
        return prepared
    if isinstance(data, list):
        return [item for item in (prepare_for_validation(v) for v in data) if item is not None]
    if isinstance(data, str) and not data.strip():
        return None
    return data


def format_message(spec: dict[str, Any], value: Any) -> str:
    field_type = spec["type"]
    label = spec["label"]
    rule = {
        "email": validators.email,
        "postal_code": validators.postal_code,
        "tel": validators.phone,
        "kana": validators.kana(label),
        "time": validators.time_hhmm(label),
        "date": validators.date_iso,
    }.get(field_type)
    message = rule(value) if rule else None
    return message or f"{label}の形式が正しくありません"


def _message_for(error: Any, spec: dict[str, Any]) -> str:
    label = spec["label"]
    kind = error.validator
    if kind in {"minLength", "minItems"}:
        return required_message(spec)
    if kind == "maxLength":
        return f"{label}は{error.validator_value}文字以内で入力してください"
    if kind == "pattern":
        return format_message(spec, error.instance)
    if kind == "enum":
        return f"{label}を選択してください"
    if kind in {"minimum", "maximum"}:
        rule = validators.number_range(label, spec.get("min"), spec.get("max"))
        return rule(error.instance) or f"{label}の値が範囲外です"
    return f"{label}の形式が正しくありません"


def _key_from_path(path: Iterable[Any]) -> str:
    parts: list[str] = []
    for part in path:
        if isinstance(part, int):
            break
        parts.append(str(part))
    return ".".join(parts)


def _first_required_child(specs: dict[str, dict[str, Any]], prefix: str, mode: str) -> dict[str, Any] | None:
    for key, spec in specs.items():
        if key.startswith(prefix + ".") and is_required(spec, mode):
            return spec
    return None


def structural_errors(
    schema: dict[str, Any],
    fields: Iterable[dict[str, Any]],
    values: dict[str, Any],
    mode: str = "create",
) -> dict[str, str]:
    specs = field_map(fields)
    instance = prepare_for_validation(values) or {}
    validator = Draft7Validator(schema)
    errors: dict[str, str] = {}
    for error in sorted(validator.iter_errors(instance), key=lambda err: [str(p) for p in err.path]):
        base = _key_from_path(error.absolute_path)
        if error.validator == "required":
            present = error.instance if isinstance(error.instance, dict) else {}
            for missing in error.validator_value:
                if missing in present:
                    continue
                key = f"{base}.{missing}" if base else missing
                spec = specs.get(key) or _first_required_child(specs, key, mode)
                if spec and spec["key"] not in errors:
                    errors[spec["key"]] = required_message(spec)
            continue
        spec = specs.get(base)
        if spec is None or base in errors:
            continue
        errors[base] = _message_for(error, spec)
    return errors


def missing_required(fields: Iterable[dict[str, Any]], values: dict[str, Any], mode: str) -> list[str]:
    return [
        spec["key"]
        for spec in fields
        if is_required(spec, mode) and validators.is_blank(get_nested_value(values, spec["key"]))
    ]
