from __future__ import annotations

from starlette.datastructures import FormData

from tamanomi_admin.entities import MERCHANT, SHOP
from tamanomi_admin.fields import (
    build_defaults,
    build_payload,
    coerce_value,
    collect_values,
    display_value,
    field,
    field_map,
    get_nested_value,
    group_by_section,
    reference_options,
    set_nested_value,
    values_from_record,
)


def test_cleared_number_is_none():
    spec = field("latitude", "緯度", "number")
    assert coerce_value(spec, "35.5") == 35.5
    assert coerce_value(spec, "") is None
    assert coerce_value(field("capacity", "定員", "integer"), "12") == 12


def test_unparseable_number_keeps_the_typed_text():
    assert coerce_value(field("latitude", "緯度", "number"), "abc") == "abc"
    assert coerce_value(field("age", "年齢", "integer"), "12.5") == "12.5"
    assert coerce_value(field("age", "年齢", "integer"), " 30 ") == 30


def test_nested_get_and_set():
    data: dict = {}
    set_nested_value(data, "emergencyContact.name", "山田花子")
    assert data == {"emergencyContact": {"name": "山田花子"}}
    assert get_nested_value(data, "emergencyContact.name") == "山田花子"
    assert get_nested_value(data, "emergencyContact.phoneNumber") is None


def test_collect_values_reads_checkboxes_and_booleans():
    fields = [dict(spec) for spec in SHOP.fields]
    form = FormData([("couponUsageDays", "月"), ("couponUsageDays", "水"), ("createAccount", "true")])
    values = collect_values(fields, form)
    assert values["couponUsageDays"] == ["月", "水"]
    assert values["createAccount"] is True
    assert values["paymentSaicoin"] is False
    assert values["latitude"] is None


def test_record_values_split_joined_checkboxes():
    fields = [dict(spec) for spec in SHOP.fields]
    values = values_from_record(fields, {"couponUsageDays": "月,火", "password": "secret"})
    assert values["couponUsageDays"] == ["月", "火"]
    assert values["password"] == ""


def test_create_payload_uses_api_key_and_drops_blanks():
    fields = [dict(spec) for spec in MERCHANT.fields]
    values = build_defaults(fields)
    values.update({"name": "テスト事業者", "email": "owner@example.com", "address2": ""})
    payload = build_payload(fields, values, "create")
    assert payload["accountEmail"] == "owner@example.com"
    assert "email" not in payload
    assert "address2" not in payload
    assert payload["status"] == "registering"


def test_edit_payload_sends_null_for_cleared_optional_fields():
    fields = [dict(spec) for spec in SHOP.fields]
    values = build_defaults(fields)
    values["couponUsageDays"] = ["月"]
    payload = build_payload(fields, values, "edit")
    assert payload["couponUsageDays"] == "月"
    assert payload["description"] is None
    assert "coordinates" not in payload
    assert "password" not in payload


def test_reference_options_and_display():
    specs = field_map(dict(spec) for spec in SHOP.fields)
    options = reference_options(specs["genreId"], {"genres": [{"id": 3, "name": "居酒屋"}]})
    assert options == [{"value": "3", "label": "居酒屋"}]
    assert display_value(specs["smokingType"], "separated") == "分煙"
    assert display_value(specs["password"], "abcd1234") == "********"
    assert display_value(specs["paymentCash"], True) == "はい"


def test_group_by_section_keeps_order():
    sections = group_by_section([dict(spec) for spec in MERCHANT.fields])
    assert [name for name, _ in sections] == ["基本情報", "代表者", "アカウント", "住所", "管理"]
