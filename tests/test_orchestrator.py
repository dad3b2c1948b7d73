"""FormOrchestrator の読み込み・検証・送信のテスト"""

from __future__ import annotations

import asyncio

import httpx
from starlette.datastructures import FormData

from tamanomi_admin.address import AddressLookup
from tamanomi_admin.auth import AccountContext
from tamanomi_admin.drafts import MemoryDraftStore
from tamanomi_admin.entities import ADMIN, FACILITY_MANAGER, MERCHANT, OFFICE, OFFICE_WITH_MANAGER, SHOP, USER
from tamanomi_admin.orchestrator import (
    INVALID_INPUT_MESSAGE,
    CompositeFormOrchestrator,
    FormOrchestrator,
    Phase,
    SubmissionResult,
    build_orchestrator,
)

from .conftest import GENRE_ID, MERCHANT_ID, SHOP_ID

MERCHANT_VALUES = {
    "name": "テスト事業者_X",
    "nameKana": "テストジギョウシャ",
    "representativeNameLast": "山田",
    "representativeNameFirst": "太郎",
    "representativeNameLastKana": "ヤマダ",
    "representativeNameFirstKana": "タロウ",
    "representativePhone": "0312345678",
    "email": "merchant-X@example.com",
    "postalCode": "1000001",
    "prefecture": "東京都",
    "city": "千代田区",
    "address1": "千代田1-1",
}

SHOP_VALUES = {
    "merchantId": MERCHANT_ID,
    "merchantName": "テスト事業者",
    "genreId": GENRE_ID,
    "name": "たまのみ酒場",
    "phone": "0312345678",
    "postalCode": "1000001",
    "prefecture": "東京都",
    "city": "千代田区",
    "address1": "丸の内1-1",
    "latitude": 35.68,
    "longitude": 139.76,
    "smokingType": "non_smoking",
}


def _fill(orchestrator: FormOrchestrator, values: dict) -> None:
    for key, value in values.items():
        orchestrator.state.set(key, value)


def _ready(orchestrator: FormOrchestrator) -> FormOrchestrator:
    asyncio.run(orchestrator.load())
    return orchestrator


def test_empty_required_fields_block_submit(api, gateway):
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    result = asyncio.run(orchestrator.submit())
    assert result.kind == SubmissionResult.VALIDATION_FAILURE
    assert orchestrator.phase == Phase.VALIDATION_FAILED
    assert orchestrator.state.visible_error("name") == "事業者名は必須です"
    assert orchestrator.state.visible_error("prefecture") == "都道府県を選択してください"
    assert orchestrator.first_error_field == "name"
    assert [toast.message for toast in orchestrator.notifications] == [INVALID_INPUT_MESSAGE]
    assert api.calls("POST", "merchants") == []


def test_every_required_field_is_reported_by_name(api, gateway):
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    _fill(orchestrator, MERCHANT_VALUES)
    for key in MERCHANT_VALUES:
        orchestrator.state.set(key, "")
        errors = orchestrator.validate_all()
        spec = orchestrator.specs[key]
        assert key in errors
        assert spec["label"] in errors[key]
        orchestrator.state.set(key, MERCHANT_VALUES[key])
    assert orchestrator.validate_all() == {}


def test_edit_without_password_is_not_blocked(api, gateway):
    api.on("GET", "admins/a1", {"data": {"id": "a1", "role": "operator", "name": "管理 太郎", "email": "ops@example.com"}})
    store = MemoryDraftStore()
    orchestrator = _ready(FormOrchestrator(ADMIN, gateway, mode="edit", entity_id="a1", draft_store=store))
    result = asyncio.run(orchestrator.submit())
    assert result.kind == SubmissionResult.PENDING_CONFIRMATION
    assert result.redirect_to == "/admins/confirm"
    assert store.load(result.draft_token, "admin")["values"]["password"] == ""


def test_admin_password_mismatch(api, gateway):
    orchestrator = _ready(FormOrchestrator(ADMIN, gateway, draft_store=MemoryDraftStore()))
    _fill(orchestrator, {"role": "sysadmin", "name": "管理 花子", "email": "admin@example.com",
                         "password": "abcd1234", "passwordConfirm": "abcd9999"})
    result = asyncio.run(orchestrator.submit())
    assert result.errors == {"passwordConfirm": "パスワードが一致しません"}


def test_optional_reference_failure_keeps_form_usable(api, gateway):
    api.on("GET", "genres", {"message": "boom"}, status=500)
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    assert orchestrator.phase == Phase.READY
    assert orchestrator.references["genres"] == []
    assert orchestrator.references["scenes"] == [{"id": "1", "name": "デート"}]
    assert "ジャンルの取得に失敗しました" in orchestrator.notifications.errors


def test_entity_fetch_failure_blocks_form(api, gateway):
    orchestrator = _ready(FormOrchestrator(SHOP, gateway, mode="edit", entity_id=SHOP_ID))
    assert orchestrator.phase == Phase.LOAD_FAILED
    assert orchestrator.load_error == "Not Found"
    result = asyncio.run(orchestrator.submit())
    assert result.kind == SubmissionResult.UNKNOWN_ERROR
    assert api.calls("PATCH", f"shops/{SHOP_ID}") == []


def test_late_load_results_are_ignored(api, gateway):
    orchestrator = FormOrchestrator(SHOP, gateway)
    api.before("GET", "genres", orchestrator.close)
    asyncio.run(orchestrator.load())
    assert orchestrator.closed
    assert orchestrator.phase == Phase.LOADING
    assert orchestrator.references == {}


def test_reopened_create_form_starts_fresh(api, gateway):
    first = _ready(FormOrchestrator(MERCHANT, gateway))
    first.change("name", "途中まで入力")
    first.blur("name")
    first.close()
    second = _ready(FormOrchestrator(MERCHANT, gateway))
    assert second.state.get("name") == ""
    assert second.state.touched == set()
    assert second.state.get("status") == "registering"


def test_conflict_marks_field_and_keeps_values(api, gateway):
    api.on("POST", "merchants", {"message": "このメールアドレスは既に登録されています"}, status=409)
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    _fill(orchestrator, MERCHANT_VALUES)
    result = asyncio.run(orchestrator.submit())
    assert result.kind == SubmissionResult.CONFLICT
    assert orchestrator.phase == Phase.CONFLICT
    assert orchestrator.state.visible_error("email") == "このメールアドレスは既に登録されています"
    assert orchestrator.state.get("name") == "テスト事業者_X"
    assert orchestrator.state.get("city") == "千代田区"
    orchestrator.change("name", "テスト事業者_Y")
    assert orchestrator.state.visible_error("email") == "このメールアドレスは既に登録されています"
    assert orchestrator.server_error_fields == ["email"]
    orchestrator.change("email", "other@example.com")
    assert orchestrator.phase == Phase.READY
    assert orchestrator.state.visible_error("email") == ""
    assert orchestrator.server_error_fields == []


def test_unknown_error_becomes_notification(api, gateway):
    api.on("POST", "merchants", {"error": {"message": "サーバーエラー"}}, status=500)
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    _fill(orchestrator, MERCHANT_VALUES)
    result = asyncio.run(orchestrator.submit())
    assert result.kind == SubmissionResult.UNKNOWN_ERROR
    assert orchestrator.phase == Phase.READY
    assert "サーバーエラー" in orchestrator.notifications.errors


def test_merchant_create_posts_account_email(api, gateway):
    api.on("POST", "merchants", {"data": {"id": MERCHANT_ID}}, status=201)
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    _fill(orchestrator, MERCHANT_VALUES)
    result = asyncio.run(orchestrator.submit())
    assert result.ok
    assert result.redirect_to.startswith("/merchants?toast=")
    body = api.body(api.calls("POST", "merchants")[0])
    assert body["name"] == "テスト事業者_X"
    assert body["accountEmail"] == "merchant-X@example.com"


def test_inline_form_resets_after_create(api, gateway):
    api.on("POST", "facility-managers", {"data": {"id": "m1"}}, status=201)
    orchestrator = _ready(FormOrchestrator(FACILITY_MANAGER, gateway))
    _fill(orchestrator, {"name": "佐藤 一郎", "nameKana": "サトウ イチロウ", "email": "sato@example.com",
                         "phoneNumber": "0312345678"})
    result = asyncio.run(orchestrator.submit())
    assert result.ok
    assert orchestrator.phase == Phase.READY
    assert orchestrator.state.get("name") == ""
    assert not orchestrator.state.submit_attempted
    assert [toast.level for toast in orchestrator.notifications] == ["success"]


def test_coupon_pair_error_lands_on_blank_side(api, gateway):
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    orchestrator.change("couponUsageStart", "17:00")
    orchestrator.blur("couponUsageStart")
    assert orchestrator.state.visible_error("couponUsageStart") == ""
    assert orchestrator.state.visible_error("couponUsageEnd") == "クーポン利用時間は開始・終了をセットで入力してください"
    orchestrator.change("couponUsageEnd", "23:00")
    assert orchestrator.state.visible_error("couponUsageEnd") == ""


def test_shop_without_genre_is_blocked(api, gateway):
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    _fill(orchestrator, {**SHOP_VALUES, "genreId": ""})
    result = asyncio.run(orchestrator.submit())
    assert result.errors == {"genreId": "ジャンルを選択してください"}
    assert api.calls("POST", "shops") == []


def test_shop_account_fields_are_checked_together(api, gateway):
    api.on("GET", "shops", {"data": [{"id": "s9", "accountEmail": "taken@example.com"}]})
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    _fill(orchestrator, {**SHOP_VALUES, "createAccount": True, "accountEmail": "Taken@example.com"})
    errors = orchestrator.validate_all()
    assert errors["accountEmail"] == "このメールアドレスは既に使用されています"
    assert errors["password"] == "パスワードは必須です"


def test_shop_payload_and_holiday_text(api, gateway):
    api.on("POST", "shops", {"data": {"id": SHOP_ID}}, status=201)
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    _fill(orchestrator, {**SHOP_VALUES, "holidays": ["月", "その他"]})
    assert orchestrator.validate_field("customHolidayText") == "その他の定休日の内容を入力してください"
    orchestrator.state.set("customHolidayText", "第3火曜日")
    result = asyncio.run(orchestrator.submit())
    assert result.ok
    body = api.body(api.calls("POST", "shops")[0])
    assert body["holidays"] == "月,その他:第3火曜日"
    assert body["address"] == "東京都千代田区丸の内1-1"
    assert body["accountEmail"] is None
    assert "coordinates" not in body


def test_coordinates_paste_fills_latitude_and_longitude(api, gateway):
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    orchestrator.apply_form(_form({"coordinates": "35.681236, 139.767125", "_touched": "coordinates"}))
    assert orchestrator.state.get("latitude") == 35.681236
    assert orchestrator.state.get("longitude") == 139.767125
    assert orchestrator.state.touched == {"coordinates"}


def test_merchant_account_has_fixed_merchant(api, gateway):
    account = AccountContext(account_type="merchant", merchant_id=MERCHANT_ID)
    orchestrator = _ready(FormOrchestrator(SHOP, gateway, account))
    assert orchestrator.state.get("merchantId") == MERCHANT_ID
    orchestrator.apply_form(_form({"merchantId": "forged"}))
    assert orchestrator.state.get("merchantId") == MERCHANT_ID


def test_shop_edit_round_trip(api, gateway):
    record = {**SHOP_VALUES, "id": SHOP_ID, "couponUsageDays": "月,火", "holidays": "水,その他:祝前日",
              "accountEmail": "shop@example.com", "sceneIds": [1]}
    api.on("GET", f"shops/{SHOP_ID}", {"data": record})
    orchestrator = _ready(FormOrchestrator(SHOP, gateway, mode="edit", entity_id=SHOP_ID))
    assert orchestrator.phase == Phase.READY
    assert orchestrator.state.get("couponUsageDays") == ["月", "火"]
    assert orchestrator.state.get("holidays") == ["水", "その他"]
    assert orchestrator.state.get("customHolidayText") == "祝前日"
    assert orchestrator.state.get("createAccount") is True
    assert orchestrator.state.get("sceneIds") == ["1"]
    assert orchestrator.state.get("latitude") == 35.68


def test_nested_values_round_trip(api, gateway):
    contact = {"name": "山田花子", "relationship": "長女", "phoneNumber": "09012345678", "address": "東京都"}
    api.on("GET", "users/u1", {"data": {"id": "u1", "name": "山田太郎", "emergencyContact": contact}})
    user = _ready(FormOrchestrator(USER, gateway, mode="edit", entity_id="u1"))
    for key, value in contact.items():
        assert user.state.get(f"emergencyContact.{key}") == value

    hours = {"monday": {"isOpen": True, "openTime": "09:00", "closeTime": "18:00"}}
    api.on("GET", "offices/o1", {"data": {"id": "o1", "name": "本店", "operatingHours": hours}})
    office = _ready(FormOrchestrator(OFFICE, gateway, mode="edit", entity_id="o1"))
    assert office.state.get("operatingHours.monday.isOpen") is True
    assert office.state.get("operatingHours.monday.openTime") == "09:00"
    assert office.state.get("operatingHours.tuesday.isOpen") is False


def test_office_open_day_needs_valid_hours(api, gateway):
    office = _ready(FormOrchestrator(OFFICE, gateway))
    office.state.set("operatingHours.monday.isOpen", True)
    assert office.validate_field("operatingHours.monday.openTime") == "月曜日の開始時刻を入力してください"
    office.state.set("operatingHours.monday.openTime", "18:00")
    office.state.set("operatingHours.monday.closeTime", "09:00")
    assert office.validate_field("operatingHours.monday.closeTime") == "月曜日の終了時刻は開始時刻より後にしてください"


def test_password_mismatch_clears_once_password_matches(api, gateway):
    orchestrator = _ready(FormOrchestrator(ADMIN, gateway, draft_store=MemoryDraftStore()))
    orchestrator.change("password", "abcd1234")
    orchestrator.blur("password")
    orchestrator.change("passwordConfirm", "abcd9999")
    orchestrator.blur("passwordConfirm")
    assert orchestrator.state.visible_error("passwordConfirm") == "パスワードが一致しません"
    orchestrator.change("password", "abcd9999")
    assert orchestrator.state.visible_error("passwordConfirm") == ""


def test_unchecking_account_clears_account_errors(api, gateway):
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    orchestrator.change("createAccount", True)
    orchestrator.blur("accountEmail")
    orchestrator.blur("password")
    assert orchestrator.state.visible_error("accountEmail") == "メールアドレスは必須です"
    assert orchestrator.state.visible_error("password") == "パスワードは必須です"
    orchestrator.change("createAccount", False)
    assert orchestrator.state.visible_error("accountEmail") == ""
    assert orchestrator.state.visible_error("password") == ""


def test_holiday_text_error_follows_holiday_selection(api, gateway):
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    orchestrator.change("holidays", ["月", "その他"])
    orchestrator.blur("customHolidayText")
    assert orchestrator.state.visible_error("customHolidayText") == "その他の定休日の内容を入力してください"
    orchestrator.change("holidays", ["月"])
    assert orchestrator.state.visible_error("customHolidayText") == ""


def test_closed_day_drops_hour_errors(api, gateway):
    office = _ready(FormOrchestrator(OFFICE, gateway))
    office.change("operatingHours.monday.isOpen", True)
    office.change("operatingHours.monday.openTime", "18:00")
    office.change("operatingHours.monday.closeTime", "09:00")
    assert office.state.visible_error("operatingHours.monday.closeTime") == "月曜日の終了時刻は開始時刻より後にしてください"
    office.change("operatingHours.monday.isOpen", False)
    assert office.state.visible_error("operatingHours.monday.closeTime") == ""


def test_change_reports_format_errors_before_blur(api, gateway):
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    orchestrator.change("email", "not-an-email")
    assert orchestrator.state.visible_error("email") == "有効なメールアドレスを入力してください"
    orchestrator.change("name", "")
    assert orchestrator.state.visible_error("name") == ""
    orchestrator.blur("name")
    assert orchestrator.state.visible_error("name") == "事業者名は必須です"


def test_invalid_number_is_kept_and_reported(api, gateway):
    orchestrator = _ready(FormOrchestrator(USER, gateway))
    orchestrator.apply_form(FormData([("age", "12.5")]))
    assert orchestrator.state.get("age") == "12.5"
    assert orchestrator.validate_field("age") == "年齢は整数で入力してください"
    orchestrator.apply_form(FormData([("age", "abc")]))
    assert orchestrator.state.get("age") == "abc"
    assert orchestrator.validate_field("age") == "年齢は数値で入力してください"


def test_composite_errors_are_namespaced(api, gateway):
    orchestrator = build_orchestrator(OFFICE_WITH_MANAGER, gateway, AccountContext())
    assert isinstance(orchestrator, CompositeFormOrchestrator)
    _ready(orchestrator)
    assert not orchestrator.can_submit
    result = asyncio.run(orchestrator.submit())
    assert result.errors["office.name"] == "事業所名は必須です"
    assert result.errors["office.companyId"] == "法人を選択してください"
    assert result.errors["manager.email"] == "メールアドレスは必須です"
    grouped = orchestrator.errors_by_part()
    assert grouped["manager"]["name"] == "名前は必須です"
    assert api.calls("POST", "offices/with-manager") == []


def test_composite_submits_both_parts(api, gateway):
    api.on("POST", "offices/with-manager", {"data": {"id": "o1"}}, status=201)
    orchestrator = _ready(CompositeFormOrchestrator(OFFICE_WITH_MANAGER, gateway))
    _fill(orchestrator, {
        "office.name": "たまのみ訪問看護", "office.companyId": "c1", "office.address": "東京都千代田区",
        "office.phoneNumber": "0312345678", "office.serviceType": "visiting-nursing",
        "office.establishedDate": "2020-04-01", "office.capacity": 20,
        "manager.name": "佐藤 一郎", "manager.nameKana": "サトウ イチロウ",
        "manager.email": "sato@example.com", "manager.phoneNumber": "0312345678",
    })
    assert orchestrator.can_submit
    result = asyncio.run(orchestrator.submit())
    assert result.ok
    assert result.redirect_to.startswith("/offices?toast=")
    body = api.body(api.calls("POST", "offices/with-manager")[0])
    assert body["office"]["name"] == "たまのみ訪問看護"
    assert body["manager"]["email"] == "sato@example.com"


def test_address_lookup_fills_fields(api, gateway):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["zipcode"] == "1000001"
        return httpx.Response(200, json={"results": [{"address1": "東京都", "address2": "千代田区", "address3": "千代田"}]})

    lookup = AddressLookup("http://zip.test/api/search", transport=httpx.MockTransport(handler))
    orchestrator = _ready(FormOrchestrator(MERCHANT, gateway))
    orchestrator.state.set("postalCode", "100-0001")
    orchestrator.state.set_error("city", "市区町村は必須です")
    assert asyncio.run(orchestrator.apply_address(lookup))
    assert orchestrator.state.get("prefecture") == "東京都"
    assert orchestrator.state.get("city") == "千代田区"
    assert orchestrator.state.get("address1") == "千代田"
    assert "city" not in orchestrator.state.errors


def test_copy_merchant_fills_shop_fields(api, gateway):
    api.on("GET", f"merchants/{MERCHANT_ID}", {"data": {"id": MERCHANT_ID, "name": "テスト事業者", "postalCode": "1000001"}})
    orchestrator = _ready(FormOrchestrator(SHOP, gateway))
    orchestrator.state.set("merchantId", MERCHANT_ID)
    assert asyncio.run(orchestrator.copy_merchant())
    assert orchestrator.state.get("name") == "テスト事業者"
    assert orchestrator.state.get("postalCode") == "1000001"


def _form(data: dict):
    from starlette.datastructures import FormData

    return FormData(list(data.items()))
