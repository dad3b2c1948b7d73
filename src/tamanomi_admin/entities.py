"""画面ごとのフォーム構成表。

オーケストレーターはエンティティ固有の処理を持たず、ここに並べた
``EntityConfig`` の値（フィールド表・API パス・フック）だけを見て動く。
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from typing import Any, Callable

from tamanomi_admin import validators
from tamanomi_admin.auth import AccountContext
from tamanomi_admin.fields import (
    COUPON_USAGE_DAYS,
    WEEKDAYS,
    field,
    get_nested_value,
    operating_hours_fields,
)


@dataclass(frozen=True)
class ReferenceSpec:
    name: str
    resource: str
    label: str


@dataclass
class ValidationContext:
    mode: str
    account: AccountContext
    references: dict[str, list[Any]] = dataclass_field(default_factory=dict)
    original: dict[str, Any] = dataclass_field(default_factory=dict)


CrossValidator = Callable[[dict[str, Any], ValidationContext], "dict[str, str]"]


@dataclass(frozen=True)
class EntityConfig:
    name: str
    label: str
    resource: str
    route: str
    fields: tuple[dict[str, Any], ...]
    update_method: str = "PUT"
    confirm: bool = False
    redirect_on_success: bool = True
    gate_on_required: bool = False
    conflict_field: str = "email"
    references: tuple[ReferenceSpec, ...] = ()
    pairs: tuple[tuple[str, str, str], ...] = ()
    list_columns: tuple[tuple[str, str], ...] = ()
    status_options: tuple[tuple[str, str], ...] = ()
    parts: tuple[tuple[str, str], ...] = ()
    create_message: str = ""
    update_message: str = ""
    delete_message: str = ""
    cross_validate: CrossValidator | None = None
    account_fields: Callable[[list[dict[str, Any]], AccountContext], list[dict[str, Any]]] | None = None
    initial_values: Callable[[dict[str, Any], AccountContext], None] | None = None
    normalize: Callable[[dict[str, Any]], None] | None = None
    from_record: Callable[[dict[str, Any], dict[str, Any]], None] | None = None
    finalize_payload: Callable[[dict[str, Any], dict[str, Any], str], dict[str, Any]] | None = None

    @property
    def is_composite(self) -> bool:
        return bool(self.parts)

    def fields_for(self, account: AccountContext) -> list[dict[str, Any]]:
        fields = [dict(spec) for spec in self.fields]
        if self.account_fields:
            fields = self.account_fields(fields, account)
        return fields

    def success_message(self, mode: str) -> str:
        if mode == "edit":
            return self.update_message or f"{self.label}を更新しました"
        return self.create_message or f"{self.label}を登録しました"


PREFECTURES = (
    "北海道", "青森県", "岩手県", "宮城県", "秋田県", "山形県", "福島県",
    "茨城県", "栃木県", "群馬県", "埼玉県", "千葉県", "東京都", "神奈川県",
    "新潟県", "富山県", "石川県", "福井県", "山梨県", "長野県", "岐阜県",
    "静岡県", "愛知県", "三重県", "滋賀県", "京都府", "大阪府", "兵庫県",
    "奈良県", "和歌山県", "鳥取県", "島根県", "岡山県", "広島県", "山口県",
    "徳島県", "香川県", "愛媛県", "高知県", "福岡県", "佐賀県", "長崎県",
    "熊本県", "大分県", "宮崎県", "鹿児島県", "沖縄県",
)

MERCHANT_STATUS = (
    ("registering", "登録中"),
    ("collection_requested", "回収依頼中"),
    ("approval_pending", "承認待ち"),
    ("promotional_materials_preparing", "販促物準備中"),
    ("promotional_materials_shipping", "販促物発送中"),
    ("operating", "運用中"),
    ("suspended", "停止中"),
    ("terminated", "解約済み"),
)

SHOP_STATUS = (
    ("registering", "登録中"),
    ("collection_requested", "情報収集依頼済み"),
    ("approval_pending", "承認待ち"),
    ("promotional_materials_preparing", "宣材準備中"),
    ("promotional_materials_shipping", "宣材発送中"),
    ("operating", "営業中"),
    ("suspended", "停止中"),
    ("terminated", "終了"),
)

COUPON_STATUS = (
    ("pending", "申請中"),
    ("approved", "承認済み"),
    ("suspended", "停止中"),
    ("expired", "期限切れ"),
)

PUBLISH_STATUS = (("active", "公開中"), ("inactive", "非公開"))

SMOKING_OPTIONS = (
    ("non_smoking", "禁煙"),
    ("separated", "分煙"),
    ("smoking_allowed", "喫煙可"),
    ("electronic_only", "電子のみ"),
)

HOLIDAY_OTHER = "その他"
HOLIDAY_OPTIONS = tuple(label[0] for _, label in WEEKDAYS) + ("祝日", "年末年始", "不定休", HOLIDAY_OTHER)

DRINK_TYPES = (("alcohol", "アルコール"), ("soft_drink", "ソフトドリンク"), ("other", "その他"))

ADMIN_ROLES = (("sysadmin", "システム管理者"), ("operator", "オペレーター"))

SERVICE_TYPES = (
    ("visiting-nursing", "訪問看護"),
    ("day-service", "デイサービス"),
    ("home-help", "訪問介護"),
    ("care-management", "居宅介護支援"),
    ("group-home", "グループホーム"),
    ("rehabilitation", "リハビリテーション"),
)

STAFF_ROLES = (
    ("nurse", "看護師"),
    ("care-worker", "介護職員"),
    ("physical-therapist", "理学療法士"),
    ("occupational-therapist", "作業療法士"),
    ("speech-therapist", "言語聴覚士"),
    ("social-worker", "社会福祉士"),
    ("nutritionist", "栄養士"),
    ("admin", "事務"),
    ("other", "その他"),
)

EMPLOYMENT_TYPES = (
    ("full-time", "常勤"),
    ("part-time", "非常勤"),
    ("contract", "契約"),
    ("temporary", "派遣"),
)

QUALIFICATIONS = ("看護師", "准看護師", "介護福祉士", "社会福祉士", "ケアマネジャー", "初任者研修")

CARE_LEVELS = (
    ("support1", "要支援1"),
    ("support2", "要支援2"),
    ("care1", "要介護1"),
    ("care2", "要介護2"),
    ("care3", "要介護3"),
    ("care4", "要介護4"),
    ("care5", "要介護5"),
)

GENDERS = (("male", "男性"), ("female", "女性"), ("other", "その他"))

ACTIVE_STATUS = (("active", "有効"), ("inactive", "無効"), ("suspended", "停止中"))

COUPON_USAGE_PAIR_ERROR = "クーポン利用時間は開始・終了をセットで入力してください"
OPERATING_HOURS_PAIR_ERROR = "営業時間は開始・終了をセットで入力してください"


def _address_fields(section: str = "住所") -> list[dict[str, Any]]:
    return [
        field("postalCode", "郵便番号", "postal_code", required=True, placeholder="1234567", section=section),
        field("prefecture", "都道府県", "enum", required=True, enum=PREFECTURES,
              required_message="都道府県を選択してください", section=section),
        field("city", "市区町村", required=True, max_length=50, section=section),
        field("address1", "番地以降", required=True, max_length=100, section=section),
        field("address2", "建物名", max_length=100, section=section),
    ]


def _full_address(values: dict[str, Any]) -> str:
    return "".join(str(values.get(key) or "") for key in ("prefecture", "city", "address1", "address2"))


# 事業者


def _merchant_fields() -> tuple[dict[str, Any], ...]:
    return (
        field("name", "事業者名", required=True, max_length=50, section="基本情報"),
        field("nameKana", "事業者名（カナ）", "kana", required=True, max_length=100, section="基本情報"),
        field("representativeNameLast", "代表者名（姓）", required=True, max_length=25, section="代表者"),
        field("representativeNameFirst", "代表者名（名）", required=True, max_length=25, section="代表者"),
        field("representativeNameLastKana", "代表者名（姓・カナ）", "kana", required=True, max_length=50,
              section="代表者"),
        field("representativeNameFirstKana", "代表者名（名・カナ）", "kana", required=True, max_length=50,
              section="代表者"),
        field("representativePhone", "電話番号", "tel", required=True, section="代表者"),
        field("email", "メールアドレス", "email", required=True, max_length=255, api_key="accountEmail",
              section="アカウント"),
        field("issueAccount", "アカウントを発行する", "boolean", section="アカウント"),
        *_address_fields(),
        field("status", "ステータス", "enum", enum=MERCHANT_STATUS, default="registering", section="管理"),
    )


MERCHANT = EntityConfig(
    name="merchant",
    label="事業者",
    resource="merchants",
    route="/merchants",
    fields=_merchant_fields(),
    update_method="PUT",
    conflict_field="email",
    list_columns=(("name", "事業者名"), ("accountEmail", "メールアドレス"), ("prefecture", "都道府県")),
    status_options=MERCHANT_STATUS,
    create_message="事業者を登録しました",
    update_message="事業者を更新しました",
    delete_message="事業者を削除しました",
)


# 店舗


def _shop_fields() -> tuple[dict[str, Any], ...]:
    return (
        field("merchantId", "事業者", "reference", required=True, reference="merchants", modal=True,
              display_key="merchantName", id_format="uuid", required_message="事業者を選択してください",
              section="基本情報"),
        field("genreId", "ジャンル", "reference", required=True, reference="genres", id_format="uuid",
              required_message="ジャンルを選択してください", section="基本情報"),
        field("name", "店舗名", required=True, max_length=100, section="基本情報"),
        field("nameKana", "店舗名（カナ）", "kana", max_length=100, section="基本情報"),
        field("phone", "電話番号", "tel", required=True, section="基本情報"),
        field("shopEmail", "店舗メールアドレス", "email", max_length=255, section="基本情報"),
        *_address_fields(),
        field("coordinates", "緯度経度（貼り付け）", submit=False, placeholder="35.681236, 139.767125",
              description="Google マップでコピーした「緯度, 経度」をそのまま貼り付けられます", section="位置情報"),
        field("latitude", "緯度", "number", required=True, min=-90, max=90, section="位置情報"),
        field("longitude", "経度", "number", required=True, min=-180, max=180, section="位置情報"),
        field("description", "店舗紹介説明", "textarea", max_length=500, section="店舗情報"),
        field("details", "詳細情報", "textarea", max_length=1000, section="店舗情報"),
        field("homepageUrl", "ホームページ", "url", section="店舗情報"),
        field("sceneIds", "利用シーン", "checkboxes", reference="scenes", section="店舗情報"),
        field("customSceneText", "具体的な利用シーン", max_length=100, section="店舗情報"),
        field("holidays", "定休日", "checkboxes", enum=HOLIDAY_OPTIONS, join=",", section="営業情報"),
        field("customHolidayText", "その他の定休日", submit=False, section="営業情報"),
        field("smokingType", "喫煙タイプ", "enum", required=True, enum=SMOKING_OPTIONS,
              required_message="喫煙タイプを選択してください", section="営業情報"),
        field("couponUsageStart", "クーポン利用開始時刻", "time", section="クーポン利用"),
        field("couponUsageEnd", "クーポン利用終了時刻", "time", section="クーポン利用"),
        field("couponUsageDays", "クーポン利用可能曜日", "checkboxes", enum=COUPON_USAGE_DAYS, join=",",
              section="クーポン利用"),
        field("paymentCash", "現金", "boolean", default=True, section="決済方法"),
        field("paymentSaicoin", "さいコイン", "boolean", section="決済方法"),
        field("paymentTamapon", "たまポン", "boolean", section="決済方法"),
        field("createAccount", "店舗アカウントを発行する", "boolean", section="アカウント"),
        field("accountEmail", "アカウントメールアドレス", "email", max_length=255, section="アカウント"),
        field("password", "パスワード", "password", section="アカウント"),
        field("status", "ステータス", "enum", enum=SHOP_STATUS, default="registering", section="管理"),
    )


def _shop_account_fields(fields: list[dict[str, Any]], account: AccountContext) -> list[dict[str, Any]]:
    if not account.is_merchant:
        return fields
    adjusted = []
    for spec in fields:
        if spec["key"] == "merchantId":
            spec = {**spec, "editable": False, "modal": False, "required_on": (), "required": False}
        adjusted.append(spec)
    return adjusted


def _shop_initial_values(values: dict[str, Any], account: AccountContext) -> None:
    if account.is_merchant and account.merchant_id:
        values["merchantId"] = account.merchant_id


def parse_coordinates(text: str) -> tuple[float, float] | None:
    """「35.68, 139.76」形式の文字列を緯度・経度に分ける。"""
    parts = [part.strip() for part in str(text or "").replace("、", ",").split(",")]
    if len(parts) != 2:
        return None
    try:
        latitude, longitude = float(parts[0]), float(parts[1])
    except ValueError:
        return None
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        return None
    return latitude, longitude


def _shop_normalize(values: dict[str, Any]) -> None:
    pasted = values.get("coordinates")
    if not pasted:
        return
    parsed = parse_coordinates(pasted)
    if parsed is None:
        return
    values["latitude"], values["longitude"] = parsed
    values["coordinates"] = ""


def _shop_from_record(values: dict[str, Any], record: dict[str, Any]) -> None:
    raw = record.get("holidays") or ""
    items = [item.strip() for item in str(raw).split(",") if item.strip()]
    holidays: list[str] = []
    for item in items:
        if item.startswith(f"{HOLIDAY_OTHER}:"):
            holidays.append(HOLIDAY_OTHER)
            values["customHolidayText"] = item.split(":", 1)[1]
        else:
            holidays.append(item)
    values["holidays"] = holidays
    scenes = record.get("sceneIds")
    if scenes is None and isinstance(record.get("scenes"), list):
        scenes = [item.get("id") for item in record["scenes"] if isinstance(item, dict)]
    values["sceneIds"] = [str(item) for item in scenes or []]
    values["createAccount"] = bool(record.get("accountEmail"))
    merchant = record.get("merchant")
    if isinstance(merchant, dict) and merchant.get("name"):
        values["merchantName"] = str(merchant["name"])


def _known_account_emails(ctx: ValidationContext) -> set[str]:
    emails = set()
    for shop in ctx.references.get("shops", []):
        if isinstance(shop, dict) and shop.get("accountEmail"):
            emails.add(str(shop["accountEmail"]).strip().lower())
    return emails


def _shop_cross_validate(values: dict[str, Any], ctx: ValidationContext) -> dict[str, str]:
    errors: dict[str, str] = {}
    if values.get("createAccount"):
        email = str(values.get("accountEmail") or "").strip()
        original = str(ctx.original.get("accountEmail") or "").strip().lower()
        if not email:
            errors["accountEmail"] = "メールアドレスは必須です"
        elif email.lower() != original and email.lower() in _known_account_emails(ctx):
            errors["accountEmail"] = "このメールアドレスは既に使用されています"
        if ctx.mode == "create":
            message = validators.first_error(
                values.get("password"), validators.required("パスワード"), validators.min_length(8, "パスワード")
            )
            if message:
                errors["password"] = message
    if HOLIDAY_OTHER in (values.get("holidays") or []):
        message = validators.first_error(
            values.get("customHolidayText"),
            validators.required("その他の定休日", "その他の定休日の内容を入力してください"),
            validators.max_length(100, "その他の定休日"),
        )
        if message:
            errors["customHolidayText"] = message
    return errors


def _shop_finalize(payload: dict[str, Any], values: dict[str, Any], mode: str) -> dict[str, Any]:
    holidays = []
    for item in values.get("holidays") or []:
        custom = str(values.get("customHolidayText") or "").strip()
        holidays.append(f"{HOLIDAY_OTHER}:{custom}" if item == HOLIDAY_OTHER and custom else item)
    payload["holidays"] = ",".join(holidays)
    payload["address"] = _full_address(values)
    if not values.get("createAccount"):
        payload["accountEmail"] = None
        payload.pop("password", None)
    for key in ("couponUsageStart", "couponUsageEnd"):
        if not str(values.get(key) or "").strip():
            payload[key] = None
    return payload


SHOP = EntityConfig(
    name="shop",
    label="店舗",
    resource="shops",
    route="/shops",
    fields=_shop_fields(),
    update_method="PATCH",
    conflict_field="accountEmail",
    references=(
        ReferenceSpec("genres", "genres", "ジャンル"),
        ReferenceSpec("scenes", "scenes", "利用シーン"),
        ReferenceSpec("shops", "shops", "店舗"),
    ),
    pairs=(("couponUsageStart", "couponUsageEnd", COUPON_USAGE_PAIR_ERROR),),
    list_columns=(("name", "店舗名"), ("phone", "電話番号"), ("address", "住所")),
    status_options=SHOP_STATUS,
    create_message="店舗を作成しました",
    update_message="店舗を更新しました",
    delete_message="店舗を削除しました",
    cross_validate=_shop_cross_validate,
    account_fields=_shop_account_fields,
    initial_values=_shop_initial_values,
    normalize=_shop_normalize,
    from_record=_shop_from_record,
    finalize_payload=_shop_finalize,
)

MERCHANT_COPY_FIELDS = ("name", "nameKana", "postalCode", "prefecture", "city", "address1", "address2")


def copy_from_merchant(values: dict[str, Any], merchant: dict[str, Any]) -> list[str]:
    """選択済み事業者の名称・住所を店舗フォームへ写す。写したキーを返す。"""
    copied = []
    for key in MERCHANT_COPY_FIELDS:
        value = merchant.get(key)
        if value in (None, ""):
            continue
        values[key] = str(value)
        copied.append(key)
    return copied


# クーポン


def _coupon_fields() -> tuple[dict[str, Any], ...]:
    return (
        field("shopId", "店舗", "reference", required=True, reference="shops", modal=True,
              display_key="shopName", id_format="uuid", required_message="店舗を選択してください"),
        field("couponName", "クーポン名", required=True, max_length=15, api_key="title"),
        field("couponContent", "クーポン内容", "textarea", required=True, max_length=100, api_key="description"),
        field("couponConditions", "利用条件", "textarea", max_length=100, api_key="conditions"),
        field("drinkType", "ドリンク種別", "enum", enum=DRINK_TYPES),
        field("publishStatus", "公開ステータス", "enum", required=True, enum=PUBLISH_STATUS, default="inactive",
              required_message="公開ステータスを選択してください"),
    )


def _coupon_account_fields(fields: list[dict[str, Any]], account: AccountContext) -> list[dict[str, Any]]:
    if not account.is_shop:
        return fields
    return [
        {**spec, "editable": False, "modal": False} if spec["key"] == "shopId" else spec
        for spec in fields
    ]


def _coupon_initial_values(values: dict[str, Any], account: AccountContext) -> None:
    if account.is_shop and account.shop_id:
        values["shopId"] = account.shop_id


def _coupon_finalize(payload: dict[str, Any], values: dict[str, Any], mode: str) -> dict[str, Any]:
    payload["isPublic"] = values.get("publishStatus") == "active"
    if mode == "create":
        payload.setdefault("status", "pending")
    return payload


COUPON = EntityConfig(
    name="coupon",
    label="クーポン",
    resource="coupons",
    route="/coupons",
    fields=_coupon_fields(),
    update_method="PATCH",
    confirm=True,
    conflict_field="couponName",
    list_columns=(("title", "クーポン名"), ("description", "内容"), ("status", "ステータス")),
    status_options=COUPON_STATUS,
    create_message="クーポンを登録しました",
    update_message="クーポンを更新しました",
    delete_message="クーポンを削除しました",
    account_fields=_coupon_account_fields,
    initial_values=_coupon_initial_values,
    finalize_payload=_coupon_finalize,
)


# 管理者アカウント


def _admin_cross_validate(values: dict[str, Any], ctx: ValidationContext) -> dict[str, str]:
    password = values.get("password") or ""
    confirm = values.get("passwordConfirm") or ""
    if (password or confirm) and password != confirm:
        return {"passwordConfirm": "パスワードが一致しません"}
    return {}


ADMIN = EntityConfig(
    name="admin",
    label="管理者",
    resource="admins",
    route="/admins",
    fields=(
        field("role", "権限", "enum", required=True, enum=ADMIN_ROLES, required_message="権限を選択してください"),
        field("name", "氏名", required=True, max_length=50),
        field("email", "メールアドレス", "email", required=True, max_length=255),
        field("password", "パスワード", "password", required_on=("create",)),
        field("passwordConfirm", "パスワード（確認）", "password", required_on=("create",), submit=False),
    ),
    update_method="PATCH",
    confirm=True,
    list_columns=(("name", "氏名"), ("email", "メールアドレス"), ("role", "権限")),
    cross_validate=_admin_cross_validate,
)


# 法人・事業所・職員・利用者


def _company_cross_validate(values: dict[str, Any], ctx: ValidationContext) -> dict[str, str]:
    message = validators.digits(13, "法人番号")(values.get("corporateNumber"))
    return {"corporateNumber": message} if message else {}


COMPANY = EntityConfig(
    name="company",
    label="法人",
    resource="companies",
    route="/companies",
    fields=(
        field("name", "会社名", required=True, max_length=100),
        field("nameKana", "会社名（カナ）", "kana", required=True, max_length=100),
        field("corporateNumber", "法人番号", placeholder="13桁"),
        field("address", "住所", required=True, max_length=200),
        field("phoneNumber", "電話番号", "tel", required=True),
        field("email", "メールアドレス", "email", required=True),
        field("representativeName", "代表者名", required=True, max_length=50),
        field("representativePosition", "役職", max_length=50),
        field("businessType", "事業種別", required=True, max_length=100),
        field("establishedDate", "設立日", "date"),
        field("capital", "資本金", max_length=50),
        field("employeeCount", "従業員数", "integer", min=1),
        field("notes", "備考", "textarea", max_length=1000),
    ),
    list_columns=(("name", "会社名"), ("representativeName", "代表者名"), ("phoneNumber", "電話番号")),
    cross_validate=_company_cross_validate,
)


def _office_fields(section: str = "") -> list[dict[str, Any]]:
    return [
        field("name", "事業所名", required=True, max_length=100, section=section),
        field("companyId", "法人", "reference", required=True, reference="companies", modal=True,
              display_key="companyName", required_message="法人を選択してください", section=section),
        field("address", "住所", required=True, max_length=200, section=section),
        field("phoneNumber", "電話番号", "tel", required=True, section=section),
        field("faxNumber", "FAX番号", "tel", section=section),
        field("email", "メールアドレス", "email", section=section),
        field("website", "ウェブサイト", "url", section=section),
        field("serviceType", "サービス種別", "enum", required=True, enum=SERVICE_TYPES,
              required_message="サービス種別を選択してください", section=section),
        field("establishedDate", "開設日", "date", required=True, section=section),
        field("capacity", "定員", "integer", required=True, min=1, max=9999, section=section),
        *operating_hours_fields(),
        field("description", "説明", "textarea", max_length=1000, section=section),
        field("notes", "備考", "textarea", max_length=1000, section=section),
        field("status", "ステータス", "enum", enum=ACTIVE_STATUS, default="active", section=section),
    ]


def _operating_hours_pairs(prefix: str = "operatingHours") -> tuple[tuple[str, str, str], ...]:
    return tuple(
        (f"{prefix}.{day}.openTime", f"{prefix}.{day}.closeTime", OPERATING_HOURS_PAIR_ERROR)
        for day, _ in WEEKDAYS
    )


def _office_cross_validate(values: dict[str, Any], ctx: ValidationContext) -> dict[str, str]:
    errors: dict[str, str] = {}
    for day, day_label in WEEKDAYS:
        base = f"operatingHours.{day}"
        if not get_nested_value(values, f"{base}.isOpen"):
            continue
        open_time = get_nested_value(values, f"{base}.openTime")
        close_time = get_nested_value(values, f"{base}.closeTime")
        if validators.is_blank(open_time):
            errors[f"{base}.openTime"] = f"{day_label}の開始時刻を入力してください"
        elif not validators.is_blank(close_time) and str(open_time) >= str(close_time):
            errors[f"{base}.closeTime"] = f"{day_label}の終了時刻は開始時刻より後にしてください"
    return errors


OFFICE = EntityConfig(
    name="office",
    label="事業所",
    resource="offices",
    route="/offices",
    fields=tuple(_office_fields()),
    references=(ReferenceSpec("companies", "companies", "法人"),),
    pairs=_operating_hours_pairs(),
    list_columns=(("name", "事業所名"), ("address", "住所"), ("phoneNumber", "電話番号")),
    cross_validate=_office_cross_validate,
)


STAFF = EntityConfig(
    name="staff",
    label="職員",
    resource="staff",
    route="/staff",
    fields=(
        field("name", "名前", required=True, max_length=50),
        field("nameKana", "フリガナ", "kana", required=True, max_length=50),
        field("email", "メールアドレス", "email", required=True),
        field("phoneNumber", "電話番号", "tel", required=True),
        field("role", "職種", "enum", required=True, enum=STAFF_ROLES, required_message="職種を選択してください"),
        field("position", "役職", max_length=50),
        field("employmentType", "雇用形態", "enum", required=True, enum=EMPLOYMENT_TYPES,
              required_message="雇用形態を選択してください"),
        field("qualifications", "資格", "checkboxes", enum=QUALIFICATIONS),
        field("hireDate", "入職日", "date", required=True),
        field("status", "ステータス", "enum", enum=(("active", "在職"), ("inactive", "退職"),
                                                   ("on-leave", "休職"), ("terminated", "契約終了")),
              default="active"),
        field("notes", "備考", "textarea", max_length=500),
    ),
    list_columns=(("name", "名前"), ("role", "職種"), ("email", "メールアドレス")),
)


def _user_cross_validate(values: dict[str, Any], ctx: ValidationContext) -> dict[str, str]:
    message = validators.not_future("生年月日")(values.get("birthDate"))
    return {"birthDate": message} if message else {}


USER = EntityConfig(
    name="user",
    label="利用者",
    resource="users",
    route="/users",
    fields=(
        field("name", "名前", required=True, max_length=50, section="基本情報"),
        field("nameKana", "フリガナ", "kana", required=True, max_length=50, section="基本情報"),
        field("birthDate", "生年月日", "date", required=True, section="基本情報"),
        field("gender", "性別", "enum", required=True, enum=GENDERS, required_message="性別を選択してください",
              section="基本情報"),
        field("age", "年齢", "integer", required=True, min=0, max=120, section="基本情報"),
        field("phoneNumber", "電話番号", "tel", section="基本情報"),
        field("address", "住所", max_length=200, section="基本情報"),
        field("careLevel", "要介護度", "enum", enum=CARE_LEVELS, section="介護情報"),
        field("insuranceNumber", "保険証番号", required=True, max_length=20, section="介護情報"),
        field("startDate", "利用開始日", "date", required=True, section="介護情報"),
        field("status", "ステータス", "enum", enum=(("active", "利用中"), ("inactive", "休止"),
                                                   ("discharged", "退所"), ("deceased", "死亡")),
              default="active", section="介護情報"),
        field("emergencyContact.name", "緊急連絡先氏名", required=True, max_length=50,
              required_message="緊急連絡先の氏名は必須です", section="緊急連絡先"),
        field("emergencyContact.relationship", "続柄", required=True, max_length=20, section="緊急連絡先"),
        field("emergencyContact.phoneNumber", "緊急連絡先電話番号", "tel", required=True,
              required_message="緊急連絡先の電話番号は必須です", section="緊急連絡先"),
        field("emergencyContact.address", "緊急連絡先住所", max_length=200, section="緊急連絡先"),
        field("medicalHistory", "医療情報", "textarea", max_length=1000, section="その他"),
        field("notes", "備考", "textarea", max_length=500, section="その他"),
    ),
    confirm=True,
    conflict_field="insuranceNumber",
    list_columns=(("name", "名前"), ("nameKana", "フリガナ"), ("insuranceNumber", "保険証番号")),
    cross_validate=_user_cross_validate,
)


def _facility_manager_fields(section: str = "") -> list[dict[str, Any]]:
    return [
        field("name", "名前", required=True, max_length=50, section=section),
        field("nameKana", "フリガナ", "kana", required=True, max_length=50, section=section),
        field("email", "メールアドレス", "email", required=True, section=section),
        field("phoneNumber", "電話番号", "tel", required=True, section=section),
        field("position", "役職", max_length=50, section=section),
        field("status", "ステータス", "enum", enum=ACTIVE_STATUS, default="active", section=section),
        field("notes", "備考", "textarea", max_length=500, section=section),
    ]


FACILITY_MANAGER = EntityConfig(
    name="facility_manager",
    label="事業所管理者",
    resource="facility-managers",
    route="/facility_managers",
    fields=tuple(_facility_manager_fields()),
    redirect_on_success=False,
    list_columns=(("name", "名前"), ("email", "メールアドレス"), ("position", "役職")),
)


# 事業所と管理者の同時登録


def _namespaced(prefix: str, specs: list[dict[str, Any]], section: str) -> list[dict[str, Any]]:
    result = []
    for spec in specs:
        item = dict(spec)
        item["key"] = f"{prefix}.{spec['key']}"
        if spec.get("display_key"):
            item["display_key"] = f"{prefix}.{spec['display_key']}"
        item["section"] = section
        result.append(item)
    return result


def _office_with_manager_fields() -> tuple[dict[str, Any], ...]:
    office = [spec for spec in _office_fields() if spec["key"] != "status"]
    return (
        *_namespaced("office", office, "事業所情報"),
        *_namespaced("manager", _facility_manager_fields(), "管理者情報"),
    )


OFFICE_WITH_MANAGER = EntityConfig(
    name="office_with_manager",
    label="事業所と管理者",
    resource="offices/with-manager",
    route="/offices",
    fields=_office_with_manager_fields(),
    gate_on_required=True,
    conflict_field="manager.email",
    references=(ReferenceSpec("companies", "companies", "法人"),),
    pairs=_operating_hours_pairs("office.operatingHours"),
    parts=(("office", "office"), ("manager", "facility_manager")),
    create_message="事業所と管理者を登録しました",
)


ENTITIES: dict[str, EntityConfig] = {
    config.name: config
    for config in (
        MERCHANT,
        SHOP,
        COUPON,
        ADMIN,
        COMPANY,
        OFFICE,
        STAFF,
        USER,
        FACILITY_MANAGER,
        OFFICE_WITH_MANAGER,
    )
}

ROUTES: dict[str, EntityConfig] = {config.route.strip("/"): config for config in ENTITIES.values() if not config.parts}


def entity_for_route(segment: str) -> EntityConfig | None:
    if segment == "office_with_manager":
        return OFFICE_WITH_MANAGER
    return ROUTES.get(segment)


def default_values_for(config: EntityConfig, account: AccountContext, defaults: dict[str, Any]) -> dict[str, Any]:
    if config.initial_values:
        config.initial_values(defaults, account)
    return defaults
