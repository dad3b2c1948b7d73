"""入力値の検証ルール。

各ルールは ``value -> str | None`` の純粋関数で、問題がなければ ``None``、
あればそのまま画面に出せるメッセージを返す。``first_error`` で合成すると
最初に失敗したルールのメッセージだけが採用される。
"""

from __future__ import annotations

import math
import re
from datetime import date
from typing import Any, Callable, Iterable
from urllib.parse import urlsplit

Rule = Callable[[Any], "str | None"]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{7}$")
PHONE_PATTERN = re.compile(r"^\d{10,11}$")
KANA_PATTERN = re.compile(r"^[ァ-ヶー\s　]+$")
TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)[A-Za-z\d]+$")
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def required(label: str, message: str | None = None) -> Rule:
    def rule(value: Any) -> str | None:
        if is_blank(value):
            return message or f"{label}は必須です"
        return None

    return rule


def max_length(limit: int, label: str) -> Rule:
    def rule(value: Any) -> str | None:
        if len(_text(value)) > limit:
            return f"{label}は{limit}文字以内で入力してください"
        return None

    return rule


def min_length(limit: int, label: str) -> Rule:
    def rule(value: Any) -> str | None:
        text = _text(value)
        if text and len(text) < limit:
            return f"{label}は{limit}文字以上で入力してください"
        return None

    return rule


def email(value: Any) -> str | None:
    text = _text(value).strip()
    if text and not EMAIL_PATTERN.match(text):
        return "有効なメールアドレスを入力してください"
    return None


def postal_code(value: Any) -> str | None:
    text = _text(value).strip()
    if text and not POSTAL_CODE_PATTERN.match(text):
        return "郵便番号は7桁の数字で入力してください"
    return None


def phone(value: Any) -> str | None:
    text = _text(value).strip()
    if text and not PHONE_PATTERN.match(text.replace("-", "")):
        return "有効な電話番号を入力してください（10-11桁の数字）"
    return None


def url(value: Any) -> str | None:
    text = _text(value).strip()
    if not text:
        return None
    parsed = urlsplit(text)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        return "有効なURLを入力してください"
    return None


def kana(label: str) -> Rule:
    def rule(value: Any) -> str | None:
        text = _text(value)
        if text.strip() and not KANA_PATTERN.match(text):
            return f"{label}は全角カタカナで入力してください"
        return None

    return rule


def time_hhmm(label: str) -> Rule:
    def rule(value: Any) -> str | None:
        text = _text(value).strip()
        if not text:
            return None
        if not TIME_PATTERN.match(text):
            return f"{label}はHH:MM形式で入力してください"
        hours, minutes = (int(part) for part in text.split(":"))
        if hours > 23 or minutes > 59:
            return f"{label}はHH:MM形式で入力してください"
        return None

    return rule


def date_iso(value: Any) -> str | None:
    text = _text(value).strip()
    if not text:
        return None
    if not DATE_PATTERN.match(text):
        return "日付の形式が正しくありません"
    try:
        date.fromisoformat(text)
    except ValueError:
        return "有効な日付を入力してください"
    return None


def password(value: Any) -> str | None:
    text = _text(value)
    if not text:
        return None
    if len(text) < 8:
        return "パスワードは8文字以上で入力してください"
    if not PASSWORD_PATTERN.match(text):
        return "パスワードは英数字混在で入力してください"
    return None


def number_range(label: str, minimum: float | None = None, maximum: float | None = None) -> Rule:
    def rule(value: Any) -> str | None:
        if value is None or value == "":
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return f"{label}は数値で入力してください"
        if not math.isfinite(number):
            return f"{label}は数値で入力してください"
        if minimum is not None and number < minimum:
            return f"{label}は{_fmt_number(minimum)}以上で入力してください"
        if maximum is not None and number > maximum:
            return f"{label}は{_fmt_number(maximum)}以下で入力してください"
        return None

    return rule


def integer(label: str) -> Rule:
    def rule(value: Any) -> str | None:
        if value is None or value == "" or isinstance(value, int):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not number.is_integer():
            return f"{label}は整数で入力してください"
        return None

    return rule


def digits(count: int, label: str) -> Rule:
    pattern = re.compile(rf"^\d{{{count}}}$")

    def rule(value: Any) -> str | None:
        text = _text(value).strip()
        if text and not pattern.match(text):
            return f"{label}は{count}桁の数字で入力してください"
        return None

    return rule


def not_future(label: str) -> Rule:
    def rule(value: Any) -> str | None:
        text = _text(value).strip()
        if not text or date_iso(text):
            return None
        if date.fromisoformat(text) > date.today():
            return f"{label}に未来の日付は指定できません"
        return None

    return rule


def uuid(value: Any) -> str | None:
    text = _text(value).strip()
    if text and not UUID_PATTERN.match(text):
        return "有効なIDを指定してください"
    return None


def one_of(label: str, choices: Iterable[str]) -> Rule:
    allowed = set(choices)

    def rule(value: Any) -> str | None:
        if is_blank(value):
            return None
        values = value if isinstance(value, (list, tuple)) else [value]
        if any(item not in allowed for item in values):
            return f"{label}を選択してください"
        return None

    return rule


def paired(first: Any, second: Any, message: str) -> str | None:
    """片方だけ入力されている場合にメッセージを返す。"""
    if is_blank(first) != is_blank(second):
        return message
    return None


def first_error(value: Any, *rules: Rule) -> str | None:
    for rule in rules:
        message = rule(value)
        if message:
            return message
    return None


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
