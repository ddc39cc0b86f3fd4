"""Reusable input validators and normalizers.

Used by the pydantic schemas (as `field_validator` bodies) and by the
services that receive raw values from Paystack metadata or the database.
Each `validate_*` returns the normalized value or raises ValueError.
"""

import re

PHONE_REGEX = re.compile(r"^\+[1-9]\d{7,14}$")  # E.164 format
CHINA_MOBILE_REGEX = re.compile(r"^\+86(1[3-9]\d{9})$")
NIN_REGEX = re.compile(r"^\d{11}$")
ACCOUNT_NUMBER_REGEX = re.compile(r"^\d{10}$")


def clean_text(value: str | None, max_length: int = 5000) -> str | None:
    """Trim whitespace; empty becomes None."""
    if value is None:
        return None
    value = value.strip()
    if len(value) > max_length:
        raise ValueError(f"Text too long (max {max_length} characters)")
    return value or None


def validate_whatsapp(value: str) -> str:
    """Normalize a WhatsApp number to E.164.

    Accepts international numbers (+234..., +86...) and Nigerian local
    numbers written as 0XXXXXXXXXX or 234XXXXXXXXXX.
    """
    if not value:
        raise ValueError("WhatsApp number is required")

    value = re.sub(r"[\s\-()]", "", value)

    if value.startswith("00"):
        value = "+" + value[2:]
    elif value.startswith("0") and len(value) == 11:
        value = "+234" + value[1:]
    elif value.startswith("234") and len(value) == 13:
        value = "+" + value

    if not PHONE_REGEX.match(value):
        raise ValueError("Invalid WhatsApp number (use +2348012345678)")

    return value


def normalize_china_phone(value: str | None) -> str:
    raw = re.sub(r"[\s-]", "", (value or "").strip())
    if not raw:
        return ""
    if raw.startswith("+86"):
        return raw
    if raw.startswith("86"):
        return "+" + raw
    return raw


def is_valid_china_mobile(value: str | None) -> bool:
    return bool(CHINA_MOBILE_REGEX.match(normalize_china_phone(value)))


def validate_china_phone(value: str) -> str:
    normalized = normalize_china_phone(value)
    if not CHINA_MOBILE_REGEX.match(normalized):
        raise ValueError("Enter a valid China mobile number (+86 1XX XXXX XXXX)")
    return normalized


def validate_nin(value: str) -> str:
    value = re.sub(r"\s", "", value or "")
    if not NIN_REGEX.match(value):
        raise ValueError("NIN must be exactly 11 digits")
    return value


def validate_account_number(value: str) -> str:
    value = (value or "").strip()
    if not ACCOUNT_NUMBER_REGEX.match(value):
        raise ValueError("Account number must be 10 digits")
    return value
