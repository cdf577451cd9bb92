"""
Utility functions for timestamps and phone numbers.
"""
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote


def utc_now() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_phone(phone: Optional[str], country_code: str = "+254") -> str:
    """
    Normalize a seller phone number to international digits (no leading +).

    Local numbers with a leading 0 have it replaced by the country code;
    numbers that already start with the country code are kept as they are.
    """
    digits = re.sub(r"\D", "", str(phone or ""))
    if not digits:
        return ""
    cc = re.sub(r"\D", "", country_code or "")
    if cc and digits.startswith(cc) and len(digits) == len(cc) + 9:
        return digits
    if digits.startswith("0") and len(digits) == 10:
        return cc + digits[1:]
    return cc + digits


def whatsapp_link(phone: Optional[str], country_code: str, title: str = "") -> Optional[str]:
    """Build the messaging deep link buyers use to contact a seller."""
    number = format_phone(phone, country_code)
    if not number:
        return None
    link = f"https://wa.me/{number}"
    if title:
        link += "?text=" + quote(f'Hi! I\'m interested in your listing: "{title}". Is it still available?')
    return link
