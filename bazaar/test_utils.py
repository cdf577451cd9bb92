"""
Tests for timestamp and phone helpers.
"""
from datetime import datetime, timedelta, timezone

from .utils import format_phone, parse_iso, to_iso, whatsapp_link


def test_iso_round_trip_keeps_instant():
    stamp = datetime(2024, 6, 15, 12, 30, 45, 123456, tzinfo=timezone.utc)
    assert parse_iso(to_iso(stamp)) == stamp


def test_naive_timestamps_are_utc():
    """Naive stored values are interpreted as UTC."""
    parsed = parse_iso("2024-06-15T12:00:00")
    assert parsed.tzinfo is not None
    assert parsed == datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_to_iso_normalizes_offsets():
    nairobi = timezone(timedelta(hours=3))
    assert to_iso(datetime(2024, 6, 15, 15, 0, tzinfo=nairobi)) == "2024-06-15T12:00:00+00:00"
    assert to_iso(None) is None
    assert parse_iso("") is None


def test_phone_formatting():
    """Test phone normalization for the messaging link."""
    assert format_phone("0712345678") == "254712345678"
    assert format_phone("+254 712 345 678") == "254712345678"
    assert format_phone("712345678") == "254712345678"
    assert format_phone("0812345678", "+256") == "256812345678"
    assert format_phone("") == ""
    assert format_phone(None) == ""


def test_whatsapp_link():
    link = whatsapp_link("0712345678", "+254", "Wooden table")
    assert link.startswith("https://wa.me/254712345678?text=")
    assert "Wooden%20table" in link
    assert whatsapp_link("0712345678", "+254") == "https://wa.me/254712345678"
    assert whatsapp_link("", "+254", "x") is None
