"""Phone number normalization between national display format and E.164-ish storage."""
from __future__ import annotations

import re

DEFAULT_COUNTRY_CODE = "359"

_PUNCTUATION = re.compile(r"[\s()\-]")


def _clean(phone: str) -> str:
    return _PUNCTUATION.sub("", phone or "")


def national_to_international(phone: str, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """``0898 788 555`` -> ``+359898788555``; ``00359...`` -> ``+359...``."""
    cleaned = _clean(phone)
    if not cleaned:
        return ""
    if cleaned.startswith("00"):
        return "+" + cleaned[2:]
    if cleaned.startswith("0"):
        return f"+{country_code}{cleaned[1:]}"
    return cleaned


def international_to_national(phone: str, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """``+359898788555`` -> ``0898788555``. Anything else passes through cleaned."""
    cleaned = _clean(phone)
    if not cleaned:
        return ""
    prefix = f"+{country_code}"
    if cleaned.startswith(prefix):
        return "0" + cleaned[len(prefix):]
    return cleaned
