"""snake_case <-> camelCase key conversion applied at the Supabase boundary.

Rows come back from PostgREST keyed in snake_case and are handed to callers
in camelCase; write payloads travel the opposite way.

Keys with a digit next to a letter do not always survive a round trip
(``field1_name`` -> ``field1Name`` -> ``field1_name`` works, ``field_1`` does
not camelize at all).
"""
from __future__ import annotations

import re
from typing import Any, Callable

_UPPER = re.compile(r"[A-Z]")
_UNDERSCORE_LETTER = re.compile(r"_([A-Za-z])")


def to_snake(name: str) -> str:
    """``organizationName`` -> ``organization_name``."""
    return _UPPER.sub(lambda match: "_" + match.group(0).lower(), name)


def to_camel(name: str) -> str:
    """``organization_name`` -> ``organizationName``."""
    return _UNDERSCORE_LETTER.sub(lambda match: match.group(1).upper(), name)


def convert_keys(value: Any, converter: Callable[[str], str]) -> Any:
    if isinstance(value, dict):
        return {
            (converter(key) if isinstance(key, str) else key): convert_keys(item, converter)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [convert_keys(item, converter) for item in value]
    return value


def keys_to_camel(value: Any) -> Any:
    return convert_keys(value, to_camel)


def keys_to_snake(value: Any) -> Any:
    return convert_keys(value, to_snake)


__all__ = ["to_snake", "to_camel", "convert_keys", "keys_to_camel", "keys_to_snake"]
