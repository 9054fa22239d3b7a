from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


def deep_merge(base: Mapping[str, Any], override: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Recursively merge two mappings.

    - Dicts are merged
    - All other values (including lists) are replaced
    - If override is None, returns a copy of base
    """
    result: Dict[str, Any] = dict(base)

    if override is None:
        return result

    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def first_present(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the value of the first key that is present and not None/empty.

    Used to read per-call parameters that different telephony providers
    spell differently (``originLang`` vs ``origin_lang``).

        >>> first_present({"a": None, "b": "x"}, "a", "b")
        'x'
    """
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None
