from __future__ import annotations

import json
import logging
from datetime import date, datetime, time
from enum import Enum
from pathlib import PurePath
from typing import Any

import rfc8785
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# JSON-primitive types that rfc8785 can serialize directly.
_PASSTHROUGH_TYPES = (bool, int, float, str, type(None))


def _normalize_for_jcs(value: Any) -> bool | int | float | str | None | list[Any] | dict[str, Any]:
    """Recursively convert Python/Pydantic types into JSON-primitive types.

    rfc8785.dumps only accepts: bool, int, float, str, None, list/tuple, dict.
    Pydantic models are dumped by alias so the canonical form matches what is
    written to disk.

    Args:
        value: Any Python value to normalize for JCS serialization.

    Returns:
        A JSON-primitive structure suitable for rfc8785.dumps.

    Raises:
        TypeError: If value contains a type that cannot be converted to JSON.
    """
    if isinstance(value, _PASSTHROUGH_TYPES):
        return value

    if isinstance(value, BaseModel):
        return _normalize_for_jcs(value.model_dump(mode="json", by_alias=True))

    if isinstance(value, dict):
        return {str(k): _normalize_for_jcs(v) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_normalize_for_jcs(item) for item in value]

    if isinstance(value, Enum):
        return _normalize_for_jcs(value.value)

    if isinstance(value, (datetime, date, time)):
        return value.isoformat()

    if isinstance(value, PurePath):
        return value.as_posix()

    raise TypeError(
        f"Cannot serialize type {type(value).__name__} to canonical JSON. "
        f"Convert to a JSON-compatible type first."
    )


def to_canonical_json(value: Any) -> str:
    """Serialize a value to deterministic, byte-for-byte reproducible JSON per RFC 8785.

    Args:
        value: Any Python value including Pydantic models.

    Returns:
        A UTF-8 string containing the canonicalized JSON representation.

    Raises:
        TypeError: If value contains an unsupported type.
        rfc8785.CanonicalizationError: If rfc8785 rejects the normalized value.
    """
    normalized = _normalize_for_jcs(value)
    return rfc8785.dumps(normalized).decode("utf-8")


def render_json_document(value: Any) -> str:
    """Render the human-facing on-disk form: two-space indent, key order kept, trailing newline."""
    return json.dumps(_normalize_for_jcs(value), indent=2, ensure_ascii=False) + "\n"


def strip_bom(text: str) -> str:
    while text.startswith("\ufeff"):
        text = text[1:]
    return text
