"""Declarative field mapping: reshape arbitrary upstream payloads.

A mapping rule reads a dot-delimited source path from the raw record,
optionally transforms the value and writes it under a target key. The
engine knows nothing about fuel or work-order records; converters call it
first and then read the canonical keys out of the result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_MISSING = object()


class Transform(str, Enum):
    NONE = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TRIM = "trim"
    PARSE_DATE = "parse_date"
    PARSE_NUMBER = "parse_number"


class FieldMapping(BaseModel):
    """One (source path, target field, transform) rule."""

    model_config = ConfigDict(populate_by_name=True)

    source: str = Field(validation_alias=AliasChoices("source", "source_field", "sourceField"))
    target: str = Field(validation_alias=AliasChoices("target", "target_field", "targetField"))
    transform: Transform = Field(
        default=Transform.NONE,
        validation_alias=AliasChoices("transform", "transformation"),
    )
    default_value: Any = Field(
        default=None,
        validation_alias=AliasChoices("default_value", "defaultValue"),
    )


def parse_number(value: Any) -> Optional[int | float]:
    """Coerce to int when integral, float otherwise; None when unparseable."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return None


def parse_date(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO-8601 strings or epoch seconds; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, UTC)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def _string_only(fn: Callable[[str], str]) -> Callable[[Any], Any]:
    return lambda value: fn(value) if isinstance(value, str) else value


_TRANSFORMS: dict[Transform, Callable[[Any], Any]] = {
    Transform.NONE: lambda value: value,
    Transform.UPPERCASE: _string_only(str.upper),
    Transform.LOWERCASE: _string_only(str.lower),
    Transform.TRIM: _string_only(str.strip),
    Transform.PARSE_DATE: parse_date,
    Transform.PARSE_NUMBER: parse_number,
}


def apply_transform(value: Any, transform: Transform) -> Any:
    return _TRANSFORMS[transform](value)


def get_nested_value(data: Any, path: str) -> Any:
    """Follow a dot-delimited path; returns the _MISSING sentinel when any step is absent."""
    current = data
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return _MISSING
        current = current[key]
    return current


def apply_field_mappings(rules: list[FieldMapping], payload: dict[str, Any]) -> dict[str, Any]:
    """Return a shallow copy of *payload* with every resolvable rule's target written in."""
    result = dict(payload)
    for rule in rules:
        value = get_nested_value(payload, rule.source)
        if value is _MISSING:
            if rule.default_value is None:
                continue
            value = rule.default_value
        result[rule.target] = apply_transform(value, rule.transform)
    return result
