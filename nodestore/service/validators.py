from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, validators

from nodestore.service.errors import InvalidFieldValue

_ITEM_NAME_RE = re.compile(r"[A-Za-z0-9_.\-:]+")
_ENV_NAME_RE = re.compile(r"[A-Za-z0-9_\-]+")

_COOKBOOK = r"[A-Za-z0-9_.\-]+(?:::[A-Za-z0-9_.\-]+)?(?:@\d+\.\d+(?:\.\d+)?)?"
_RECIPE_RE = re.compile(rf"recipe\[{_COOKBOOK}\]")
_ROLE_RE = re.compile(r"role\[[A-Za-z0-9_.\-]+\]")
_BARE_RECIPE_RE = re.compile(_COOKBOOK)

_ATTRIBUTE_SCHEMA: Dict[str, Any] = {
    "$defs": {
        "tree": {
            "type": "object",
            "propertyNames": {"type": "string"},
            "additionalProperties": {"$ref": "#/$defs/value"},
        },
        "value": {
            "anyOf": [
                {"type": ["string", "number", "boolean", "null"]},
                {"type": "array", "items": {"$ref": "#/$defs/value"}},
                {"$ref": "#/$defs/tree"},
            ]
        },
    },
    "$ref": "#/$defs/tree",
}


def _is_finite_number(checker: Any, instance: Any) -> bool:
    # NaN and Infinity have no JSON encoding
    if not Draft202012Validator.TYPE_CHECKER.is_type(instance, "number"):
        return False
    return not isinstance(instance, float) or math.isfinite(instance)


_AttributeValidator = validators.extend(
    Draft202012Validator,
    type_checker=Draft202012Validator.TYPE_CHECKER.redefine("number", _is_finite_number),
)
_ATTRIBUTE_VALIDATOR = _AttributeValidator(_ATTRIBUTE_SCHEMA)


def valid_item_name(name: str) -> bool:
    """Node names: letters, digits, ``_ . - :``."""
    return bool(_ITEM_NAME_RE.fullmatch(name))


def valid_env_name(name: str) -> bool:
    return bool(_ENV_NAME_RE.fullmatch(name))


def validate_as_string(value: Any, field: str = "name") -> str:
    """Require ``value`` to be present and a string."""

    if value is None:
        raise InvalidFieldValue(f"Field '{field}' missing", detail={"field": field})
    if not isinstance(value, str):
        raise InvalidFieldValue(f"Field '{field}' invalid", detail={"field": field})
    return value


def validate_as_field_string(value: Any, field: str) -> Optional[str]:
    """Like :func:`validate_as_string` but an absent value yields ``None``."""

    if value is None:
        return None
    return validate_as_string(value, field)


def _normalize_run_list_item(item: Any) -> str:
    if not isinstance(item, str):
        raise InvalidFieldValue(
            "Field 'run_list' is not a valid run list",
            detail={"field": "run_list", "item": repr(item)},
        )
    if _RECIPE_RE.fullmatch(item) or _ROLE_RE.fullmatch(item):
        return item
    if _BARE_RECIPE_RE.fullmatch(item):
        return f"recipe[{item}]"
    raise InvalidFieldValue(
        f"'{item}' is not a valid run list item",
        detail={"field": "run_list", "item": item},
    )


def validate_run_list(value: Any) -> List[str]:
    """Validate and normalize a run list, keeping the first of any duplicates."""

    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidFieldValue(
            "Field 'run_list' is not a valid run list", detail={"field": "run_list"}
        )
    run_list: List[str] = []
    seen = set()
    for item in value:
        normalized = _normalize_run_list_item(item)
        if normalized in seen:
            continue
        seen.add(normalized)
        run_list.append(normalized)
    return run_list


def validate_attributes(tree: str, value: Any) -> Dict[str, Any]:
    """Validate one attribute tree; an absent tree becomes ``{}``."""

    if value is None:
        return {}
    errors = sorted(
        _ATTRIBUTE_VALIDATOR.iter_errors(value),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    if errors:
        raise InvalidFieldValue(
            f"Field '{tree}' is not a valid attribute hash",
            detail={
                "field": tree,
                "errors": [
                    {"path": list(e.absolute_path), "message": e.message}
                    for e in errors
                ],
            },
        )
    return value


__all__ = [
    "valid_item_name",
    "valid_env_name",
    "validate_as_string",
    "validate_as_field_string",
    "validate_run_list",
    "validate_attributes",
]
