"""Validation and normalization of node request bodies.

``validate_and_normalize`` turns an untrusted mapping into the complete set of
canonical node fields. It reads the existing node (if any) but never mutates
it; the caller assigns the result with ``Node.apply``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional

from nodestore.service.errors import (
    InvalidField,
    InvalidFieldValue,
    NameMismatch,
    ValidationError,
)
from nodestore.service.validators import (
    valid_env_name,
    valid_item_name,
    validate_as_field_string,
    validate_as_string,
    validate_attributes,
    validate_run_list,
)
from nodestore.storage.models import (
    ATTRIBUTE_TREES,
    DEFAULT_ENVIRONMENT,
    NODE_CHEF_TYPE,
    NODE_JSON_CLASS,
    Node,
)

VALID_FIELDS = (
    "name",
    "json_class",
    "chef_type",
    "chef_environment",
    "run_list",
    "override",
    "normal",
    "default",
    "automatic",
)


@dataclass(frozen=True)
class FieldPolicy:
    """How a string tag field is filled in and checked.

    An absent or null value inherits from the existing node, or ``default``
    when there is none. A present value must be in ``allowed`` (when set) and
    pass ``check`` (when set).
    """

    field: str
    default: str
    allowed: Optional[FrozenSet[str]] = None
    check: Optional[Callable[[str], bool]] = None

    def resolve(self, raw: Any, existing: Optional[Node]) -> str:
        value = validate_as_field_string(raw, self.field)
        if value is None:
            return getattr(existing, self.field) if existing is not None else self.default
        if self.allowed is not None and value not in self.allowed:
            raise InvalidFieldValue(
                f"Field '{self.field}' invalid", detail={"field": self.field}
            )
        if self.check is not None and not self.check(value):
            raise InvalidFieldValue(
                f"Field '{self.field}' invalid", detail={"field": self.field}
            )
        return value


TAG_POLICIES = (
    FieldPolicy("chef_environment", DEFAULT_ENVIRONMENT, check=valid_env_name),
    FieldPolicy("json_class", NODE_JSON_CLASS, allowed=frozenset({NODE_JSON_CLASS})),
    FieldPolicy("chef_type", NODE_CHEF_TYPE, allowed=frozenset({NODE_CHEF_TYPE})),
)


def validate_and_normalize(
    existing: Optional[Node], raw: Mapping[str, Any]
) -> Dict[str, Any]:
    """Validate ``raw`` against ``existing`` and return canonical node fields.

    Raises:
        InvalidField: ``raw`` has a key nodes do not carry.
        NameMismatch: ``raw`` names a different node than ``existing``.
        InvalidFieldValue: a field is missing, mistyped or malformed.
    """

    if not isinstance(raw, Mapping):
        raise ValidationError("node body must be a JSON object")

    for key in raw:
        if key not in VALID_FIELDS:
            raise InvalidField(
                f"Invalid key {key} in request body", detail={"field": key}
            )

    name = validate_as_string(raw.get("name"), "name")
    if existing is not None:
        if name != existing.name:
            raise NameMismatch(
                f"Node name {existing.name} and {name} from JSON do not match.",
                detail={"field": "name", "expected": existing.name, "received": name},
            )
    elif not valid_item_name(name):
        raise InvalidFieldValue("Field 'name' invalid", detail={"field": "name"})

    fields: Dict[str, Any] = {
        "name": name,
        "run_list": validate_run_list(raw.get("run_list")),
    }
    for tree in ATTRIBUTE_TREES:
        fields[tree] = copy.deepcopy(validate_attributes(tree, raw.get(tree)))
    for policy in TAG_POLICIES:
        fields[policy.field] = policy.resolve(raw.get(policy.field), existing)
    return fields


__all__ = ["VALID_FIELDS", "FieldPolicy", "TAG_POLICIES", "validate_and_normalize"]
