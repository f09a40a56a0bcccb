from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

DEFAULT_ENVIRONMENT = "_default"
NODE_JSON_CLASS = "Chef::Node"
NODE_CHEF_TYPE = "node"
NODE_KIND = "node"

ATTRIBUTE_TREES = ("automatic", "normal", "default", "override")


@dataclass
class Node:
    """A managed node record: identity, environment, run list and attributes."""

    name: str
    chef_environment: str = DEFAULT_ENVIRONMENT
    json_class: str = NODE_JSON_CLASS
    chef_type: str = NODE_CHEF_TYPE
    run_list: List[str] = field(default_factory=list)
    automatic: Dict[str, Any] = field(default_factory=dict)
    normal: Dict[str, Any] = field(default_factory=dict)
    default: Dict[str, Any] = field(default_factory=dict)
    override: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, name: str) -> "Node":
        """Return the defaulted skeleton for a node that has not been stored yet."""
        return cls(name=name)

    @property
    def kind(self) -> str:
        return NODE_KIND

    @property
    def doc_id(self) -> str:
        return self.name

    def apply(self, fields: Dict[str, Any]) -> None:
        """Assign canonical field values produced by node validation."""

        self.chef_environment = fields["chef_environment"]
        self.json_class = fields["json_class"]
        self.chef_type = fields["chef_type"]
        self.run_list = fields["run_list"]
        for tree in ATTRIBUTE_TREES:
            setattr(self, tree, fields[tree])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "chef_environment": self.chef_environment,
            "json_class": self.json_class,
            "chef_type": self.chef_type,
            "run_list": list(self.run_list),
            "automatic": self.automatic,
            "normal": self.normal,
            "default": self.default,
            "override": self.override,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Rebuild a node from its stored dict form (trusted input only)."""
        return cls(
            name=data["name"],
            chef_environment=data.get("chef_environment") or DEFAULT_ENVIRONMENT,
            json_class=data.get("json_class") or NODE_JSON_CLASS,
            chef_type=data.get("chef_type") or NODE_CHEF_TYPE,
            run_list=list(data.get("run_list") or []),
            automatic=data.get("automatic") or {},
            normal=data.get("normal") or {},
            default=data.get("default") or {},
            override=data.get("override") or {},
        )
