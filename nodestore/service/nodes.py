from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional

from nodestore.logging import get_logger
from nodestore.service.errors import (
    AlreadyExists,
    DependencyNotFound,
    InvalidFieldValue,
    NotFoundError,
    ValidationError,
)
from nodestore.service.indexer import Indexer
from nodestore.service.node_validation import validate_and_normalize
from nodestore.service.validators import valid_item_name, validate_as_string
from nodestore.storage.base import NodeStore
from nodestore.storage.errors import DuplicateRecord, MissingDependency
from nodestore.storage.models import NODE_KIND, Node

IndexErrorHook = Callable[[str, str, str, Exception], None]


class NodeService:
    """Node lifecycle on top of a store, keeping the search index in sync.

    Index updates run after the storage write and never fail the operation;
    failures are logged and passed to ``on_index_error`` as
    ``(action, kind, doc_id, exc)``.
    """

    def __init__(
        self,
        store: NodeStore,
        indexer: Indexer,
        *,
        on_index_error: Optional[IndexErrorHook] = None,
    ) -> None:
        self.store = store
        self.indexer = indexer
        self.on_index_error = on_index_error
        self.logger = get_logger(__name__)

    def new_node(self, name: str) -> Node:
        """Return an unsaved default node, refusing names already stored."""

        if self.store.exists(name):
            raise AlreadyExists(f"Node {name} already exists", detail={"name": name})
        if not valid_item_name(name):
            raise InvalidFieldValue("Field 'name' invalid", detail={"field": "name"})
        return Node.new(name)

    def create_from_json(self, payload: Mapping[str, Any]) -> Node:
        if not isinstance(payload, Mapping):
            raise ValidationError("node body must be a JSON object")
        name = validate_as_string(payload.get("name"), "name")
        node = self.new_node(name)
        self.update_from_json(node, payload)
        try:
            self.store.create(node)
        except DuplicateRecord as exc:
            raise AlreadyExists(exc.message, detail=exc.detail) from exc
        except MissingDependency as exc:
            raise DependencyNotFound(exc.message, detail=exc.detail) from exc
        self.logger.info("node_created", node=node.name, environment=node.chef_environment)
        self._sync_index(node)
        return node

    def get(self, name: str) -> Node:
        node = self.store.fetch(name)
        if node is None:
            raise NotFoundError(f"node '{name}' not found", detail={"name": name})
        return node

    def update_from_json(self, node: Node, payload: Mapping[str, Any]) -> Node:
        """Validate ``payload`` against ``node`` and assign the result (no save)."""

        fields = validate_and_normalize(node, payload)
        node.apply(fields)
        return node

    def update(self, name: str, payload: Mapping[str, Any]) -> Node:
        node = self.get(name)
        self.update_from_json(node, payload)
        return self.save(node)

    def save(self, node: Node) -> Node:
        try:
            self.store.save(node)
        except MissingDependency as exc:
            raise DependencyNotFound(exc.message, detail=exc.detail) from exc
        except DuplicateRecord as exc:
            raise AlreadyExists(exc.message, detail=exc.detail) from exc
        self.logger.info("node_saved", node=node.name, environment=node.chef_environment)
        self._sync_index(node)
        return node

    def delete(self, name: str) -> None:
        if not self.store.delete(name):
            raise NotFoundError(f"node '{name}' not found", detail={"name": name})
        self.logger.info("node_deleted", node=name)
        self._remove_from_index(NODE_KIND, name)

    def list_names(self) -> List[str]:
        return self.store.list_names()

    def _sync_index(self, node: Node) -> None:
        try:
            self.indexer.index(node)
        except Exception as exc:
            self._index_failed("index", node.kind, node.doc_id, exc)

    def _remove_from_index(self, kind: str, doc_id: str) -> None:
        try:
            self.indexer.remove(kind, doc_id)
        except Exception as exc:
            self._index_failed("remove", kind, doc_id, exc)

    def _index_failed(self, action: str, kind: str, doc_id: str, exc: Exception) -> None:
        self.logger.warning(
            "index_sync_failed",
            action=action,
            kind=kind,
            doc_id=doc_id,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        if self.on_index_error is None:
            return
        try:
            self.on_index_error(action, kind, doc_id, exc)
        except Exception as hook_exc:
            self.logger.error(
                "index_error_hook_failed", doc_id=doc_id, error=str(hook_exc)
            )


__all__ = ["NodeService", "IndexErrorHook"]
