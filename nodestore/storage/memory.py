from __future__ import annotations

import copy
import json
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from nodestore.logging import get_logger
from nodestore.storage.errors import DuplicateRecord, StorageError
from nodestore.storage.models import NODE_KIND, Node

# kind -> (to_dict, from_dict) used for snapshots
_SERIALIZERS: Dict[str, Tuple[Callable[[Any], dict], Callable[[dict], Any]]] = {
    NODE_KIND: (Node.to_dict, Node.from_dict),
}

_ABSENT = object()


class MemoryStore:
    """In-process keyed store partitioned by object kind.

    Objects are deep-copied on the way in and on the way out, so callers
    never share state with the store. When ``state_path`` is given the whole
    store is written there as JSON after every mutation and reloaded on start.
    """

    def __init__(self, state_path: str | None = None) -> None:
        self.logger = get_logger(__name__)
        self.objects: Dict[str, Dict[str, Any]] = {}
        # RLock so node operations can call the keyed helpers while holding it
        self._data_lock = threading.RLock()
        self.state_path = Path(state_path) if state_path else None
        if self.state_path is not None:
            self._load_state()

    # keyed store
    def get(self, kind: str, key: str) -> Tuple[Any, bool]:
        with self._data_lock:
            partition = self.objects.get(kind, {})
            if key not in partition:
                return None, False
            return copy.deepcopy(partition[key]), True

    def set(self, kind: str, key: str, obj: Any) -> None:
        with self._data_lock:
            partition = self.objects.setdefault(kind, {})
            previous = partition.get(key, _ABSENT)
            partition[key] = copy.deepcopy(obj)
            try:
                self._persist_state()
            except StorageError:
                self._restore(kind, key, previous)
                raise

    def remove(self, kind: str, key: str) -> bool:
        with self._data_lock:
            partition = self.objects.get(kind, {})
            if key not in partition:
                return False
            previous = partition.pop(key)
            try:
                self._persist_state()
            except StorageError:
                self._restore(kind, key, previous)
                raise
            return True

    def _restore(self, kind: str, key: str, previous: Any) -> None:
        # undo an in-memory change whose snapshot could not be written
        partition = self.objects.setdefault(kind, {})
        if previous is _ABSENT:
            partition.pop(key, None)
        else:
            partition[key] = previous
        if not partition:
            del self.objects[kind]

    def get_list(self, kind: str) -> List[str]:
        with self._data_lock:
            return list(self.objects.get(kind, {}).keys())

    # nodes
    def exists(self, name: str) -> bool:
        with self._data_lock:
            return name in self.objects.get(NODE_KIND, {})

    def create(self, node: Node) -> Node:
        with self._data_lock:
            if self.exists(node.name):
                raise DuplicateRecord(
                    f"node {node.name} already exists", {"name": node.name}
                )
            self.set(NODE_KIND, node.name, node)
        return node

    def fetch(self, name: str) -> Optional[Node]:
        node, found = self.get(NODE_KIND, name)
        return node if found else None

    def save(self, node: Node) -> Node:
        self.set(NODE_KIND, node.name, node)
        return node

    def delete(self, name: str) -> bool:
        return self.remove(NODE_KIND, name)

    def list_names(self) -> List[str]:
        return self.get_list(NODE_KIND)

    # snapshots
    def _persist_state(self) -> None:
        if self.state_path is None:
            return
        state = {}
        for kind, partition in self.objects.items():
            serializer = _SERIALIZERS.get(kind)
            if serializer is None:
                raise StorageError(
                    f"cannot snapshot objects of kind {kind!r}",
                    {"path": str(self.state_path), "kind": kind},
                )
            to_dict, _ = serializer
            state[kind] = [to_dict(obj) for obj in partition.values()]
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            self.state_path.write_text(json.dumps(state, indent=2))
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(
                f"failed to persist in-memory state: {exc}",
                {"path": str(self.state_path)},
            ) from exc

    def _load_state(self) -> bool:
        if self.state_path is None:
            return False
        # try/except instead of exists() to avoid a TOCTOU race
        try:
            data = json.loads(self.state_path.read_text())
        except FileNotFoundError:
            return False
        except (OSError, ValueError) as exc:
            raise StorageError(
                f"failed to load in-memory state: {exc}",
                {"path": str(self.state_path)},
            ) from exc

        with self._data_lock:
            for kind, items in data.items():
                serializer = _SERIALIZERS.get(kind)
                if serializer is None:
                    self.logger.warning("memory_state_unknown_kind", kind=kind)
                    continue
                _, from_dict = serializer
                partition = self.objects.setdefault(kind, {})
                for item in items:
                    obj = from_dict(item)
                    partition[obj.name] = obj
        self.logger.info(
            "memory_state_loaded",
            path=str(self.state_path),
            counts={kind: len(p) for kind, p in self.objects.items()},
        )
        return True


__all__ = ["MemoryStore"]
