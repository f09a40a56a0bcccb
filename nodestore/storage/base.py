from __future__ import annotations

from typing import List, Optional, Protocol

from nodestore.storage.models import Node


class NodeStore(Protocol):
    """Operations every node backend provides.

    Implementations return independent ``Node`` objects: mutating a fetched
    node has no effect on stored state until it is passed to ``save``.
    """

    def exists(self, name: str) -> bool: ...

    def create(self, node: Node) -> Node:
        """Insert a new node; raises ``DuplicateRecord`` if the name is taken."""
        ...

    def fetch(self, name: str) -> Optional[Node]: ...

    def save(self, node: Node) -> Node:
        """Update the stored node or insert it when absent."""
        ...

    def delete(self, name: str) -> bool: ...

    def list_names(self) -> List[str]: ...


__all__ = ["NodeStore"]
