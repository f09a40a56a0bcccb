"""Search index contract and the in-process index.

Objects are indexed as a flat list of ``key:value`` terms. Nested mapping keys
are joined with ``_`` and every list element produces its own term, so
``{"override": {"nginx": {"port": 8080}}}`` yields ``override_nginx_port:8080``.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Protocol


class Indexable(Protocol):
    @property
    def kind(self) -> str: ...

    @property
    def doc_id(self) -> str: ...

    def to_dict(self) -> Dict[str, Any]: ...


class Indexer(Protocol):
    def index(self, obj: Indexable) -> None: ...

    def remove(self, kind: str, doc_id: str) -> None: ...


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def flatten(
    value: Any, prefix: str = "", out: Optional[Dict[str, List[str]]] = None
) -> Dict[str, List[str]]:
    """Flatten a nested structure into ``{key_path: [values...]}``."""

    out = {} if out is None else out
    if isinstance(value, dict):
        for key, sub in value.items():
            flatten(sub, f"{prefix}_{key}" if prefix else str(key), out)
    elif isinstance(value, list):
        for item in value:
            flatten(item, prefix, out)
    else:
        out.setdefault(prefix, []).append(_stringify(value))
    return out


def indexify(flat: Dict[str, List[str]]) -> List[str]:
    return sorted({f"{key}:{value}" for key, values in flat.items() for value in values})


def index_terms(obj: Indexable) -> List[str]:
    return indexify(flatten(obj.to_dict()))


class MemoryIndex:
    """Thread-safe in-process index keyed by ``(kind, doc_id)``."""

    def __init__(self) -> None:
        self._docs: Dict[str, Dict[str, List[str]]] = {}
        self._lock = threading.Lock()

    def index(self, obj: Indexable) -> None:
        terms = index_terms(obj)
        with self._lock:
            self._docs.setdefault(obj.kind, {})[obj.doc_id] = terms

    def remove(self, kind: str, doc_id: str) -> None:
        with self._lock:
            self._docs.get(kind, {}).pop(doc_id, None)

    def terms(self, kind: str, doc_id: str) -> Optional[List[str]]:
        with self._lock:
            terms = self._docs.get(kind, {}).get(doc_id)
            return list(terms) if terms is not None else None

    def search(self, kind: str, term: str) -> List[str]:
        """Return ids of documents of ``kind`` carrying exactly ``term``."""
        with self._lock:
            return sorted(
                doc_id
                for doc_id, terms in self._docs.get(kind, {}).items()
                if term in terms
            )


__all__ = ["Indexable", "Indexer", "flatten", "indexify", "index_terms", "MemoryIndex"]
