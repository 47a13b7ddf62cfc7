"""In-memory index backend.

Behaves like the subset of a search cluster the publisher uses: indices with
declared mappings, documents keyed by id, and aliases that are re-pointed in a
single locked step. Used for local runs and tests where no cluster is available.
"""

import copy
import threading
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from common.constants import FUSION
from common.errors import IndexBackendError


class InMemoryIndexBackend:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.indices: Dict[str, Dict[str, Any]] = {}
        self.aliases: Dict[str, str] = {}

    def create_index(self, name: str, mappings: Mapping[str, Any]) -> None:
        with self._lock:
            if name in self.indices or name in self.aliases:
                raise IndexBackendError(f"Index {name!r} already exists")
            self.indices[name] = {"mappings": copy.deepcopy(dict(mappings)), "docs": {}}

    def bulk_write(self, index_name: str, records: Iterable[Dict[str, Any]]) -> int:
        id_field = FUSION["id_field"]
        with self._lock:
            index = self.indices.get(index_name)
            if index is None:
                raise IndexBackendError(f"No such index: {index_name!r}")
            written = 0
            for record in records:
                index["docs"][record[id_field]] = copy.deepcopy(record)
                written += 1
            return written

    def swap_alias(self, alias: str, from_index: Optional[str], to_index: str) -> None:
        with self._lock:
            if to_index not in self.indices:
                raise IndexBackendError(f"No such index: {to_index!r}")
            if alias in self.indices:
                raise IndexBackendError(f"Alias {alias!r} collides with an index of the same name")
            current = self.aliases.get(alias)
            if current != from_index:
                raise IndexBackendError(f"Alias {alias!r} points at {current!r}, expected {from_index!r}")
            self.aliases[alias] = to_index

    def delete_index(self, name: str) -> None:
        with self._lock:
            if name not in self.indices:
                raise IndexBackendError(f"No such index: {name!r}")
            if name in self.aliases.values():
                raise IndexBackendError(f"Index {name!r} is still aliased")
            del self.indices[name]

    def get_alias_target(self, alias: str) -> Optional[str]:
        with self._lock:
            return self.aliases.get(alias)

    def read_all(self, index_or_alias: str) -> Iterator[Dict[str, Any]]:
        with self._lock:
            name = self.aliases.get(index_or_alias, index_or_alias)
            if name not in self.indices:
                raise IndexBackendError(f"No such index: {name!r}")
            docs = [copy.deepcopy(doc) for doc in self.indices[name]["docs"].values()]
        return iter(docs)
