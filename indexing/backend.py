"""
Contract the publisher needs from an index backend, plus the index mappings it declares.
"""

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Protocol

from common.constants import FUSION, INDEX


class IndexBackend(Protocol):
    def create_index(self, name: str, mappings: Mapping[str, Any]) -> None:
        """Create an empty index with the given settings and field mappings."""

    def bulk_write(self, index_name: str, records: Iterable[Dict[str, Any]]) -> int:
        """Write documents keyed by their id field; returns the number written."""

    def swap_alias(self, alias: str, from_index: Optional[str], to_index: str) -> None:
        """Atomically re-point ``alias`` from ``from_index`` (None if unaliased) to ``to_index``."""

    def delete_index(self, name: str) -> None:
        ...

    def get_alias_target(self, alias: str) -> Optional[str]:
        """Index currently behind ``alias``, or None."""

    def read_all(self, index_or_alias: str) -> Iterator[Dict[str, Any]]:
        """Every document in an index."""


def build_mappings(field_names: Iterable[str], type_mappings: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Index body declaring every field up front. Fields default to exact-match keywords without
    norms so ids and tags match verbatim; ``type_mappings`` overrides the type (date, float).
    """
    type_mappings = type_mappings or {}
    properties = {FUSION["id_field"]: {"type": "keyword", "norms": False}}
    for name in field_names:
        field_type = type_mappings.get(name, "keyword")
        if field_type == "keyword":
            properties[name] = {"type": "keyword", "norms": False}
        else:
            properties[name] = {"type": field_type}
    return {
        "settings": {
            "number_of_shards": INDEX["number_of_shards"],
            "number_of_replicas": INDEX["number_of_replicas"],
        },
        "mappings": {"properties": properties},
    }


def batched(records: Iterable[Dict[str, Any]], batch_size: int) -> Iterator[List[Dict[str, Any]]]:
    batch = []
    for record in records:
        batch.append(record)
        if len(batch) >= batch_size:
            yield batch
            batch = []
    if batch:
        yield batch
