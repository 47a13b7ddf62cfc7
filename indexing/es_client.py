"""Elasticsearch index backend over the REST API."""

import json
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

import httpx

from common.constants import FUSION, INDEX, PATHS
from common.errors import IndexBackendError
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["train_log_file"])


class ElasticsearchBackend:
    """
    IndexBackend backed by an Elasticsearch cluster.

    Alias swaps go through a single ``_aliases`` request holding both the remove and the
    add action, which the cluster applies atomically.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, client: Optional[httpx.Client] = None):
        self.client = client or httpx.Client(
            base_url=base_url or INDEX["es_url"],
            timeout=timeout or INDEX["timeout_seconds"],
        )

    def close(self) -> None:
        self.client.close()

    def _check(self, response: httpx.Response, action: str) -> httpx.Response:
        if response.is_error:
            raise IndexBackendError(f"{action} failed with HTTP {response.status_code}: {response.text[:500]}")
        return response

    def create_index(self, name: str, mappings: Mapping[str, Any]) -> None:
        logger.info(f"Creating index {name}")
        self._check(self.client.put(f"/{name}", json=dict(mappings)), f"Create index {name}")

    def bulk_write(self, index_name: str, records: Iterable[Dict[str, Any]]) -> int:
        id_field = FUSION["id_field"]
        lines = []
        written = 0
        for record in records:
            lines.append(json.dumps({"index": {"_index": index_name, "_id": record[id_field]}}))
            lines.append(json.dumps(record))
            written += 1
        if not lines:
            return 0

        response = self._check(
            self.client.post(
                "/_bulk",
                content="\n".join(lines) + "\n",
                headers={"Content-Type": "application/x-ndjson"},
            ),
            f"Bulk write to {index_name}",
        )
        body = response.json()
        if body.get("errors"):
            failed = [item["index"] for item in body.get("items", []) if item.get("index", {}).get("error")]
            first = failed[0] if failed else {}
            raise IndexBackendError(
                f"Bulk write to {index_name}: {len(failed)} of {written} documents rejected, first: {first}"
            )
        self._check(self.client.post(f"/{index_name}/_refresh"), f"Refresh {index_name}")
        return written

    def swap_alias(self, alias: str, from_index: Optional[str], to_index: str) -> None:
        actions = []
        if from_index is not None:
            actions.append({"remove": {"index": from_index, "alias": alias}})
        actions.append({"add": {"index": to_index, "alias": alias}})
        logger.info(f"Swapping alias {alias}: {from_index} -> {to_index}")
        self._check(self.client.post("/_aliases", json={"actions": actions}), f"Swap alias {alias}")

    def delete_index(self, name: str) -> None:
        logger.info(f"Deleting index {name}")
        self._check(self.client.delete(f"/{name}"), f"Delete index {name}")

    def get_alias_target(self, alias: str) -> Optional[str]:
        response = self.client.get(f"/_alias/{alias}")
        if response.status_code == 404:
            return None
        indices = list(self._check(response, f"Get alias {alias}").json())
        if len(indices) > 1:
            raise IndexBackendError(f"Alias {alias} points at several indices: {indices}")
        return indices[0] if indices else None

    def read_all(self, index_or_alias: str, page_size: int = 1000, scroll: str = "1m") -> Iterator[Dict[str, Any]]:
        response = self._check(
            self.client.post(
                f"/{index_or_alias}/_search",
                params={"scroll": scroll},
                json={"size": page_size, "query": {"match_all": {}}},
            ),
            f"Read {index_or_alias}",
        )
        body = response.json()
        scroll_id = body.get("_scroll_id")
        try:
            while True:
                hits = body["hits"]["hits"]
                if not hits:
                    break
                for hit in hits:
                    yield hit["_source"]
                body = self._check(
                    self.client.post("/_search/scroll", json={"scroll": scroll, "scroll_id": scroll_id}),
                    f"Scroll {index_or_alias}",
                ).json()
                scroll_id = body.get("_scroll_id", scroll_id)
        finally:
            if scroll_id:
                self.client.request("DELETE", "/_search/scroll", json={"scroll_id": scroll_id})
