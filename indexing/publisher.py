"""
Hot-swap publishing of fused records.

Each publish builds a fresh index, fills it, re-points the public alias to it in one
atomic backend call, then deletes the index the alias used to point at. Readers see
either the old or the new dataset, never a partially written one.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict

from common.constants import FUSION, INDEX, PATHS
from common.errors import PlaceholderModelError, PublishError, RetirementError
from common.utils import setup_logging
from dataflow import KeyedDataset
from fusion.data_models import MaterializedModel, PlaceholderModel, URModel, from_document_value, to_document
from fusion.engine import fuse

from .backend import IndexBackend, batched, build_mappings

logger = setup_logging(__name__, PATHS["train_log_file"])


class PublishState(str, Enum):
    """Publisher states, in the order a successful publish passes through them."""
    IDLE = "idle"
    BUILDING = "building"
    INDEXED = "indexed"
    SWAPPED = "swapped"
    OLD_RETIRED = "old_retired"


class PublishResult(TypedDict):
    status: str  # "published" or "no_data"
    alias: str
    index_name: Optional[str]
    previous_index: Optional[str]
    documents: int
    states: List[str]
    retirement_error: Optional[str]


class HotSwapPublisher:
    def __init__(self, backend: IndexBackend, alias: str, type_name: str = "items", batch_size: Optional[int] = None):
        self.backend = backend
        self.alias = alias
        self.type_name = type_name
        self.batch_size = batch_size or INDEX["bulk_batch_size"]
        self.state = PublishState.IDLE

    def _new_index_name(self) -> str:
        return f"{self.alias}_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"

    def _enter(self, state: PublishState, states: List[str]) -> None:
        self.state = state
        states.append(state.value)
        logger.info(f"[{self.alias}] -> {state.value}")

    def _discard(self, index_name: str) -> None:
        try:
            self.backend.delete_index(index_name)
        except Exception as e:
            logger.warning(f"Could not delete partially built index {index_name}: {e}")

    def publish(self, model: URModel) -> PublishResult:
        """
        Publish a materialized model under the alias.

        Raises PlaceholderModelError for a placeholder, and PublishError when building, filling or
        swapping fails; the alias is left on its previous index in those cases. A failure to delete
        the superseded index is reported on the result instead and can be retried with retire().
        """
        if isinstance(model, PlaceholderModel):
            raise PlaceholderModelError(f"Refusing to publish a placeholder model ({model.reason}) to {self.alias}")
        if not isinstance(model, MaterializedModel):
            raise TypeError(f"Expected a MaterializedModel, got {type(model).__name__}")

        bundle = model.bundle
        states = [PublishState.IDLE.value]
        result: PublishResult = {
            "status": "no_data",
            "alias": self.alias,
            "index_name": None,
            "previous_index": None,
            "documents": 0,
            "states": states,
            "retirement_error": None,
        }

        records = fuse(bundle)
        n_records = records.count()
        if n_records == 0:
            logger.warning(
                "No data to write. May have been caused by a failed or stopped training run, try running it again"
            )
            return result

        logger.info(f"Publishing {n_records:,} {self.type_name} records to alias {self.alias}")
        previous = self.backend.get_alias_target(self.alias)
        index_name = self._new_index_name()
        result["previous_index"] = previous
        result["index_name"] = index_name

        self._enter(PublishState.BUILDING, states)
        try:
            self.backend.create_index(index_name, build_mappings(bundle.field_names, bundle.type_mappings))
        except Exception as e:
            self.state = PublishState.IDLE
            raise PublishError(f"Creating index {index_name} failed: {e}", stage="building", index_name=index_name) from e

        try:
            written = 0
            for batch in batched((to_document(record) for _, record in records.items()), self.batch_size):
                written += self.backend.bulk_write(index_name, batch)
        except Exception as e:
            self._discard(index_name)
            self.state = PublishState.IDLE
            raise PublishError(f"Writing to index {index_name} failed: {e}", stage="indexed", index_name=index_name) from e
        self._enter(PublishState.INDEXED, states)
        result["documents"] = written
        logger.info(f"Wrote {written:,} documents to {index_name}")

        try:
            self.backend.swap_alias(self.alias, previous, index_name)
        except Exception as e:
            # the swap is atomic: if the alias did not move the new index is unreachable
            if self.backend.get_alias_target(self.alias) != index_name:
                self._discard(index_name)
                self.state = PublishState.IDLE
                raise PublishError(
                    f"Swapping alias {self.alias} to {index_name} failed: {e}", stage="swapped", index_name=index_name
                ) from e
            logger.warning(f"Alias swap reported an error but {self.alias} points at {index_name}: {e}")
        self._enter(PublishState.SWAPPED, states)
        result["status"] = "published"

        if previous is not None:
            try:
                self.retire(previous)
            except RetirementError as e:
                logger.error(str(e))
                result["retirement_error"] = str(e)
            else:
                self._enter(PublishState.OLD_RETIRED, states)
        else:
            self._enter(PublishState.OLD_RETIRED, states)

        self._enter(PublishState.IDLE, states)
        return result

    def retire(self, index_name: str) -> None:
        """Delete a superseded index. Safe to call again after a failed retirement."""
        try:
            self.backend.delete_index(index_name)
        except Exception as e:
            raise RetirementError(f"Deleting superseded index {index_name} failed: {e}", index_name=index_name) from e
        logger.info(f"Retired index {index_name}")

    def held_over_records(self, date_fields: List[str], fields: Optional[List[str]] = None) -> Optional[KeyedDataset]:
        """
        Records currently served under the alias, as typed field maps keyed by item id.
        With ``fields`` only those fields are kept, and items carrying none of them are left out.
        """
        current = self.backend.get_alias_target(self.alias)
        if current is None:
            return None

        id_field = FUSION["id_field"]

        def _keep(name: str) -> bool:
            return name != id_field and (fields is None or name in fields)

        def _typed(doc: Dict[str, Any]):
            return {name: from_document_value(name, raw, date_fields) for name, raw in doc.items() if _keep(name)}

        typed_docs = ((doc[id_field], _typed(doc)) for doc in self.backend.read_all(current))
        held = KeyedDataset.from_pairs(((item_id, record) for item_id, record in typed_docs if record), name="held_over")
        logger.info(f"Holding over {held.count():,} records from {current}")
        return held
