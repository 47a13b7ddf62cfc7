"""
Field fusion: merge every per-item source into one record per item.

Sources are merged with a left fold of a single associative cogroup, so the
precedence order is the order of the source list: a field set by a later source
overwrites the same field from an earlier one. The canonical order is
held-over index records, then correlators in configured action order, then item
properties, so metadata can override a computed field of the same name.
"""

from functools import reduce
from typing import Any, Dict, Iterable, List, Optional, Sequence

from common.constants import FUSION, PATHS
from common.utils import setup_logging
from dataflow import KeyedDataset

from .coercion import coerce_properties
from .data_models import CorrelatorMap, DatasetBundle, Text

logger = setup_logging(__name__, PATHS["train_log_file"])


def merge_records(left: Optional[Dict[str, Any]], right: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Right-hand precedence merge of two field maps; a missing side contributes nothing."""
    merged = dict(left) if left else {}
    if right:
        merged.update(right)
    return merged


def group_all(sources: Sequence[KeyedDataset]) -> KeyedDataset:
    """Cogroup all sources over the union of their keys, later sources winning field collisions."""
    if not sources:
        return KeyedDataset.empty(name="fused")
    return reduce(lambda acc, source: acc.cogroup(source, merge_records, name="fused"), sources[1:], sources[0])


def ordered_sources(bundle: DatasetBundle) -> List[KeyedDataset]:
    sources = []
    if bundle.held_over is not None:
        sources.append(bundle.held_over)
    sources.extend(correlator.dataset for correlator in bundle.correlators)
    sources.append(bundle.properties)
    return sources


def fuse(bundle: DatasetBundle, sources: Optional[Sequence[KeyedDataset]] = None) -> KeyedDataset:
    """
    Produce one FusedRecord per item id seen in any source, each carrying its id.
    ``sources`` overrides the canonical precedence order (used to check that ordering matters).
    """
    if sources is None:
        sources = ordered_sources(bundle)
    logger.info(f"Grouping {len(sources)} sources ({len(bundle.correlators)} correlators) into one record per item")

    id_field = FUSION["id_field"]
    grouped = group_all(sources)
    return grouped.map_items(lambda item_id, record: {**record, id_field: Text(str(item_id))}, name="fused")


def coerce_property_dataset(
    properties: Dict[str, Dict[str, Any]],
    date_fields: Iterable[str],
    backfill_fields: Iterable[str],
) -> KeyedDataset:
    date_fields = list(date_fields)
    backfill_fields = list(backfill_fields)
    raw = KeyedDataset.from_mapping(properties, name="properties")
    return raw.map_items(
        lambda item_id, fields: coerce_properties(str(item_id), fields, date_fields, backfill_fields),
        name="properties",
    )


def declare_field_names(
    correlators: Sequence[CorrelatorMap],
    properties: KeyedDataset,
    held_over: Optional[KeyedDataset] = None,
) -> List[str]:
    """
    Every field name any document can carry. The index declares per-field behaviour when it is
    created, so this has to be known before the first document is written.
    """
    names: List[str] = [c.action_name for c in correlators]
    for dataset in (held_over, properties):
        if dataset is None:
            continue
        for record in dataset.collect().values():
            for name in record:
                if name not in names:
                    names.append(name)
    id_field = FUSION["id_field"]
    return [name for name in names if name != id_field]


def declare_type_mappings(field_names: Iterable[str], date_fields: Iterable[str], backfill_fields: Iterable[str]) -> Dict[str, str]:
    """Fields that need a non-keyword index type; everything else is an exact-match keyword."""
    date_fields = set(date_fields)
    backfill_fields = set(backfill_fields)
    mappings = {}
    for name in field_names:
        if name in date_fields:
            mappings[name] = "date"
        elif name in backfill_fields:
            mappings[name] = "float"
    return mappings


def build_bundle(
    correlators: Sequence[CorrelatorMap],
    properties: Dict[str, Dict[str, Any]],
    date_fields: Iterable[str],
    backfill_fields: Iterable[str],
    held_over: Optional[KeyedDataset] = None,
) -> DatasetBundle:
    date_fields = list(date_fields)
    backfill_fields = list(backfill_fields)

    logger.info("Converting item properties into typed fields")
    property_dataset = coerce_property_dataset(properties, date_fields, backfill_fields)

    field_names = declare_field_names(correlators, property_dataset, held_over)
    logger.info(f"Declared {len(field_names)} index fields: {field_names}")

    return DatasetBundle(
        correlators=tuple(correlators),
        properties=property_dataset,
        field_names=tuple(field_names),
        held_over=held_over,
        type_mappings=declare_type_mappings(field_names, date_fields, backfill_fields),
    )
