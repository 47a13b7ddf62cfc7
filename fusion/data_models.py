"""
Type definitions for the fusion pipeline.
TypedDicts for structured stage outputs, frozen dataclasses for field values and models.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, TypedDict, Union

import pandas as pd

from dataflow import KeyedDataset


class Event(TypedDict):
    """A single user → item interaction as read from the event store."""
    actor_id: str  # user id
    target_id: str  # item id
    action_name: str  # e.g. "purchase", "view"
    timestamp: datetime


# Columns: actor_id, target_id. One frame per configured action name.
ActionDataset = pd.DataFrame


class TrainingData(TypedDict):
    """Output of the event stage: named action datasets plus current item properties."""
    actions: List[Tuple[str, ActionDataset]]  # non-empty datasets only, in configured order
    properties: Dict[str, Dict[str, Any]]  # item id → field name → raw property value
    events: pd.DataFrame  # windowed interaction events, input to the backfill rankings


# region Field values
@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class TextList:
    values: Tuple[str, ...]


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Date:
    value: datetime


@dataclass(frozen=True)
class Absent:
    """A property whose shape could not be mapped to any other variant."""
    raw_type: str = ""


FieldValue = Union[Text, TextList, Number, Date, Absent]

# field name → typed value, for one item
FusedRecord = Dict[str, FieldValue]


def to_document_value(value: FieldValue) -> Any:
    """Render a field value the way the index stores it."""
    if isinstance(value, Text):
        return value.value
    if isinstance(value, TextList):
        return list(value.values)
    if isinstance(value, Number):
        return value.value
    if isinstance(value, Date):
        dt = value.value
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.isoformat()
    if isinstance(value, Absent):
        return ""
    raise TypeError(f"Not a field value: {value!r}")


def from_document_value(field_name: str, raw: Any, date_fields: List[str]) -> FieldValue:
    """Inverse of to_document_value for records read back from an index."""
    if isinstance(raw, list):
        return TextList(tuple(str(v) for v in raw))
    if isinstance(raw, bool):
        return Absent(raw_type="bool")
    if isinstance(raw, (int, float)):
        return Number(raw)
    if isinstance(raw, str):
        if field_name in date_fields and raw:
            return Date(pd.Timestamp(raw).to_pydatetime())
        return Text(raw)
    return Absent(raw_type=type(raw).__name__)


def to_document(record: FusedRecord) -> Dict[str, Any]:
    return {name: to_document_value(value) for name, value in record.items()}


# endregion


@dataclass(frozen=True)
class CorrelatorMap:
    """Related items for one action: item id → {action_name: TextList of related ids, strongest first}."""
    action_name: str
    dataset: KeyedDataset


@dataclass(frozen=True)
class DatasetBundle:
    """
    Everything fusion needs: correlator maps in precedence order, coerced item properties,
    and the field universe that the index declares before any document is written.
    """
    correlators: Tuple[CorrelatorMap, ...]
    properties: KeyedDataset  # item id → FusedRecord of coerced property fields
    field_names: Tuple[str, ...]
    # records held over from the live index, lowest precedence (backfill-only refresh)
    held_over: Optional[KeyedDataset] = None
    type_mappings: Dict[str, str] = field(default_factory=dict)


# region Models
@dataclass(frozen=True)
class MaterializedModel:
    """A trained model whose fused records can be published."""
    bundle: DatasetBundle


@dataclass(frozen=True)
class PlaceholderModel:
    """Stand-in returned when a framework asks to reload a model that only lives in the index."""
    reason: str = "loaded from a previous run"


URModel = Union[MaterializedModel, PlaceholderModel]
# endregion
