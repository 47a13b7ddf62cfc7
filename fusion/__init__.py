"""
Field fusion components.
Typed field values, property coercion, and the cogroup merge of all per-item sources.
"""

from .data_models import (
    Absent,
    CorrelatorMap,
    DatasetBundle,
    Date,
    Event,
    FieldValue,
    FusedRecord,
    MaterializedModel,
    Number,
    PlaceholderModel,
    Text,
    TextList,
    TrainingData,
    URModel,
    to_document,
)
from .coercion import coerce_properties, coerce_property_value, parse_date
from .engine import build_bundle, fuse, group_all, merge_records

__all__ = [
    "Absent",
    "CorrelatorMap",
    "DatasetBundle",
    "Date",
    "Event",
    "FieldValue",
    "FusedRecord",
    "MaterializedModel",
    "Number",
    "PlaceholderModel",
    "Text",
    "TextList",
    "TrainingData",
    "URModel",
    "to_document",
    "coerce_properties",
    "coerce_property_value",
    "parse_date",
    "build_bundle",
    "fuse",
    "group_all",
    "merge_records",
]
