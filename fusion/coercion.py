import re
from datetime import datetime, timezone
from numbers import Integral, Real
from typing import Any, Dict, Iterable

import pandas as pd

from common.constants import PATHS
from common.errors import DateParseError, NumberParseError
from common.utils import setup_logging

from .data_models import Absent, Date, FieldValue, FusedRecord, Number, Text, TextList

logger = setup_logging(__name__, PATHS["train_log_file"])

# date, optional time with optional fraction and zone; rejects free-form strings pandas would accept ("now", "today")
_RFC3339_LIKE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"([Tt ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?)?"
    r"([Zz]|[+-]\d{2}:?\d{2})?$"
)


def parse_date(raw: str) -> datetime:
    """Parse an RFC3339-like timestamp. Naive values are taken as UTC."""
    text = raw.strip()
    if not _RFC3339_LIKE.match(text):
        raise ValueError(f"not an RFC3339 timestamp: {raw!r}")
    dt = pd.Timestamp(text).to_pydatetime()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_property_value(
    item_id: str,
    field_name: str,
    raw: Any,
    date_fields: Iterable[str],
    backfill_fields: Iterable[str],
) -> FieldValue:
    """
    Coerce one raw property value by shape.

    list of strings → TextList; string in a date field → Date; string in a backfill field → Number;
    other strings → Text; int/float → Number; anything else → Absent.
    Unparseable dates and numbers abort the run with the item and field in the error.
    """
    if isinstance(raw, (list, tuple)):
        return TextList(tuple(v for v in raw if isinstance(v, str)))

    if isinstance(raw, str):
        if field_name in date_fields:
            try:
                return Date(parse_date(raw))
            except ValueError as e:
                raise DateParseError(
                    f"Item {item_id!r}: field {field_name!r} is a date field but {raw!r} is not a date",
                    item_id=item_id,
                    field_name=field_name,
                ) from e
        if field_name in backfill_fields:
            try:
                return Number(float(raw))
            except ValueError as e:
                raise NumberParseError(
                    f"Item {item_id!r}: backfill field {field_name!r} holds non-numeric value {raw!r}",
                    item_id=item_id,
                    field_name=field_name,
                ) from e
        return Text(raw)

    # bool is a Real subclass but not a score
    if isinstance(raw, Real) and not isinstance(raw, bool):
        return Number(int(raw)) if isinstance(raw, Integral) else Number(float(raw))

    logger.warning(f"Item {item_id!r}: field {field_name!r} has unsupported shape {type(raw).__name__}, marking absent")
    return Absent(raw_type=type(raw).__name__)


def coerce_properties(
    item_id: str,
    properties: Dict[str, Any],
    date_fields: Iterable[str],
    backfill_fields: Iterable[str],
) -> FusedRecord:
    date_fields = set(date_fields)
    backfill_fields = set(backfill_fields)
    return {
        name: coerce_property_value(item_id, name, raw, date_fields, backfill_fields)
        for name, raw in properties.items()
    }
