import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import pandas as pd

_DURATION = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(seconds?|minutes?|hours?|days?|weeks?)\s*$", re.IGNORECASE)


# region Time windows
def parse_duration(duration: str) -> timedelta:
    """Parse durations like "90 days", "12 hours", "1 week"."""
    match = _DURATION.match(duration or "")
    if not match:
        raise ValueError(f"Unrecognized duration: {duration!r}")
    amount, unit = float(match.group(1)), match.group(2).lower()
    if not unit.endswith("s"):
        unit += "s"
    return timedelta(**{unit: amount})


def reference_time(offset_date: Optional[str] = None) -> datetime:
    """The "now" a window is measured back from; a fixed offset date makes runs reproducible."""
    if offset_date:
        ts = pd.Timestamp(offset_date)
        if ts.tzinfo is None:
            ts = ts.tz_localize("UTC")
        return ts.to_pydatetime()
    return datetime.now(timezone.utc)


def filter_window(df: pd.DataFrame, duration: str, offset_date: Optional[str] = None, time_col: str = "timestamp"):
    """Rows whose ``time_col`` falls in [reference - duration, reference]."""
    end = reference_time(offset_date)
    start = end - parse_duration(duration)
    times = df[time_col]
    return df[(times >= pd.Timestamp(start)) & (times <= pd.Timestamp(end))]


# endregion
