from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from common.constants import EVENTS, PATHS
from common.errors import InvalidEventError
from common.helpers import filter_window
from common.utils import setup_logging
from fusion.data_models import ActionDataset, TrainingData

logger = setup_logging(__name__, PATHS["train_log_file"])


def apply_event_window(events_df: pd.DataFrame, event_window: Optional[Dict[str, Any]]) -> pd.DataFrame:
    """Drop events older than the configured window; no window keeps everything."""
    if not event_window or not event_window.get("duration"):
        return events_df
    windowed = filter_window(events_df, event_window["duration"], event_window.get("offset_date"))
    logger.info(f"Event window {event_window['duration']}: kept {len(windowed):,} of {len(events_df):,} events")
    return windowed


def _blank(col: pd.Series) -> pd.Series:
    return col.isna() | (col.astype(str).str.strip() == "")


def valid_events(
    events_df: pd.DataFrame,
    action_names: List[str],
    skip_invalid: Optional[bool] = None,
) -> pd.DataFrame:
    """
    The events every later stage may use.

    An event with an unconfigured action name fails the run. An event with an empty actor or target
    is rejected; it is skipped with a warning unless ``skip_invalid`` is False. ``events_df`` is not modified.
    """
    if skip_invalid is None:
        skip_invalid = EVENTS["skip_invalid_events"]

    unexpected = ~events_df["action_name"].isin(action_names)
    if unexpected.any():
        bad = events_df[unexpected].iloc[0]
        raise InvalidEventError(
            f"Unexpected event {bad['action_name']!r} read (actor={bad['actor_id']!r}, "
            f"target={bad['target_id']!r}); expected one of {action_names}",
            event_name=bad["action_name"],
        )

    invalid = _blank(events_df["actor_id"]) | _blank(events_df["target_id"])
    if invalid.any():
        bad = events_df[invalid].iloc[0]
        message = f"Empty user or item ID in {int(invalid.sum()):,} events, first: {bad.to_dict()}"
        if not skip_invalid:
            raise InvalidEventError(message, event_name=bad["action_name"])
        logger.warning(f"Skipping invalid events. {message}")
    return events_df[~invalid]


def partition_events(
    events_df: pd.DataFrame,
    action_names: List[str],
    skip_invalid: Optional[bool] = None,
) -> List[Tuple[str, ActionDataset]]:
    """
    Split a combined event frame into one (actor_id, target_id) frame per action name.
    Invalid events are handled as in valid_events(); actions left without events are dropped.
    """
    valid = valid_events(events_df, action_names, skip_invalid)

    actions = []
    for action_name in action_names:
        action_df = valid.loc[valid["action_name"] == action_name, ["actor_id", "target_id"]].reset_index(drop=True)
        logger.debug(f"Action[{action_name}] -> {len(action_df)}")
        if action_df.empty:
            logger.debug(f"No {action_name!r} events, no signal for this action")
            continue
        actions.append((action_name, action_df))

    return actions


def summarize_training_data(training_data: TrainingData, sample_size: Optional[int] = None) -> Dict[str, Any]:
    """Counts and a small sample per action and for item properties."""
    n = sample_size or EVENTS["sample_size"]
    summary = {"actions": {}, "properties": {}}
    for action_name, action_df in training_data["actions"]:
        summary["actions"][action_name] = {
            "count": len(action_df),
            "sample": list(action_df.head(n).itertuples(index=False, name=None)),
        }
    properties = training_data["properties"]
    summary["properties"] = {
        "count": len(properties),
        "sample": list(properties.items())[:n],
    }
    return summary
