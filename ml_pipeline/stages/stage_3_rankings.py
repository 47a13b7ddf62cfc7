from typing import Any, Dict, List

import pandas as pd

from common.constants import PATHS
from common.helpers import parse_duration, reference_time
from common.utils import setup_logging

logger = setup_logging(__name__, PATHS["train_log_file"])


def _events_for(events_df: pd.DataFrame, ranking: Dict[str, Any]) -> pd.DataFrame:
    event_names = ranking.get("event_names")
    if event_names:
        events_df = events_df[events_df["action_name"].isin(event_names)]
    return events_df


def _count_between(events_df: pd.DataFrame, start, end) -> pd.Series:
    times = events_df["timestamp"]
    in_window = events_df[(times > pd.Timestamp(start)) & (times <= pd.Timestamp(end))]
    return in_window.groupby("target_id").size().astype(float)


def popular_scores(events_df: pd.DataFrame, duration: str, offset_date=None) -> pd.Series:
    """Event count per item over the window ending at the reference time."""
    end = reference_time(offset_date)
    return _count_between(events_df, end - parse_duration(duration), end)


def trending_scores(events_df: pd.DataFrame, duration: str, offset_date=None) -> pd.Series:
    """Change in event count between the older and the newer half of the window."""
    end = reference_time(offset_date)
    half = parse_duration(duration) / 2
    older = _count_between(events_df, end - 2 * half, end - half)
    newer = _count_between(events_df, end - half, end)
    return newer.subtract(older, fill_value=0.0)


RANKERS = {
    "popular": popular_scores,
    "trending": trending_scores,
}


def compute_rankings(events_df: pd.DataFrame, rankings: List[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """
    Backfill scores for every configured ranking, as item id → {ranking name: score}.
    Only items with events in a ranking's window get that ranking's field.
    """
    ranked: Dict[str, Dict[str, float]] = {}
    for ranking in rankings:
        scores = RANKERS[ranking["type"]](
            _events_for(events_df, ranking),
            ranking.get("duration") or "3650 days",
            ranking.get("offset_date"),
        )
        logger.info(f"Ranking {ranking['name']} ({ranking['type']}): scored {len(scores):,} items")
        for item_id, score in scores.items():
            ranked.setdefault(str(item_id), {})[ranking["name"]] = float(score)
    return ranked


def merge_rankings(properties: Dict[str, Dict[str, Any]], ranked: Dict[str, Dict[str, float]]) -> Dict[str, Dict[str, Any]]:
    """Item properties with ranking fields added; a ranking overrides a stored property of the same name."""
    merged = {item_id: dict(fields) for item_id, fields in properties.items()}
    for item_id, scores in ranked.items():
        merged.setdefault(item_id, {}).update(scores)
    return merged
