import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from common.constants import EVENTS, PATHS
from common.utils import safe_read_csv, safe_read_feather, setup_logging

logger = setup_logging(__name__, PATHS["train_log_file"])


def _parse_properties(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if raw is None or (isinstance(raw, float) and pd.isna(raw)) or raw == "":
        return {}
    return json.loads(raw)


class EventStore:
    """
    Read-only, point-in-time view over an event log.

    The log is a frame with one row per event: event, entity_type, entity_id,
    target_entity_type, target_entity_id, properties (JSON object), event_time (ISO 8601).
    """

    def __init__(self, events_df: pd.DataFrame, app_name: Optional[str] = None):
        missing = [c for c in EVENTS["input_cols"] if c not in events_df.columns]
        if missing:
            raise ValueError(f"Missing columns in event log: {missing}")

        df = events_df.copy()
        if "properties" not in df.columns:
            df["properties"] = None
        df["event_time"] = pd.to_datetime(df["event_time"], utc=True, format="ISO8601")
        for col in ["entity_id", "target_entity_id", "target_entity_type"]:
            df[col] = df[col].fillna("").astype(str)
        self.events_df = df
        self.app_name = app_name

    @classmethod
    def from_file(cls, filepath: str, app_name: Optional[str] = None) -> "EventStore":
        if Path(filepath).suffix in (".ftr", ".feather"):
            df = safe_read_feather(filepath, EVENTS["input_cols"])
        else:
            df = safe_read_csv(filepath, EVENTS["input_cols"])
        logger.info(f"Loaded {len(df):,} events from {filepath}")
        return cls(df, app_name=app_name)

    def find(
        self,
        event_names: List[str],
        entity_type: str = "user",
        target_entity_type: str = "item",
        start_time: Optional[datetime] = None,
    ) -> pd.DataFrame:
        """
        Interaction events with the given names.
        Returns columns actor_id, target_id, action_name, timestamp in event log order.
        """
        df = self.events_df
        mask = (
            (df["entity_type"] == entity_type)
            & df["event"].isin(event_names)
            # rows without a target are kept so the partitioner can reject them
            & ((df["target_entity_type"] == target_entity_type) | (df["target_entity_type"] == ""))
        )
        if start_time is not None:
            mask &= df["event_time"] >= pd.Timestamp(start_time)

        found = df.loc[mask, ["entity_id", "target_entity_id", "event", "event_time"]].rename(
            columns={
                "entity_id": "actor_id",
                "target_entity_id": "target_id",
                "event": "action_name",
                "event_time": "timestamp",
            }
        )
        return found.reset_index(drop=True)

    def aggregate_properties(self, entity_type: str = "item") -> Dict[str, Dict[str, Any]]:
        """
        Current properties of every entity of ``entity_type``.
        $set merges fields, $unset removes the named fields, $delete drops the entity; applied in event time order.
        """
        df = self.events_df
        df = df[(df["entity_type"] == entity_type) & df["event"].isin(EVENTS["property_events"])]
        df = df.sort_values("event_time", kind="stable")

        current: Dict[str, Dict[str, Any]] = {}
        for row in df.itertuples(index=False):
            entity_id = row.entity_id
            if row.event == "$delete":
                current.pop(entity_id, None)
                continue

            properties = _parse_properties(row.properties)
            if row.event == "$set":
                current.setdefault(entity_id, {}).update(properties)
            elif entity_id in current:  # $unset
                for name in properties:
                    current[entity_id].pop(name, None)

        logger.info(f"Aggregated properties for {len(current):,} {entity_type} entities")
        return current
