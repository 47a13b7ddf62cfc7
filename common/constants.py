"""
Centralized configuration for the correlator training and index publishing pipeline.
Defines all paths, engine parameters, and constants used across stages.
"""

from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
DATA_DIR = PROJECT_ROOT / "data"
RAW_DATA_DIR = DATA_DIR / "raw"
LOGS_DIR = PROJECT_ROOT / "logs"
APP_LOGS_DIR = PROJECT_ROOT / "logs" / "app_logs"
TRAIN_LOGS_DIR = PROJECT_ROOT / "logs" / "train_logs"

date_str = datetime.now().strftime("%m%d%Y")

REPEATS = 100

# Engine parameters, the JSON engine file passed to load_engine_params() overrides these
ENGINE = {
    "app_name": "handmade",
    # primary event first, the rest are secondary (cross-cooccurrence) events
    "event_names": ["purchase", "view"],
    "event_window": None,  # e.g. {"duration": "90 days"}
    "index_name": "urindex",
    "type_name": "items",
    "mode": "all",  # "all" rebuilds every signal, "backfill" refreshes rankings only
    "date_fields": ["expireDate", "availableDate"],
    "max_correlators_per_item": 50,
    "rankings": [
        {
            "name": "popRank",
            "type": "popular",  # "popular" or "trending"
            "event_names": None,  # None means every configured event
            "duration": "3650 days",
            "offset_date": None,  # reference "now" for reproducible tests
        },
    ],
}

EVENTS = {
    "source_entity_type": "user",
    "target_entity_type": "item",
    "input_cols": ["event", "entity_type", "entity_id", "target_entity_type", "target_entity_id", "event_time"],
    "property_events": ["$set", "$unset", "$delete"],
    # malformed identities are rejected and skipped, unexpected event names always fail the run
    "skip_invalid_events": True,
    "sample_size": 2,
}

FUSION = {
    "id_field": "id",
    # fields whose string values are popularity/ranking scores
    "backfill_fields": ["popRank", "trendRank", "hotRank"],
}

DATASETS = {
    "num_partitions": 8,
    "parallelism": 4,
}

INDEX = {
    "backend": "memory",  # "memory" or "elasticsearch"
    "es_url": "http://localhost:9200",
    "timeout_seconds": 30.0,
    "bulk_batch_size": 500,
    "number_of_shards": 5,
    "number_of_replicas": 1,
}

PATHS = {
    "events": str(RAW_DATA_DIR / "events.csv"),
    "engine_params": str(PROJECT_ROOT / "engine.json"),
    "app_log_file": str(APP_LOGS_DIR / f"{date_str}_app.log"),
    "train_log_file": str(TRAIN_LOGS_DIR / f"{date_str}_train.log"),
}
