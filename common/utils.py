import copy
import json
import logging
import os
from typing import Optional

import pandas as pd

from common.constants import ENGINE, FUSION
from common.errors import ConfigurationError


def setup_logging(stage_name: str, log_file: str, level=logging.INFO):
    """Configure logging for a pipeline stage.

    Args:
        stage_name: Name for the logger (typically __name__)
        log_file: Path to the log file to write to
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(stage_name)
    logger.handlers.clear()

    # Disable propagation to root logger to prevent duplicate logging
    logger.propagate = False

    logger.setLevel(level)

    os.makedirs(os.path.dirname(log_file), exist_ok=True)

    # File Handler
    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(file_handler)

    return logger


def safe_read_csv(filepath: str, usecols: Optional[list[str]] = None) -> pd.DataFrame:
    """Safely read CSV file"""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        df = pd.read_csv(filepath, dtype=str, keep_default_na=False)

        df.columns = df.columns.str.lower()
        if usecols:
            missing_cols = [c for c in usecols if c.lower() not in df.columns]
            if missing_cols:
                raise ValueError(f"Missing columns in input CSV: {missing_cols}")
        return df
    except pd.errors.ParserError as e:
        raise pd.errors.ParserError(f"Error parsing {filepath}: {e}")


def safe_read_feather(filepath: str, usecols: Optional[list[str]] = None) -> pd.DataFrame:
    """Safely read Feather file"""
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    try:
        df = pd.read_feather(filepath)

        df.columns = df.columns.str.lower()
        if usecols:
            missing_cols = [c for c in usecols if c.lower() not in df.columns]
            if missing_cols:
                raise ValueError(f"Missing columns in input Feather: {missing_cols}")
        return df
    except Exception as e:
        raise ValueError(f"Error reading or processing feather file {filepath}: {e}")


def load_engine_params(filepath: Optional[str] = None) -> dict:
    """
    Load engine parameters from a JSON file on top of the ENGINE defaults.
    Keys in the file use the same names as ENGINE; unknown keys are rejected.
    """
    params = copy.deepcopy(ENGINE)
    if filepath is None or not os.path.exists(filepath):
        return params

    with open(filepath, "r", encoding="utf-8") as f:
        try:
            overrides = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Engine params in {filepath} are not valid JSON: {e}") from e

    unknown = sorted(set(overrides) - set(params))
    if unknown:
        raise ConfigurationError(f"Unknown engine params in {filepath}: {unknown}")

    params.update(overrides)
    validate_engine_params(params)
    return params


def validate_engine_params(params: dict) -> None:
    event_names = params.get("event_names") or []
    if not event_names:
        raise ConfigurationError("event_names must list at least the primary event")
    if len(set(event_names)) != len(event_names):
        raise ConfigurationError(f"event_names contains duplicates: {event_names}")
    if params.get("mode") not in ("all", "backfill"):
        raise ConfigurationError(f"Unknown model mode: {params.get('mode')!r}")
    for ranking in params.get("rankings") or []:
        if ranking.get("type") not in ("popular", "trending"):
            raise ConfigurationError(f"Unknown ranking type for {ranking.get('name')!r}: {ranking.get('type')!r}")
        if not ranking.get("name"):
            raise ConfigurationError("Every ranking needs a name")


def backfill_field_names(params: dict) -> list[str]:
    """Fields holding numeric backfill scores: the reserved names plus every configured ranking."""
    names = list(FUSION["backfill_fields"])
    for ranking in params.get("rankings") or []:
        if ranking["name"] not in names:
            names.append(ranking["name"])
    return names
