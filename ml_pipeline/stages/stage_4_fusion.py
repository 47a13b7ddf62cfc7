from typing import Any, Dict, List, Optional

from common.constants import PATHS
from common.utils import backfill_field_names, setup_logging
from dataflow import KeyedDataset
from fusion.data_models import CorrelatorMap, MaterializedModel, PlaceholderModel
from fusion.engine import build_bundle

from .stage_3_rankings import merge_rankings

logger = setup_logging(__name__, PATHS["train_log_file"])


def build_model(
    correlators: List[CorrelatorMap],
    properties: Dict[str, Dict[str, Any]],
    ranked: Dict[str, Dict[str, float]],
    params: Dict[str, Any],
    held_over: Optional[KeyedDataset] = None,
) -> MaterializedModel:
    """
    Assemble the dataset bundle for one training run.
    Ranking scores join the item properties so they take property precedence over correlators and held-over fields.
    """
    item_properties = merge_rankings(properties, ranked)
    logger.info(
        f"Building model from {len(correlators)} correlators, {len(item_properties):,} items with properties"
        + (", plus records held over from the live index" if held_over is not None else "")
    )
    bundle = build_bundle(
        correlators,
        item_properties,
        date_fields=params.get("date_fields") or [],
        backfill_fields=backfill_field_names(params),
        held_over=held_over,
    )
    return MaterializedModel(bundle=bundle)


def load_model(reason: str = "model data lives in the index") -> PlaceholderModel:
    """A reload of a trained model: its records are already served, so nothing is materialized."""
    logger.info("Created placeholder model")
    return PlaceholderModel(reason=reason)
