from typing import Any, Dict, Optional

from common.constants import PATHS
from common.utils import setup_logging
from dataflow import KeyedDataset
from fusion.data_models import URModel
from indexing.backend import IndexBackend
from indexing.publisher import HotSwapPublisher, PublishResult

logger = setup_logging(__name__, PATHS["train_log_file"])


def make_publisher(backend: IndexBackend, params: Dict[str, Any]) -> HotSwapPublisher:
    return HotSwapPublisher(backend, alias=params["index_name"], type_name=params.get("type_name", "items"))


def read_held_over(backend: IndexBackend, params: Dict[str, Any]) -> Optional[KeyedDataset]:
    """
    Correlator fields currently behind the alias, for a refresh that keeps last run's correlators.
    Rankings and properties are left out so they come only from the current events.
    """
    held = make_publisher(backend, params).held_over_records(
        params.get("date_fields") or [], fields=list(params["event_names"])
    )
    if held is None:
        logger.warning(f"Nothing is published under {params['index_name']} yet, refreshing from scratch")
    return held


def publish_model(model: URModel, backend: IndexBackend, params: Dict[str, Any]) -> PublishResult:
    result = make_publisher(backend, params).publish(model)
    if result["status"] == "no_data":
        logger.warning(f"Nothing published; {params['index_name']} still serves {backend.get_alias_target(params['index_name'])}")
    elif result["retirement_error"]:
        logger.warning(f"Published {result['index_name']} but {result['previous_index']} still needs to be retired")
    else:
        logger.info(f"Published {result['documents']:,} documents as {result['index_name']}")
    return result
