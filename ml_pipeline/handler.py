from typing import Any, Callable, Dict, List, Optional

from common.constants import EVENTS, PATHS, REPEATS
from common.logging import log_engine_params, log_publish_result, log_training_summary
from common.utils import setup_logging
from events.event_store import EventStore
from fusion.data_models import CorrelatorMap, TrainingData, URModel
from indexing.backend import IndexBackend
from indexing.publisher import PublishResult
from ml_pipeline.stages import stage_1_events as stage_1
from ml_pipeline.stages import stage_2_correlators as stage_2
from ml_pipeline.stages import stage_3_rankings as stage_3
from ml_pipeline.stages import stage_4_fusion as stage_4
from ml_pipeline.stages import stage_5_publish as stage_5

logger = setup_logging(__name__, PATHS["train_log_file"])


def run_stage_1_events(store: EventStore, params: Dict[str, Any]) -> TrainingData:
    try:
        logger.info("Reading events...")
        events_df = store.find(
            params["event_names"],
            entity_type=EVENTS["source_entity_type"],
            target_entity_type=EVENTS["target_entity_type"],
        )
        events_df = stage_1.apply_event_window(events_df, params.get("event_window"))
        logger.info(f"Read {len(events_df):,} events")

        # rankings count the same events the correlators see
        events_df = stage_1.valid_events(events_df, params["event_names"])

        logger.info("Partitioning events by action...")
        actions = stage_1.partition_events(events_df, params["event_names"])

        logger.info("Aggregating item properties...")
        properties = store.aggregate_properties(entity_type=EVENTS["target_entity_type"])

        training_data: TrainingData = {"actions": actions, "properties": properties, "events": events_df}
        log_training_summary(logger, stage_1.summarize_training_data(training_data))
        logger.info("✓ Stage 1 completed")
        return training_data
    except Exception as e:
        logger.error(f"Stage 1 failed: {e}")
        raise


def run_stage_2_correlators(training_data: TrainingData, params: Dict[str, Any], provider=None) -> List[CorrelatorMap]:
    try:
        if params.get("mode") == "backfill":
            logger.info("Backfill refresh, correlators are held over from the live index")
            return []

        actions = training_data["actions"]
        primary_name = params["event_names"][0]
        primary = dict(actions).get(primary_name)
        if primary is None:
            logger.warning(f"No {primary_name!r} events, no correlators can be computed")
            return []

        provider = provider or stage_2.CooccurrenceCorrelatorProvider(params.get("max_correlators_per_item", 50))
        correlators = []
        for action_name, action_df in actions:
            logger.info(f"Computing correlators for {action_name}...")
            correlators.append(provider.compute_correlators(action_name, primary, action_df))

        logger.info(f"✓ Stage 2 completed - {len(correlators)} correlators")
        return correlators
    except Exception as e:
        logger.error(f"Stage 2 failed: {e}")
        raise


def run_stage_3_rankings(training_data: TrainingData, params: Dict[str, Any]) -> Dict[str, Dict[str, float]]:
    try:
        rankings = params.get("rankings") or []
        ranked = stage_3.compute_rankings(training_data["events"], rankings)
        logger.info(f"✓ Stage 3 completed - {len(rankings)} rankings over {len(ranked):,} items")
        return ranked
    except Exception as e:
        logger.error(f"Stage 3 failed: {e}")
        raise


def run_stage_4_fusion(
    training_data: TrainingData,
    correlators: List[CorrelatorMap],
    ranked: Dict[str, Dict[str, float]],
    params: Dict[str, Any],
    backend: Optional[IndexBackend] = None,
) -> URModel:
    try:
        held_over = None
        if params.get("mode") == "backfill" and backend is not None:
            held_over = stage_5.read_held_over(backend, params)
        model = stage_4.build_model(correlators, training_data["properties"], ranked, params, held_over=held_over)
        logger.info("✓ Stage 4 completed")
        return model
    except Exception as e:
        logger.error(f"Stage 4 failed: {e}")
        raise


def run_stage_5_publish(model: URModel, backend: IndexBackend, params: Dict[str, Any]) -> PublishResult:
    try:
        result = stage_5.publish_model(model, backend, params)
        log_publish_result(logger, result)
        logger.info("✓ Stage 5 completed")
        return result
    except Exception as e:
        logger.error(f"Stage 5 failed: {e}")
        raise


# Stage registry - order and dependencies
STAGES = [
    ("stage_1_events", run_stage_1_events, []),
    ("stage_2_correlators", run_stage_2_correlators, ["stage_1_events"]),
    ("stage_3_rankings", run_stage_3_rankings, ["stage_1_events"]),
    ("stage_4_fusion", run_stage_4_fusion, ["stage_2_correlators", "stage_3_rankings"]),
    ("stage_5_publish", run_stage_5_publish, ["stage_4_fusion"]),
]


def train(
    store: EventStore,
    backend: IndexBackend,
    params: Dict[str, Any],
    provider=None,
    on_stage: Optional[Callable[[str, str], None]] = None,
) -> PublishResult:
    """
    Run every stage in order and publish the result.
    ``on_stage(stage_name, status)`` is called with "running", "completed" or "failed" for each stage.
    """
    notify = on_stage or (lambda _name, _status: None)
    log_engine_params(logger, params)

    outputs: Dict[str, Any] = {}
    calls = {
        "stage_1_events": lambda: run_stage_1_events(store, params),
        "stage_2_correlators": lambda: run_stage_2_correlators(outputs["stage_1_events"], params, provider),
        "stage_3_rankings": lambda: run_stage_3_rankings(outputs["stage_1_events"], params),
        "stage_4_fusion": lambda: run_stage_4_fusion(
            outputs["stage_1_events"], outputs["stage_2_correlators"], outputs["stage_3_rankings"], params, backend
        ),
        "stage_5_publish": lambda: run_stage_5_publish(outputs["stage_4_fusion"], backend, params),
    }

    for stage_name, _, dependencies in STAGES:
        missing = [d for d in dependencies if d not in outputs]
        if missing:
            raise RuntimeError(f"{stage_name} cannot run before {missing}")

        logger.info("=" * REPEATS)
        logger.info(f"{stage_name.upper()}")
        logger.info("=" * REPEATS)
        notify(stage_name, "running")
        try:
            outputs[stage_name] = calls[stage_name]()
        except Exception:
            notify(stage_name, "failed")
            raise
        notify(stage_name, "completed")

    # action datasets are not needed once correlators exist
    outputs["stage_1_events"]["actions"] = []

    logger.info("=" * REPEATS)
    logger.info("✓ Training completed successfully!")
    logger.info("=" * REPEATS)
    return outputs["stage_5_publish"]
