from common.constants import REPEATS


def log_engine_params(logger, params):
    logger.info("=" * REPEATS)
    logger.info("ENGINE PARAMETERS")
    logger.info("=" * REPEATS)
    logger.info(f"App: {params.get('app_name')}")
    logger.info(f"Index alias: {params['index_name']} (type {params.get('type_name')})")
    logger.info(f"Mode: {params.get('mode')}")
    logger.info(f"Events: {params['event_names']} (primary: {params['event_names'][0]})")
    window = params.get("event_window")
    if window:
        logger.info(f"Event window: {window.get('duration')} (offset: {window.get('offset_date') or 'now'})")
    else:
        logger.info("Event window: none")
    logger.info(f"Date fields: {params.get('date_fields')}")
    logger.info(f"Max correlators per item: {params.get('max_correlators_per_item')}")
    for ranking in params.get("rankings") or []:
        logger.info(
            f"  Ranking {ranking['name']}: {ranking['type']} over {ranking.get('duration')} "
            f"(events: {ranking.get('event_names') or 'all'})"
        )


def log_training_summary(logger, summary):
    logger.info("=== Training Data ===")
    if not summary["actions"]:
        logger.warning("⚠️  No action has any events")
    for action_name, info in summary["actions"].items():
        logger.info(f"Action[{action_name}]: {info['count']:,} events")
        for actor_id, target_id in info["sample"]:
            logger.info(f"  {actor_id} -> {target_id}")
    logger.info(f"Item properties: {summary['properties']['count']:,} items")
    for item_id, properties in summary["properties"]["sample"]:
        logger.info(f"  {item_id}: {properties}")


def log_publish_result(logger, result):
    logger.info("=== Publish Result ===")
    logger.info(f"Status: {result['status']}")
    logger.info(f"Alias: {result['alias']}")
    logger.info(f"New index: {result['index_name'] or '-'}")
    logger.info(f"Previous index: {result['previous_index'] or '-'}")
    logger.info(f"Documents: {result['documents']:,}")
    logger.info(f"States: {' -> '.join(result['states'])}")
    if result["retirement_error"]:
        logger.warning(f"⚠️  Retirement failed: {result['retirement_error']}")
