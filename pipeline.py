import argparse
import sys

from common.constants import INDEX, PATHS
from common.utils import load_engine_params, setup_logging
from events.event_store import EventStore
from indexing import get_backend
from ml_pipeline.handler import train


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Train correlators and publish the fused item index.")
    parser.add_argument("--events", default=PATHS["events"], help="CSV or Feather event file")
    parser.add_argument("--engine", default=PATHS["engine_params"], help="JSON engine parameters")
    parser.add_argument("--mode", choices=["all", "backfill"], default=None, help="Override the engine model mode")
    parser.add_argument("--backend", choices=["memory", "elasticsearch"], default=INDEX["backend"])
    parser.add_argument("--es-url", default=INDEX["es_url"])
    return parser.parse_args(argv)


def main(argv=None):
    """Parse arguments and run the pipeline."""
    args = parse_args(argv)
    logger = setup_logging("pipeline", PATHS["train_log_file"])

    params = load_engine_params(args.engine)
    if args.mode:
        params["mode"] = args.mode

    if args.backend == "elasticsearch":
        backend = get_backend("elasticsearch", base_url=args.es_url)
    else:
        backend = get_backend("memory")

    try:
        result = train(EventStore.from_file(args.events), backend, params)
    except Exception as e:
        logger.error(f"Pipeline failed: {e}")
        print(f"Pipeline failed: {e}", file=sys.stderr)
        return 1
    finally:
        if hasattr(backend, "close"):
            backend.close()

    print(f"{result['status']}: {result['documents']} documents under {result['alias']} -> {result['index_name']}")
    if args.backend == "memory":
        print("Note: the memory backend is not persistent, the index is gone when this process exits. "
              "Use --backend elasticsearch to keep it.", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
