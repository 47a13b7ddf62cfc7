import threading
import traceback
import uuid
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException

from common.constants import INDEX, PATHS
from common.errors import RetirementError
from common.utils import load_engine_params, setup_logging
from events.event_store import EventStore
from indexing import get_backend
from ml_pipeline import handler as pipeline_handler
from ml_pipeline.stages.stage_5_publish import make_publisher
from server.pipeline_state import PipelineStateManager
from server.schemas import IndexStatusResponse, PipelineRunRequest, PipelineRunResponse, PipelineStatusResponse

app = FastAPI(title="Universal Recommender Indexer API", version="0.1.0")

logger = setup_logging(__name__, PATHS["app_log_file"])

if INDEX["backend"] == "elasticsearch":
    backend = get_backend("elasticsearch", base_url=INDEX["es_url"], timeout=INDEX["timeout_seconds"])
else:
    backend = get_backend(INDEX["backend"])

state = PipelineStateManager()
# one writer per alias
run_lock = threading.Lock()


@app.get("/health")
def health():
    alias = None
    try:
        alias = load_engine_params(PATHS["engine_params"])["index_name"]
        serving = backend.get_alias_target(alias)
    except Exception as e:
        logger.error(f"ERROR in /health: {e}")
        return {"status": "degraded", "alias": alias, "index_name": None, "error": str(e)}
    return {"status": "ok", "alias": alias, "index_name": serving, "error": None}


@app.get("/index/status", response_model=IndexStatusResponse)
def index_status():
    try:
        params = load_engine_params(PATHS["engine_params"])
        return IndexStatusResponse(alias=params["index_name"], index_name=backend.get_alias_target(params["index_name"]))
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /index/status: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/index/retire/{index_name}")
def retire_index(index_name: str):
    """Retry deleting a superseded index after a publish reported a retirement error."""
    try:
        params = load_engine_params(PATHS["engine_params"])
        if backend.get_alias_target(params["index_name"]) == index_name:
            raise HTTPException(status_code=409, detail=f"{index_name} is the live index")
        make_publisher(backend, params).retire(index_name)
        return {"status": "ok", "index_name": index_name}
    except HTTPException:
        raise
    except RetirementError as e:
        logger.error(f"ERROR in /index/retire/{index_name}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /index/retire/{index_name}: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


# ===================================================================
# PIPELINE ENDPOINTS
# ===================================================================


@app.get("/pipeline/status", response_model=PipelineStatusResponse)
def get_pipeline_status():
    """Get current pipeline execution status and per-stage progress."""
    try:
        return state.get_status()
    except Exception as e:
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /pipeline/status: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))


def _run_pipeline_background(pipeline_id: str, params: dict, events_path: str):
    """Execute the full training run in background with progress updates."""
    try:
        logger.info(f"Starting pipeline {pipeline_id}...")
        store = EventStore.from_file(events_path)
        result = pipeline_handler.train(store, backend, params, on_stage=state.update_stage_status)
        state.complete_pipeline(dict(result))
        logger.info(f"✓ Pipeline {pipeline_id} completed: {result['status']}")
    except Exception as e:
        logger.error(f"Pipeline execution failed: {str(e)}\n{traceback.format_exc()}")
        state.fail_pipeline(str(e))
    finally:
        run_lock.release()


@app.post("/pipeline/run", response_model=PipelineRunResponse)
def start_pipeline(payload: Optional[PipelineRunRequest] = None):
    """Start a training and publishing run in background."""
    if not run_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="Pipeline is already running")
    try:
        params = load_engine_params(PATHS["engine_params"])
        if payload and payload.mode:
            params["mode"] = payload.mode
        events_path = (payload.events_path if payload else None) or PATHS["events"]

        pipeline_id = f"run_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}"
        state.start_pipeline(pipeline_id)

        pipeline_thread = threading.Thread(
            target=_run_pipeline_background, args=(pipeline_id, params, events_path), daemon=True
        )
        pipeline_thread.start()
        logger.info(f"Pipeline {pipeline_id} started in background (mode={params['mode']})")

        return PipelineRunResponse(pipeline_id=pipeline_id, status="running", message="Pipeline started, executing stages...")
    except Exception as e:
        run_lock.release()
        error_msg = f"{str(e)}\n{traceback.format_exc()}"
        logger.error(f"ERROR in /pipeline/run: {error_msg}")
        raise HTTPException(status_code=500, detail=str(e))
