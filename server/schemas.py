from typing import Any, Optional

from pydantic import BaseModel, Field


class PipelineRunRequest(BaseModel):
    """
    Optional overrides for one run.

    mode: "all" rebuilds correlators, "backfill" refreshes rankings and properties only
    events_path: event file to train from, defaults to PATHS["events"]
    """
    mode: Optional[str] = Field(None, pattern="^(all|backfill)$")
    events_path: Optional[str] = None


class PipelineRunResponse(BaseModel):
    pipeline_id: str
    status: str
    message: str


class StageProgress(BaseModel):
    status: str
    elapsed_seconds: int


class PipelineStatusResponse(BaseModel):
    pipeline_id: Optional[str] = None
    status: str
    current_stage: Optional[str] = None
    progress: dict[str, StageProgress]
    overall_progress: int
    total_duration_seconds: int
    publish_result: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None


class IndexStatusResponse(BaseModel):
    alias: str
    index_name: Optional[str] = None
