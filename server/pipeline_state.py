"""
Pipeline execution state management.
Tracks the progress of a running training and publishing run in real-time.
"""

import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from common.constants import PATHS
from common.utils import setup_logging
from ml_pipeline.handler import STAGES

logger = setup_logging(__name__, PATHS["app_log_file"])


class PipelineStatus(str, Enum):
    """Pipeline execution status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    IDLE = "idle"


class StageStatus(str, Enum):
    """Individual stage status."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _pending() -> Dict[str, Any]:
    return {"status": StageStatus.PENDING.value, "elapsed_seconds": 0}


class PipelineStateManager:
    """
    Manages global pipeline execution state.
    Allows progress updates from the background run and status queries from API endpoints.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.current_pipeline_id: Optional[str] = None
        self.overall_status = PipelineStatus.IDLE
        self.start_time: Optional[datetime] = None
        self.stages = {stage_name: _pending() for stage_name, _, _ in STAGES}
        self.publish_result: Optional[Dict[str, Any]] = None
        self.error_message: Optional[str] = None

    def start_pipeline(self, pipeline_id: str) -> None:
        """Initialize a new pipeline execution."""
        with self.lock:
            self.current_pipeline_id = pipeline_id
            self.overall_status = PipelineStatus.RUNNING
            self.start_time = datetime.now()
            for stage_name in self.stages:
                self.stages[stage_name] = _pending()
            self.publish_result = None
            self.error_message = None
            logger.info(f"Pipeline {pipeline_id} started")

    def update_stage_status(self, stage_name: str, status: str) -> None:
        """Record a stage transition; ``train()`` calls this through its on_stage hook."""
        with self.lock:
            if stage_name not in self.stages:
                logger.warning(f"Unknown stage: {stage_name}")
                return

            elapsed = 0
            if self.start_time:
                elapsed = int((datetime.now() - self.start_time).total_seconds())
            self.stages[stage_name] = {"status": StageStatus(status).value, "elapsed_seconds": elapsed}
            logger.debug(f"Updated {stage_name}: {status}")

    def fail_pipeline(self, error_msg: str) -> None:
        with self.lock:
            self.overall_status = PipelineStatus.FAILED
            self.error_message = error_msg
            logger.error(f"Pipeline {self.current_pipeline_id} failed: {error_msg}")

    def complete_pipeline(self, publish_result: Optional[Dict[str, Any]] = None) -> None:
        """Mark pipeline as completed."""
        with self.lock:
            self.overall_status = PipelineStatus.COMPLETED
            self.publish_result = publish_result
            logger.info(f"Pipeline {self.current_pipeline_id} completed")

    def get_status(self) -> Dict[str, Any]:
        """Get current pipeline status as dictionary."""
        with self.lock:
            done = sum(1 for stage in self.stages.values() if stage["status"] == StageStatus.COMPLETED.value)
            overall_progress = int(100 * done / len(self.stages)) if self.stages else 0

            total_duration = 0
            if self.start_time:
                total_duration = int((datetime.now() - self.start_time).total_seconds())

            return {
                "pipeline_id": self.current_pipeline_id,
                "status": self.overall_status.value,
                "current_stage": self._get_current_running_stage(),
                "progress": {stage_name: dict(stage_data) for stage_name, stage_data in self.stages.items()},
                "overall_progress": overall_progress,
                "total_duration_seconds": total_duration,
                "publish_result": self.publish_result,
                "error_message": self.error_message,
            }

    def _get_current_running_stage(self) -> Optional[str]:
        """Return the name of the currently running stage, if any."""
        for stage_name, stage_data in self.stages.items():
            if stage_data["status"] == StageStatus.RUNNING.value:
                return stage_name
        return None

