"""
ML Pipeline - Functional training workflow orchestration.

Simple functions for each pipeline stage.
"""

from ml_pipeline.handler import (
    run_stage_1_events,
    run_stage_2_correlators,
    run_stage_3_rankings,
    run_stage_4_fusion,
    run_stage_5_publish,
    STAGES,
    train,
)

__all__ = [
    "run_stage_1_events",
    "run_stage_2_correlators",
    "run_stage_3_rankings",
    "run_stage_4_fusion",
    "run_stage_5_publish",
    "STAGES",
    "train",
]
