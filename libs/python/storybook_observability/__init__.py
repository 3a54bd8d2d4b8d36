"""Shared observability helpers used across storybook services."""

from .logging import log_context, setup_logging
from .metrics import (
    observe_generator_call,
    observe_stage_duration,
    record_batch_progress,
    record_retry,
    setup_fastapi_metrics,
    start_metrics_server,
)

__all__ = [
    "log_context",
    "observe_generator_call",
    "observe_stage_duration",
    "record_batch_progress",
    "record_retry",
    "setup_fastapi_metrics",
    "setup_logging",
    "start_metrics_server",
]
