"""Infrastructure helpers."""

from dmn_executor.utils.logging import (
    configure_logging,
    get_logger,
    log_evaluation_summary,
    log_pipeline_step,
)
from dmn_executor.utils.references import local_reference, reference_namespace

__all__ = [
    "configure_logging",
    "get_logger",
    "local_reference",
    "log_evaluation_summary",
    "log_pipeline_step",
    "reference_namespace",
]
