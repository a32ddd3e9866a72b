"""Orchestration services: resolve, select, dispatch, sanitize, format, describe."""

from dmn_executor.services.dispatcher import dispatch
from dmn_executor.services.formatter import EXIT_FAILURE, EXIT_OK, format_errors, format_result, render
from dmn_executor.services.introspector import describe
from dmn_executor.services.model_selector import select_model
from dmn_executor.services.pipeline import ExecutorOptions, run_execute, run_info, run_service
from dmn_executor.services.resource_resolver import MODEL_FILE_EXTENSION, ResourceSet, resolve_resources
from dmn_executor.services.sanitizer import is_elided, sanitize, sanitize_value

__all__ = [
    "EXIT_FAILURE",
    "EXIT_OK",
    "MODEL_FILE_EXTENSION",
    "ExecutorOptions",
    "ResourceSet",
    "describe",
    "dispatch",
    "format_errors",
    "format_result",
    "is_elided",
    "render",
    "resolve_resources",
    "run_execute",
    "run_info",
    "run_service",
    "sanitize",
    "sanitize_value",
    "select_model",
]
