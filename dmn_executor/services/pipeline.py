"""
Command pipeline: resolve resources -> compile -> select model -> dispatch -> format.

``run_execute``, ``run_service`` and ``run_info`` return ``(payload, exit_code)``. Fatal
conditions raise ExecutorError subclasses internally and come back as failure payloads;
evaluated results, including partial failures, come back as success-shaped payloads.
"""

import json
import logging
import time
from typing import Any, Optional

from pydantic import BaseModel, Field

from dmn_executor.engine.adapter import DecisionEngine, get_engine
from dmn_executor.errors import ArgumentError, ExecutorError, InputParseError, ModelNotFound
from dmn_executor.models import LoadedModelCollection, Model
from dmn_executor.services.dispatcher import dispatch
from dmn_executor.services.formatter import EXIT_FAILURE, EXIT_OK, format_errors, format_result
from dmn_executor.services.introspector import describe
from dmn_executor.services.model_selector import select_model
from dmn_executor.services.resource_resolver import ResourceSet, resolve_resources
from dmn_executor.utils.logging import log_pipeline_step

logger = logging.getLogger(__name__)

SERVICE_NAME_REQUIRED = "Decision service name required. Use --service <name>"

# -----------------------------------------------------------------------------
# ExecutorOptions
# -----------------------------------------------------------------------------


class ExecutorOptions(BaseModel):
    """Options for one command invocation."""

    model_path: str = Field(..., description="Path of the main DMN file")
    input_json: str = Field(default="{}", description="Input context as a JSON object")
    decision_name: Optional[str] = Field(None, description="Evaluate only this decision (and its dependencies)")
    service_name: Optional[str] = Field(None, description="Evaluate this decision service")
    model_name: Optional[str] = Field(None, description="Select the model with this exact name")
    import_paths: list[str] = Field(default_factory=list, description="Extra DMN files or directories to load")
    auto_import: bool = Field(default=True, description="Load sibling .dmn files of the main file")
    typecheck: bool = Field(default=True, description="Check input and result values against declared types")
    engine: Optional[str] = Field(None, description="Engine name; DMN_EXECUTOR_ENGINE when unset")


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------


def parse_input(input_json: str) -> dict[str, Any]:
    """Parse the input context. Raises InputParseError unless it is a JSON object."""
    try:
        value = json.loads(input_json)
    except json.JSONDecodeError as e:
        raise InputParseError(f"Invalid input JSON: {e}") from e
    if not isinstance(value, dict):
        raise InputParseError(f"Input JSON must be an object, got {type(value).__name__}")
    return value


def load_models(engine: DecisionEngine, options: ExecutorOptions) -> tuple[ResourceSet, LoadedModelCollection]:
    start = time.perf_counter()
    resources = resolve_resources(options.model_path, options.import_paths, options.auto_import)
    log_pipeline_step(
        logger,
        "resolve_resources",
        options.model_path,
        duration_sec=time.perf_counter() - start,
        extra={"resources": list(resources.paths)},
    )

    start = time.perf_counter()
    collection = engine.compile(resources, typecheck=options.typecheck)
    log_pipeline_step(
        logger,
        "compile",
        options.model_path,
        duration_sec=time.perf_counter() - start,
        extra={"models": collection.names(), "typecheck": options.typecheck},
    )
    return resources, collection


def choose_model(collection: LoadedModelCollection, options: ExecutorOptions, resources: ResourceSet) -> Model:
    model = select_model(collection, options.model_name, resources.main_path)
    if model is None:
        raise ModelNotFound(options.model_name, collection.names())
    log_pipeline_step(logger, "select_model", options.model_path, extra={"model": model.name})
    return model


def _failure(options: ExecutorOptions, step: str, error: ExecutorError) -> tuple[dict[str, Any], int]:
    log_pipeline_step(logger, step, options.model_path, success=False, error=error.message)
    return format_errors(error.errors()), EXIT_FAILURE


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def run_execute(options: ExecutorOptions) -> tuple[dict[str, Any], int]:
    """Evaluate a model, a decision or a decision service and build the result payload."""
    try:
        context = parse_input(options.input_json)
        engine = get_engine(options.engine)
        resources, collection = load_models(engine, options)
        model = choose_model(collection, options, resources)
        result = dispatch(engine, model, context, options.decision_name, options.service_name)
    except ExecutorError as e:
        return _failure(options, "execute", e)

    payload = format_result(result, context, engine.is_opaque)
    log_pipeline_step(
        logger,
        "format",
        options.model_path,
        extra={"success": payload["success"], "decisions": len(payload["decisions"])},
    )
    return payload, EXIT_OK


def run_service(options: ExecutorOptions) -> tuple[dict[str, Any], int]:
    """Evaluate the decision service named in options."""
    if not options.service_name:
        return _failure(options, "service", ArgumentError(SERVICE_NAME_REQUIRED))
    return run_execute(options)


def run_info(options: ExecutorOptions) -> tuple[dict[str, Any], int]:
    """Describe the loaded models without evaluating anything."""
    try:
        engine = get_engine(options.engine)
        _, collection = load_models(engine, options)
    except ExecutorError as e:
        return _failure(options, "info", e)
    return describe(collection), EXIT_OK
