"""
Execution dispatch: evaluate a whole model, one decision, or one decision service.

Resolution failures (model with errors, unknown decision or service) raise; partial
failures inside an evaluation are returned as part of the EvaluationResult.
"""

import logging
import time
from typing import Any, Optional

from dmn_executor.engine.adapter import DecisionEngine
from dmn_executor.errors import DecisionNotFound, ModelHasErrors, ServiceNotFound
from dmn_executor.models import DecisionStatus, EvaluationResult, Model
from dmn_executor.utils.logging import log_evaluation_summary

logger = logging.getLogger(__name__)


def dispatch(
    engine: DecisionEngine,
    model: Model,
    context: dict[str, Any],
    decision_name: Optional[str] = None,
    service_name: Optional[str] = None,
) -> EvaluationResult:
    """Evaluate model through engine. A service name takes precedence over a decision name."""
    if model.has_errors:
        raise ModelHasErrors(model.name, model.error_texts())

    start = time.perf_counter()
    if service_name:
        if model.get_decision_service(service_name) is None:
            raise ServiceNotFound(service_name, [s.name for s in model.decision_services])
        logger.info("Evaluating decision service %r of model %s", service_name, model.name)
        result = engine.evaluate_decision_service(model, context, service_name)
    elif decision_name:
        if model.get_decision(decision_name) is None:
            raise DecisionNotFound(decision_name, [d.name for d in model.decisions])
        logger.info("Evaluating decision %r of model %s", decision_name, model.name)
        result = engine.evaluate_by_name(model, context, decision_name)
    else:
        logger.info("Evaluating all decisions of model %s", model.name)
        result = engine.evaluate_all(model, context)

    log_evaluation_summary(
        logger,
        model.name,
        total=len(result.decision_results),
        failed=result.count(DecisionStatus.FAILED),
        skipped=result.count(DecisionStatus.SKIPPED),
        duration_sec=time.perf_counter() - start,
    )
    return result
