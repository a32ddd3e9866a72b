"""
Output documents: success and failure payloads, JSON rendering and exit codes.

Payload shapes:
    {"success": bool, "errors": [{"message", "type"}]?, "decisions": {...}, "results": {...}}
    {"success": false, "errors": [str, ...]}
"""

import json
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Iterable

from dmn_executor.engine.values import Range, format_duration
from dmn_executor.models import DecisionStatus, EvaluationResult
from dmn_executor.services.sanitizer import OpaqueClassifier, sanitize_value

EXIT_OK = 0
EXIT_FAILURE = 1


def format_result(
    result: EvaluationResult,
    input_context: dict[str, Any],
    is_opaque: OpaqueClassifier,
) -> dict[str, Any]:
    """Build the success payload for an evaluation (partial failures included)."""
    payload: dict[str, Any] = {"success": not result.has_errors}
    if result.has_errors:
        payload["errors"] = [{"message": m.text, "type": m.message_type} for m in result.error_messages()]

    decisions: dict[str, Any] = {}
    not_succeeded = set()
    for dr in result.decision_results:
        entry: dict[str, Any] = {}
        present, cleaned = sanitize_value(dr.result, is_opaque)
        if present:
            entry["result"] = cleaned
        entry["status"] = dr.status.value
        decisions[dr.decision_name] = entry
        if dr.status != DecisionStatus.SUCCEEDED:
            not_succeeded.add(dr.decision_name)
    payload["decisions"] = decisions

    results: dict[str, Any] = {}
    for key, value in result.context.items():
        if key in input_context or key in not_succeeded:
            continue
        present, cleaned = sanitize_value(value, is_opaque)
        if present:
            results[key] = cleaned
    payload["results"] = results
    return payload


def format_errors(messages: Iterable[str]) -> dict[str, Any]:
    return {"success": False, "errors": [str(m) for m in messages]}


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        if not value.is_finite():
            # JSON has no infinity or NaN
            return None
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, Range):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return list(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def render(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, allow_nan=False, default=_json_default)
