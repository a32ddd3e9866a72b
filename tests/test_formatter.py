"""Unit tests for output payloads."""

import json
from datetime import date, timedelta
from decimal import Decimal

from dmn_executor.engine.handles import OpaqueHandle, is_opaque
from dmn_executor.models import DecisionResult, DecisionStatus, DMNMessage, EvaluationResult
from dmn_executor.services.formatter import format_errors, format_result, render


class Handle(OpaqueHandle):
    __slots__ = ()


def test_success_payload():
    result = EvaluationResult(
        [DecisionResult("_e", "Eligible", DecisionStatus.SUCCEEDED, True)],
        [],
        {"age": Decimal(25), "Eligible": True},
    )
    payload = format_result(result, {"age": 25}, is_opaque)
    assert payload == {
        "success": True,
        "decisions": {"Eligible": {"result": True, "status": "SUCCEEDED"}},
        "results": {"Eligible": True},
    }


def test_partial_failure_payload():
    error = DMNMessage.error("Error evaluating node 'B'", "FEEL_EVALUATION_ERROR", "B")
    result = EvaluationResult(
        [
            DecisionResult("_a", "A", DecisionStatus.SUCCEEDED, Decimal(10)),
            DecisionResult("_b", "B", DecisionStatus.FAILED, None, [error]),
        ],
        [error],
        {"x": Decimal(5), "A": Decimal(10), "B": None},
    )
    payload = format_result(result, {"x": 5}, is_opaque)
    assert payload["success"] is False
    assert payload["errors"] == [{"message": "Error evaluating node 'B'", "type": "FEEL_EVALUATION_ERROR"}]
    assert payload["decisions"]["B"] == {"result": None, "status": "FAILED"}
    assert payload["results"] == {"A": Decimal(10)}


def test_opaque_results_are_omitted():
    result = EvaluationResult(
        [DecisionResult("_f", "Make", DecisionStatus.SUCCEEDED, Handle())],
        [],
        {"Make": Handle(), "Other": {"fn": Handle(), "v": 1}},
    )
    payload = format_result(result, {}, is_opaque)
    assert payload["decisions"] == {"Make": {"status": "SUCCEEDED"}}
    assert payload["results"] == {"Other": {"v": 1}}


def test_null_result_is_rendered_as_null():
    result = EvaluationResult([DecisionResult("_n", "N", DecisionStatus.SUCCEEDED, None)], [], {"N": None})
    payload = json.loads(render(format_result(result, {}, is_opaque)))
    assert payload["decisions"]["N"] == {"result": None, "status": "SUCCEEDED"}
    assert payload["results"] == {"N": None}


def test_format_errors():
    assert format_errors(["boom"]) == {"success": False, "errors": ["boom"]}


def test_render_feel_values():
    text = render({"int": Decimal("160.0"), "frac": Decimal("0.25"), "day": date(2024, 1, 31), "d": timedelta(hours=2)})
    assert json.loads(text) == {"int": 160, "frac": 0.25, "day": "2024-01-31", "d": "PT2H"}
    assert '"int": 160' in text


def test_render_keeps_unicode():
    assert "é" in render({"name": "café"})


def test_render_non_finite_numbers_as_null():
    text = render({"big": Decimal("Infinity"), "low": Decimal("-Infinity"), "nan": Decimal("NaN")})
    assert json.loads(text) == {"big": None, "low": None, "nan": None}
