"""
Evaluation results returned by a decision engine.

Results may hold engine-internal values (compiled functions, decision service handles),
so they are plain classes rather than pydantic models. ``to_dict`` gives a debugging view;
the JSON payload is built by the output formatter after sanitization.
"""

from enum import Enum
from typing import Any, Optional

from dmn_executor.models.dmn import DMNMessage, Severity


class DecisionStatus(str, Enum):
    """Evaluation status of a single decision."""

    NOT_EVALUATED = "NOT_EVALUATED"
    EVALUATING = "EVALUATING"
    SUCCEEDED = "SUCCEEDED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class DecisionResult:
    """Outcome of evaluating one decision."""

    __slots__ = ("decision_id", "decision_name", "status", "result", "messages")

    def __init__(
        self,
        decision_id: str,
        decision_name: str,
        status: DecisionStatus = DecisionStatus.NOT_EVALUATED,
        result: Any = None,
        messages: Optional[list[DMNMessage]] = None,
    ):
        self.decision_id = decision_id
        self.decision_name = decision_name
        self.status = status
        self.result = result
        self.messages = messages or []

    @property
    def has_errors(self) -> bool:
        return any(m.severity == Severity.ERROR for m in self.messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "decision_name": self.decision_name,
            "status": self.status.value,
            "result": self.result,
            "messages": [m.model_dump(mode="json") for m in self.messages],
        }


class EvaluationResult:
    """Per-decision results, diagnostics and the full context snapshot of one evaluation."""

    __slots__ = ("decision_results", "messages", "context")

    def __init__(
        self,
        decision_results: Optional[list[DecisionResult]] = None,
        messages: Optional[list[DMNMessage]] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        self.decision_results = decision_results or []
        self.messages = messages or []
        self.context = context if context is not None else {}

    @property
    def has_errors(self) -> bool:
        return any(m.severity == Severity.ERROR for m in self.messages)

    def error_messages(self) -> list[DMNMessage]:
        return [m for m in self.messages if m.severity == Severity.ERROR]

    def get_decision_result(self, name: str) -> Optional[DecisionResult]:
        return next((r for r in self.decision_results if r.decision_name == name), None)

    def count(self, status: DecisionStatus) -> int:
        return sum(1 for r in self.decision_results if r.status == status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision_results": [r.to_dict() for r in self.decision_results],
            "messages": [m.model_dump(mode="json") for m in self.messages],
            "context": self.context,
        }
