"""
Engine adapter: the only surface the orchestration pipeline uses to reach a DMN engine.

A DecisionEngine compiles resource files into a LoadedModelCollection, evaluates a Model at
three granularities, and classifies result values as opaque engine handles or plain data.
"""

import logging
import os
from typing import Any, Iterable, Optional, Protocol

from dmn_executor.engine.runtime import ReferenceEngine
from dmn_executor.models import EvaluationResult, LoadedModelCollection, Model

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Configuration (environment variables)
# -----------------------------------------------------------------------------


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


DMN_EXECUTOR_ENGINE = (_env("DMN_EXECUTOR_ENGINE", "reference") or "reference").lower()


# -----------------------------------------------------------------------------
# Engine interface
# -----------------------------------------------------------------------------


class DecisionEngine(Protocol):
    """Strategy interface for decision engines."""

    def compile(self, resources: Iterable[str], typecheck: bool = True) -> LoadedModelCollection:
        """Compile all resources together. Raises CompilationFailed when no runtime can be built."""
        ...

    def evaluate_all(self, model: Model, context: dict[str, Any]) -> EvaluationResult:
        ...

    def evaluate_by_name(self, model: Model, context: dict[str, Any], decision_name: str) -> EvaluationResult:
        ...

    def evaluate_decision_service(self, model: Model, context: dict[str, Any], service_name: str) -> EvaluationResult:
        ...

    def is_opaque(self, value: Any) -> bool:
        """True for engine-internal handles (compiled functions, decision-service handles)."""
        ...


def _get_engine(name: str) -> DecisionEngine:
    if name == "reference":
        return ReferenceEngine()
    raise ValueError(f"Unknown decision engine: {name}")


def get_engine(name: Optional[str] = None) -> DecisionEngine:
    """Engine selected by name, or by DMN_EXECUTOR_ENGINE when no name is given."""
    selected = (name or DMN_EXECUTOR_ENGINE).strip().lower()
    logger.debug("Using decision engine %s", selected)
    return _get_engine(selected)
