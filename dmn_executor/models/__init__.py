"""
dmn-executor data models.

Static model structure (pydantic) and evaluation results (plain classes).
"""

from dmn_executor.models.dmn import (
    BusinessKnowledgeModel,
    DecisionDeclaration,
    DecisionServiceDeclaration,
    DMNMessage,
    ImportDeclaration,
    InputDeclaration,
    ItemDefinition,
    LoadedModelCollection,
    Model,
    Severity,
)
from dmn_executor.models.results import DecisionResult, DecisionStatus, EvaluationResult

__all__ = [
    "BusinessKnowledgeModel",
    "DecisionDeclaration",
    "DecisionResult",
    "DecisionServiceDeclaration",
    "DecisionStatus",
    "DMNMessage",
    "EvaluationResult",
    "ImportDeclaration",
    "InputDeclaration",
    "ItemDefinition",
    "LoadedModelCollection",
    "Model",
    "Severity",
]
