"""Static description of loaded models for the ``info`` command. Nothing is evaluated."""

from typing import Any

from dmn_executor.models import DecisionServiceDeclaration, ItemDefinition, LoadedModelCollection, Model
from dmn_executor.utils.references import local_reference

DEFAULT_TYPE = "Any"

_SERVICE_REFERENCES = (
    ("inputData", "input_data"),
    ("inputDecisions", "input_decisions"),
    ("outputDecisions", "output_decisions"),
    ("encapsulatedDecisions", "encapsulated_decisions"),
)


def describe_service(service: DecisionServiceDeclaration) -> dict[str, Any]:
    out: dict[str, Any] = {"name": service.name}
    for key, attr in _SERVICE_REFERENCES:
        refs = getattr(service, attr)
        if refs:
            out[key] = [local_reference(href) for href in refs]
    return out


def describe_item_definition(definition: ItemDefinition) -> dict[str, Any]:
    out: dict[str, Any] = {"name": definition.name}
    if definition.type_ref:
        out["type"] = definition.type_ref
    if definition.is_collection:
        out["isCollection"] = True
    if definition.components:
        out["components"] = [describe_item_definition(c) for c in definition.components]
    return out


def describe_model(model: Model) -> dict[str, Any]:
    out: dict[str, Any] = {
        "name": model.name,
        "namespace": model.namespace,
        "inputs": [{"name": i.name, "type": i.type_ref or DEFAULT_TYPE} for i in model.inputs],
        "decisions": [{"name": d.name, "type": d.type_ref or DEFAULT_TYPE} for d in model.decisions],
    }
    if model.decision_services:
        out["decisionServices"] = [describe_service(s) for s in model.decision_services]
    if model.item_definitions:
        out["itemDefinitions"] = [describe_item_definition(d) for d in model.item_definitions]
    if model.business_knowledge_models:
        out["businessKnowledgeModels"] = [b.name for b in model.business_knowledge_models]
    if model.has_errors:
        out["errors"] = model.error_texts()
    return out


def describe(collection: LoadedModelCollection) -> dict[str, Any]:
    return {
        "modelsLoaded": len(collection.models),
        "models": [describe_model(m) for m in collection.models],
    }
