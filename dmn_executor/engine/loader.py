"""
DMN XML loader: reads one ``definitions`` document into a Model plus the raw elements
the compiler needs (decision and BKM bodies). Namespace-agnostic, so DMN 1.1 to 1.5
documents load the same way.
"""

import logging
import os
from typing import Optional
from xml.etree import ElementTree
from xml.etree.ElementTree import Element

from dmn_executor.engine.dom import child, child_text, children, local_name
from dmn_executor.errors import CompilationFailed
from dmn_executor.models import (
    BusinessKnowledgeModel,
    DecisionDeclaration,
    DecisionServiceDeclaration,
    DMNMessage,
    ImportDeclaration,
    InputDeclaration,
    ItemDefinition,
    Model,
)

logger = logging.getLogger(__name__)


class ModelDocument:
    """A parsed DMN file: its Model and the decision / BKM elements keyed by id."""

    __slots__ = ("path", "model", "elements")

    def __init__(self, path: str, model: Model, elements: dict[str, Element]):
        self.path = path
        self.model = model
        self.elements = elements


def _href(element: Optional[Element]) -> Optional[str]:
    if element is None:
        return None
    return element.get("href")


def _type_ref(element: Element) -> Optional[str]:
    # DMN 1.1 and later use <typeRef> children on item definitions, attributes elsewhere
    return element.get("typeRef") or child_text(element, "typeRef") or None


def _variable_type(element: Element) -> Optional[str]:
    variable = child(element, "variable")
    return variable.get("typeRef") if variable is not None else None


def _item_definition(element: Element) -> ItemDefinition:
    return ItemDefinition(
        name=element.get("name") or "",
        type_ref=_type_ref(element),
        is_collection=(element.get("isCollection") or "false").lower() == "true",
        allowed_values=child_text(child(element, "allowedValues")),
        components=[_item_definition(c) for c in children(element, "itemComponent")],
    )


def _requirements(element: Element, container: str, ref: str) -> list[str]:
    hrefs = []
    for requirement in children(element, container):
        href = _href(child(requirement, ref))
        if href:
            hrefs.append(href)
    return hrefs


def read_document(path: str) -> ModelDocument:
    """Parse one DMN file. Raises CompilationFailed when it is unreadable or not a DMN document."""
    try:
        root = ElementTree.parse(path).getroot()
    except OSError as e:
        raise CompilationFailed(f"cannot read '{path}': {e}") from e
    except ElementTree.ParseError as e:
        raise CompilationFailed(f"'{path}' is not well-formed XML: {e}") from e

    if local_name(root.tag) != "definitions":
        raise CompilationFailed(f"'{path}' is not a DMN document (root element '{local_name(root.tag)}')")

    stem = os.path.splitext(os.path.basename(path))[0]
    model = Model(
        name=root.get("name") or stem,
        namespace=root.get("namespace") or "",
        source_path=path,
    )
    if not model.namespace:
        model.messages.append(DMNMessage.warn(f"Model '{model.name}' declares no namespace", "MISSING_NAMESPACE"))
    elements: dict[str, Element] = {}

    for imp in children(root, "import"):
        model.imports.append(
            ImportDeclaration(
                namespace=imp.get("namespace") or "",
                name=imp.get("name") or "",
                import_type=imp.get("importType"),
            )
        )

    model.item_definitions = [_item_definition(e) for e in children(root, "itemDefinition")]

    for element in children(root, "inputData"):
        name = element.get("name") or ""
        model.inputs.append(InputDeclaration(id=element.get("id") or name, name=name, type_ref=_variable_type(element)))

    for element in children(root, "decision"):
        name = element.get("name") or ""
        decision = DecisionDeclaration(
            id=element.get("id") or name,
            name=name,
            type_ref=_variable_type(element),
            required_inputs=_requirements(element, "informationRequirement", "requiredInput"),
            required_decisions=_requirements(element, "informationRequirement", "requiredDecision"),
            required_knowledge=_requirements(element, "knowledgeRequirement", "requiredKnowledge"),
        )
        model.decisions.append(decision)
        elements[decision.id] = element

    for element in children(root, "businessKnowledgeModel"):
        name = element.get("name") or ""
        logic = child(element, "encapsulatedLogic")
        parameters = [p.get("name") for p in children(logic, "formalParameter")] if logic is not None else []
        bkm = BusinessKnowledgeModel(id=element.get("id") or name, name=name, parameters=[p for p in parameters if p])
        model.business_knowledge_models.append(bkm)
        elements[bkm.id] = element

    for element in children(root, "decisionService"):
        name = element.get("name") or ""
        model.decision_services.append(
            DecisionServiceDeclaration(
                id=element.get("id") or name,
                name=name,
                type_ref=_variable_type(element),
                input_data=[h for h in (_href(e) for e in children(element, "inputData")) if h],
                input_decisions=[h for h in (_href(e) for e in children(element, "inputDecision")) if h],
                output_decisions=[h for h in (_href(e) for e in children(element, "outputDecision")) if h],
                encapsulated_decisions=[h for h in (_href(e) for e in children(element, "encapsulatedDecision")) if h],
            )
        )

    logger.debug(
        "Loaded model %s from %s: %d inputs, %d decisions, %d services",
        model.name,
        path,
        len(model.inputs),
        len(model.decisions),
        len(model.decision_services),
    )
    return ModelDocument(path, model, elements)
