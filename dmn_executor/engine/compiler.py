"""
Build evaluation graphs for a set of loaded DMN documents.

Requirement hrefs are resolved across the whole collection (``#id`` locally,
``namespace#id`` in an imported model), then every decision and BKM body is compiled.
Reference and expression problems become ERROR messages on the owning Model; only
collection-level problems (duplicate namespaces) abort compilation.
"""

import logging
from typing import NamedTuple, Optional, Union

from dmn_executor.engine.boxed import ExpressionCompiler, find_expression
from dmn_executor.engine.dom import child, children
from dmn_executor.engine.loader import ModelDocument
from dmn_executor.engine.types import TypeRegistry
from dmn_executor.errors import CompilationFailed
from dmn_executor.models import DMNMessage, ItemDefinition, LoadedModelCollection, Model
from dmn_executor.utils.references import local_reference, reference_namespace

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Graph nodes
# -----------------------------------------------------------------------------


class NodeRef(NamedTuple):
    """A resolved requirement: the graph owning the node, its id, and the import alias (None if local)."""

    graph: "CompiledModel"
    node_id: str
    alias: Optional[str]

    @property
    def node(self) -> "Node":
        return self.graph.nodes[self.node_id]


class InputNode:
    __slots__ = ("id", "name", "type_ref")

    def __init__(self, id: str, name: str, type_ref: Optional[str]):
        self.id = id
        self.name = name
        self.type_ref = type_ref


class DecisionNode:
    __slots__ = ("id", "name", "type_ref", "requirements", "knowledge", "evaluator")

    def __init__(self, id: str, name: str, type_ref: Optional[str]):
        self.id = id
        self.name = name
        self.type_ref = type_ref
        self.requirements: list[NodeRef] = []
        self.knowledge: list[NodeRef] = []
        self.evaluator = None


class KnowledgeNode:
    __slots__ = ("id", "name", "parameters", "knowledge", "body")

    def __init__(self, id: str, name: str, parameters: list[str]):
        self.id = id
        self.name = name
        self.parameters = parameters
        self.knowledge: list[NodeRef] = []
        self.body = None


class ServiceNode:
    __slots__ = ("id", "name", "type_ref", "input_data", "input_decisions", "output_decisions", "encapsulated_decisions")

    def __init__(self, id: str, name: str, type_ref: Optional[str]):
        self.id = id
        self.name = name
        self.type_ref = type_ref
        self.input_data: list[NodeRef] = []
        self.input_decisions: list[NodeRef] = []
        self.output_decisions: list[NodeRef] = []
        self.encapsulated_decisions: list[NodeRef] = []


Node = Union[InputNode, DecisionNode, KnowledgeNode, ServiceNode]


def _component_names(definitions: list[ItemDefinition]) -> set[str]:
    names = set()
    for definition in definitions:
        names.add(definition.name)
        names |= _component_names(definition.components)
    return names


# -----------------------------------------------------------------------------
# Compiled model
# -----------------------------------------------------------------------------


class CompiledModel:
    """Evaluation graph of one Model; attached to it as ``Model._compiled``."""

    def __init__(self, document: ModelDocument, typecheck: bool):
        self.document = document
        self.model: Model = document.model
        self.typecheck = typecheck
        self.types = TypeRegistry(self.model.item_definitions)
        self.aliases: dict[str, str] = {i.namespace: i.name for i in self.model.imports}
        self.nodes: dict[str, Node] = {}
        self.inputs: list[InputNode] = []
        self.decisions: list[DecisionNode] = []
        self.bkms: list[KnowledgeNode] = []
        self.services: list[ServiceNode] = []

        for decl in self.model.inputs:
            self._add(self.inputs, InputNode(decl.id, decl.name, decl.type_ref))
        for decl in self.model.decisions:
            self._add(self.decisions, DecisionNode(decl.id, decl.name, decl.type_ref))
        for decl in self.model.business_knowledge_models:
            self._add(self.bkms, KnowledgeNode(decl.id, decl.name, list(decl.parameters)))
        for decl in self.model.decision_services:
            self._add(self.services, ServiceNode(decl.id, decl.name, decl.type_ref))

    @property
    def namespace(self) -> str:
        return self.model.namespace

    def _add(self, bucket: list, node: Node) -> None:
        if node.id in self.nodes:
            self._error(f"Duplicate element id '{node.id}'", "DUPLICATE_ID", node.name)
            return
        self.nodes[node.id] = node
        bucket.append(node)

    def _error(self, text: str, message_type: str, source_name: Optional[str] = None) -> None:
        self.model.messages.append(DMNMessage.error(text, message_type, source_name))

    def decision_named(self, name: str) -> Optional[DecisionNode]:
        return next((d for d in self.decisions if d.name == name), None)

    def service_named(self, name: str) -> Optional[ServiceNode]:
        return next((s for s in self.services if s.name == name), None)

    def visible_names(self) -> set[str]:
        """Names an expression in this model may refer to, before local additions."""
        names = {n.name for n in self.nodes.values()}
        names |= _component_names(self.model.item_definitions)
        names |= {alias for alias in self.aliases.values() if alias}
        return names

    # linking

    def resolve(self, href: str, graphs: dict[str, "CompiledModel"], kinds: tuple, owner: str) -> Optional[NodeRef]:
        namespace = reference_namespace(href)
        node_id = local_reference(href)
        target, alias = self, None
        if namespace and namespace != self.namespace:
            target = graphs.get(namespace)
            if target is None:
                self._error(f"Reference '{href}' on node '{owner}' points to an unknown model", "IMPORT_NOT_FOUND", owner)
                return None
            alias = self.aliases.get(namespace)
            if alias is None:
                self._error(
                    f"Reference '{href}' on node '{owner}' uses namespace '{namespace}' which is not imported",
                    "IMPORT_NOT_FOUND",
                    owner,
                )
                return None
        node = target.nodes.get(node_id)
        if node is None or not isinstance(node, kinds):
            self._error(f"Unable to resolve reference '{href}' on node '{owner}'", "REFERENCE_NOT_FOUND", owner)
            return None
        return NodeRef(target, node_id, alias)

    def link(self, graphs: dict[str, "CompiledModel"]) -> None:
        for imp in self.model.imports:
            if imp.import_type and "dmn" not in imp.import_type.lower():
                continue
            if imp.namespace not in graphs:
                self._error(f"Imported model with namespace '{imp.namespace}' was not loaded", "IMPORT_NOT_FOUND", imp.name)

        for decl, node in zip(self.model.decisions, self.decisions):
            node.requirements = self._resolve_all(decl.required_inputs, graphs, (InputNode,), node.name)
            node.requirements += self._resolve_all(decl.required_decisions, graphs, (DecisionNode,), node.name)
            node.knowledge = self._resolve_all(decl.required_knowledge, graphs, (KnowledgeNode, ServiceNode), node.name)

        for node in self.bkms:
            element = self.document.elements[node.id]
            required = (child(kr, "requiredKnowledge") for kr in children(element, "knowledgeRequirement"))
            hrefs = [r.get("href") for r in required if r is not None and r.get("href")]
            node.knowledge = self._resolve_all(hrefs, graphs, (KnowledgeNode, ServiceNode), node.name)

        for decl, node in zip(self.model.decision_services, self.services):
            node.input_data = self._resolve_all(decl.input_data, graphs, (InputNode,), node.name)
            node.input_decisions = self._resolve_all(decl.input_decisions, graphs, (DecisionNode,), node.name)
            node.output_decisions = self._resolve_all(decl.output_decisions, graphs, (DecisionNode,), node.name)
            node.encapsulated_decisions = self._resolve_all(decl.encapsulated_decisions, graphs, (DecisionNode,), node.name)

    def _resolve_all(self, hrefs: list[str], graphs: dict[str, "CompiledModel"], kinds: tuple, owner: str) -> list[NodeRef]:
        refs = (self.resolve(h, graphs, kinds, owner) for h in hrefs)
        return [r for r in refs if r is not None]

    # expressions

    def compile_expressions(self, graphs: dict[str, "CompiledModel"]) -> None:
        names = self.visible_names()
        for namespace in self.aliases:
            imported = graphs.get(namespace)
            if imported is not None:
                names |= {n.name for n in imported.nodes.values()}
                names |= _component_names(imported.model.item_definitions)
        compiler = ExpressionCompiler(names, self.model.messages)

        for node in self.decisions:
            element = self.document.elements[node.id]
            node.evaluator = compiler.compile(find_expression(element), node.name)

        for node in self.bkms:
            logic = child(self.document.elements[node.id], "encapsulatedLogic")
            if logic is None:
                self._error(f"Business knowledge model '{node.name}' has no encapsulated logic", "MISSING_EXPRESSION", node.name)
                continue
            parts = compiler.compile_function(logic, node.name)
            if parts is not None:
                node.parameters, node.body = parts


def compile_documents(documents: list[ModelDocument], typecheck: bool = True) -> LoadedModelCollection:
    """Link and compile documents together; raises CompilationFailed on duplicate namespaces."""
    graphs: dict[str, CompiledModel] = {}
    for document in documents:
        namespace = document.model.namespace
        if namespace in graphs:
            raise CompilationFailed(
                f"duplicate model namespace '{namespace}' in '{graphs[namespace].document.path}' and '{document.path}'"
            )
        graphs[namespace] = CompiledModel(document, typecheck)

    for graph in graphs.values():
        graph.link(graphs)
    for graph in graphs.values():
        graph.compile_expressions(graphs)
        graph.model._compiled = graph
        if graph.model.has_errors:
            logger.warning("Model %s compiled with errors: %s", graph.model.name, graph.model.error_texts())

    return LoadedModelCollection(models=[g.model for g in graphs.values()])
