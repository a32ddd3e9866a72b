"""
Reference decision engine: compiles DMN files and evaluates the compiled graphs.

Evaluation is demand-driven. A decision first resolves its information requirements
(input data read from the context, upstream decisions evaluated recursively), then binds
its knowledge requirements (BKMs and decision services as callable handles), then runs its
boxed expression. Failures are recorded as messages and statuses; they never abort the
evaluation of unrelated decisions.
"""

import logging
from typing import Any, Iterable, Optional

from dmn_executor.engine.builtins import root_scope
from dmn_executor.engine.compiler import (
    CompiledModel,
    DecisionNode,
    InputNode,
    NodeRef,
    ServiceNode,
    compile_documents,
)
from dmn_executor.engine.handles import CallableHandle, DecisionServiceHandle, FeelFunction, is_opaque
from dmn_executor.engine.loader import read_document
from dmn_executor.engine.types import singleton_unwrap
from dmn_executor.engine.values import FeelError, Scope, to_feel, to_text
from dmn_executor.models import (
    DecisionResult,
    DecisionStatus,
    DMNMessage,
    EvaluationResult,
    LoadedModelCollection,
    Model,
)

logger = logging.getLogger(__name__)


def _graph(model: Model) -> CompiledModel:
    graph = model._compiled
    if not isinstance(graph, CompiledModel):
        raise ValueError(f"Model '{model.name}' was not compiled by the reference engine")
    return graph


def _missing_body(name: str):
    def body(scope: Scope) -> Any:
        raise FeelError(f"Business knowledge model '{name}' has no valid body")

    return body


class _Frame:
    """The values visible to one model during an evaluation (imported models get a nested frame)."""

    __slots__ = ("graph", "values")

    def __init__(self, graph: CompiledModel, values: dict[str, Any]):
        self.graph = graph
        self.values = values


class _Evaluation:
    """State of a single evaluate call."""

    def __init__(self, graph: CompiledModel, context: dict[str, Any]):
        self.graph = graph
        self.inputs = to_feel(dict(context))
        self.top = _Frame(graph, dict(self.inputs))
        self.results: dict[tuple[str, str], DecisionResult] = {}
        self.functions: dict[tuple[str, str], CallableHandle] = {}
        self.provided: set[tuple[str, str]] = set()
        self.messages: list[DMNMessage] = []
        self.root = root_scope()

    # frames and messages

    def _frame(self, ref: NodeRef, frame: _Frame) -> _Frame:
        if ref.alias is None:
            return frame
        scoped = frame.values.get(ref.alias)
        if not isinstance(scoped, dict):
            scoped = {}
            frame.values[ref.alias] = scoped
        return _Frame(ref.graph, scoped)

    def _report(self, result: Optional[DecisionResult], message: DMNMessage) -> None:
        logger.debug("%s: %s", message.message_type, message.text)
        self.messages.append(message)
        if result is not None:
            result.messages.append(message)

    # requirements

    def _requirement(self, ref: NodeRef, frame: _Frame, result: DecisionResult) -> tuple[bool, Any]:
        node = ref.node
        target = self._frame(ref, frame)
        key = (ref.graph.namespace, node.id)

        if isinstance(node, InputNode) or key in self.provided:
            if node.name not in target.values:
                self._report(
                    result,
                    DMNMessage.error(
                        f"Required dependency '{node.name}' not found on node '{result.decision_name}'",
                        "REQ_DEP_NOT_FOUND",
                        result.decision_name,
                    ),
                )
                return False, None
            value = target.values[node.name]
            if isinstance(node, InputNode):
                value = ref.graph.types.coerce_input(value, node.type_ref)
                target.values[node.name] = value
                if ref.graph.typecheck and not ref.graph.types.conforms(value, node.type_ref):
                    self._report(
                        result,
                        DMNMessage.error(
                            f"Error while evaluating node '{result.decision_name}' for dependency '{node.name}': "
                            f"the value {to_text(value)!r} is not allowed by the declared type ({node.type_ref})",
                            "TYPE_MISMATCH",
                            result.decision_name,
                        ),
                    )
                    return False, None
            return True, value

        dependency = self._decision(node, target)
        if dependency.status != DecisionStatus.SUCCEEDED:
            self._report(
                result,
                DMNMessage.error(
                    f"Unable to evaluate decision '{result.decision_name}' as it depends on decision '{node.name}'",
                    "REQ_DEP_FAILED",
                    result.decision_name,
                ),
            )
            return False, None
        return True, target.values.get(node.name)

    def _callable(self, ref: NodeRef, frame: _Frame) -> CallableHandle:
        node = ref.node
        target = self._frame(ref, frame)
        key = (ref.graph.namespace, node.id)
        if key in self.functions:
            target.values[node.name] = self.functions[key]
            return self.functions[key]

        if isinstance(node, ServiceNode):
            handle = self._service_handle(ref.graph, node)
            self.functions[key] = handle
        else:
            closure: dict[str, Any] = {}
            handle = FeelFunction(node.name, node.parameters, node.body or _missing_body(node.name), self.root.child(closure))
            self.functions[key] = handle
            for requirement in node.knowledge:
                self._callable(requirement, _Frame(ref.graph, closure))
        target.values[node.name] = handle
        return handle

    def _service_handle(self, graph: CompiledModel, node: ServiceNode) -> DecisionServiceHandle:
        parameters = [r.node.name for r in node.input_decisions] + [r.node.name for r in node.input_data]

        def call(arguments: dict[str, Any]) -> Any:
            outcome = _Evaluation(graph, arguments).run_service(node)
            if outcome.has_errors:
                raise FeelError(
                    f"Decision service '{node.name}' failed: " + "; ".join(m.text for m in outcome.error_messages())
                )
            values = [r.result for r in outcome.decision_results]
            if len(values) == 1:
                return values[0]
            return {r.decision_name: r.result for r in outcome.decision_results}

        return DecisionServiceHandle(node.name, parameters, call)

    # decisions

    def _decision(self, node: DecisionNode, frame: _Frame) -> DecisionResult:
        graph = frame.graph
        key = (graph.namespace, node.id)
        existing = self.results.get(key)
        if existing is not None:
            if existing.status == DecisionStatus.EVALUATING:
                self._report(
                    existing,
                    DMNMessage.error(f"Circular dependency on decision '{node.name}'", "CIRCULAR_DEPENDENCY", node.name),
                )
            return existing

        result = DecisionResult(node.id, node.name, DecisionStatus.EVALUATING)
        self.results[key] = result

        satisfied = True
        for ref in node.requirements:
            ok, _ = self._requirement(ref, frame, result)
            satisfied = satisfied and ok
        if not satisfied:
            result.status = DecisionStatus.SKIPPED
            return result

        for ref in node.knowledge:
            self._callable(ref, frame)

        if node.evaluator is None:
            self._report(
                result,
                DMNMessage.error(f"Decision '{node.name}' has no valid expression", "MISSING_EXPRESSION", node.name),
            )
            result.status = DecisionStatus.FAILED
            return result

        try:
            value = node.evaluator(self.root.child(frame.values))
        except FeelError as e:
            self._report(
                result,
                DMNMessage.error(
                    f"Error evaluating node '{node.name}': {e}",
                    getattr(e, "message_type", "FEEL_EVALUATION_ERROR"),
                    node.name,
                ),
            )
            result.status = DecisionStatus.FAILED
            return result
        except RecursionError:
            self._report(
                result,
                DMNMessage.error(f"Error evaluating node '{node.name}': recursion limit exceeded", "FEEL_EVALUATION_ERROR", node.name),
            )
            result.status = DecisionStatus.FAILED
            return result
        except (ArithmeticError, ValueError, TypeError) as e:
            # out-of-range dates, durations and decimals surface as plain Python errors
            self._report(
                result,
                DMNMessage.error(f"Error evaluating node '{node.name}': {e}", "FEEL_EVALUATION_ERROR", node.name),
            )
            result.status = DecisionStatus.FAILED
            return result

        if graph.typecheck and node.type_ref:
            value = singleton_unwrap(value, node.type_ref, graph.types)
            if not graph.types.conforms(value, node.type_ref):
                self._report(
                    result,
                    DMNMessage.error(
                        f"Decision '{node.name}' result {to_text(value)!r} does not conform to declared type '{node.type_ref}'",
                        "ERROR_EVAL_NODE_RESULT_WRONG_TYPE",
                        node.name,
                    ),
                )
                result.status = DecisionStatus.FAILED
                return result

        result.result = value
        result.status = DecisionStatus.SUCCEEDED
        frame.values[node.name] = value
        return result

    def _local_results(self, nodes: Iterable[DecisionNode]) -> list[DecisionResult]:
        keys = ((self.graph.namespace, n.id) for n in nodes)
        return [self.results[k] for k in keys if k in self.results]

    # entry points

    def run_all(self) -> EvaluationResult:
        for node in self.graph.bkms:
            self._callable(NodeRef(self.graph, node.id, None), self.top)
        for node in self.graph.services:
            self._callable(NodeRef(self.graph, node.id, None), self.top)
        for node in self.graph.decisions:
            self._decision(node, self.top)
        return EvaluationResult(self._local_results(self.graph.decisions), self.messages, self.top.values)

    def run_decision(self, node: DecisionNode) -> EvaluationResult:
        self._decision(node, self.top)
        return EvaluationResult(self._local_results(self.graph.decisions), self.messages, self.top.values)

    def run_service(self, node: ServiceNode) -> EvaluationResult:
        for ref in node.input_decisions:
            self.provided.add((ref.graph.namespace, ref.node_id))
        outputs = []
        for ref in node.output_decisions:
            outputs.append(self._decision(ref.node, self._frame(ref, self.top)))
        context = dict(self.inputs)
        for ref, result in zip(node.output_decisions, outputs):
            if result.status == DecisionStatus.SUCCEEDED:
                context[result.decision_name] = result.result
        return EvaluationResult(outputs, self.messages, context)


class ReferenceEngine:
    """DMN engine implemented in this package; see ``dmn_executor.engine.adapter.DecisionEngine``."""

    name = "reference"

    def compile(self, resources: Iterable[str], typecheck: bool = True) -> LoadedModelCollection:
        documents = [read_document(path) for path in resources]
        collection = compile_documents(documents, typecheck=typecheck)
        logger.info("Compiled %d model(s): %s (typecheck=%s)", len(collection.models), collection.names(), typecheck)
        return collection

    def evaluate_all(self, model: Model, context: dict[str, Any]) -> EvaluationResult:
        return _Evaluation(_graph(model), context).run_all()

    def evaluate_by_name(self, model: Model, context: dict[str, Any], decision_name: str) -> EvaluationResult:
        graph = _graph(model)
        node = graph.decision_named(decision_name)
        if node is None:
            raise ValueError(f"Decision '{decision_name}' not found in model '{model.name}'")
        return _Evaluation(graph, context).run_decision(node)

    def evaluate_decision_service(self, model: Model, context: dict[str, Any], service_name: str) -> EvaluationResult:
        graph = _graph(model)
        node = graph.service_named(service_name)
        if node is None:
            raise ValueError(f"Decision service '{service_name}' not found in model '{model.name}'")
        return _Evaluation(graph, context).run_service(node)

    def is_opaque(self, value: Any) -> bool:
        return is_opaque(value)
