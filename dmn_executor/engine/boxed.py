"""
Compilers for DMN boxed expressions.

Each compiler turns an expression element into an evaluator ``(Scope) -> value``. Problems
found while compiling are appended to the owning model's messages and the element compiles
to ``None``; the runtime then fails the decision instead of evaluating it.
"""

import functools
import logging
from typing import Any, Iterable, Optional
from xml.etree.ElementTree import Element

from dmn_executor.engine.builtins import root_scope
from dmn_executor.engine.dom import child, child_text, children, local_name
from dmn_executor.engine.feel import Evaluator, compile_expression, compile_unary_tests
from dmn_executor.engine.handles import CallableHandle, FeelFunction
from dmn_executor.engine.values import (
    FEEL_CONTEXT,
    FeelError,
    FeelSyntaxError,
    Scope,
    feel_compare,
    feel_equals,
    is_number,
    to_decimal,
    to_text,
)
from dmn_executor.models import DMNMessage

logger = logging.getLogger(__name__)

EXPRESSION_TAGS = (
    "literalExpression",
    "decisionTable",
    "context",
    "invocation",
    "list",
    "relation",
    "functionDefinition",
)

HIT_POLICIES = ("UNIQUE", "FIRST", "PRIORITY", "ANY", "COLLECT", "RULE ORDER", "OUTPUT ORDER")
AGGREGATIONS = ("SUM", "COUNT", "MIN", "MAX")


class DecisionTableError(FeelError):
    """A decision table matched rules its hit policy does not allow."""

    message_type = "DECISION_TABLE_HIT_POLICY"


def find_expression(element: Element) -> Optional[Element]:
    """First boxed-expression child of element."""
    for c in element:
        if isinstance(c.tag, str) and local_name(c.tag) in EXPRESSION_TAGS:
            return c
    return None


# -----------------------------------------------------------------------------
# Decision tables
# -----------------------------------------------------------------------------


class _Rule:
    __slots__ = ("index", "tests", "outputs")

    def __init__(self, index: int, tests: list, outputs: list[Evaluator]):
        self.index = index
        self.tests = tests
        self.outputs = outputs


class DecisionTable:
    """Compiled decision table; ``evaluate`` applies the hit policy to the matching rules."""

    def __init__(self, hit_policy: str, aggregation: Optional[str], inputs: list, outputs: list, rules: list[_Rule]):
        self.hit_policy = hit_policy
        self.aggregation = aggregation
        self.inputs = inputs  # (label, expression, allowed-values test or None)
        self.outputs = outputs  # (name, priority list, default evaluator or None)
        self.rules = rules

    def evaluate(self, scope: Scope) -> Any:
        values = []
        for label, expr, allowed in self.inputs:
            value = expr(scope)
            if allowed is not None and value is not None and not allowed(value, scope):
                raise FeelError(f"Input '{label}' value {to_text(value)} is not among the allowed values")
            values.append(value)

        matched = [r for r in self.rules if all(t(v, scope) for t, v in zip(r.tests, values))]
        if not matched:
            return self._default(scope)
        results = [self._row(r.outputs, scope) for r in matched]
        logger.debug("Decision table matched rules %s", [r.index for r in matched])
        return self._apply_hit_policy(matched, results)

    def _row(self, evaluators: list[Evaluator], scope: Scope) -> Any:
        if len(self.outputs) == 1:
            return evaluators[0](scope)
        return {name: e(scope) for (name, _, _), e in zip(self.outputs, evaluators)}

    def _default(self, scope: Scope) -> Any:
        if not any(default is not None for _, _, default in self.outputs):
            return None
        defaults = [default(scope) if default is not None else None for _, _, default in self.outputs]
        if len(self.outputs) == 1:
            return defaults[0]
        return {name: value for (name, _, _), value in zip(self.outputs, defaults)}

    def _priority(self, result: Any) -> tuple:
        row = [result] if len(self.outputs) == 1 else [result.get(name) for name, _, _ in self.outputs]
        key = []
        for value, (_, priorities, _) in zip(row, self.outputs):
            position = next((i for i, p in enumerate(priorities) if feel_equals(value, p) is True), len(priorities))
            key.append(position)
        return tuple(key)

    def _apply_hit_policy(self, matched: list[_Rule], results: list[Any]) -> Any:
        policy = self.hit_policy
        if policy == "UNIQUE":
            if len(results) > 1:
                raise DecisionTableError(
                    f"UNIQUE hit policy violated: rules {[r.index for r in matched]} matched"
                )
            return results[0]
        if policy == "FIRST":
            return results[0]
        if policy == "ANY":
            first = results[0]
            if any(feel_equals(first, other) is not True for other in results[1:]):
                raise DecisionTableError(
                    f"ANY hit policy violated: rules {[r.index for r in matched]} produced different outputs"
                )
            return first
        if policy == "PRIORITY":
            return min(results, key=self._priority)
        if policy == "OUTPUT ORDER":
            return sorted(results, key=self._priority)
        if policy == "RULE ORDER":
            return results
        return self._collect(results)

    def _collect(self, results: list[Any]) -> Any:
        if not self.aggregation:
            return results
        values = [v for v in results if v is not None]
        if self.aggregation == "COUNT":
            return to_decimal(len(values))
        if not values:
            return None
        if self.aggregation == "SUM":
            if not all(is_number(v) for v in values):
                raise DecisionTableError("COLLECT SUM requires numeric outputs")
            return functools.reduce(lambda a, b: FEEL_CONTEXT.add(a, to_decimal(b)), values, to_decimal(0))

        def compare(a: Any, b: Any) -> int:
            c = feel_compare(a, b)
            if c is None:
                raise DecisionTableError(f"COLLECT {self.aggregation} over incomparable outputs")
            return c

        pick = min if self.aggregation == "MIN" else max
        return pick(values, key=functools.cmp_to_key(compare))


# -----------------------------------------------------------------------------
# Compiler
# -----------------------------------------------------------------------------


class ExpressionCompiler:
    """Compiles the boxed expressions of one model, recording diagnostics in ``messages``."""

    def __init__(self, known_names: Iterable[str], messages: list[DMNMessage]):
        self.known_names = frozenset(known_names)
        self.messages = messages
        self._source: Optional[str] = None

    def compile(self, element: Optional[Element], source_name: str, names: Iterable[str] = ()) -> Optional[Evaluator]:
        """Compile element (a boxed expression) for the node ``source_name``."""
        self._source = source_name
        if element is None:
            self._error(f"Missing expression for node '{source_name}'", "MISSING_EXPRESSION")
            return None
        return self._compile(element, self.known_names | set(names))

    def compile_function(
        self, element: Element, source_name: str, names: Iterable[str] = ()
    ) -> Optional[tuple[list[str], Evaluator]]:
        """Compile a functionDefinition-shaped element (e.g. a BKM's encapsulatedLogic) into parameters and body."""
        self._source = source_name
        return self._function_parts(element, self.known_names | set(names))

    def _error(self, text: str, message_type: str) -> None:
        self.messages.append(DMNMessage.error(text, message_type, self._source))

    def _compile(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        tag = local_name(element.tag)
        handler = {
            "literalExpression": self._literal,
            "decisionTable": self._decision_table,
            "context": self._context,
            "invocation": self._invocation,
            "list": self._list,
            "relation": self._relation,
            "functionDefinition": self._function_definition,
        }.get(tag)
        if handler is None:
            self._error(f"Unsupported expression '{tag}' in node '{self._source}'", "UNSUPPORTED_EXPRESSION")
            return None
        return handler(element, names)

    def _feel(self, text: Optional[str], names: frozenset) -> Optional[Evaluator]:
        if not text:
            self._error(f"Missing expression text in node '{self._source}'", "MISSING_EXPRESSION")
            return None
        try:
            return compile_expression(text, names)
        except FeelSyntaxError as e:
            self._error(f"Syntax error in node '{self._source}': {e}", "FEEL_SYNTAX_ERROR")
            return None

    def _tests(self, text: Optional[str], names: frozenset):
        try:
            return compile_unary_tests(text, names)
        except FeelSyntaxError as e:
            self._error(f"Syntax error in unary tests of node '{self._source}': {e}", "FEEL_SYNTAX_ERROR")
            return None

    def _literal(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        return self._feel(child_text(element), names)

    def _decision_table(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        hit_policy = element.get("hitPolicy", "UNIQUE").strip().upper()
        aggregation = element.get("aggregation")
        if hit_policy not in HIT_POLICIES:
            self._error(f"Unknown hit policy '{hit_policy}' in node '{self._source}'", "DECISION_TABLE_HIT_POLICY")
            return None
        if aggregation and (hit_policy != "COLLECT" or aggregation not in AGGREGATIONS):
            self._error(f"Invalid aggregation '{aggregation}' for hit policy {hit_policy}", "DECISION_TABLE_HIT_POLICY")
            return None

        ok = True
        inputs = []
        for inp in children(element, "input"):
            text = child_text(child(inp, "inputExpression"))
            expr = self._feel(text, names)
            allowed_text = child_text(child(inp, "inputValues"))
            allowed = self._tests(allowed_text, names) if allowed_text else None
            ok = ok and expr is not None and (allowed_text is None or allowed is not None)
            inputs.append((inp.get("label") or text, expr, allowed))

        outputs = []
        for out in children(element, "output"):
            priorities = self._output_values(child_text(child(out, "outputValues")), names)
            default_text = child_text(child(out, "defaultOutputEntry"))
            default = self._feel(default_text, names) if default_text else None
            ok = ok and (default_text is None or default is not None)
            outputs.append((out.get("name") or "", priorities, default))
        if not outputs:
            self._error(f"Decision table in node '{self._source}' has no outputs", "DECISION_TABLE_STRUCTURE")
            return None
        if len(outputs) > 1 and aggregation:
            self._error("Aggregation is only allowed on single-output decision tables", "DECISION_TABLE_HIT_POLICY")
            return None

        rules = []
        for index, rule in enumerate(children(element, "rule"), start=1):
            tests = [self._tests(child_text(entry), names) for entry in children(rule, "inputEntry")]
            entries = [self._feel(child_text(entry), names) for entry in children(rule, "outputEntry")]
            if len(tests) != len(inputs) or len(entries) != len(outputs):
                self._error(
                    f"Rule {index} of node '{self._source}' does not match the table's inputs and outputs",
                    "DECISION_TABLE_STRUCTURE",
                )
                ok = False
                continue
            ok = ok and all(t is not None for t in tests) and all(e is not None for e in entries)
            rules.append(_Rule(index, tests, entries))

        if not ok:
            return None
        return DecisionTable(hit_policy, aggregation, inputs, outputs, rules).evaluate

    def _output_values(self, text: Optional[str], names: frozenset) -> list:
        if not text:
            return []
        try:
            return compile_expression(f"[{text}]", names)(root_scope())
        except FeelError as e:
            self._error(f"Invalid output values in node '{self._source}': {e}", "FEEL_SYNTAX_ERROR")
            return []

    def _context(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        entries = []
        scope_names = set(names)
        ok = True
        for entry in children(element, "contextEntry"):
            variable = child(entry, "variable")
            name = variable.get("name") if variable is not None else None
            if name:
                scope_names.add(name)
            expr_element = find_expression(entry)
            if expr_element is None:
                self._error(f"Context entry '{name}' in node '{self._source}' has no expression", "MISSING_EXPRESSION")
                ok = False
                continue
            evaluator = self._compile(expr_element, frozenset(scope_names))
            ok = ok and evaluator is not None
            entries.append((name, evaluator))
        if not ok:
            return None

        def evaluate(scope: Scope) -> Any:
            values: dict[str, Any] = {}
            inner = scope.child(values)
            for name, evaluator in entries:
                value = evaluator(inner)
                if not name:
                    return value
                values[name] = value
            return dict(values)

        return evaluate

    def _invocation(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        callee_element = find_expression(element)
        callee_text = child_text(callee_element) if callee_element is not None else None
        callee = self._feel(callee_text, names)
        bindings = []
        ok = callee is not None
        for binding in children(element, "binding"):
            parameter = child(binding, "parameter")
            name = parameter.get("name") if parameter is not None else None
            if not name:
                self._error(f"Invocation binding without parameter name in node '{self._source}'", "INVOCATION_BINDING")
                ok = False
                continue
            expr_element = find_expression(binding)
            evaluator = self._compile(expr_element, names) if expr_element is not None else (lambda s: None)
            ok = ok and evaluator is not None
            bindings.append((name, evaluator))
        if not ok:
            return None

        def evaluate(scope: Scope) -> Any:
            fn = callee(scope)
            if not isinstance(fn, CallableHandle):
                raise FeelError(f"'{callee_text}' is not a function")
            return fn.invoke([], {name: e(scope) for name, e in bindings})

        return evaluate

    def _expressions(self, element: Element, names: frozenset) -> Optional[list[Evaluator]]:
        compiled = [self._compile(c, names) for c in element if isinstance(c.tag, str) and local_name(c.tag) in EXPRESSION_TAGS]
        if any(e is None for e in compiled):
            return None
        return compiled

    def _list(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        items = self._expressions(element, names)
        if items is None:
            return None
        return lambda s: [e(s) for e in items]

    def _relation(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        columns = [c.get("name") for c in children(element, "column")]
        rows = []
        for row in children(element, "row"):
            cells = self._expressions(row, names)
            if cells is None:
                return None
            if len(cells) != len(columns):
                self._error(f"Relation row in node '{self._source}' does not match its columns", "RELATION_STRUCTURE")
                return None
            rows.append(cells)
        return lambda s: [{name: cell(s) for name, cell in zip(columns, row)} for row in rows]

    def _function_parts(self, element: Element, names: frozenset) -> Optional[tuple[list[str], Evaluator]]:
        kind = (element.get("kind") or "FEEL").upper()
        if kind != "FEEL":
            self._error(f"Function kind '{kind}' is not supported in node '{self._source}'", "UNSUPPORTED_EXPRESSION")
            return None
        params = [p.get("name") for p in children(element, "formalParameter") if p.get("name")]
        body_element = find_expression(element)
        if body_element is None:
            self._error(f"Function in node '{self._source}' has no body", "MISSING_EXPRESSION")
            return None
        body = self._compile(body_element, names | set(params))
        if body is None:
            return None
        return params, body

    def _function_definition(self, element: Element, names: frozenset) -> Optional[Evaluator]:
        parts = self._function_parts(element, names)
        if parts is None:
            return None
        params, body = parts
        label = self._source or "function"
        return lambda s: FeelFunction(label, params, body, s)
