"""
FEEL expression and unary-test compiler.

Text is tokenized, parsed by recursive descent and compiled into Python closures that
take a Scope. FEEL names may contain spaces ("Applicant Age", "date and time"), so the
tokenizer is given the names visible to the expression and matches them longest-first
before falling back to single words. Names that are still unknown are resolved at
evaluation time.

Supported: arithmetic, comparisons, three-valued and/or, if/then/else, for, some/every,
between, in, instance of, ranges, lists, contexts, filters, paths, function literals,
positional and named invocation, and decision-table unary tests (including ``not(...)``
and ``?``).
"""

import re
from collections import defaultdict
from decimal import Decimal
from typing import Any, Callable, Iterable, NamedTuple, Optional

from dmn_executor.engine.builtins import BUILTINS, parameter_names, root_scope
from dmn_executor.engine.handles import CallableHandle, FeelFunction
from dmn_executor.engine.values import (
    BUILTIN_TYPES,
    MISSING,
    FeelError,
    FeelSyntaxError,
    Range,
    Scope,
    add,
    divide,
    feel_compare,
    feel_equals,
    is_builtin_instance,
    is_number,
    multiply,
    negate,
    power,
    subtract,
    to_decimal,
)

Evaluator = Callable[[Scope], Any]
UnaryTest = Callable[[Any, Scope], Optional[bool]]

KEYWORDS = {
    "if", "then", "else", "for", "in", "return", "some", "every", "satisfies",
    "and", "or", "between", "instance", "of", "function", "true", "false", "null", "external",
}

_EXTRA_NAMES = {"start included", "end included", "days and time duration", "years and months duration"}

BUILTIN_NAMES = set(BUILTINS) | parameter_names() | set(BUILTIN_TYPES) | _EXTRA_NAMES

_OPERATORS = ("..", "**", "<=", ">=", "!=", "=", "<", ">", "+", "-", "*", "/",
              "(", ")", "[", "]", "{", "}", ",", ":", ".", "?")
_COMPARATORS = ("=", "!=", "<", "<=", ">", ">=")

_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_WORD = re.compile(r"[^\W\d][\w']*")


# -----------------------------------------------------------------------------
# Tokenizer
# -----------------------------------------------------------------------------


class Token(NamedTuple):
    kind: str  # number, string, name, keyword, op, eof
    value: Any
    start: int
    end: int


def _is_name_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_'"


def _match_known(text: str, pos: int, candidates: list[str]) -> Optional[str]:
    for name in candidates:
        if text.startswith(name, pos):
            end = pos + len(name)
            if end == len(text) or not _is_name_char(text[end]) or not _is_name_char(name[-1]):
                return name
    return None


def _read_string(text: str, pos: int) -> tuple[str, int]:
    out = []
    i = pos + 1
    escapes = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "'": "'"}
    while i < len(text):
        ch = text[i]
        if ch == "\\" and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt == "u" and i + 5 < len(text):
                out.append(chr(int(text[i + 2: i + 6], 16)))
                i += 6
                continue
            out.append(escapes.get(nxt, nxt))
            i += 2
            continue
        if ch == '"':
            return "".join(out), i + 1
        out.append(ch)
        i += 1
    raise FeelSyntaxError(f"Unterminated string starting at position {pos}")


def tokenize(text: str, known_names: Iterable[str] = ()) -> list[Token]:
    by_first: dict[str, list[str]] = defaultdict(list)
    for name in sorted({n for n in known_names if n} | BUILTIN_NAMES, key=len, reverse=True):
        by_first[name[0]].append(name)

    tokens: list[Token] = []
    pos, n = 0, len(text)
    while pos < n:
        ch = text[pos]
        if ch.isspace():
            pos += 1
            continue
        if text.startswith("//", pos):
            nl = text.find("\n", pos)
            pos = n if nl < 0 else nl + 1
            continue
        if text.startswith("/*", pos):
            close = text.find("*/", pos + 2)
            if close < 0:
                raise FeelSyntaxError(f"Unterminated comment at position {pos}")
            pos = close + 2
            continue
        if ch == '"':
            value, end = _read_string(text, pos)
            tokens.append(Token("string", value, pos, end))
            pos = end
            continue
        if ch.isdigit():
            m = _NUMBER.match(text, pos)
            tokens.append(Token("number", Decimal(m.group()), pos, m.end()))
            pos = m.end()
            continue
        if ch.isalpha() or ch == "_":
            known = _match_known(text, pos, by_first.get(ch, []))
            if known:
                tokens.append(Token("name", known, pos, pos + len(known)))
                pos += len(known)
                continue
            m = _WORD.match(text, pos)
            word = m.group()
            tokens.append(Token("keyword" if word in KEYWORDS else "name", word, pos, m.end()))
            pos = m.end()
            continue
        for op in _OPERATORS:
            if text.startswith(op, pos):
                tokens.append(Token("op", op, pos, pos + len(op)))
                pos += len(op)
                break
        else:
            raise FeelSyntaxError(f"Unexpected character '{ch}' at position {pos}")
    tokens.append(Token("eof", None, n, n))
    return tokens


# -----------------------------------------------------------------------------
# Evaluation helpers
# -----------------------------------------------------------------------------


def _member(value: Any, name: str) -> Any:
    if value is None:
        return None
    if isinstance(value, dict):
        return value.get(name)
    if isinstance(value, list):
        return [_member(v, name) for v in value]
    if isinstance(value, Range):
        return {
            "start": value.start,
            "end": value.end,
            "start included": value.start_included,
            "end included": value.end_included,
        }.get(name)
    attrs = {
        "year": "year", "month": "month", "day": "day",
        "hour": "hour", "minute": "minute", "second": "second",
    }
    if name in attrs and hasattr(value, attrs[name]):
        return Decimal(getattr(value, attrs[name]))
    if name == "weekday" and hasattr(value, "isoweekday"):
        return Decimal(value.isoweekday())
    if name == "days" and hasattr(value, "total_seconds"):
        return Decimal(value.days)
    if name in ("hours", "minutes", "seconds") and hasattr(value, "total_seconds"):
        hours, rest = divmod(value.seconds, 3600)
        return Decimal({"hours": hours, "minutes": rest // 60, "seconds": rest % 60}[name])
    return None


def _index(items: list, position: Any) -> Any:
    i = int(position)
    if 0 < i <= len(items):
        return items[i - 1]
    if i < 0 and -i <= len(items):
        return items[i]
    return None


def _three_valued_any(results: Iterable[Optional[bool]]) -> Optional[bool]:
    seen_null = False
    for r in results:
        if r is True:
            return True
        if r is not False:
            seen_null = True
    return None if seen_null else False


def matches_value(value: Any, target: Any) -> Optional[bool]:
    """Does ``value`` satisfy a value used as a unary test (a range, a list or a plain value)?"""
    if isinstance(target, Range):
        return target.includes(value)
    if isinstance(target, list):
        if isinstance(value, list) and feel_equals(value, target) is True:
            return True
        return _three_valued_any(matches_value(value, t) for t in target)
    return feel_equals(value, target)


def _compare_op(op: str, a: Any, b: Any) -> Optional[bool]:
    if op in ("=", "!="):
        r = feel_equals(a, b)
        if r is None:
            return None
        return r if op == "=" else not r
    c = feel_compare(a, b)
    if c is None:
        return None
    return {"<": c < 0, "<=": c <= 0, ">": c > 0, ">=": c >= 0}[op]


def _iterate(value: Any) -> list:
    if value is None:
        raise FeelError("Iteration context evaluated to null")
    if isinstance(value, list):
        return value
    return [value]


def _numeric_range(start: Any, end: Any) -> Iterable[Decimal]:
    if not (is_number(start) and is_number(end)):
        raise FeelError("Range iteration requires numeric bounds")
    if not (to_decimal(start).is_finite() and to_decimal(end).is_finite()):
        raise FeelError("Range iteration requires finite bounds")
    a, b = int(start), int(end)
    step = 1 if b >= a else -1
    return (Decimal(i) for i in range(a, b + step, step))


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------


class _Parser:
    def __init__(self, text: str, tokens: list[Token]):
        self.text = text
        self.tokens = tokens
        self.pos = 0
        self.uses_input = False
        self._range_end = False

    # token access

    def peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.peek()
        if tok.kind != "eof":
            self.pos += 1
        return tok

    def at_op(self, *ops: str) -> bool:
        tok = self.peek()
        return tok.kind == "op" and tok.value in ops

    def at_kw(self, word: str) -> bool:
        tok = self.peek()
        return tok.kind == "keyword" and tok.value == word

    def accept_op(self, op: str) -> bool:
        if self.at_op(op):
            self.advance()
            return True
        return False

    def accept_kw(self, word: str) -> bool:
        if self.at_kw(word):
            self.advance()
            return True
        return False

    def error(self, expected: str) -> FeelSyntaxError:
        tok = self.peek()
        found = "end of expression" if tok.kind == "eof" else f"'{self.text[tok.start:tok.end]}'"
        return FeelSyntaxError(f"Expected {expected} but found {found} at position {tok.start} in '{self.text}'")

    def expect_op(self, *ops: str) -> str:
        if not self.at_op(*ops):
            raise self.error(" or ".join(f"'{o}'" for o in ops))
        return self.advance().value

    def expect_kw(self, word: str) -> None:
        if not self.accept_kw(word):
            raise self.error(f"'{word}'")

    def expect_name(self) -> str:
        tok = self.peek()
        if tok.kind not in ("name", "keyword"):
            raise self.error("a name")
        self.advance()
        return tok.value

    def expect_eof(self) -> None:
        if self.peek().kind != "eof":
            raise self.error("end of expression")

    # expressions

    def parse_expression(self) -> Evaluator:
        return self.parse_disjunction()

    def parse_disjunction(self) -> Evaluator:
        left = self.parse_conjunction()
        while self.accept_kw("or"):
            right = self.parse_conjunction()
            left = self._or(left, right)
        return left

    @staticmethod
    def _or(left: Evaluator, right: Evaluator) -> Evaluator:
        def evaluate(s: Scope) -> Optional[bool]:
            a = left(s)
            if a is True:
                return True
            b = right(s)
            if b is True:
                return True
            if a is False and b is False:
                return False
            return None

        return evaluate

    def parse_conjunction(self) -> Evaluator:
        left = self.parse_comparison()
        while self.accept_kw("and"):
            right = self.parse_comparison()
            left = self._and(left, right)
        return left

    @staticmethod
    def _and(left: Evaluator, right: Evaluator) -> Evaluator:
        def evaluate(s: Scope) -> Optional[bool]:
            a = left(s)
            if a is False:
                return False
            b = right(s)
            if b is False:
                return False
            if a is True and b is True:
                return True
            return None

        return evaluate

    def parse_comparison(self) -> Evaluator:
        left = self.parse_additive()
        if self.at_op(*_COMPARATORS):
            op = self.advance().value
            right = self.parse_additive()
            return lambda s: _compare_op(op, left(s), right(s))
        if self.accept_kw("between"):
            low = self.parse_additive()
            self.expect_kw("and")
            high = self.parse_additive()

            def between(s: Scope) -> Optional[bool]:
                value = left(s)
                a, b = _compare_op(">=", value, low(s)), _compare_op("<=", value, high(s))
                if a is None or b is None:
                    return None
                return a and b

            return between
        if self.accept_kw("in"):
            test = self.parse_in_tests()
            return lambda s: test(left(s), s)
        if self.accept_kw("instance"):
            self.expect_kw("of")
            type_name = self.expect_name()

            def instance_of(s: Scope) -> bool:
                if type_name == "function":
                    return isinstance(left(s), CallableHandle)
                result = is_builtin_instance(left(s), type_name)
                if result is None:
                    raise FeelError(f"Unknown type '{type_name}' in instance of")
                return result

            return instance_of
        return left

    def parse_in_tests(self) -> UnaryTest:
        if self.at_op("("):
            saved = self.pos
            try:
                self.advance()
                tests = [self.parse_positive_unary_test()]
                while self.accept_op(","):
                    tests.append(self.parse_positive_unary_test())
                self.expect_op(")")
                return lambda v, s: _three_valued_any(t(v, s) for t in tests)
            except FeelSyntaxError:
                self.pos = saved
        return self.parse_positive_unary_test(full=False)

    def parse_additive(self) -> Evaluator:
        left = self.parse_multiplicative()
        while self.at_op("+", "-"):
            fn = add if self.advance().value == "+" else subtract
            right = self.parse_multiplicative()
            left = self._binary(fn, left, right)
        return left

    def parse_multiplicative(self) -> Evaluator:
        left = self.parse_exponent()
        while self.at_op("*", "/"):
            fn = multiply if self.advance().value == "*" else divide
            right = self.parse_exponent()
            left = self._binary(fn, left, right)
        return left

    def parse_exponent(self) -> Evaluator:
        left = self.parse_unary()
        while self.accept_op("**"):
            right = self.parse_unary()
            left = self._binary(power, left, right)
        return left

    @staticmethod
    def _binary(fn: Callable[[Any, Any], Any], left: Evaluator, right: Evaluator) -> Evaluator:
        return lambda s: fn(left(s), right(s))

    def parse_unary(self) -> Evaluator:
        if self.accept_op("-"):
            operand = self.parse_unary()
            return lambda s: negate(operand(s))
        return self.parse_postfix()

    def parse_postfix(self) -> Evaluator:
        start = self.peek().start
        expr = self.parse_primary()
        while True:
            if self.accept_op("."):
                expr = self._path(expr, self.expect_name())
            elif self.at_op("[") and not self._range_end:
                self.advance()
                cond = self.parse_expression()
                self.expect_op("]")
                expr = self._filter(expr, cond)
            elif self.at_op("("):
                label = self.text[start:self.peek().start].strip()
                expr = self._invocation(label, expr, *self.parse_arguments())
            else:
                return expr

    @staticmethod
    def _path(target: Evaluator, name: str) -> Evaluator:
        return lambda s: _member(target(s), name)

    @staticmethod
    def _filter(target: Evaluator, cond: Evaluator) -> Evaluator:
        def evaluate(s: Scope) -> Any:
            value = target(s)
            if value is None:
                return None
            items = value if isinstance(value, list) else [value]
            selected = []
            for item in items:
                bindings = dict(item) if isinstance(item, dict) else {}
                bindings["item"] = item
                r = cond(s.child(bindings))
                if is_number(r):
                    return _index(items, r)
                if r is True:
                    selected.append(item)
            return selected

        return evaluate

    def parse_arguments(self) -> tuple[list[Evaluator], list[tuple[str, Evaluator]]]:
        self.expect_op("(")
        positional: list[Evaluator] = []
        named: list[tuple[str, Evaluator]] = []
        if self.accept_op(")"):
            return positional, named
        is_named = self.peek().kind == "name" and self.peek(1).kind == "op" and self.peek(1).value == ":"
        while True:
            if is_named:
                name = self.expect_name()
                self.expect_op(":")
                named.append((name, self.parse_expression()))
            else:
                positional.append(self.parse_expression())
            if not self.accept_op(","):
                break
        self.expect_op(")")
        return positional, named

    @staticmethod
    def _invocation(
        label: str, callee: Evaluator, positional: list[Evaluator], named: list[tuple[str, Evaluator]]
    ) -> Evaluator:
        def evaluate(s: Scope) -> Any:
            fn = callee(s)
            if not isinstance(fn, CallableHandle):
                raise FeelError(f"'{label}' is not a function")
            if named:
                return fn.invoke([], {k: e(s) for k, e in named})
            return fn.invoke([a(s) for a in positional])

        return evaluate

    # primaries

    def parse_primary(self) -> Evaluator:
        tok = self.peek()
        if tok.kind == "number":
            self.advance()
            value = tok.value
            return lambda s: value
        if tok.kind == "string":
            self.advance()
            text = tok.value
            return lambda s: text
        if tok.kind == "keyword":
            if tok.value in ("true", "false", "null"):
                self.advance()
                literal = {"true": True, "false": False, "null": None}[tok.value]
                return lambda s: literal
            if tok.value == "if":
                return self.parse_if()
            if tok.value == "for":
                return self.parse_for()
            if tok.value in ("some", "every"):
                return self.parse_quantified()
            if tok.value == "function":
                return self.parse_function()
            raise self.error("an expression")
        if tok.kind == "name":
            self.advance()
            return self._name(tok.value)
        if tok.kind == "op":
            if tok.value == "?":
                self.advance()
                self.uses_input = True
                return self._name("?")
            if tok.value == "(":
                return self.parse_parenthesized()
            if tok.value == "[":
                return self.parse_list_or_range()
            if tok.value == "]":
                self.advance()
                return self.parse_range_rest(self.parse_expression(), start_included=False)
            if tok.value == "{":
                return self.parse_context()
        raise self.error("an expression")

    @staticmethod
    def _name(name: str) -> Evaluator:
        def lookup(s: Scope) -> Any:
            value = s.lookup(name)
            if value is MISSING:
                raise FeelError(f"Unknown variable '{name}'")
            return value

        return lookup

    def parse_parenthesized(self) -> Evaluator:
        self.expect_op("(")
        inner = self.parse_expression()
        if self.at_op(".."):
            return self.parse_range_rest(inner, start_included=False)
        self.expect_op(")")
        return inner

    def parse_list_or_range(self) -> Evaluator:
        self.expect_op("[")
        if self.accept_op("]"):
            return lambda s: []
        first = self.parse_expression()
        if self.at_op(".."):
            return self.parse_range_rest(first, start_included=True)
        items = [first]
        while self.accept_op(","):
            items.append(self.parse_expression())
        self.expect_op("]")
        return lambda s: [e(s) for e in items]

    def parse_range_rest(self, start: Evaluator, start_included: bool) -> Evaluator:
        self.expect_op("..")
        saved, self._range_end = self._range_end, True
        try:
            end = self.parse_expression()
        finally:
            self._range_end = saved
        close = self.expect_op("]", "[", ")")
        end_included = close == "]"
        return lambda s: Range(start(s), end(s), start_included, end_included)

    def parse_context(self) -> Evaluator:
        self.expect_op("{")
        entries: list[tuple[str, Evaluator]] = []
        if not self.accept_op("}"):
            while True:
                key = self.parse_context_key()
                self.expect_op(":")
                entries.append((key, self.parse_expression()))
                if not self.accept_op(","):
                    break
            self.expect_op("}")

        def evaluate(s: Scope) -> dict[str, Any]:
            values: dict[str, Any] = {}
            inner = s.child(values)
            for key, expr in entries:
                values[key] = expr(inner)
            return dict(values)

        return evaluate

    def parse_context_key(self) -> str:
        tok = self.peek()
        if tok.kind == "string":
            self.advance()
            return tok.value
        if tok.kind not in ("name", "keyword"):
            raise self.error("a context key")
        start, end = tok.start, tok.end
        self.advance()
        while self.peek().kind in ("name", "keyword", "number"):
            end = self.advance().end
        return self.text[start:end]

    def parse_if(self) -> Evaluator:
        self.expect_kw("if")
        cond = self.parse_expression()
        self.expect_kw("then")
        then = self.parse_expression()
        self.expect_kw("else")
        otherwise = self.parse_expression()
        return lambda s: then(s) if cond(s) is True else otherwise(s)

    def parse_iterations(self) -> list[tuple[str, Evaluator]]:
        iterations = []
        while True:
            name = self.expect_name()
            self.expect_kw("in")
            domain = self.parse_expression()
            if self.accept_op(".."):
                low, high = domain, self.parse_expression()
                domain = self._range_domain(low, high)
            else:
                domain = self._list_domain(domain)
            iterations.append((name, domain))
            if not self.accept_op(","):
                return iterations

    @staticmethod
    def _range_domain(low: Evaluator, high: Evaluator) -> Evaluator:
        return lambda s: _numeric_range(low(s), high(s))

    @staticmethod
    def _list_domain(expr: Evaluator) -> Evaluator:
        return lambda s: _iterate(expr(s))

    @staticmethod
    def _bindings(iterations: list[tuple[str, Evaluator]], scope: Scope) -> Iterable[Scope]:
        if not iterations:
            yield scope
            return
        (name, domain), rest = iterations[0], iterations[1:]
        for item in domain(scope):
            yield from _Parser._bindings(rest, scope.child({name: item}))

    def parse_for(self) -> Evaluator:
        self.expect_kw("for")
        iterations = self.parse_iterations()
        self.expect_kw("return")
        body = self.parse_expression()
        return lambda s: [body(inner) for inner in _Parser._bindings(iterations, s)]

    def parse_quantified(self) -> Evaluator:
        kind = self.advance().value
        iterations = self.parse_iterations()
        self.expect_kw("satisfies")
        cond = self.parse_expression()
        if kind == "some":
            return lambda s: any(cond(inner) is True for inner in _Parser._bindings(iterations, s))
        return lambda s: all(cond(inner) is True for inner in _Parser._bindings(iterations, s))

    def parse_function(self) -> Evaluator:
        self.expect_kw("function")
        self.expect_op("(")
        params: list[str] = []
        if not self.accept_op(")"):
            while True:
                params.append(self.expect_name())
                if self.accept_op(":"):
                    self.expect_name()
                if not self.accept_op(","):
                    break
            self.expect_op(")")
        if self.at_kw("external"):
            raise FeelSyntaxError("External functions are not supported")
        body = self.parse_expression()
        return lambda s: FeelFunction("anonymous function", params, body, s)

    # unary tests

    def parse_positive_unary_test(self, full: bool = True) -> UnaryTest:
        if self.at_op(*_COMPARATORS):
            op = self.advance().value
            endpoint = self.parse_additive()
            return lambda v, s: _compare_op(op, v, endpoint(s))
        outer, self.uses_input = self.uses_input, False
        expr = self.parse_expression() if full else self.parse_additive()
        uses_input = self.uses_input
        self.uses_input = outer or uses_input

        def test(value: Any, s: Scope) -> Optional[bool]:
            target = expr(s.child({"?": value}))
            if uses_input and isinstance(target, bool):
                return target
            return matches_value(value, target)

        return test


# -----------------------------------------------------------------------------
# Public API
# -----------------------------------------------------------------------------


def compile_expression(text: str, known_names: Iterable[str] = ()) -> Evaluator:
    """Compile a FEEL expression; raises FeelSyntaxError on malformed text."""
    if not text or not text.strip():
        raise FeelSyntaxError("Empty expression")
    parser = _Parser(text, tokenize(text, known_names))
    expr = parser.parse_expression()
    parser.expect_eof()
    return expr


def _closing_paren(tokens: list[Token], open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(tokens)):
        tok = tokens[i]
        if tok.kind == "op" and tok.value == "(":
            depth += 1
        elif tok.kind == "op" and tok.value == ")":
            depth -= 1
            if depth == 0:
                return i
    return -1


def compile_unary_tests(text: Optional[str], known_names: Iterable[str] = ()) -> Callable[[Any, Scope], bool]:
    """
    Compile a comma-separated list of unary tests (a decision-table input entry or an
    allowed-values constraint). ``-`` or empty text matches anything.
    """
    stripped = (text or "").strip()
    if stripped in ("", "-"):
        return lambda value, scope: True
    tokens = tokenize(stripped, known_names)
    parser = _Parser(stripped, tokens)

    negated = (
        tokens[0].kind == "name" and tokens[0].value == "not"
        and len(tokens) > 2 and tokens[1].kind == "op" and tokens[1].value == "("
        and _closing_paren(tokens, 1) == len(tokens) - 2
    )
    if negated:
        parser.pos = 2
    tests = [parser.parse_positive_unary_test()]
    while parser.accept_op(","):
        tests.append(parser.parse_positive_unary_test())
    if negated:
        parser.expect_op(")")
    parser.expect_eof()

    def matches(value: Any, scope: Scope) -> bool:
        result = _three_valued_any(t(value, scope) for t in tests)
        if negated:
            return result is False
        return result is True

    return matches


def evaluate(text: str, variables: Optional[dict[str, Any]] = None) -> Any:
    """Compile and evaluate an expression against plain variables."""
    variables = variables or {}
    expr = compile_expression(text, variables.keys())
    return expr(root_scope().child(dict(variables)))
