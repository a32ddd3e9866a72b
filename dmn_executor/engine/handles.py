"""
Callable values that live inside an evaluation context.

Business knowledge models, decision services and FEEL built-ins are bound into the
context as handles. They are engine-internal: the output layer detects them through
``is_opaque`` and never serializes them.
"""

from decimal import InvalidOperation
from typing import Any, Callable, Optional

from dmn_executor.engine.values import FeelError, Scope


class OpaqueHandle:
    """Base for engine-internal values with no JSON representation."""

    __slots__ = ()


class CallableHandle(OpaqueHandle):
    __slots__ = ("name", "parameters")

    def __init__(self, name: str, parameters: list[str]):
        self.name = name
        self.parameters = parameters

    def invoke(self, args: list[Any], named: Optional[dict[str, Any]] = None) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}({', '.join(self.parameters)})>"


def bind_arguments(
    name: str, parameters: list[str], args: list[Any], named: Optional[dict[str, Any]] = None
) -> dict[str, Any]:
    """Map positional or named arguments onto formal parameters; absent ones are null."""
    if named:
        unknown = [k for k in named if k not in parameters]
        if unknown:
            raise FeelError(f"{name}: unknown parameter(s) {', '.join(unknown)}")
        return {p: named.get(p) for p in parameters}
    if len(args) > len(parameters):
        raise FeelError(f"{name} expects {len(parameters)} argument(s), got {len(args)}")
    values = {p: None for p in parameters}
    values.update(zip(parameters, args))
    return values


class FeelFunction(CallableHandle):
    """A user function: a BKM or a FEEL ``function(...)`` literal with its defining scope."""

    __slots__ = ("body", "closure")

    def __init__(self, name: str, parameters: list[str], body: Callable[[Scope], Any], closure: Scope):
        super().__init__(name, parameters)
        self.body = body
        self.closure = closure

    def invoke(self, args: list[Any], named: Optional[dict[str, Any]] = None) -> Any:
        values = bind_arguments(self.name, self.parameters, args, named)
        return self.body(self.closure.child(values))


class BuiltinFunction(CallableHandle):
    """A FEEL built-in backed by a Python function."""

    __slots__ = ("fn",)

    def __init__(self, name: str, parameters: list[str], fn: Callable[..., Any]):
        super().__init__(name, parameters)
        self.fn = fn

    def invoke(self, args: list[Any], named: Optional[dict[str, Any]] = None) -> Any:
        if named:
            unknown = [k for k in named if k not in self.parameters]
            if unknown:
                raise FeelError(f"{self.name}: unknown parameter(s) {', '.join(unknown)}")
            args = [named.get(p) for p in self.parameters]
            while args and args[-1] is None:
                args.pop()
        try:
            return self.fn(*args)
        except FeelError:
            raise
        except (TypeError, ValueError, ArithmeticError, IndexError, KeyError, InvalidOperation) as e:
            raise FeelError(f"{self.name}(): {e}") from e


class DecisionServiceHandle(CallableHandle):
    """Invokes a decision service with its inputs as parameters."""

    __slots__ = ("call",)

    def __init__(self, name: str, parameters: list[str], call: Callable[[dict[str, Any]], Any]):
        super().__init__(name, parameters)
        self.call = call

    def invoke(self, args: list[Any], named: Optional[dict[str, Any]] = None) -> Any:
        return self.call(bind_arguments(self.name, self.parameters, args, named))


def is_opaque(value: Any) -> bool:
    return isinstance(value, OpaqueHandle)
