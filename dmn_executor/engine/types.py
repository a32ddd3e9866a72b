"""
Declared-type checks for input data and decision results.

A type reference is either a FEEL built-in (``number``, ``date and time``, ...) or the name of
an item definition, which may be structured, a collection, or constrained by allowed values.
"""

import logging
from datetime import date
from typing import Any, Callable, Optional

from dmn_executor.engine.builtins import root_scope
from dmn_executor.engine.feel import compile_unary_tests
from dmn_executor.engine.values import (
    FeelError,
    is_builtin_instance,
    normalize_type_ref,
    parse_date_time,
    parse_time,
)
from dmn_executor.models import ItemDefinition

logger = logging.getLogger(__name__)


class TypeRegistry:
    """Item definitions of one model, keyed by name, with compiled allowed-value tests."""

    def __init__(self, item_definitions: list[ItemDefinition]):
        self.definitions = {d.name: d for d in item_definitions}
        self._tests: dict[int, Callable[[Any, Any], bool]] = {}
        self._scope = root_scope()

    def resolve(self, type_ref: Optional[str]) -> Optional[ItemDefinition]:
        if not type_ref:
            return None
        name = normalize_type_ref(type_ref)
        if name in self.definitions:
            return self.definitions[name]
        # imported types are referenced as alias.tType
        local = name.rsplit(".", 1)[-1]
        return self.definitions.get(local)

    def base_type(self, type_ref: Optional[str]) -> Optional[str]:
        """Follow simple item definitions down to a built-in type name."""
        seen = set()
        while type_ref:
            definition = self.resolve(type_ref)
            if definition is None or definition.components or definition.is_collection:
                return normalize_type_ref(type_ref) if definition is None else None
            if definition.name in seen:
                return None
            seen.add(definition.name)
            type_ref = definition.type_ref
        return None

    def conforms(self, value: Any, type_ref: Optional[str]) -> bool:
        if not type_ref or value is None:
            return True
        definition = self.resolve(type_ref)
        if definition is not None:
            return self._conforms_definition(value, definition)
        builtin = is_builtin_instance(value, type_ref)
        if builtin is None:
            logger.debug("Unknown type reference %r, value accepted", type_ref)
            return True
        return builtin

    def _conforms_definition(self, value: Any, definition: ItemDefinition, element: bool = False) -> bool:
        if definition.is_collection and not element:
            if not isinstance(value, list):
                return False
            return all(v is None or self._conforms_definition(v, definition, element=True) for v in value)
        if definition.components:
            if not isinstance(value, dict):
                return False
            for component in definition.components:
                if component.name in value and value[component.name] is not None:
                    if not self._conforms_definition(value[component.name], component):
                        return False
            return True
        if definition.type_ref and not self.conforms(value, definition.type_ref):
            return False
        if definition.allowed_values:
            return self._allowed(definition)(value, self._scope)
        return True

    def _allowed(self, definition: ItemDefinition) -> Callable[[Any, Any], bool]:
        key = id(definition)
        if key not in self._tests:
            self._tests[key] = compile_unary_tests(definition.allowed_values)
        return self._tests[key]

    def coerce_input(self, value: Any, type_ref: Optional[str]) -> Any:
        """Turn ISO strings bound to temporal inputs into date/time values."""
        if not isinstance(value, str):
            return value
        base = self.base_type(type_ref)
        try:
            if base == "date":
                return date.fromisoformat(value.strip())
            if base in ("date and time", "dateTime"):
                return parse_date_time(value)
            if base == "time":
                return parse_time(value)
        except (ValueError, FeelError):
            logger.debug("Could not coerce %r to %s", value, base)
        return value


def singleton_unwrap(value: Any, type_ref: Optional[str], registry: TypeRegistry) -> Any:
    """FEEL singleton-list coercion for non-collection declared types."""
    if not isinstance(value, list) or len(value) != 1 or not type_ref:
        return value
    definition = registry.resolve(type_ref)
    if definition is not None and definition.is_collection:
        return value
    if normalize_type_ref(type_ref) in ("list", "Any"):
        return value
    return value[0]
