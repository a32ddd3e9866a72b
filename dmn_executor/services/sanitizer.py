"""
Result sanitization: turn an engine value graph into plain, cycle-free data.

Opaque engine handles (compiled functions, decision-service handles) are replaced by an
internal marker, and the marker is removed from the surrounding dict or list. A container
that only became empty because its contents were elided is removed as well; a container
that was empty to begin with is kept. A container already on the current recursion path
is treated like a handle, so cyclic graphs terminate.
"""

from typing import Any, Callable, Optional

from dmn_executor.engine.handles import is_opaque as _default_is_opaque

OpaqueClassifier = Callable[[Any], bool]


class _Elided:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<elided>"


ELIDED = _Elided()


def is_elided(value: Any) -> bool:
    return value is ELIDED


def sanitize(value: Any, is_opaque: OpaqueClassifier = _default_is_opaque) -> Any:
    """Sanitize value; returns ELIDED when the value itself is (or reduces to) nothing but handles."""
    return _sanitize(value, is_opaque, set())


def _sanitize(value: Any, is_opaque: OpaqueClassifier, path: set[int]) -> Any:
    if value is None:
        return None
    if is_opaque(value):
        return ELIDED
    if isinstance(value, dict):
        if id(value) in path:
            return ELIDED
        path.add(id(value))
        try:
            out = {}
            for key, item in value.items():
                cleaned = _sanitize(item, is_opaque, path)
                if not is_elided(cleaned):
                    out[str(key)] = cleaned
        finally:
            path.discard(id(value))
        if value and not out:
            return ELIDED
        return out
    if isinstance(value, (list, tuple)):
        if id(value) in path:
            return ELIDED
        path.add(id(value))
        try:
            items = [_sanitize(item, is_opaque, path) for item in value]
        finally:
            path.discard(id(value))
        kept = [item for item in items if not is_elided(item)]
        if value and not kept:
            return ELIDED
        return kept
    return value


def sanitize_value(value: Any, is_opaque: OpaqueClassifier = _default_is_opaque) -> tuple[bool, Optional[Any]]:
    """Sanitize value for output: ``(present, cleaned)``; present is False when it was entirely elided."""
    cleaned = sanitize(value, is_opaque)
    if is_elided(cleaned):
        return False, None
    return True, cleaned
