"""Namespace-agnostic helpers over xml.etree elements (DMN 1.1 to 1.5 use different namespaces)."""

from typing import Optional
from xml.etree.ElementTree import Element


def local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def children(element: Element, name: str) -> list[Element]:
    return [c for c in element if isinstance(c.tag, str) and local_name(c.tag) == name]


def child(element: Element, name: str) -> Optional[Element]:
    return next(iter(children(element, name)), None)


def child_text(element: Optional[Element], name: str = "text") -> Optional[str]:
    """Text of ``<name>`` under element, e.g. the ``<text>`` of a literalExpression or inputEntry."""
    if element is None:
        return None
    found = child(element, name)
    if found is None or found.text is None:
        return None
    return found.text.strip()
