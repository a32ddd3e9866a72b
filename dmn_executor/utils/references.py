"""Helpers for DMN element references (``href`` attributes)."""

from typing import Optional

FRAGMENT_SEPARATOR = "#"


def local_reference(href: str) -> str:
    """
    Return the local part of a URI-like reference.

    The local part is everything after the last ``#``; a reference without ``#`` is
    returned unchanged. ``"#_decision1"`` -> ``"_decision1"``,
    ``"https://example.org/ns#_a"`` -> ``"_a"``, ``"plain"`` -> ``"plain"``.
    """
    if FRAGMENT_SEPARATOR not in href:
        return href
    return href.rsplit(FRAGMENT_SEPARATOR, 1)[1]


def reference_namespace(href: str) -> Optional[str]:
    """Return the namespace part of a reference, or None for local (``#id``) references."""
    if FRAGMENT_SEPARATOR not in href:
        return None
    namespace = href.rsplit(FRAGMENT_SEPARATOR, 1)[0]
    return namespace or None
