"""Unit tests for href helpers."""

from dmn_executor.utils.references import local_reference, reference_namespace


def test_local_reference_strips_fragment_marker():
    assert local_reference("#_decision1") == "_decision1"


def test_local_reference_uses_last_fragment():
    assert local_reference("https://example.org/ns#_a") == "_a"
    assert local_reference("a#b#c") == "c"


def test_local_reference_without_fragment_is_unchanged():
    assert local_reference("plain") == "plain"


def test_reference_namespace():
    assert reference_namespace("https://example.org/ns#_a") == "https://example.org/ns"
    assert reference_namespace("#_a") is None
    assert reference_namespace("plain") is None
