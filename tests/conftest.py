"""
Pytest fixtures for dmn-executor tests.

Each DMN fixture lives in its own directory so sibling auto-import only picks up
the models meant to be loaded together.
"""

import logging
from pathlib import Path

import pytest

from dmn_executor.engine import ReferenceEngine

FIXTURES = Path(__file__).parent / "fixtures"

DMN_NS = "https://www.omg.org/spec/DMN/20191111/MODEL/"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES


@pytest.fixture
def eligibility_dmn() -> Path:
    return FIXTURES / "eligibility" / "eligibility.dmn"


@pytest.fixture
def pricing_dmn() -> Path:
    return FIXTURES / "pricing" / "pricing.dmn"


@pytest.fixture
def partial_dmn() -> Path:
    return FIXTURES / "partial" / "partial.dmn"


@pytest.fixture
def scoring_dmn() -> Path:
    return FIXTURES / "scoring" / "scoring.dmn"


@pytest.fixture
def imports_main_dmn() -> Path:
    return FIXTURES / "imports" / "main.dmn"


@pytest.fixture
def engine() -> ReferenceEngine:
    return ReferenceEngine()


@pytest.fixture
def make_dmn(tmp_path):
    """Write a DMN document wrapping ``body`` into its own directory under tmp_path."""

    def write(body: str, name: str = "model", namespace: str = "https://example.org/dmn/test") -> Path:
        directory = tmp_path / name
        directory.mkdir(exist_ok=True)
        path = directory / f"{name}.dmn"
        path.write_text(
            f'<?xml version="1.0" encoding="UTF-8"?>\n'
            f'<definitions xmlns="{DMN_NS}" id="_{name}" name="{name}" namespace="{namespace}">\n'
            f"{body}\n"
            f"</definitions>\n",
            encoding="utf-8",
        )
        return path

    return write


@pytest.fixture(autouse=True)
def restore_root_logging():
    """configure_logging replaces root handlers; put pytest's back after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
