"""Unit tests for model selection."""

import logging

from dmn_executor.models import LoadedModelCollection, Model
from dmn_executor.services.model_selector import select_model


def _collection(*names: str) -> LoadedModelCollection:
    return LoadedModelCollection(models=[Model(name=n, namespace=f"urn:{n}") for n in names])


def test_explicit_name_matches_exactly():
    collection = _collection("base", "Main")
    assert select_model(collection, model_name="Main").name == "Main"


def test_explicit_name_matching_several_models_picks_first():
    collection = LoadedModelCollection(
        models=[
            Model(name="pricing", namespace="urn:pricing:v1"),
            Model(name="pricing", namespace="urn:pricing:v2"),
        ]
    )
    assert select_model(collection, model_name="pricing").namespace == "urn:pricing:v1"


def test_explicit_name_has_no_fallback():
    collection = _collection("base", "main")
    assert select_model(collection, model_name="MAIN", main_path="/x/main.dmn") is None


def test_file_stem_match_is_case_insensitive():
    collection = _collection("base", "Pricing")
    assert select_model(collection, main_path="/models/pricing.dmn").name == "Pricing"


def test_single_model_is_selected():
    collection = _collection("whatever")
    assert select_model(collection, main_path="/models/other.dmn").name == "whatever"


def test_falls_back_to_first_model_with_warning(caplog):
    collection = _collection("first", "second")
    with caplog.at_level(logging.WARNING, logger="dmn_executor.services.model_selector"):
        selected = select_model(collection, main_path="/models/third.dmn")
    assert selected.name == "first"
    assert "falling back" in caplog.text


def test_empty_collection_returns_none():
    assert select_model(LoadedModelCollection(), main_path="/models/x.dmn") is None
