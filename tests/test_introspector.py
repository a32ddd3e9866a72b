"""Tests for the static model description used by ``info``."""

from dmn_executor.services.introspector import describe


def test_describe_pricing_model(engine, pricing_dmn):
    collection = engine.compile([str(pricing_dmn)])
    info = describe(collection)

    assert info["modelsLoaded"] == 1
    model = info["models"][0]
    assert model["name"] == "pricing"
    assert model["namespace"] == "https://example.org/dmn/pricing"
    assert model["inputs"] == [
        {"name": "Customer", "type": "tCustomer"},
        {"name": "Order Amount", "type": "number"},
    ]
    assert model["decisions"] == [
        {"name": "Discount Rate", "type": "number"},
        {"name": "Final Price", "type": "number"},
        {"name": "Price Label", "type": "string"},
    ]
    assert model["decisionServices"] == [
        {"name": "Discount Service", "inputData": ["_customer"], "outputDecisions": ["_discount_rate"]},
        {
            "name": "Pricing Service",
            "inputData": ["_customer", "_order_amount"],
            "outputDecisions": ["_final_price", "_price_label"],
            "encapsulatedDecisions": ["_discount_rate"],
        },
    ]
    assert model["itemDefinitions"] == [
        {"name": "tTier", "type": "string"},
        {
            "name": "tCustomer",
            "components": [{"name": "tier", "type": "tTier"}, {"name": "age", "type": "number"}],
        },
    ]
    assert model["businessKnowledgeModels"] == ["Apply Discount"]
    assert "errors" not in model


def test_untyped_elements_are_any(engine, partial_dmn):
    info = describe(engine.compile([str(partial_dmn)]))
    decisions = {d["name"]: d["type"] for d in info["models"][0]["decisions"]}
    assert decisions == {"A": "number", "B": "Any", "C": "number"}


def test_describe_lists_model_errors(engine, make_dmn):
    path = make_dmn(
        """
  <decision id="_d" name="D">
    <informationRequirement id="_ir"><requiredInput href="#_missing"/></informationRequirement>
    <literalExpression id="_e"><text>1</text></literalExpression>
  </decision>"""
    )
    info = describe(engine.compile([str(path)]))
    assert info["models"][0]["errors"] == ["Unable to resolve reference '#_missing' on node 'D'"]


def test_describe_imported_models(engine, imports_main_dmn):
    base = imports_main_dmn.parent / "base.dmn"
    info = describe(engine.compile([str(imports_main_dmn), str(base)]))
    assert info["modelsLoaded"] == 2
    assert [m["name"] for m in info["models"]] == ["main", "base"]
    assert info["models"][0]["inputs"] == []


def test_describe_service_input_decisions(engine, scoring_dmn):
    model = describe(engine.compile([str(scoring_dmn)]))["models"][0]
    assert model["decisionServices"] == [
        {"name": "Finalize Score", "inputDecisions": ["_base_score"], "outputDecisions": ["_final_score"]},
    ]
