"""Tests for the reference decision engine: compilation, evaluation, services and imports."""

from datetime import date
from decimal import Decimal

import pytest

from dmn_executor.engine import ReferenceEngine, get_engine, is_opaque
from dmn_executor.errors import CompilationFailed
from dmn_executor.models import DecisionStatus

GOLD_ORDER = {"Customer": {"tier": "GOLD", "age": 40}, "Order Amount": 200}


def _model(engine, path, typecheck=True):
    return engine.compile([str(path)], typecheck=typecheck).models[0]


def _statuses(result):
    return {r.decision_name: r.status for r in result.decision_results}


def _types(result):
    return [m.message_type for m in result.error_messages()]


def _table(hit_policy, rules, aggregation=None, output_values=None, default=None):
    """A model with input ``x`` and one decision table ``D`` over it."""
    agg = f' aggregation="{aggregation}"' if aggregation else ""
    out_values = f"<outputValues><text>{output_values}</text></outputValues>" if output_values else ""
    default_entry = f"<defaultOutputEntry><text>{default}</text></defaultOutputEntry>" if default else ""
    rows = "".join(
        f'<rule id="_r{i}"><inputEntry id="_ri{i}"><text>{test}</text></inputEntry>'
        f'<outputEntry id="_ro{i}"><text>{output}</text></outputEntry></rule>'
        for i, (test, output) in enumerate(rules)
    )
    return f"""
  <inputData id="_x" name="x"><variable name="x" typeRef="number"/></inputData>
  <decision id="_d" name="D">
    <variable name="D"/>
    <informationRequirement id="_ir"><requiredInput href="#_x"/></informationRequirement>
    <decisionTable id="_t" hitPolicy="{hit_policy}"{agg}>
      <input id="_i"><inputExpression id="_ie" typeRef="number"><text>x</text></inputExpression></input>
      <output id="_o" name="out">{out_values}{default_entry}</output>
      {rows}
    </decisionTable>
  </decision>"""


LABEL_RULES = [("&gt;= 0", '"positive"'), ("&gt;= 10", '"big"'), ("&lt; 0", '"negative"')]
NUMBER_RULES = [("&gt;= 0", "1"), ("&gt;= 10", "10"), ("&lt; 0", "-1")]


def _decide(engine, make_dmn, body, x):
    model = _model(engine, make_dmn(body))
    assert not model.has_errors, model.error_texts()
    return engine.evaluate_all(model, {"x": x}).get_decision_result("D")


# -----------------------------------------------------------------------------
# Engine selection
# -----------------------------------------------------------------------------


def test_get_engine_defaults_to_reference():
    assert isinstance(get_engine(), ReferenceEngine)
    assert isinstance(get_engine("Reference"), ReferenceEngine)


def test_get_engine_unknown_name():
    with pytest.raises(ValueError):
        get_engine("drools")


# -----------------------------------------------------------------------------
# Whole-model evaluation
# -----------------------------------------------------------------------------


def test_evaluate_all_eligibility(engine, eligibility_dmn):
    model = _model(engine, eligibility_dmn)
    result = engine.evaluate_all(model, {"age": 25})
    assert not result.has_errors
    assert result.get_decision_result("Eligible").result is True
    assert result.context["Eligible"] is True


def test_missing_input_skips_decision(engine, eligibility_dmn):
    result = engine.evaluate_all(_model(engine, eligibility_dmn), {})
    assert _statuses(result) == {"Eligible": DecisionStatus.SKIPPED}
    assert _types(result) == ["REQ_DEP_NOT_FOUND"]


def test_evaluate_all_pricing(engine, pricing_dmn):
    result = engine.evaluate_all(_model(engine, pricing_dmn), GOLD_ORDER)
    assert not result.has_errors
    assert [r.decision_name for r in result.decision_results] == ["Discount Rate", "Final Price", "Price Label"]
    assert result.get_decision_result("Discount Rate").result == Decimal("0.2")
    assert result.get_decision_result("Final Price").result == 160
    assert result.get_decision_result("Price Label").result == "premium"
    # BKMs and services are bound into the context as opaque handles
    assert is_opaque(result.context["Apply Discount"])
    assert is_opaque(result.context["Pricing Service"])


def test_negated_rule_matches_other_tiers(engine, pricing_dmn):
    order = {"Customer": {"tier": "BRONZE", "age": 40}, "Order Amount": 50}
    result = engine.evaluate_all(_model(engine, pricing_dmn), order)
    assert result.get_decision_result("Discount Rate").result == 0
    assert result.get_decision_result("Price Label").result == "standard"


def test_partial_failure_keeps_other_decisions(engine, partial_dmn):
    result = engine.evaluate_all(_model(engine, partial_dmn), {"x": 5})
    assert _statuses(result) == {
        "A": DecisionStatus.SUCCEEDED,
        "B": DecisionStatus.FAILED,
        "C": DecisionStatus.SKIPPED,
    }
    assert result.get_decision_result("A").result == 10
    assert _types(result) == ["FEEL_EVALUATION_ERROR", "REQ_DEP_FAILED"]


def test_evaluate_by_name_only_runs_dependencies(engine, pricing_dmn):
    result = engine.evaluate_by_name(_model(engine, pricing_dmn), GOLD_ORDER, "Final Price")
    assert [r.decision_name for r in result.decision_results] == ["Discount Rate", "Final Price"]
    assert result.get_decision_result("Final Price").result == 160


def test_evaluate_by_name_unknown(engine, eligibility_dmn):
    with pytest.raises(ValueError):
        engine.evaluate_by_name(_model(engine, eligibility_dmn), {}, "Nope")


def test_circular_dependency_is_reported(engine, make_dmn):
    body = """
  <decision id="_a" name="A">
    <informationRequirement id="_ira"><requiredDecision href="#_b"/></informationRequirement>
    <literalExpression id="_ea"><text>B + 1</text></literalExpression>
  </decision>
  <decision id="_b" name="B">
    <informationRequirement id="_irb"><requiredDecision href="#_a"/></informationRequirement>
    <literalExpression id="_eb"><text>A + 1</text></literalExpression>
  </decision>"""
    result = engine.evaluate_all(_model(engine, make_dmn(body)), {})
    assert _statuses(result) == {"A": DecisionStatus.SKIPPED, "B": DecisionStatus.SKIPPED}
    assert "CIRCULAR_DEPENDENCY" in _types(result)


@pytest.mark.parametrize(
    "expression",
    ['date("9999-12-31") + duration("P1D")', "10 ** 1000000", 'duration("P1D") * 100000000000000000000'],
)
def test_out_of_range_arithmetic_fails_only_its_decision(engine, make_dmn, expression):
    body = f"""
  <decision id="_ok" name="Ok">
    <literalExpression id="_e1"><text>1 + 1</text></literalExpression>
  </decision>
  <decision id="_late" name="Late">
    <literalExpression id="_e2"><text>{expression}</text></literalExpression>
  </decision>"""
    result = engine.evaluate_all(_model(engine, make_dmn(body)), {})
    assert _statuses(result) == {"Ok": DecisionStatus.SUCCEEDED, "Late": DecisionStatus.FAILED}
    assert result.get_decision_result("Ok").result == 2
    assert _types(result) == ["FEEL_EVALUATION_ERROR"]


# -----------------------------------------------------------------------------
# Type checking
# -----------------------------------------------------------------------------


def test_input_violating_allowed_values(engine, pricing_dmn):
    order = {"Customer": {"tier": "PLATINUM", "age": 40}, "Order Amount": 200}
    result = engine.evaluate_all(_model(engine, pricing_dmn), order)
    assert _statuses(result) == {
        "Discount Rate": DecisionStatus.SKIPPED,
        "Final Price": DecisionStatus.SKIPPED,
        "Price Label": DecisionStatus.SKIPPED,
    }
    assert _types(result) == ["TYPE_MISMATCH", "REQ_DEP_FAILED", "REQ_DEP_FAILED"]


def test_typecheck_disabled_accepts_any_input(engine, pricing_dmn):
    order = {"Customer": {"tier": "PLATINUM", "age": 40}, "Order Amount": 200}
    result = engine.evaluate_all(_model(engine, pricing_dmn, typecheck=False), order)
    assert not result.has_errors
    assert result.get_decision_result("Final Price").result == 200


def test_wrong_input_type(engine, eligibility_dmn):
    result = engine.evaluate_all(_model(engine, eligibility_dmn), {"age": "old"})
    assert _types(result) == ["TYPE_MISMATCH"]


def test_result_of_wrong_type_fails_decision(engine, make_dmn):
    body = """
  <decision id="_d" name="D">
    <variable name="D" typeRef="number"/>
    <literalExpression id="_e"><text>"abc"</text></literalExpression>
  </decision>"""
    path = make_dmn(body)
    result = engine.evaluate_all(_model(engine, path), {})
    assert _statuses(result) == {"D": DecisionStatus.FAILED}
    assert _types(result) == ["ERROR_EVAL_NODE_RESULT_WRONG_TYPE"]

    unchecked = engine.evaluate_all(_model(engine, path, typecheck=False), {})
    assert unchecked.get_decision_result("D").result == "abc"


def test_singleton_list_is_unwrapped(engine, make_dmn):
    body = """
  <decision id="_d" name="D">
    <variable name="D" typeRef="string"/>
    <literalExpression id="_e"><text>["only"]</text></literalExpression>
  </decision>"""
    result = engine.evaluate_all(_model(engine, make_dmn(body)), {})
    assert result.get_decision_result("D").result == "only"


def test_iso_strings_are_coerced_for_date_inputs(engine, make_dmn):
    body = """
  <inputData id="_day" name="day"><variable name="day" typeRef="date"/></inputData>
  <decision id="_d" name="Next Day">
    <variable name="Next Day" typeRef="date"/>
    <informationRequirement id="_ir"><requiredInput href="#_day"/></informationRequirement>
    <literalExpression id="_e"><text>day + duration("P1D")</text></literalExpression>
  </decision>"""
    result = engine.evaluate_all(_model(engine, make_dmn(body)), {"day": "2024-01-31"})
    assert result.get_decision_result("Next Day").result == date(2024, 2, 1)


# -----------------------------------------------------------------------------
# Decision tables
# -----------------------------------------------------------------------------


def test_unique_hit_policy(engine, make_dmn):
    assert _decide(engine, make_dmn, _table("UNIQUE", LABEL_RULES), 5).result == "positive"


def test_unique_hit_policy_violation(engine, make_dmn):
    decision = _decide(engine, make_dmn, _table("UNIQUE", LABEL_RULES), 15)
    assert decision.status == DecisionStatus.FAILED
    assert [m.message_type for m in decision.messages] == ["DECISION_TABLE_HIT_POLICY"]


def test_first_and_rule_order(engine, make_dmn):
    assert _decide(engine, make_dmn, _table("FIRST", LABEL_RULES), 15).result == "positive"
    assert _decide(engine, make_dmn, _table("RULE ORDER", LABEL_RULES), 15).result == ["positive", "big"]
    assert _decide(engine, make_dmn, _table("COLLECT", LABEL_RULES), 15).result == ["positive", "big"]


def test_priority_and_output_order(engine, make_dmn):
    priorities = '"big","positive","negative"'
    assert _decide(engine, make_dmn, _table("PRIORITY", LABEL_RULES, output_values=priorities), 15).result == "big"
    ordered = _decide(engine, make_dmn, _table("OUTPUT ORDER", LABEL_RULES, output_values=priorities), 15)
    assert ordered.result == ["big", "positive"]


def test_any_hit_policy_requires_equal_outputs(engine, make_dmn):
    assert _decide(engine, make_dmn, _table("ANY", LABEL_RULES), 15).status == DecisionStatus.FAILED
    same = [("&gt;= 0", '"yes"'), ("&gt;= 10", '"yes"')]
    assert _decide(engine, make_dmn, _table("ANY", same), 15).result == "yes"


@pytest.mark.parametrize(
    "aggregation, expected",
    [("SUM", 11), ("COUNT", 2), ("MIN", 1), ("MAX", 10)],
)
def test_collect_aggregations(engine, make_dmn, aggregation, expected):
    decision = _decide(engine, make_dmn, _table("COLLECT", NUMBER_RULES, aggregation=aggregation), 15)
    assert decision.result == expected


def test_no_match_gives_null_or_default(engine, make_dmn):
    rules = [("&gt; 100", '"huge"')]
    assert _decide(engine, make_dmn, _table("UNIQUE", rules), 5).result is None
    assert _decide(engine, make_dmn, _table("UNIQUE", rules, default='"small"'), 5).result == "small"


# -----------------------------------------------------------------------------
# Boxed expressions
# -----------------------------------------------------------------------------


def test_context_list_and_relation(engine, make_dmn):
    body = """
  <decision id="_c" name="Ctx">
    <context id="_ctx">
      <contextEntry><variable name="a"/><literalExpression><text>2</text></literalExpression></contextEntry>
      <contextEntry><variable name="b"/><literalExpression><text>a * 3</text></literalExpression></contextEntry>
      <contextEntry><literalExpression><text>a + b</text></literalExpression></contextEntry>
    </context>
  </decision>
  <decision id="_l" name="Items">
    <list id="_list">
      <literalExpression><text>1</text></literalExpression>
      <literalExpression><text>"two"</text></literalExpression>
    </list>
  </decision>
  <decision id="_r" name="Table">
    <relation id="_rel">
      <column name="name"/>
      <column name="age"/>
      <row>
        <literalExpression><text>"ann"</text></literalExpression>
        <literalExpression><text>30</text></literalExpression>
      </row>
    </relation>
  </decision>"""
    result = engine.evaluate_all(_model(engine, make_dmn(body)), {})
    assert not result.has_errors
    assert result.get_decision_result("Ctx").result == 8
    assert result.get_decision_result("Items").result == [1, "two"]
    assert result.get_decision_result("Table").result == [{"name": "ann", "age": 30}]


def test_function_definition_result_is_opaque(engine, make_dmn):
    body = """
  <decision id="_f" name="Make Adder">
    <functionDefinition id="_fd">
      <formalParameter name="n"/>
      <literalExpression><text>n + 1</text></literalExpression>
    </functionDefinition>
  </decision>
  <decision id="_u" name="Use">
    <informationRequirement id="_ir"><requiredDecision href="#_f"/></informationRequirement>
    <literalExpression id="_e"><text>Make Adder(41)</text></literalExpression>
  </decision>"""
    result = engine.evaluate_all(_model(engine, make_dmn(body)), {})
    assert engine.is_opaque(result.get_decision_result("Make Adder").result)
    assert result.get_decision_result("Use").result == 42


# -----------------------------------------------------------------------------
# Decision services
# -----------------------------------------------------------------------------


def test_decision_service_returns_only_outputs(engine, pricing_dmn):
    result = engine.evaluate_decision_service(_model(engine, pricing_dmn), GOLD_ORDER, "Pricing Service")
    assert not result.has_errors
    assert [r.decision_name for r in result.decision_results] == ["Final Price", "Price Label"]
    assert result.context == {
        "Customer": {"tier": "GOLD", "age": 40},
        "Order Amount": 200,
        "Final Price": 160,
        "Price Label": "premium",
    }


def test_single_output_service(engine, pricing_dmn):
    result = engine.evaluate_decision_service(
        _model(engine, pricing_dmn), {"Customer": {"tier": "SILVER", "age": 30}}, "Discount Service"
    )
    assert [(r.decision_name, r.result) for r in result.decision_results] == [("Discount Rate", Decimal("0.1"))]


def test_unknown_service(engine, pricing_dmn):
    with pytest.raises(ValueError):
        engine.evaluate_decision_service(_model(engine, pricing_dmn), {}, "Nope")


def test_service_input_decisions_are_taken_from_context(engine, scoring_dmn):
    result = engine.evaluate_decision_service(_model(engine, scoring_dmn), {"Base Score": 10}, "Finalize Score")
    assert not result.has_errors
    assert [(r.decision_name, r.result) for r in result.decision_results] == [("Final Score", 11)]


def test_service_input_decision_missing_from_context(engine, scoring_dmn):
    result = engine.evaluate_decision_service(_model(engine, scoring_dmn), {"Points": 3}, "Finalize Score")
    assert _statuses(result) == {"Final Score": DecisionStatus.SKIPPED}
    assert _types(result) == ["REQ_DEP_NOT_FOUND"]


def test_service_invoked_from_decision(engine, make_dmn):
    body = """
  <inputData id="_n" name="n"><variable name="n" typeRef="number"/></inputData>
  <decision id="_double" name="Double">
    <variable name="Double" typeRef="number"/>
    <informationRequirement id="_ir"><requiredInput href="#_n"/></informationRequirement>
    <literalExpression id="_e1"><text>n * 2</text></literalExpression>
  </decision>
  <decisionService id="_svc" name="Doubler">
    <outputDecision href="#_double"/>
    <inputData href="#_n"/>
  </decisionService>
  <decision id="_use" name="Use">
    <knowledgeRequirement id="_kr"><requiredKnowledge href="#_svc"/></knowledgeRequirement>
    <literalExpression id="_e2"><text>Doubler(21)</text></literalExpression>
  </decision>"""
    result = engine.evaluate_by_name(_model(engine, make_dmn(body)), {}, "Use")
    assert result.get_decision_result("Use").result == 42


# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------


def test_imported_names_are_scoped_under_alias(engine, imports_main_dmn):
    base = imports_main_dmn.parent / "base.dmn"
    collection = engine.compile([str(imports_main_dmn), str(base)])
    assert collection.names() == ["main", "base"]
    main = collection.models[0]
    assert not main.has_errors

    result = engine.evaluate_all(main, {"base": {"Salary": 1000}})
    assert not result.has_errors
    assert [r.decision_name for r in result.decision_results] == ["Net"]
    assert result.get_decision_result("Net").result == 750
    assert result.context["base"]["Tax"] == 250


def test_missing_import_is_a_model_error(engine, imports_main_dmn):
    main = _model(engine, imports_main_dmn)
    assert main.has_errors
    assert {m.message_type for m in main.messages} == {"IMPORT_NOT_FOUND"}


# -----------------------------------------------------------------------------
# Compilation problems
# -----------------------------------------------------------------------------


def test_malformed_xml_fails_compilation(engine, tmp_path):
    path = tmp_path / "bad.dmn"
    path.write_text("<definitions", encoding="utf-8")
    with pytest.raises(CompilationFailed) as exc:
        engine.compile([str(path)])
    assert exc.value.message.startswith("Failed to build DMN runtime")


def test_non_dmn_root_fails_compilation(engine, tmp_path):
    path = tmp_path / "other.dmn"
    path.write_text("<html/>", encoding="utf-8")
    with pytest.raises(CompilationFailed):
        engine.compile([str(path)])


def test_duplicate_namespace_fails_compilation(engine, make_dmn):
    first = make_dmn("", name="one", namespace="urn:same")
    second = make_dmn("", name="two", namespace="urn:same")
    with pytest.raises(CompilationFailed) as exc:
        engine.compile([str(first), str(second)])
    assert "duplicate model namespace" in exc.value.message


def test_expression_problems_become_model_errors(engine, make_dmn):
    body = """
  <decision id="_s" name="Syntax"><literalExpression id="_e"><text>1 +</text></literalExpression></decision>
  <decision id="_m" name="Missing"/>
  <decision id="_r" name="Ref">
    <informationRequirement id="_ir"><requiredDecision href="#_nowhere"/></informationRequirement>
    <literalExpression id="_e2"><text>1</text></literalExpression>
  </decision>"""
    model = _model(engine, make_dmn(body))
    assert model.has_errors
    types = {m.message_type for m in model.messages}
    assert types == {"FEEL_SYNTAX_ERROR", "MISSING_EXPRESSION", "REFERENCE_NOT_FOUND"}


def test_model_without_namespace_gets_warning(engine, tmp_path):
    path = tmp_path / "plain.dmn"
    path.write_text('<definitions name="plain"/>', encoding="utf-8")
    model = _model(engine, path)
    assert not model.has_errors
    assert [m.message_type for m in model.messages] == ["MISSING_NAMESPACE"]
