"""Unit tests for the FEEL expression and unary-test compiler."""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from dmn_executor.engine.builtins import root_scope
from dmn_executor.engine.feel import compile_expression, compile_unary_tests, evaluate, tokenize
from dmn_executor.engine.values import FeelError, FeelSyntaxError, Range


def _test(text, value, names=()):
    return compile_unary_tests(text, names)(value, root_scope())


# -----------------------------------------------------------------------------
# Tokenizer
# -----------------------------------------------------------------------------


def test_tokenizer_matches_names_with_spaces():
    tokens = tokenize("Applicant Age >= 18", ["Applicant Age"])
    assert [(t.kind, t.value) for t in tokens[:-1]] == [
        ("name", "Applicant Age"),
        ("op", ">="),
        ("number", Decimal(18)),
    ]


def test_tokenizer_does_not_split_longer_words():
    tokens = tokenize("nothing", [])
    assert tokens[0].value == "nothing"


def test_unterminated_string():
    with pytest.raises(FeelSyntaxError):
        tokenize('"abc')


# -----------------------------------------------------------------------------
# Expressions
# -----------------------------------------------------------------------------


def test_arithmetic_uses_decimal():
    assert evaluate("0.1 + 0.2") == Decimal("0.3")
    assert evaluate("2 ** 10") == 1024
    assert evaluate("-(3 - 5) * 4 / 2") == 4


def test_division_by_zero_is_null():
    assert evaluate("1 / 0") is None


def test_null_propagates_through_arithmetic():
    assert evaluate("x + 1", {"x": None}) is None


def test_adding_number_and_string_fails():
    with pytest.raises(FeelError):
        evaluate('1 + "a"')


def test_comparisons_and_three_valued_logic():
    assert evaluate("age >= 18", {"age": 25}) is True
    assert evaluate("1 = 1 and 2 > 3") is False
    assert evaluate("null and false") is False
    assert evaluate("null and true") is None
    assert evaluate("null or true") is True
    assert evaluate('1 = "1"') is None


def test_if_then_else():
    assert evaluate('if x > 100 then "premium" else "standard"', {"x": 160}) == "premium"
    assert evaluate('if null then "a" else "b"') == "b"


def test_between_and_in():
    assert evaluate("5 between 1 and 10") is True
    assert evaluate("5 in [1..4]") is False
    assert evaluate("5 in (1, 5, 9)") is True
    assert evaluate("5 in > 3 and 1 < 2") is True


def test_lists_filters_and_paths():
    assert evaluate("[1, 2, 3][item > 1]") == [2, 3]
    assert evaluate("[1, 2, 3][1]") == 1
    assert evaluate("[1, 2, 3][-1]") == 3
    people = [{"name": "a", "age": 30}, {"name": "b", "age": 10}]
    assert evaluate("people[age > 18].name", {"people": people}) == ["a"]


def test_context_literal_entries_see_earlier_entries():
    assert evaluate("{a: 1, b: a + 1}.b") == 2


def test_for_some_every():
    assert evaluate("for x in [1, 2, 3] return x * 2") == [2, 4, 6]
    assert evaluate("for i in 1..3 return i") == [1, 2, 3]
    assert evaluate("some x in [1, 5] satisfies x > 3") is True
    assert evaluate("every x in [1, 5] satisfies x > 3") is False


def test_quantifier_over_numeric_range_stops_early():
    assert evaluate("some i in 1..1000000000000 satisfies i = 3") is True
    assert evaluate("every i in 1..1000000000000 satisfies i < 3") is False


def test_function_literal_and_named_arguments():
    assert evaluate("{f: function(a, b) a - b, r: f(b: 1, a: 3)}.r") == 2


def test_instance_of():
    assert evaluate("5 instance of number") is True
    assert evaluate('"x" instance of number') is False


def test_builtins():
    assert evaluate('string length("abc")') == 3
    assert evaluate('upper case("abc")') == "ABC"
    assert evaluate('substring("foobar", 4)') == "bar"
    assert evaluate("sum([1, 2, 3])") == 6
    assert evaluate("count([1, 2, 3])") == 3
    assert evaluate("max(1, 7, 3)") == 7
    assert evaluate("decimal(1.125, 2)") == Decimal("1.12")
    assert evaluate("list contains([1, 2], 2)") is True
    assert evaluate('string join(["a", "b"], ",")') == "a,b"
    assert evaluate("not(true)") is False


def test_temporal_values():
    assert evaluate('date("2024-01-31")') == date(2024, 1, 31)
    assert evaluate('date("2024-01-31").month') == 1
    assert evaluate('date("2024-01-31") + duration("P1D")') == date(2024, 2, 1)
    assert evaluate('duration("PT2H")') == timedelta(hours=2)


def test_ranges_are_values():
    value = evaluate("[1..10)")
    assert isinstance(value, Range)
    assert value.includes(Decimal(10)) is False


def test_unknown_variable_fails_at_evaluation():
    expr = compile_expression("missing + 1")
    with pytest.raises(FeelError):
        expr(root_scope())


def test_syntax_errors():
    with pytest.raises(FeelSyntaxError):
        compile_expression("1 +")
    with pytest.raises(FeelSyntaxError):
        compile_expression("(1, 2")
    with pytest.raises(FeelSyntaxError):
        compile_expression("")


# -----------------------------------------------------------------------------
# Unary tests
# -----------------------------------------------------------------------------


def test_dash_and_empty_match_anything():
    assert _test("-", 42)
    assert _test("", None)


def test_literal_and_list_of_tests():
    assert _test('"GOLD"', "GOLD")
    assert not _test('"GOLD"', "SILVER")
    assert _test('"GOLD","SILVER"', "SILVER")


def test_comparison_and_range_tests():
    assert _test("< 18", Decimal(17))
    assert not _test("< 18", Decimal(18))
    assert _test("[18..65]", Decimal(65))
    assert not _test("[18..65)", Decimal(65))
    assert _test("> 1, < -1", Decimal(-5))


def test_negated_tests():
    assert _test('not("GOLD", "SILVER")', "BRONZE")
    assert not _test('not("GOLD", "SILVER")', "GOLD")


def test_question_mark_input():
    assert _test("? > 3 and ? < 5", Decimal(4))
    assert not _test("odd(?)", Decimal(4))


def test_test_against_variable():
    scope = root_scope().child({"limit": Decimal(10)})
    assert compile_unary_tests("<= limit", ["limit"])(Decimal(10), scope)


def test_null_input_does_not_match_comparisons():
    assert not _test("> 3", None)
    assert _test("null", None)
