"""Tests for the rule expression language."""

import pytest

from orgschema.exceptions import ExpressionSyntaxError, UnknownFunctionError
from orgschema.rules.expressions import (
    Binary,
    Call,
    FieldRef,
    Literal,
    check_expression,
    evaluate_expression,
    field_references,
    parse_expression,
    tokenize,
)


class TestTokenize:
    def test_kinds(self):
        kinds = [t.kind for t in tokenize("Deal__amount >= 10.5 && ISBLANK(x)")]
        assert kinds == ["IDENT", "OP", "NUMBER", "OP", "IDENT", "PUNCT", "IDENT", "PUNCT", "EOF"]

    def test_word_operators(self):
        values = [t.value for t in tokenize("a AND NOT b OR c IN d")]
        assert values == ["a", "&&", "!", "b", "||", "c", "IN", "d", ""]

    def test_positions(self):
        tokens = tokenize("a == 'x'")
        assert [t.position for t in tokens] == [0, 2, 5, 8]

    def test_bad_character(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            tokenize("a == #")
        assert exc_info.value.position == 5


class TestParse:
    def test_precedence(self):
        node = parse_expression("a || b && c")
        assert isinstance(node, Binary)
        assert node.op == "||"
        assert isinstance(node.right, Binary)
        assert node.right.op == "&&"

    def test_parentheses(self):
        node = parse_expression("(a || b) && c")
        assert node.op == "&&"
        assert node.left.op == "||"

    def test_literals(self):
        assert parse_expression("42") == Literal(42)
        assert parse_expression("4.5") == Literal(4.5)
        assert parse_expression("'it\\'s'") == Literal("it's")
        assert parse_expression("null") == Literal(None)

    def test_function_call(self):
        node = parse_expression("LEN(Deal__name)")
        assert node == Call("LEN", (FieldRef("Deal__name"),))

    def test_empty(self):
        with pytest.raises(ExpressionSyntaxError, match="empty"):
            parse_expression("   ")

    def test_unclosed_paren(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("(a == 1")
        assert "expected ')'" in exc_info.value.reason

    def test_trailing_tokens(self):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression("a == 1 b")

    def test_unknown_function(self):
        with pytest.raises(UnknownFunctionError) as exc_info:
            parse_expression("TODAY()")
        assert "ISBLANK" in exc_info.value.context["valid_functions"]

    @pytest.mark.parametrize(
        "source,count",
        [("LEN(a, b) > 3", 2), ("ISBLANK()", 0), ("ISNULL(a, b, c)", 3)],
    )
    def test_function_argument_count(self, source, count):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression(source)
        assert exc_info.value.reason.endswith(f"got {count}")
        assert exc_info.value.position == 0

    def test_check_expression(self):
        assert check_expression("a == 1") is None
        assert "Syntax error" in check_expression("a ==")


class TestEvaluate:
    """Evaluation against record values."""

    def test_validation_rule_condition(self):
        condition = "Deal__stage == 'Closed Won' && ISBLANK(Deal__amount)"
        assert evaluate_expression(condition, {"Deal__stage": "Closed Won"}) is True
        assert evaluate_expression(condition, {"Deal__stage": "Closed Won", "Deal__amount": 10}) is False
        assert evaluate_expression(condition, {"Deal__stage": "Prospecting"}) is False

    def test_blank_values(self):
        assert evaluate_expression("ISBLANK(x)", {"x": "  "}) is True
        assert evaluate_expression("ISBLANK(x)", {"x": []}) is True
        assert evaluate_expression("ISBLANK(x)", {"x": 0}) is False
        assert evaluate_expression("ISNULL(x)", {"x": ""}) is False

    def test_len(self):
        assert evaluate_expression("LEN(x) > 3", {"x": "abcd"}) is True
        assert evaluate_expression("LEN(x) > 3", {}) is False

    def test_in_array(self):
        assert evaluate_expression("x IN ['a', 'b']", {"x": "b"}) is True
        assert evaluate_expression("x IN []", {"x": "b"}) is False

    def test_not(self):
        assert evaluate_expression("NOT (x > 1)", {"x": 0}) is True
        assert evaluate_expression("!flag", {"flag": True}) is False

    def test_missing_field_compares_false(self):
        assert evaluate_expression("x > 0 || x < 0", {}) is False

    def test_null_field_orders_as_zero(self):
        assert evaluate_expression("x < 1", {"x": None}) is True
        assert evaluate_expression("x < 1", {}) is False

    def test_strict_equality(self):
        assert evaluate_expression("x == 1", {"x": "1"}) is False
        assert evaluate_expression("x == true", {"x": True}) is True

    def test_string_operators(self):
        assert evaluate_expression("name STARTS_WITH 'Acme'", {"name": "Acme Corp"}) is True
        assert evaluate_expression("name CONTAINS 'Corp'", {"name": "Acme Corp"}) is True


class TestFieldReferences:
    def test_first_use_order(self):
        refs = field_references("b == 1 && (a > 2 || ISBLANK(b)) && c IN [d]")
        assert refs == ["b", "a", "c", "d"]

    def test_keywords_are_not_fields(self):
        assert field_references("x == true || y == null") == ["x", "y"]

    def test_unparseable(self):
        assert field_references("a ==") == []
