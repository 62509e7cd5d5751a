import math

import numpy as np
import pytest
from hypothesis import given, strategies as st

from rho.debug_utils.deparse import as_label, deparse, format_value, pprint_expr
from rho.errors import RhoSyntaxError
from rho.reader.parser import lex, parse_all, parse_capture
from rho.types.environment import Environment
from rho.types.expression import MISSING, Arg, Call, Constant, Pairlist, make_call
from rho.types.null import Null
from rho.types.quosure import Quosure
from rho.types.symbol import Symbol
from rho.types.values import NamedList


def _tokens(source):
    return [(kind, value) for kind, value, _ in lex(source)]


# -----------------------------------------------------
# Lexer
# -----------------------------------------------------

@pytest.mark.parametrize(
    "source,expected",
    [
        ("a", [("symbol", "a")]),
        ("'a", [("quote", "'"), ("symbol", "a")]),
        (",a ,@b", [("quote", ","), ("symbol", "a"), ("quote", ",@"), ("symbol", "b")]),
        ("(f :x 1)", [("lparen", "("), ("symbol", "f"), ("keyword", ":x"), ("symbol", "1"), ("rparen", ")")]),
        ('"hi there"', [("string", '"hi there"')]),
        ("`odd name`", [("backquoted", "`odd name`")]),
        ("(:= a 1)", [("lparen", "("), ("symbol", ":="), ("symbol", "a"), ("symbol", "1"), ("rparen", ")")]),
        (" ; comment\n a b", [("symbol", "a"), ("symbol", "b")]),
        ("a #| block #| nested |# |# b", [("symbol", "a"), ("symbol", "b")]),
    ],
)
def test_lexer_basic(source, expected):
    assert _tokens(source) == expected


def test_lexer_offsets():
    assert list(lex("(f :x 1)")) == [
        ("lparen", "(", 0),
        ("symbol", "f", 1),
        ("keyword", ":x", 3),
        ("symbol", "1", 6),
        ("rparen", ")", 7),
    ]


def test_lexer_unterminated_block_comment():
    with pytest.raises(RhoSyntaxError):
        list(lex("a #| never closed"))


# -----------------------------------------------------
# Parser
# -----------------------------------------------------

@pytest.mark.parametrize(
    "source, expected",
    [
        ("NULL", Constant(Null)),
        ("()", Constant(Null)),
        ("123", Constant(123)),
        ("-45", Constant(-45)),
        ("3.14", Constant(3.14)),
        ("1e3", Constant(1000.0)),
        ("TRUE", Constant(True)),
        ("FALSE", Constant(False)),
        ('"a\\nb"', Constant("a\nb")),
        ("x", Symbol("x")),
        ("`my var`", Symbol("my var")),
        ("'a", make_call("quote", [Symbol("a")])),
        (",a", make_call("!!", [Symbol("a")])),
        (",@a", make_call("!!!", [Symbol("a")])),
        ("(f 1 :b \"s\")", make_call("f", [1], b="s")),
        ("(+ x (* y 2))", make_call("+", [Symbol("x"), make_call("*", [Symbol("y"), 2])])),
        ("((g) 1)", Call(make_call("g"), (Constant(1),))),
    ],
)
def test_parse_capture(source, expected):
    assert parse_capture(source) == expected


def test_parse_special_floats():
    assert parse_capture("Inf") == Constant(float("inf"))
    assert parse_capture("-Inf") == Constant(float("-inf"))
    assert math.isnan(parse_capture("NaN").value)


def test_parse_function_formals():
    expr = parse_capture("(function (a (b 2) ...) a b)")
    formals = expr[1]
    assert isinstance(formals, Pairlist)
    assert formals.names == ("a", "b", "...")
    assert formals["a"] is MISSING
    assert formals["b"] == Constant(2)
    assert expr[2] == make_call("{", [Symbol("a"), Symbol("b")])


def test_parse_function_without_formals():
    expr = parse_capture("(function () 1)")
    assert expr[1] == Pairlist()
    assert expr[2] == Constant(1)


def test_parse_all_is_lazy():
    exprs = parse_all("(a) (b) )")
    assert next(exprs) == make_call("a")
    assert next(exprs) == make_call("b")
    with pytest.raises(RhoSyntaxError):
        next(exprs)


@pytest.mark.parametrize(
    "source",
    [
        "",
        "   ; only a comment",
        "(f",
        ")",
        "(f :x)",
        "(:x 1)",
        ":x",
        "'",
        "1 2",
        "(function x 1)",
        "(function (a a) 1)",
        "(function ((a)) 1)",
        '"unterminated',
    ],
)
def test_syntax_errors(source):
    with pytest.raises(RhoSyntaxError):
        parse_capture(source)


# -----------------------------------------------------
# Deparse
# -----------------------------------------------------

@pytest.mark.parametrize(
    "source",
    [
        "(f :a 1 \"s\" TRUE NULL)",
        "(+ x (* y 2.5))",
        "(quote a)",
        "(`odd name` 1)",
        "(f `TRUE` `1`)",
        "(function (a (b 2)) (+ a b))",
        "(:= x 1)",
        "(f Inf -Inf NaN)",
    ],
)
def test_deparse_round_trip(source):
    expr = parse_capture(source)
    assert deparse(expr) == source
    assert deparse(parse_capture(deparse(expr))) == source


def test_deparse_inlined_values():
    env = Environment()
    assert deparse(Constant(Quosure(Symbol("x"), env))) == "^x"
    assert deparse(Constant(np.array([1, 2]))) == "(c 1 2)"
    assert deparse(Constant(env)) == "<Environment>"
    assert deparse(MISSING) == "<missing>"


def test_pprint_breaks_long_calls():
    expr = parse_capture("(f (g aaaa bbbb) (h cccc dddd))")
    text = pprint_expr(expr, options={"max_line_length": 20, "max_depth": 8})
    assert text.splitlines() == ["(f", "  (g aaaa bbbb)", "  (h cccc dddd))"]
    assert pprint_expr(expr) == "(f (g aaaa bbbb) (h cccc dddd))"


def test_pprint_depth_limit():
    expr = parse_capture("(a (b (c d)))")
    assert pprint_expr(expr, options={"max_line_length": 80, "max_depth": 2}) == "(a (b ...))"


@pytest.mark.parametrize(
    "value, expected",
    [
        (Null, "NULL"),
        (True, "TRUE"),
        (3, "3"),
        ("s", '"s"'),
        (np.int64(4), "4"),
        (NamedList([1, "a"], ["x", None]), '(list :x 1 "a")'),
        (make_call("f", [1]), "(f 1)"),
    ],
)
def test_format_value(value, expected):
    assert format_value(value) == expected


def test_as_label_truncates():
    long_call = make_call("f", [Symbol("x" * 100)])
    label = as_label(long_call)
    assert len(label) == 60
    assert label.endswith("...")
    assert as_label(Quosure(Symbol("col"), Environment())) == "col"


# -----------------------------------------------------
# Properties
# -----------------------------------------------------

names = st.from_regex(r"[a-z][a-z0-9_.]{0,6}", fullmatch=True).filter(lambda s: s != "function")
atoms = st.one_of(
    names.map(Symbol),
    st.integers(min_value=-10**9, max_value=10**9).map(Constant),
    st.booleans().map(Constant),
    st.text(alphabet=st.characters(exclude_categories=("Cs",)), max_size=8).map(Constant),
)


def _calls(children):
    slots = st.lists(st.builds(Arg, st.one_of(st.none(), names), children), max_size=4)
    return st.builds(lambda head, args: Call(Symbol(head), tuple(args)), names, slots)


expressions = st.recursive(atoms, _calls, max_leaves=12)


@given(expressions)
def test_deparse_then_parse_is_identity(expr):
    assert parse_capture(deparse(expr)) == expr
