import numpy as np
import pytest
from hypothesis import given, strategies as st

from rho.errors import RhoCallableError, RhoSyntaxError, RhoTypeError
from rho.types.expression import (
    MISSING,
    Arg,
    Call,
    Constant,
    Pairlist,
    all_names,
    as_expression,
    make_call,
    make_constant,
    make_pairlist,
    map_leaves,
)
from rho.types.null import Null
from rho.types.symbol import Symbol, make_symbol


# -----------------------------------------------------
# Symbols and constants
# -----------------------------------------------------

@given(st.text(min_size=1, max_size=20))
def test_symbols_are_interned(name):
    assert Symbol(name) is Symbol(name)
    assert make_symbol(name) is Symbol(name)


def test_constants_compare_by_type_and_value():
    assert Constant(1) == Constant(1)
    assert Constant(1) != Constant(1.0)
    assert Constant(1) != Constant(True)
    assert Constant("a") != Symbol("a")
    assert Constant(Null) == Constant()


def test_vector_constants_compare_by_contents():
    a = Constant(np.array([1, 2]))
    assert a == Constant(np.array([1, 2]))
    assert hash(a) == hash(Constant(np.array([1, 2])))
    assert a != Constant(np.array([1, 3]))
    assert a != Constant(np.array([1.0, 2.0]))
    assert make_call("f", [np.array([1, 2])]) == make_call("f", [np.array([1, 2])])


def test_make_constant_refuses_expressions():
    with pytest.raises(RhoTypeError):
        make_constant(Symbol("x"))


def test_as_expression_wraps_host_values():
    assert as_expression(3) == Constant(3)
    sym = Symbol("x")
    assert as_expression(sym) is sym


def test_missing_marker_is_a_singleton():
    assert type(MISSING)() is MISSING
    assert not MISSING


# -----------------------------------------------------
# Calls
# -----------------------------------------------------

def test_call_positions():
    call = make_call("f", [1, Symbol("x")], b=2)
    assert len(call) == 4
    assert call[0] is Symbol("f")
    assert call[1] == Constant(1)
    assert call[2] is Symbol("x")
    assert call[-1] == Constant(2)
    assert call.arg_names == (None, None, "b")
    assert call.arg("b") == Constant(2)
    with pytest.raises(IndexError):
        call[4]


def test_call_replace_keeps_names_and_original():
    call = make_call("f", [1], b=2)
    new = call.replace(2, Symbol("y"))
    assert new.args[1] == Arg("b", Symbol("y"))
    assert call.args[1] == Arg("b", Constant(2))
    assert new.replace(0, Symbol("g")).head is Symbol("g")


def test_call_drop_argument():
    call = make_call("f", [1, 2, 3])
    assert call.drop(2) == make_call("f", [1, 3])


def test_call_drop_head_promotes_first_argument():
    call = make_call("f", [Symbol("g"), 1])
    assert call.drop(0) == make_call("g", [1])


@pytest.mark.parametrize(
    "call",
    [
        make_call("f"),
        make_call("f", [1]),
        make_call("f", g=Symbol("h")),
    ],
)
def test_call_drop_head_needs_invocable_first_argument(call):
    with pytest.raises(RhoCallableError):
        call.drop(0)


def test_calls_are_immutable():
    call = make_call("f", [1])
    with pytest.raises(AttributeError):
        call.head = Symbol("g")


# -----------------------------------------------------
# Pairlists
# -----------------------------------------------------

def test_pairlist_construction():
    formals = make_pairlist(["x", ("y", 2)], z=Symbol("x"))
    assert formals.names == ("x", "y", "z")
    assert formals["x"] is MISSING
    assert formals["y"] == Constant(2)
    assert formals[2] is Symbol("x")
    assert "y" in formals
    assert formals.get("w") is None


def test_pairlist_rejects_repeated_names():
    with pytest.raises(RhoSyntaxError):
        Pairlist((("x", MISSING), ("x", Constant(1))))


# -----------------------------------------------------
# Traversal
# -----------------------------------------------------

def test_all_names_in_reading_order():
    expr = make_call("+", [make_call("*", [Symbol("x"), Symbol("y")]), Symbol("x")])
    assert all_names(expr) == ["+", "*", "x", "y", "x"]
    assert all_names(expr, unique=True) == ["+", "*", "x", "y"]


def test_map_leaves_rebuilds_tree():
    expr = make_call("f", [Symbol("x"), 1], n=Symbol("x"))
    renamed = map_leaves(expr, lambda leaf: Symbol("y") if leaf is Symbol("x") else leaf)
    assert renamed == make_call("f", [Symbol("y"), 1], n=Symbol("y"))
    assert expr.args[0].value is Symbol("x")


def test_calls_hash_structurally():
    a = make_call("f", [1, "s"])
    b = Call(Symbol("f"), (Constant(1), Constant("s")))
    assert a == b
    assert hash(a) == hash(b)
