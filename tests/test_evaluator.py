import logging

import pytest

from rho import api
from rho.errors import (
    RhoArityError,
    RhoCallableError,
    RhoError,
    RhoForceFailure,
    RhoLookupError,
    RhoMissingArgument,
    RhoRecursionError,
    RhoUserError,
)
from rho.evaluation.evaluator import Evaluator
from rho.interpreter import Interpreter
from rho.types.closure import Closure
from rho.types.expression import make_call
from rho.types.null import Null
from rho.types.symbol import Symbol
from rho.types.values import NamedList


@pytest.fixture
def calls(interp):
    """Values passed to the host function `record`, in call order."""
    seen = []
    interp.define("record", lambda x: seen.append(x))
    return seen


# -----------------------------------------------------
# Basics
# -----------------------------------------------------

@pytest.mark.parametrize(
    "source, expected",
    [
        ("(+ 1 2)", 3),
        ("(- 10 4)", 6),
        ("(- 3)", -3),
        ("(* 2 (+ 1 2))", 6),
        ("(/ 7 2)", 3.5),
        ("(== 1 1)", True),
        ("(if (< 1 2) \"yes\" \"no\")", "yes"),
        ("(if FALSE 1)", Null),
        ("(&& TRUE FALSE)", False),
        ("(|| FALSE TRUE)", True),
        ("(! TRUE)", False),
        ("({ 1 2 3)", 3),
        ("(paste \"a\" \"b\" :sep \"-\")", "a-b"),
        ("(length (list 1 2 3))", 3),
        ("(is.null NULL)", True),
    ],
)
def test_simple_expressions(interp, source, expected):
    assert interp.eval(source) == expected


def test_division_by_zero_gives_inf(interp):
    assert interp.eval("(/ 1 0)") == float("inf")


def test_unbound_symbol(interp):
    with pytest.raises(RhoLookupError):
        interp.eval("nope")


def test_calling_a_non_function(interp):
    with pytest.raises(RhoLookupError):
        interp.eval("(nope 1)")
    interp.eval("(<- v 1)")
    with pytest.raises(RhoCallableError):
        interp.eval("((identity v) 1)")


def test_evaluator_threads_its_own_state():
    a = Interpreter()
    b = Interpreter()
    a.eval("(<- x 1)")
    with pytest.raises(RhoLookupError):
        b.eval("x")
    assert a.evaluator is not b.evaluator


# -----------------------------------------------------
# Closures
# -----------------------------------------------------

def test_closure_call(interp):
    interp.eval("(<- add (function (x (y 2)) (+ x y)))")
    assert interp.eval("(add 1)") == 3
    assert interp.eval("(add 1 10)") == 11
    assert isinstance(interp["add"], Closure)
    assert interp["add"].name == "add"


def test_recursion(interp):
    interp.eval("(<- fact (function (n) (if (<= n 1) 1 (* n (fact (- n 1))))))")
    assert interp.eval("(fact 10)") == 3628800


def test_closure_uses_defining_environment(interp):
    interp.eval("(<- make (function (n) (function (m) (+ n m))))")
    interp.eval("(<- add5 (make 5))")
    interp.eval("(<- n 100)")
    assert interp.eval("(add5 1)") == 6


def test_arguments_evaluate_in_caller_environment(interp):
    interp.eval("(<- y 1)")
    interp.eval("(<- f (function (x) (<- y 2) x))")
    assert interp.eval("(f y)") == 1


def test_arguments_are_lazy(interp):
    interp.eval("(<- f (function (x) 1))")
    assert interp.eval('(f (stop "never forced"))') == 1


def test_argument_forced_once(interp, calls):
    interp.eval("(<- twice (function (x) (+ x x)))")
    interp.define("tick", lambda: calls.append("tick") or 1)
    assert interp.eval("(twice (tick))") == 2
    assert calls == ["tick"]


def test_default_may_refer_to_other_parameters(interp):
    interp.eval("(<- f (function (a (b (* a 2))) b))")
    assert interp.eval("(f 3)") == 6


def test_default_sees_bindings_made_in_body(interp):
    interp.eval("(<- f (function ((a b)) (<- b 10) a))")
    assert interp.eval("(f)") == 10


def test_mutually_recursive_defaults_fail(interp):
    interp.eval("(<- f (function ((x y) (y x)) x))")
    with pytest.raises(RhoForceFailure):
        interp.eval("(f)")


def test_super_assignment(interp):
    interp.eval("(<- counter (function () (<- n 0) (function () (<<- n (+ n 1)) n)))")
    interp.eval("(<- inc (counter))")
    interp.eval("(inc)")
    assert interp.eval("(inc)") == 2
    with pytest.raises(RhoLookupError):
        interp.eval("n")


def test_super_assignment_falls_back_to_global(interp):
    interp.eval("(<- f (function () (<<- made 1)))")
    interp.eval("(f)")
    assert interp["made"] == 1


# -----------------------------------------------------
# Argument matching
# -----------------------------------------------------

def test_named_arguments_any_order(interp):
    interp.eval("(<- f (function (a b) (- a b)))")
    assert interp.eval("(f :b 1 :a 10)") == 9


def test_partial_name_matching(interp):
    interp.eval("(<- f (function (value other) value))")
    assert interp.eval("(f :val 3 :other 1)") == 3


def test_ambiguous_partial_match(interp):
    interp.eval("(<- f (function (value1 value2) 1))")
    with pytest.raises(RhoArityError, match="multiple formal arguments"):
        interp.eval("(f :val 1)")


def test_partial_matching_can_be_disabled(monkeypatch, interp):
    monkeypatch.setenv("RHO_PARTIAL_MATCH", "0")
    interp.eval("(<- f (function (value) value))")
    with pytest.raises(RhoArityError, match="unused argument"):
        interp.eval("(f :val 1)")


def test_unused_argument(interp):
    with pytest.raises(RhoArityError, match=r"unused argument \(2\)"):
        interp.eval("((function (x) x) 1 2)")


def test_duplicate_exact_match(interp):
    interp.eval("(<- f (function (a) a))")
    with pytest.raises(RhoArityError):
        interp.eval("(f :a 1 :a 2)")


def test_missing_argument_fails_when_used(interp):
    interp.eval("(<- f (function (x) x))")
    with pytest.raises(RhoMissingArgument):
        interp.eval("(f)")


def test_missing(interp):
    interp.eval("(<- f (function (a (b 1)) (list (missing a) (missing b))))")
    assert interp.eval("(f)") == [True, True]
    assert interp.eval("(f 1 2)") == [False, False]


def test_missing_is_forwarded(interp):
    interp.eval("(<- g (function (b) (missing b)))")
    interp.eval("(<- f (function (a) (g a)))")
    assert interp.eval("(f)") is True


def test_dots(interp):
    interp.eval("(<- f (function (...) (list ...)))")
    assert interp.eval("(f 1 :b 2)") == NamedList([1, 2], [None, "b"])


def test_dots_forwarding_and_positions(interp):
    interp.eval("(<- inner (function (a b) (- a b)))")
    interp.eval("(<- outer (function (...) (inner ...)))")
    assert interp.eval("(outer 10 3)") == 7
    interp.eval("(<- second (function (...) ..2))")
    assert interp.eval("(second 1 20 300)") == 20
    with pytest.raises(RhoError, match="does not contain 4 elements"):
        interp.eval("((function (...) ..4) 1 2 3)")


# -----------------------------------------------------
# return and on.exit
# -----------------------------------------------------

def test_early_return(interp):
    interp.eval("(<- f (function (x) (if x (return \"early\")) \"late\"))")
    assert interp.eval("(f TRUE)") == "early"
    assert interp.eval("(f FALSE)") == "late"


def test_return_from_argument_returns_from_caller_frame(interp):
    interp.eval("(<- g (function (x) (+ x 100)))")
    interp.eval("(<- f (function () (g (return 1)) 2))")
    assert interp.eval("(f)") == 1


def test_return_at_top_level(interp):
    with pytest.raises(RhoError, match="no function to return from"):
        interp.eval("(return 1)")


def test_return_inside_local(interp):
    assert interp.eval("(local ({ (return 5) 6))") == 5


def test_on_exit_runs_last_registered_first(interp, calls):
    interp.eval("(<- f (function () (on.exit (record 1)) (on.exit (record 2)) (record 0)))")
    interp.eval("(f)")
    assert calls == [0, 2, 1]


def test_on_exit_after(interp, calls):
    interp.eval("(<- f (function () (on.exit (record 1)) (on.exit (record 2) :after TRUE) (record 0)))")
    interp.eval("(f)")
    assert calls == [0, 1, 2]


def test_on_exit_replace(interp, calls):
    interp.eval("(<- f (function () (on.exit (record 1)) (on.exit (record 2) :add FALSE) 0))")
    interp.eval("(f)")
    assert calls == [2]


def test_on_exit_runs_on_failure(interp, calls):
    interp.eval('(<- f (function () (on.exit (record "cleanup")) (stop "boom")))')
    with pytest.raises(RhoUserError, match="boom"):
        interp.eval("(f)")
    assert calls == ["cleanup"]


def test_on_exit_runs_on_return(interp, calls):
    interp.eval('(<- f (function () (on.exit (record "bye")) (return 1) 2))')
    assert interp.eval("(f)") == 1
    assert calls == ["bye"]


def test_on_exit_at_top_level_is_ignored(interp, calls):
    assert interp.eval("(on.exit (record 1))") is Null
    assert calls == []


def test_failing_exit_handler_propagates_after_the_rest_ran(interp, calls):
    interp.eval('(<- f (function () (on.exit (record 1)) (on.exit (stop "cleanup failed")) 0))')
    with pytest.raises(RhoUserError, match="cleanup failed"):
        interp.eval("(f)")
    assert calls == [1]
    assert interp.evaluator.depth == 0


def test_exit_handler_failure_while_unwinding_is_logged(interp, calls, caplog):
    interp.eval('(<- f (function () (on.exit (record 1)) (on.exit (stop "cleanup failed")) (stop "body")))')
    with caplog.at_level(logging.WARNING, logger="rho.evaluation.evaluator"):
        with pytest.raises(RhoUserError, match="body"):
            interp.eval("(f)")
    assert calls == [1]
    assert "exit handler failed while unwinding" in caplog.text
    assert "cleanup failed" in caplog.text


# -----------------------------------------------------
# Failures and tryCatch
# -----------------------------------------------------

def test_failure_ends_only_the_request(interp):
    interp.eval('(<- f (function () (stop "bad")))')
    with pytest.raises(RhoUserError) as exc_info:
        interp.eval("(f)")
    assert exc_info.value.call == make_call("f")
    assert exc_info.value.trace == ["(f)"]
    assert str(exc_info.value) == "Error in (f): bad"
    assert interp.evaluator.frame is None
    assert interp.evaluator.depth == 0
    assert interp.eval("(+ 1 1)") == 2


def test_try_catch_error(interp):
    result = interp.eval('(tryCatch (stop "boom") :error (function (e) (conditionMessage e)))')
    assert result == "boom"


def test_try_catch_custom_class(interp):
    source = '(tryCatch (stop "x" :class "myError") :myError (function (e) "mine") :error (function (e) "other"))'
    assert interp.eval(source) == "mine"


def test_try_catch_lookup_error_class(interp):
    assert interp.eval('(tryCatch undefined_thing :lookupError (function (e) "lookup"))') == "lookup"


def test_try_catch_host_exception(interp):
    def explode():
        raise ValueError("host failure")

    interp.define("explode", explode)
    assert interp.eval('(tryCatch (explode) :ValueError (function (e) "caught"))') == "caught"


def test_try_catch_unhandled_class_propagates(interp, calls):
    with pytest.raises(RhoUserError):
        interp.eval('(tryCatch (stop "x") :warning (function (e) 1) :finally (record "finally"))')
    assert calls == ["finally"]


def test_try_catch_finally_on_success(interp, calls):
    assert interp.eval('(tryCatch 1 :finally (record "done"))') == 1
    assert calls == ["done"]


def test_try_catch_does_not_catch_return(interp):
    interp.eval("(<- f (function () (tryCatch (return 1) :error (function (e) 2)) 3))")
    assert interp.eval("(f)") == 1


def test_recursion_limit():
    interp = Interpreter(max_depth=25)
    interp.eval("(<- loop (function (n) (loop (+ n 1))))")
    with pytest.raises(RhoRecursionError):
        interp.eval("(loop 0)")
    assert interp.evaluator.depth == 0


COUNT_DOWN = "(<- count_down (function (n) (if (== n 0) 0 (+ 1 (count_down (- n 1))))))"


def test_default_max_depth_is_reachable(monkeypatch):
    monkeypatch.delenv("RHO_MAX_DEPTH", raising=False)
    interp = Interpreter()
    interp.eval(COUNT_DOWN)
    limit = interp.evaluator.max_depth
    assert interp.eval(f"(count_down {limit - 1})") == limit - 1
    with pytest.raises(RhoRecursionError):
        interp.eval(f"(count_down {limit})")


def test_try_catch_leaves_deep_recursion_alone(monkeypatch):
    monkeypatch.delenv("RHO_MAX_DEPTH", raising=False)
    interp = Interpreter()
    interp.eval(COUNT_DOWN)
    assert interp.eval("(tryCatch (count_down 80) :error (function (e) -1))") == 80


def test_try_catch_lets_host_stack_overflow_through(interp):
    def overflow():
        raise RecursionError("maximum recursion depth exceeded")

    interp.define("overflow", overflow)
    with pytest.raises(RhoRecursionError):
        interp.eval("(tryCatch (overflow) :error (function (e) -1))")
    assert interp.evaluator.depth == 0


def test_max_depth_from_environment(monkeypatch):
    monkeypatch.setenv("RHO_MAX_DEPTH", "7")
    assert Evaluator().max_depth == 7
    monkeypatch.setenv("RHO_MAX_DEPTH", "deep")
    with pytest.raises(ValueError):
        Evaluator()


def test_warning_is_logged(interp, caplog):
    with caplog.at_level(logging.WARNING, logger="rho"):
        assert interp.eval('(warning "careful")') == "careful"
    assert "careful" in caplog.text


# -----------------------------------------------------
# Frames and capture
# -----------------------------------------------------

def test_sys_call(interp):
    interp.eval("(<- f (function (x) (sys.call)))")
    assert interp.eval("(f (+ 1 2))") == api.parse_capture("(f (+ 1 2))")


def test_sys_function(interp):
    interp.eval("(<- f (function () (sys.function)))")
    assert interp.eval("(f)") is interp["f"]


def test_parent_frame(interp):
    interp.eval("(<- g (function () (parent.frame)))")
    interp.eval("(<- f (function () (<- marker 1) (g)))")
    assert interp.eval("(g)") is interp.global_env
    assert interp.eval("(f)").get_local("marker") == 1


def test_substitute(interp):
    interp.eval("(<- f (function (x) (substitute x)))")
    assert interp.eval("(f (+ a b))") == api.parse_capture("(+ a b)")
    assert interp.eval("(substitute (+ a b))") == api.parse_capture("(+ a b)")


def test_substitute_expands_dots(interp):
    interp.eval("(<- f (function (...) (substitute (g ...))))")
    assert interp.eval("(f a :b c)") == api.parse_capture("(g a :b c)")


def test_enexpr_captures_callers_expression(interp):
    interp.eval("(<- f (function (x) (enexpr x)))")
    assert interp.eval("(f (* y 2))") == api.parse_capture("(* y 2)")


def test_enexpr_after_forcing_fails(interp):
    interp.eval("(<- y 1)")
    interp.eval("(<- g (function (x) (force x) (enexpr x)))")
    with pytest.raises(RhoForceFailure):
        interp.eval("(g y)")


def test_enquos_from_dots(interp):
    interp.eval("(<- f (function (...) (enquos ...)))")
    quos = interp.eval("(f a :n (+ b 1))")
    assert quos.names == [None, "n"]
    assert quos[0].expr is Symbol("a")
    assert quos[1].env is interp.global_env


def test_eval_with_named_list(interp):
    assert interp.eval("(eval '(+ a 1) (list :a 41))") == 42


def test_lapply_and_do_call(interp):
    assert interp.eval("(lapply (list 1 2) (function (v) (* v 2)))") == [2, 4]
    assert interp.eval('(do.call "paste" (list "a" "b" :sep "-"))') == "a-b"


def test_print(interp, capsys):
    interp.eval("(print '(+ 1 2))")
    assert capsys.readouterr().out == "(+ 1 2)\n"
