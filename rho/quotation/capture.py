"""Capturing code instead of values.

quote_now returns what it is given. quote_caller reads the expression a
caller wrote out of the promise bound to an argument, which is only
possible while the promise is unforced. enexpr and enquo build on it for
named arguments, substitute rewrites a whole expression against a frame.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from rho.errors import RhoError, RhoForceFailure, RhoTypeError
from rho.evaluation.apply import DOTS
from rho.types.closure import DotsList
from rho.types.environment import EMPTY, Environment, _NOT_FOUND
from rho.types.expression import (
    MISSING,
    Arg,
    Call,
    Constant,
    Expression,
    Pairlist,
    Symbol,
    as_expression,
    is_expression,
)
from rho.types.promise import Promise
from rho.types.quosure import MISSING_QUOSURE, Quosure
from rho.types.values import NamedList

if TYPE_CHECKING:
    from rho.evaluation.evaluator import Evaluator


def quote_now(expr: Expression) -> Expression:
    """Return `expr` unevaluated."""
    return expr


def quote_caller(promise: Promise) -> Expression:
    """The expression behind an unforced argument promise.

    Promises built from host values carry their value already and yield it
    as an expression. Any other forced promise raises RhoForceFailure.
    """
    if not isinstance(promise, Promise):
        raise RhoTypeError(f"expected a promise, got {type(promise).__name__}")
    if promise.forced:
        if promise.from_host_value:
            return as_expression(promise.value)
        raise RhoForceFailure(
            f"cannot capture the expression of argument `{promise.expr}`: it has already been forced"
        )
    return promise.expr


def _argument_binding(arg: Expression, env: Environment) -> Any:
    if not isinstance(arg, Symbol):
        raise RhoTypeError(f"`{arg}` must be the name of an argument")
    return env.get_binding(arg)


def _expand_injections(expr: Expression, env: Optional[Environment], ctx: Evaluator) -> Expression:
    from rho.quotation.quasiquote import contains_injection, quasiquote

    if env is not None and contains_injection(expr):
        return quasiquote(expr, env, ctx)
    return expr


def enexpr(arg: Expression, env: Environment, ctx: Evaluator) -> Expression:
    """The expression supplied for argument `arg` of the function running in `env`.

    Injection operators in that expression are expanded in the caller's
    environment.
    """
    value = _argument_binding(arg, env)
    if value is MISSING:
        return MISSING
    if isinstance(value, Promise):
        expr = quote_caller(value)
        return _expand_injections(expr, value.env, ctx)
    return as_expression(value)


def _promise_quosure(value: Any, ctx: Evaluator) -> Quosure:
    if value is MISSING:
        return MISSING_QUOSURE
    if not isinstance(value, Promise):
        return Quosure(as_expression(value), EMPTY)
    expr = quote_caller(value)
    if value.env is None:
        home = EMPTY
    else:
        home = value.env
        expr = _expand_injections(expr, home, ctx)
    # A quosure forwarded through {{ or passed as a value arrives embedded.
    if isinstance(expr, Constant) and isinstance(expr.value, Quosure):
        return expr.value
    return Quosure(expr, home)


def enquo(arg: Expression, env: Environment, ctx: Evaluator) -> Quosure:
    """Like enexpr, bundled with the environment the caller wrote the argument in."""
    return _promise_quosure(_argument_binding(arg, env), ctx)


def _dots(env: Environment) -> DotsList:
    try:
        dots = env.get_binding(DOTS)
    except RhoError:
        raise RhoError("'...' used in an incorrect context") from None
    if not isinstance(dots, DotsList):
        raise RhoError("'...' used in an incorrect context")
    return dots


def enexprs(env: Environment, ctx: Evaluator) -> NamedList:
    """Expressions of every argument forwarded through `...`, names kept."""
    out = NamedList()
    for name, value in _dots(env):
        if value is MISSING:
            continue
        if isinstance(value, Promise):
            out.append(_expand_injections(quote_caller(value), value.env, ctx), name)
        else:
            out.append(as_expression(value), name)
    return out


def enquos(env: Environment, ctx: Evaluator) -> NamedList:
    out = NamedList()
    for name, value in _dots(env):
        if value is MISSING:
            continue
        out.append(_promise_quosure(value, ctx), name)
    return out


# -------------------------------
# substitute
# -------------------------------
def substitute(expr: Expression, env: Any, ctx: Evaluator) -> Expression:
    """Replace the symbols of `expr` that are bound in `env` itself.

    Promise bindings give their expression, `...` gives the dots
    expressions spliced in place, other bindings give their value. Nothing
    is substituted when `env` is the global environment.
    """
    if isinstance(env, Environment):
        if env is ctx.global_env:
            return expr
        get = env.get_local
    elif isinstance(env, Mapping):
        get = env.get
    elif isinstance(env, NamedList):
        table = {n: v for n, v in env.pairs() if n is not None}
        get = table.get
    else:
        raise RhoTypeError("substitute() needs an environment or a named list")
    return _substitute(expr, get)


def _substitute_symbol(sym: Symbol, get) -> Expression:
    value = get(sym.id, _NOT_FOUND)
    if value is _NOT_FOUND or value is MISSING or isinstance(value, DotsList):
        return sym
    if isinstance(value, Promise):
        return value.expr
    return as_expression(value)


def _substitute(expr: Expression, get) -> Expression:
    match expr:
        case Symbol():
            return _substitute_symbol(expr, get)
        case Call(head=head, args=args):
            out: list[Arg] = []
            for a in args:
                if isinstance(a.value, Symbol) and a.value.id == DOTS:
                    dots = get(DOTS, _NOT_FOUND)
                    if isinstance(dots, DotsList):
                        out.extend(_dots_args(dots))
                        continue
                out.append(Arg(a.name, _substitute(a.value, get)))
            return Call(_substitute(head, get), tuple(out))
        case Pairlist(items=items):
            return Pairlist(tuple((name, _substitute(d, get)) for name, d in items))
        case _:
            return expr


def _dots_args(dots: DotsList) -> list[Arg]:
    out = []
    for name, value in dots:
        if isinstance(value, Promise):
            out.append(Arg(name, value.expr))
        elif is_expression(value):
            out.append(Arg(name, value))
        else:
            out.append(Arg(name, as_expression(value)))
    return out
