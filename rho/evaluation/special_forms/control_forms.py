"""Special forms: {, (, if, &&, || and return."""

from __future__ import annotations

import numpy as np

from rho import Value
from rho.errors import ReturnSignal, RhoArityError, RhoError, RhoTypeError
from rho.types.environment import Environment
from rho.types.expression import Arg
from rho.types.null import Null


def as_condition(value: Value, form: str = "if") -> bool:
    """A single truth value, as `if` and the short-circuit operators need."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, np.ndarray):
        if value.size != 1:
            raise RhoTypeError(f"the condition of {form} has length {value.size}, expected 1")
        return bool(value.item())
    if isinstance(value, (int, float, np.number)):
        if value != value:
            raise RhoTypeError(f"missing value where TRUE/FALSE needed in {form}")
        return bool(value)
    if value is Null or value is None:
        raise RhoTypeError(f"argument is of length zero in {form}")
    raise RhoTypeError(f"argument is not interpretable as logical in {form}")


def block_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    result: Value = Null
    for a in args:
        result = ctx.eval(a.value, env)
    return result


def paren_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 1:
        raise RhoArityError("( expects exactly 1 argument")
    return ctx.eval(args[0].value, env)


def if_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) not in (2, 3):
        raise RhoArityError("if requires a condition, a consequent and an optional alternative")

    if as_condition(ctx.eval(args[0].value, env)):
        return ctx.eval(args[1].value, env)
    if len(args) == 3:
        return ctx.eval(args[2].value, env)
    return Null


def and_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 2:
        raise RhoArityError("&& expects 2 arguments")
    if not as_condition(ctx.eval(args[0].value, env), "&&"):
        return False
    return as_condition(ctx.eval(args[1].value, env), "&&")


def or_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 2:
        raise RhoArityError("|| expects 2 arguments")
    if as_condition(ctx.eval(args[0].value, env), "||"):
        return True
    return as_condition(ctx.eval(args[1].value, env), "||")


def return_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) > 1:
        raise RhoArityError("multi-argument returns are not permitted")
    value = ctx.eval(args[0].value, env) if args else Null
    target = ctx.return_target(env)
    if target is None:
        raise RhoError("no function to return from, jumping to top level")
    raise ReturnSignal(value, target)
