"""Special forms: missing and delayedAssign."""

from __future__ import annotations

from typing import Any

from rho import Value
from rho.errors import RhoArityError, RhoTypeError
from rho.evaluation.apply import DOTS, match_slots
from rho.types.closure import DotsList
from rho.types.environment import Environment, _NOT_FOUND
from rho.types.expression import MISSING, Arg, Symbol
from rho.types.null import Null
from rho.types.promise import Promise, delayed_assign


def is_missing(value: Any) -> bool:
    """Whether an argument binding counts as not supplied.

    True for the missing marker, an empty `...`, a default-argument promise,
    and a promise that merely forwards another missing argument.
    """
    if value is MISSING:
        return True
    if isinstance(value, DotsList):
        return len(value) == 0
    if isinstance(value, Promise):
        if value.is_default:
            return True
        if not value.forced and isinstance(value.expr, Symbol) and value.env is not None:
            return is_missing(value.env.get_local(value.expr.id, None))
    return False


def missing_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 1 or not isinstance(args[0].value, Symbol):
        raise RhoArityError("missing() expects the name of a single argument")
    name = args[0].value.id
    value = env.get_local(name)
    if value is _NOT_FOUND:
        if name == DOTS:
            return True
        raise RhoTypeError(f"'missing' can only be used for arguments, `{name}` is not one")
    return is_missing(value)


def delayed_assign_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    matched, _ = match_slots(args, ("x", "value", "eval.env", "assign.env"))
    if "x" not in matched or "value" not in matched:
        raise RhoArityError("delayedAssign() needs a name and an expression")
    name = ctx.eval(matched["x"], env)
    if isinstance(name, Symbol):
        name = name.id
    if not isinstance(name, str):
        raise RhoTypeError("delayedAssign() needs a character string for the name")
    eval_env = ctx.eval(matched["eval.env"], env) if "eval.env" in matched else env
    assign_env = ctx.eval(matched["assign.env"], env) if "assign.env" in matched else env
    for e in (eval_env, assign_env):
        if not isinstance(e, Environment):
            raise RhoTypeError("delayedAssign() environments must be environments")
    delayed_assign(name, matched["value"], eval_env, assign_env, ctx)
    return Null
