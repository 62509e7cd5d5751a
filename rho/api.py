"""Public operations of the rho core as plain functions.

Every function that evaluates takes an optional Evaluator. Without one a
fresh Evaluator is used for that call alone, so nothing is shared between
calls except the environments passed in.
"""

from __future__ import annotations

from typing import Any, Optional

from rho import Value
from rho.builtin.env_builtin import register
from rho.debug_utils.deparse import as_label, deparse
from rho.evaluation.evaluator import Evaluator
from rho.quotation.capture import quote_caller, quote_now
from rho.quotation.quasiquote import quo_squash, rewrite_member_access, unquote, unquote_splice
from rho.reader.parser import parse_all, parse_capture
from rho.types.data_mask import as_data_mask, new_data_mask
from rho.types.environment import EMPTY, Environment, LookupKind
from rho.types.expression import Expression, make_call, make_constant, make_pairlist
from rho.types.promise import Promise
from rho.types.promise import force as _force
from rho.types.quosure import Quosure, get_env, get_expr, make_quosure

__all__ = [
    "as_data_mask",
    "as_label",
    "base_environment",
    "bind",
    "deparse",
    "eval",
    "eval_rows",
    "eval_tidy",
    "evaluate",
    "extend",
    "force",
    "get_env",
    "get_expr",
    "lookup",
    "make_call",
    "make_constant",
    "make_pairlist",
    "make_promise",
    "make_quosure",
    "new_data_mask",
    "new_environment",
    "parse_all",
    "parse_capture",
    "quo_squash",
    "quote_caller",
    "quote_now",
    "rewrite_member_access",
    "unbind",
    "unquote",
    "unquote_splice",
]


def _context(ctx: Optional[Evaluator]) -> Evaluator:
    return ctx if ctx is not None else Evaluator()


def base_environment() -> Environment:
    """A fresh environment holding the builtins, whose parent is the empty environment."""
    env = Environment(parent=EMPTY, name="base")
    register(env)
    return env


def new_environment(parent: Optional[Environment] = None, ctx: Optional[Evaluator] = None) -> Environment:
    """A new empty environment.

    Without `parent` it hangs off the environment of the frame `ctx` is
    executing, then off `ctx`'s global environment, and otherwise off a
    fresh builtin base environment.
    """
    if parent is None:
        if ctx is not None and ctx.frame is not None:
            parent = ctx.frame.env
        elif ctx is not None and ctx.global_env is not None:
            parent = ctx.global_env
        else:
            parent = base_environment()
    return Environment(parent=parent)


def bind(env: Environment, name: str, value: Value) -> Environment:
    """Insert or overwrite `name` in `env` itself; returns `env`.

    `env` is mutated, not copied, so every holder of it sees the new binding.
    Use extend() for a child scope that shadows `name` without touching `env`.
    """
    env.define(name, value)
    return env


def extend(parent: Environment, name: str, value: Value) -> Environment:
    """A new child of `parent` holding the single binding name -> value."""
    child = Environment(parent=parent)
    child.define(name, value)
    return child


def lookup(name: str, env: Environment, kind: LookupKind = LookupKind.VALUE) -> Value:
    """The value of `name` seen from `env`.

    Takes the name first, as in lookup("x", env); bind() and unbind() take the
    environment first. CALLABLE lookups skip bindings that cannot be called.
    """
    return env.lookup(name, kind)


def unbind(env: Environment, name: str) -> Environment:
    env.unbind(name)
    return env


def make_promise(expr: Expression, env: Environment, ctx: Optional[Evaluator] = None) -> Promise:
    return Promise(expr, env, _context(ctx))


def force(value: Value, ctx: Optional[Evaluator] = None) -> Value:
    return _force(value, ctx)


def evaluate(expr: Expression, env: Environment, ctx: Optional[Evaluator] = None) -> Value:
    return _context(ctx).evaluate(expr, env)


eval = evaluate


def eval_tidy(
    expr: Any,
    data: Any = None,
    env: Optional[Environment] = None,
    ctx: Optional[Evaluator] = None,
) -> Value:
    """Evaluate `expr` (an expression or a quosure) with `data` masking `env`."""
    ctx = _context(ctx)
    with ctx.request():
        return ctx.eval_tidy(expr, data, env)


def eval_rows(quo: Quosure | Expression, table: Any, env: Optional[Environment] = None, ctx: Optional[Evaluator] = None) -> list[Value]:
    ctx = _context(ctx)
    with ctx.request():
        return ctx.eval_rows(quo, table, env)
