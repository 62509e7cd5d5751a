"""Application engine for rho.

This module centralizes closure application semantics:
- Matching supplied arguments to formals: exact names, then unique
  prefixes of formals ahead of `...`, then position. Leftovers are
  collected into `...` or rejected.
- Binding matched promises, default-expression promises and the missing
  marker into the callee's fresh frame environment.
- Running the body in a pushed Frame and unwinding it, exit handlers
  included, on both success and failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from rho import Value
from rho.config import partial_matching_enabled
from rho.errors import RhoArityError, ReturnSignal
from rho.types.closure import Closure, DotsList
from rho.types.environment import Environment
from rho.types.expression import MISSING, Expression, Pairlist, is_expression, make_pairlist
from rho.types.promise import Promise

if TYPE_CHECKING:
    from rho.evaluation.evaluator import Evaluator

DOTS = "..."


def _describe(value: Any) -> str:
    from rho.debug_utils.deparse import deparse

    if isinstance(value, Promise):
        return deparse(value.expr)
    if is_expression(value):
        return deparse(value)
    return repr(value)


def match_arguments(
    formals: Pairlist | Iterable[str],
    supplied: list[tuple[str | None, Any]],
    call: Expression | None = None,
) -> tuple[dict[str, Any], list[tuple[str | None, Any]]]:
    """Match supplied (name, value) pairs to formal names.

    Returns the matched formals and the ordered leftovers destined for `...`.
    Raises RhoArityError for a formal matched twice, an ambiguous prefix,
    or a leftover argument when the formals have no `...`.
    """
    names = list(formals.names if isinstance(formals, Pairlist) else formals)
    has_dots = DOTS in names
    before_dots = names[: names.index(DOTS)] if has_dots else names
    matched: dict[str, Any] = {}
    used = [False] * len(supplied)

    # 1) exact names, any formal except `...`
    for i, (tag, value) in enumerate(supplied):
        if not tag or tag == DOTS or tag not in names:
            continue
        if tag in matched:
            raise RhoArityError(f'formal argument "{tag}" matched by multiple actual arguments', call)
        matched[tag] = value
        used[i] = True

    # 2) unique prefixes of formals ahead of `...`
    if partial_matching_enabled():
        for i, (tag, value) in enumerate(supplied):
            if used[i] or not tag:
                continue
            candidates = [n for n in before_dots if n not in matched and n.startswith(tag)]
            if len(candidates) > 1:
                raise RhoArityError(f"argument {i + 1} matches multiple formal arguments", call)
            if candidates:
                matched[candidates[0]] = value
                used[i] = True

    # 3) position, then `...`
    open_formals = iter([n for n in before_dots if n not in matched])
    dots: list[tuple[str | None, Any]] = []
    for i, (tag, value) in enumerate(supplied):
        if used[i]:
            continue
        if not tag:
            target = next(open_formals, None)
            if target is not None:
                matched[target] = value
                continue
        if has_dots:
            dots.append((tag or None, value))
            continue
        shown = f"{tag} = {_describe(value)}" if tag else _describe(value)
        raise RhoArityError(f"unused argument ({shown})", call)
    return matched, dots


def match_slots(args, names: Iterable[str], call: Expression | None = None):
    """match_arguments over a Call's unevaluated slots, for special forms."""
    return match_arguments(list(names), [(a.name, a.value) for a in args], call)


def bind_arguments(
    formals: Pairlist,
    supplied: list[tuple[str | None, Any]],
    fun_env: Environment,
    ctx: Evaluator,
    call: Expression | None = None,
) -> Environment:
    """
    Bind supplied arguments into the callee frame `fun_env`.

    Supplied promises close over the caller's environment. Formals left
    unmatched get a promise for their default expression closing over
    `fun_env` itself, so defaults may refer to other parameters and to
    anything the body has bound by the time they are first forced. Formals
    with neither are bound to the missing marker.
    """
    matched, dots = match_arguments(formals, supplied, call)
    for name, default in formals:
        if name == DOTS:
            fun_env.define(DOTS, DotsList(dots))
            continue
        value = matched.get(name, MISSING)
        if value is not MISSING:
            fun_env.define(name, value)
        elif default is not MISSING:
            fun_env.define(name, Promise(default, fun_env, ctx, is_default=True))
        else:
            fun_env.define(name, MISSING)
    return fun_env


def apply_closure(
    fn: Closure,
    supplied: list[tuple[str | None, Any]],
    call: Expression,
    caller_env: Environment,
    ctx: Evaluator,
) -> Value:
    """Apply a Closure to already-built argument promises.

    A fresh environment whose parent is the closure's defining environment
    becomes the frame. `return()` evaluated in that frame ends the call
    with its value; any other exception unwinds the frame, running its exit
    handlers, and propagates.
    """
    fun_env = Environment(parent=fn.env)
    bind_arguments(fn.formals, supplied, fun_env, ctx, call)
    frame = ctx.push_frame(call, fun_env, fn, caller_env)
    try:
        result = ctx.eval(fn.body, fun_env)
    except ReturnSignal as signal:
        if signal.env is not fun_env:
            ctx.unwind(frame, signal)
            raise
        result = signal.value
    except BaseException as exc:
        ctx.note_failure(exc)
        ctx.unwind(frame, exc)
        raise
    ctx.unwind(frame, None)
    return result


def make_closure(formals: Any, body: Expression, env: Environment, name: str | None = None) -> Closure:
    if not isinstance(formals, Pairlist):
        formals = make_pairlist(formals)
    return Closure(formals, body, env, name)
