"""Special forms: on.exit and tryCatch.

- on.exit: registers cleanup code on the frame of the function evaluating it.
  Handlers run when the frame unwinds, successfully or not, last registered
  first unless `after` is true.
- tryCatch: evaluates its first argument; a failure whose condition classes
  include the name of a handler argument is passed to that handler, whose
  result becomes the value. `finally` is always evaluated.
"""

from __future__ import annotations

import logging

from rho import Value
from rho.errors import ControlFlowSignal, RhoArityError, condition_classes_of
from rho.evaluation.apply import match_slots
from rho.evaluation.special_forms.control_forms import as_condition
from rho.types.environment import Environment
from rho.types.expression import MISSING, Arg, Constant
from rho.types.frame import ExitHandler
from rho.types.null import Null

logger = logging.getLogger(__name__)


def _flag(arg, env: Environment, ctx, default: bool) -> bool:
    if arg is MISSING:
        return default
    return as_condition(ctx.eval(arg, env), "on.exit")


def on_exit_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    matched, _ = match_slots(args, ("expr", "add", "after"))
    expr = matched.get("expr", MISSING)
    add = _flag(matched.get("add", MISSING), env, ctx, True)
    after = _flag(matched.get("after", MISSING), env, ctx, False)

    frame = ctx.function_frame(env)
    if frame is None:
        logger.debug("on.exit() outside of a function is ignored")
        return Null
    if expr is MISSING or expr == Constant(Null):
        if not add:
            frame.exit_handlers.clear()
        return Null
    frame.register_exit(ExitHandler(expr, env), add=add, after=after)
    return Null


def try_catch_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    body = None
    finally_expr = None
    handler_exprs: list[tuple[str, object]] = []
    for a in args:
        if a.name is None:
            if body is not None:
                raise RhoArityError("tryCatch() takes a single expression to evaluate")
            body = a.value
        elif a.name == "finally":
            finally_expr = a.value
        elif a.name == "expr":
            body = a.value
        else:
            handler_exprs.append((a.name, a.value))

    # Handlers are evaluated before the expression, as ordinary arguments would be.
    handlers = [(name, ctx.eval(expr, env)) for name, expr in handler_exprs]
    try:
        if body is None:
            return Null
        return ctx.eval(body, env)
    except (ControlFlowSignal, RecursionError):
        # A host stack overflow is not a condition of the evaluated code.
        raise
    except Exception as exc:
        classes = condition_classes_of(exc)
        for name, handler in handlers:
            if name in classes:
                logger.debug("tryCatch handler `%s` caught %s", name, type(exc).__name__)
                return ctx.call_function(handler, [exc], env=env)
        raise
    finally:
        if finally_expr is not None:
            ctx.eval(finally_expr, env)
