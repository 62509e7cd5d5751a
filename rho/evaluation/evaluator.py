"""Core evaluator for the rho runtime.

The Evaluator is the explicit evaluation context: it owns the frame stack
and the global environment and is threaded through every call, promise and
special form. Nothing about an evaluation lives in module state, so any
number of evaluators can run side by side or re-enter each other.
"""

from __future__ import annotations

import logging
import re
import sys
from contextlib import contextmanager
from typing import Any, Iterable, Mapping, Optional

from rho import Value
from rho.config import get_max_depth
from rho.errors import (
    ReturnSignal,
    RhoArityError,
    RhoCallableError,
    RhoError,
    RhoMissingArgument,
    RhoRecursionError,
)
from rho.evaluation.apply import DOTS, apply_closure
from rho.types.closure import Builtin, Closure, DotsList, is_invocable
from rho.types.data_mask import DataMask, TableScope, as_data_mask, as_scope, find_mask
from rho.types.environment import EMPTY, Environment, LookupKind
from rho.types.expression import (
    MISSING,
    Arg,
    Call,
    Constant,
    Expression,
    MissingArg,
    Pairlist,
    Symbol,
    as_expression,
    is_expression,
)
from rho.types.frame import ExitHandler, Frame
from rho.types.promise import Promise
from rho.types.quosure import Quosure

logger = logging.getLogger(__name__)

_DOT_N = re.compile(r"^\.\.([1-9][0-9]*)$")

# Python frames a single closure call may take: argument promises, special
# forms and builtins between two pushed frames.
_PY_FRAMES_PER_CALL = 40
_PY_FRAME_HEADROOM = 1000


def _configure_recursion_limit(max_depth: int) -> None:
    """Raise the host recursion limit so `max_depth` closure frames fit under it."""
    needed = max_depth * _PY_FRAMES_PER_CALL + _PY_FRAME_HEADROOM
    current = sys.getrecursionlimit()
    if current < needed:
        logger.debug("raising recursion limit from %d to %d", current, needed)
        sys.setrecursionlimit(needed)


class Evaluator:
    """Evaluation context: frame stack plus the global environment."""

    def __init__(self, global_env: Optional[Environment] = None, max_depth: Optional[int] = None):
        self.global_env = global_env
        self.frame: Optional[Frame] = None
        self.depth = 0
        # Environments that eval() and local() are currently evaluating in.
        self.return_targets: list[Environment] = []
        self.max_depth = max_depth if max_depth is not None else get_max_depth()
        _configure_recursion_limit(self.max_depth)

    # -------------------------------
    # Entry points
    # -------------------------------
    @contextmanager
    def request(self):
        """Scope of one request. A failure ends the request, never the evaluator.

        The frame stack is restored to its state at entry whatever happens.
        """
        saved_frame, saved_depth = self.frame, self.depth
        saved_targets = len(self.return_targets)
        try:
            yield self
        except ReturnSignal:
            if saved_frame is None:
                raise RhoError("no function to return from, jumping to top level") from None
            raise
        except RecursionError:
            raise RhoRecursionError("evaluation nested too deeply: infinite recursion?") from None
        finally:
            self.frame, self.depth = saved_frame, saved_depth
            del self.return_targets[saved_targets:]

    def evaluate(self, expr: Expression, env: Environment) -> Value:
        with self.request():
            return self.eval(expr, env)

    def eval(self, expr: Expression, env: Environment) -> Value:
        """Dispatch on the expression kind."""
        match expr:
            case Constant(value=value):
                if isinstance(value, Quosure):
                    return self.eval_quosure(value, env)
                return value
            case Symbol():
                return self.eval_symbol(expr, env)
            case Call():
                return self.eval_call(expr, env)
            case Pairlist():
                return expr
            case MissingArg():
                raise RhoMissingArgument("argument is missing, with no default")
            case Quosure():
                return self.eval_quosure(expr, env)
            case _:
                # Opaque host values self-evaluate.
                return expr

    def eval_symbol(self, sym: Symbol, env: Environment) -> Value:
        name = sym.id
        if name == DOTS:
            raise RhoError("'...' used in an incorrect context")
        m = _DOT_N.match(name)
        if m:
            dots = self.dots_of(env)
            n = int(m.group(1))
            if n > len(dots):
                raise RhoError(f"the ... list does not contain {n} elements")
            value = dots[n - 1]
            if value is MISSING:
                raise RhoMissingArgument(f'argument "{name}" is missing, with no default')
            return value.force(self) if isinstance(value, Promise) else value
        return env.lookup(sym, LookupKind.VALUE)

    def eval_call(self, call: Call, env: Environment) -> Value:
        head = call.head
        if isinstance(head, Symbol):
            fn = env.lookup(head, LookupKind.CALLABLE)
        else:
            fn = self.eval(head, env)
            if not is_invocable(fn):
                raise RhoCallableError("attempt to apply non-function", call)
        return self.apply(fn, call, env)

    def apply(self, fn: Any, call: Call, env: Environment) -> Value:
        """Apply an invocable value to the argument slots of `call`, evaluated from `env`."""
        if isinstance(fn, Builtin):
            if fn.special:
                return fn.fn(call.args, env, self)
            args, kwargs = self.eval_args(call.args, env, call)
            return fn.fn(args, kwargs, env, self)
        if isinstance(fn, Closure):
            supplied = self.promise_args(call.args, env)
            return apply_closure(fn, supplied, call, env, self)
        if is_invocable(fn):
            args, kwargs = self.eval_args(call.args, env, call)
            return fn(*args, **kwargs)
        raise RhoCallableError("attempt to apply non-function", call)

    # -------------------------------
    # Arguments
    # -------------------------------
    def dots_of(self, env: Environment) -> DotsList:
        try:
            dots = env.get_binding(DOTS)
        except RhoError:
            raise RhoError("'...' used in an incorrect context") from None
        if not isinstance(dots, DotsList):
            raise RhoError("'...' used in an incorrect context")
        return dots

    def promise_args(self, args: Iterable[Arg], env: Environment) -> list[tuple[str | None, Any]]:
        """One promise per argument slot, closing over the caller's `env`.

        A `...` slot forwards the caller's own dots entries unchanged.
        """
        supplied: list[tuple[str | None, Any]] = []
        for a in args:
            value = a.value
            if value is MISSING:
                supplied.append((a.name, MISSING))
            elif isinstance(value, Symbol) and value.id == DOTS:
                supplied.extend(self.dots_of(env).entries)
            else:
                supplied.append((a.name, Promise(value, env, self)))
        return supplied

    def eval_args(
        self, args: Iterable[Arg], env: Environment, call: Optional[Expression] = None
    ) -> tuple[list[Value], dict[str, Value]]:
        """Evaluate argument slots left to right for a builtin or host function."""
        positional: list[Value] = []
        named: dict[str, Value] = {}
        for name, value in self.promise_args(args, env):
            if value is MISSING:
                raise RhoMissingArgument("argument is missing, with no default", call)
            value = value.force(self) if isinstance(value, Promise) else value
            if name:
                if name in named:
                    raise RhoArityError(f'argument "{name}" supplied more than once', call)
                named[name] = value
            else:
                positional.append(value)
        return positional, named

    # -------------------------------
    # Calling back into functions from host code
    # -------------------------------
    def call_function(
        self,
        fn: Any,
        args: Iterable[Value] = (),
        kwargs: Optional[Mapping[str, Value]] = None,
        env: Optional[Environment] = None,
    ) -> Value:
        """Invoke `fn` with already evaluated arguments."""
        args = list(args)
        kwargs = dict(kwargs or {})
        env = env if env is not None else (self.global_env or EMPTY)
        label = getattr(fn, "name", None) or "FUN"
        slots = [Arg(None, _quoted(v)) for v in args] + [Arg(k, _quoted(v)) for k, v in kwargs.items()]
        call = Call(Symbol(label), tuple(slots))
        if isinstance(fn, Closure):
            supplied = [(None, Promise.from_value(v)) for v in args]
            supplied += [(k, Promise.from_value(v)) for k, v in kwargs.items()]
            return apply_closure(fn, supplied, call, env, self)
        if isinstance(fn, Builtin):
            if fn.special:
                return fn.fn(call.args, env, self)
            return fn.fn(args, kwargs, env, self)
        if is_invocable(fn):
            return fn(*args, **kwargs)
        raise RhoCallableError("attempt to apply non-function", call)

    # -------------------------------
    # Frames
    # -------------------------------
    def push_frame(
        self,
        call: Expression,
        env: Environment,
        function: Optional[Closure] = None,
        caller_env: Optional[Environment] = None,
    ) -> Frame:
        if self.depth >= self.max_depth:
            raise RhoRecursionError("evaluation nested too deeply: infinite recursion?", call)
        frame = Frame(call, env, self.frame, function, caller_env)
        self.frame = frame
        self.depth += 1
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("enter frame %d: %s", self.depth, _deparse(call))
        return frame

    def pop_frame(self, frame: Frame) -> None:
        if self.frame is not frame:
            raise RuntimeError("frame stack out of order")
        self.frame = frame.parent
        self.depth -= 1
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("leave frame %d: %s", self.depth + 1, _deparse(frame.call))

    def unwind(self, frame: Frame, pending: Optional[BaseException]) -> None:
        """Run `frame`'s exit handlers, then pop it.

        With nothing pending, the first handler failure propagates once all
        handlers ran. While another exception is already propagating,
        handler failures are logged and that exception wins.
        """
        first_error: Optional[BaseException] = None
        try:
            for handler in frame.take_exit_handlers():
                try:
                    self.run_exit_handler(handler)
                except Exception as exc:
                    if pending is None and first_error is None:
                        first_error = exc
                    else:
                        logger.warning("exit handler failed while unwinding: %s", exc)
        finally:
            self.pop_frame(frame)
        if first_error is not None:
            raise first_error

    def run_exit_handler(self, handler: ExitHandler) -> None:
        if is_expression(handler.action):
            self.eval(handler.action, handler.env)
        else:
            handler.action()

    def frame_of(self, env: Environment) -> Optional[Frame]:
        """The innermost frame whose environment is `env`."""
        frame = self.frame
        while frame is not None:
            if frame.env is env:
                return frame
            frame = frame.parent
        return None

    def function_frame(self, env: Environment) -> Optional[Frame]:
        """The frame of the function `env` belongs to, looking through local() scopes."""
        for e in env.parents():
            frame = self.frame_of(e)
            if frame is not None:
                return frame
        return None

    def parent_frame(self, env: Environment, n: int = 1) -> Environment:
        top = self.global_env or EMPTY
        for _ in range(n):
            frame = self.function_frame(env)
            if frame is None or frame.caller_env is None:
                return top
            env = frame.caller_env
        return env

    def trace_calls(self) -> list[str]:
        """Deparsed calls on the stack, outermost first."""
        if self.frame is None:
            return []
        return [_deparse(f.call) for f in reversed(list(self.frame))]

    def note_failure(self, exc: BaseException) -> None:
        """Attach the stack trace to a failure the first time it unwinds a frame."""
        if isinstance(exc, RhoError) and exc.trace is None:
            exc.trace = self.trace_calls()
            if exc.call is None and self.frame is not None:
                exc.call = self.frame.call
            logger.debug("failure in %s: %s", exc.trace[-1] if exc.trace else "<top>", exc.message)

    # -------------------------------
    # Scoped evaluation
    # -------------------------------
    def eval_in(self, expr: Expression, env: Environment) -> Value:
        """Evaluate with `env` as a return target, as eval() and local() do."""
        self.return_targets.append(env)
        try:
            return self.eval(expr, env)
        except ReturnSignal as signal:
            if signal.env is env:
                return signal.value
            raise
        finally:
            self.return_targets.pop()

    def return_target(self, env: Environment) -> Optional[Environment]:
        """The environment a return() evaluated in `env` unwinds to, if any."""
        for e in env.parents():
            if self.frame_of(e) is not None or any(t is e for t in self.return_targets):
                return e
        return None

    def eval_quosure(self, quo: Quosure, env: Environment) -> Value:
        """Evaluate an embedded quosure in its own environment.

        Under a data mask, the mask is re-parented onto the quosure's
        environment for the duration, so data still shadows the chain.
        """
        mask = find_mask(env)
        if mask is None:
            return self.eval(quo.expr, quo.env)
        with mask.scoped(quo.env) as bottom:
            return self.eval(quo.expr, bottom)

    def eval_tidy(self, expr: Any, data: Any = None, env: Optional[Environment] = None) -> Value:
        """Evaluate `expr` with names resolved against `data` before the environment chain.

        A quosure brings its own environment and `env` is ignored for it.
        """
        if isinstance(expr, Quosure):
            body, home = expr.expr, expr.env
        else:
            body = as_expression(expr)
            home = env if env is not None else (self.global_env or EMPTY)
        mask = as_data_mask(data)
        with mask.scoped(home) as bottom:
            return self.eval_in(body, bottom)

    def eval_rows(self, quo: Any, table: Any, env: Optional[Environment] = None) -> list[Value]:
        """Evaluate `quo` once per row of `table`, columns bound to that row's scalars."""
        scope = TableScope(table) if isinstance(table, Mapping) else as_scope(table)
        if not isinstance(scope, TableScope):
            raise RhoError("eval_rows needs a table of columns")
        return [self.eval_tidy(quo, DataMask([row]), env) for row in scope.rows()]


def _quoted(value: Value) -> Expression:
    if isinstance(value, (Symbol, Call)):
        return Call(Symbol("quote"), (value,))
    return as_expression(value)


def _deparse(expr: Expression) -> str:
    from rho.debug_utils.deparse import deparse

    return deparse(expr)
