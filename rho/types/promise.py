"""Promises: suspended (expression, environment) computations forced at most once."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from rho import Value
from rho.errors import ControlFlowSignal, RhoForceFailure
from rho.types.expression import Call, Constant, Expression, is_expression
from rho.types.symbol import Symbol

if TYPE_CHECKING:
    from rho.evaluation.evaluator import Evaluator
    from rho.types.environment import Environment

logger = logging.getLogger(__name__)


class Promise:
    """A lazily evaluated argument.

    The expression runs in `env` the first time the promise is forced. Its
    outcome, a value or the exception it raised, is cached, and every later
    force returns (or re-raises) that identical outcome without running the
    expression again. Once settled the promise drops its environment so the
    frame it closed over can be reclaimed; `expr` stays available to
    substitute() and to diagnostics.
    """

    __slots__ = (
        "expr",
        "env",
        "context",
        "is_default",
        "forced",
        "_value",
        "_failure",
        "_forcing",
        "_interrupted",
        "_from_value",
    )

    def __init__(
        self,
        expr: Expression,
        env: Optional[Environment],
        context: Optional[Evaluator] = None,
        is_default: bool = False,
    ):
        self.expr = expr
        self.env = env
        self.context = context
        # True for promises built from a formal's default expression.
        self.is_default = is_default
        self.forced = False
        self._value: Value = None
        self._failure: BaseException | None = None
        self._forcing = False
        self._interrupted = False
        self._from_value = False

    @classmethod
    def from_value(cls, value: Value, expr: Expression | None = None) -> Promise:
        """An already-forced promise, used when a host function supplies plain values."""
        if expr is None:
            expr = Call(Symbol("quote"), (value,)) if is_expression(value) else Constant(value)
        p = cls(expr, None)
        p.forced = True
        p._value = value
        p._from_value = True
        return p

    @property
    def from_host_value(self) -> bool:
        """True for promises made by from_value() rather than from an argument."""
        return self._from_value

    @property
    def failed(self) -> bool:
        return self.forced and self._failure is not None

    @property
    def value(self) -> Value:
        """The cached value; only meaningful once forced without failure."""
        if not self.forced:
            raise RhoForceFailure("promise has not been forced yet")
        return self._value

    def force(self, context: Optional[Evaluator] = None) -> Value:
        if self.forced:
            if self._failure is not None:
                raise self._failure
            return self._value
        if self._forcing:
            raise RhoForceFailure(
                "promise already under evaluation: recursive default argument reference or earlier problems?"
            )
        ctx = context if context is not None else self.context
        if ctx is None:
            raise RhoForceFailure("promise has no evaluator to force it with")
        if self._interrupted:
            logger.warning("restarting interrupted promise evaluation")
            self._interrupted = False

        self._forcing = True
        logger.debug("forcing promise %s", self.expr)
        try:
            value = ctx.eval(self.expr, self.env)
        except (ControlFlowSignal, RecursionError):
            # Neither a non-local exit nor a host stack overflow is an outcome;
            # the next force starts over.
            self._forcing = False
            self._interrupted = True
            raise
        except Exception as exc:
            self._settle(None, exc)
            raise
        self._settle(value, None)
        return value

    def _settle(self, value: Value, failure: BaseException | None) -> None:
        self._value = value
        self._failure = failure
        self.forced = True
        self._forcing = False
        self.env = None

    def __repr__(self) -> str:
        state = "forced" if self.forced else "unforced"
        return f"<promise {state}: {self.expr}>"


def make_promise(expr: Expression, env: Environment, context: Optional[Evaluator] = None) -> Promise:
    return Promise(expr, env, context)


def force(value: Value, context: Optional[Evaluator] = None) -> Value:
    """Force `value` if it is a promise, otherwise return it unchanged."""
    if isinstance(value, Promise):
        return value.force(context)
    return value


def delayed_assign(
    name: str,
    expr: Expression,
    eval_env: Environment,
    assign_env: Environment,
    context: Optional[Evaluator] = None,
) -> Promise:
    """Bind `name` in `assign_env` to a promise evaluating `expr` in `eval_env`."""
    p = Promise(expr, eval_env, context)
    assign_env.define(name, p)
    return p
