"""Quosures: an expression bundled with the environment it was written in."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from rho.errors import RhoTypeError
from rho.types.environment import EMPTY, Environment
from rho.types.expression import MISSING, Call, Expression, Symbol, as_expression


@dataclass(frozen=True)
class Quosure:
    """Immutable (expression, environment) pair.

    Two quosures with structurally equal expressions are still different if
    they were captured in different environments.
    """

    expr: Expression
    env: Environment

    def __post_init__(self):
        if isinstance(self.expr, Quosure):
            raise RhoTypeError("a quosure cannot wrap another quosure directly")
        object.__setattr__(self, "expr", as_expression(self.expr))
        if not isinstance(self.env, Environment):
            raise RhoTypeError(f"quosure environment must be an Environment, got {type(self.env).__name__}")

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Quosure) and self.env is other.env and self.expr == other.expr

    def __hash__(self) -> int:
        return hash((self.expr, id(self.env)))

    def __str__(self) -> str:
        from rho.debug_utils.deparse import deparse

        return f"<quosure: {deparse(self.expr)} @ {self.env}>"

    def __repr__(self) -> str:
        return str(self)


def make_quosure(expr: Any, env: Environment) -> Quosure:
    return Quosure(expr, env)


def as_quosure(x: Any, env: Environment) -> Quosure:
    """Return `x` unchanged if it already is a quosure, else bundle it with `env`."""
    if isinstance(x, Quosure):
        return x
    return Quosure(as_expression(x), env)


def get_expr(quo: Quosure | Any) -> Expression:
    return quo.expr if isinstance(quo, Quosure) else quo


def get_env(quo: Quosure) -> Environment:
    if not isinstance(quo, Quosure):
        raise RhoTypeError("expected a quosure")
    return quo.env


def is_quosure(x: Any) -> bool:
    return isinstance(x, Quosure)


def quo_is_missing(quo: Quosure) -> bool:
    return quo.expr is MISSING


def quo_is_symbol(quo: Quosure) -> bool:
    return isinstance(quo.expr, Symbol)


def quo_is_call(quo: Quosure) -> bool:
    return isinstance(quo.expr, Call)


# The quosure captured for a missing argument.
MISSING_QUOSURE = Quosure(MISSING, EMPTY)
