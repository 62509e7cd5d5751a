"""Invocable values: user closures, host builtins and the `...` binding."""

from __future__ import annotations

from io import StringIO
from typing import TYPE_CHECKING, Any, Callable, Iterator

from rho import Value
from rho.types.expression import Expression, Pairlist

if TYPE_CHECKING:
    from rho.types.environment import Environment
    from rho.types.promise import Promise


class Closure:
    """A first-class function with formal parameters, body, and defining environment."""

    __slots__ = ("formals", "body", "env", "name")

    def __init__(self, formals: Pairlist, body: Expression, env: Environment, name: str | None = None):
        self.formals = formals
        self.body = body
        # Frames for calls to this closure hang off the defining environment,
        # never the caller's.
        self.env = env
        self.name = name

    def __str__(self) -> str:
        from rho.debug_utils.deparse import deparse

        with StringIO() as buffer:
            buffer.write("(function ")
            buffer.write(deparse(self.formals))
            buffer.write(" ")
            buffer.write(deparse(self.body))
            buffer.write(")")
            return buffer.getvalue()

    def __repr__(self) -> str:
        return f"<closure {self.name or 'anonymous'}>"


class Builtin:
    """A host function exposed to evaluated code.

    Regular builtins are called as fn(args, kwargs, env, ctx) with evaluated
    arguments. Special builtins receive the unevaluated argument slots as
    fn(args, env, ctx) and decide themselves what to evaluate.
    """

    __slots__ = ("name", "fn", "special")

    def __init__(self, name: str, fn: Callable[..., Value], special: bool = False):
        self.name = name
        self.fn = fn
        self.special = special

    def __repr__(self) -> str:
        kind = "special" if self.special else "builtin"
        return f"<{kind} {self.name}>"


class DotsList:
    """The value bound to `...`: ordered (name, promise) pairs forwarded from a call."""

    __slots__ = ("entries",)

    def __init__(self, entries: list[tuple[str | None, Promise | Any]] | None = None):
        self.entries = list(entries or [])

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[tuple[str | None, Any]]:
        return iter(self.entries)

    def __getitem__(self, i: int) -> Any:
        return self.entries[i][1]

    def __repr__(self) -> str:
        return f"<... of {len(self.entries)}>"


def is_invocable(value: Any) -> bool:
    """True for values a call head may resolve to."""
    if isinstance(value, (Closure, Builtin)):
        return True
    # Host callables, but not classes or rho's own data carriers.
    from rho.types.environment import Environment

    if isinstance(value, (type, Environment)):
        return False
    return callable(value)
