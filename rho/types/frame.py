"""Call-stack frames."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from rho.types.expression import Expression

if TYPE_CHECKING:
    from rho.types.closure import Closure
    from rho.types.environment import Environment


@dataclass
class ExitHandler:
    """Cleanup run when a frame unwinds: an expression evaluated in `env`, or a host callable."""

    action: Union[Expression, Callable[[], Any]]
    env: Optional[Environment] = None


@dataclass
class Frame:
    """One closure invocation: the call being evaluated, its fresh environment, and its parent frame."""

    call: Expression
    env: Environment
    parent: Optional[Frame] = None
    function: Optional[Closure] = None
    # Environment the call was evaluated from (what parent.frame() returns).
    caller_env: Optional[Environment] = None
    exit_handlers: list[ExitHandler] = field(default_factory=list)

    @property
    def depth(self) -> int:
        n, f = 0, self
        while f is not None:
            n += 1
            f = f.parent
        return n

    def register_exit(self, handler: ExitHandler, add: bool = True, after: bool = False) -> None:
        """Register `handler` to run when this frame unwinds.

        Handlers run first-to-last through `exit_handlers`. By default a new
        handler goes to the front so cleanups run in reverse order of
        registration; `after=True` queues it behind the existing ones
        instead, and `add=False` discards them.
        """
        if not add:
            self.exit_handlers.clear()
        if after:
            self.exit_handlers.append(handler)
        else:
            self.exit_handlers.insert(0, handler)

    def take_exit_handlers(self) -> list[ExitHandler]:
        """Detach the handlers so each runs at most once even if a handler re-registers."""
        handlers, self.exit_handlers = self.exit_handlers, []
        return handlers

    def __iter__(self):
        """Walk from this frame to the outermost one."""
        f: Optional[Frame] = self
        while f is not None:
            yield f
            f = f.parent
