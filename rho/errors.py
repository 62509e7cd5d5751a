"""Exception taxonomy for the rho runtime.

Every failure raised by evaluated code derives from RhoError. The
`condition_classes` tuple names the classes a `tryCatch` handler can be
registered for, most specific first.
"""

from __future__ import annotations

from typing import Any


class RhoError(Exception):
    """Base class for all rho errors"""

    condition_classes: tuple[str, ...] = ("error", "condition")

    def __init__(self, message: str = "", call: Any = None):
        super().__init__(message)
        self.message = message
        self.call = call
        # Deparsed frame calls at the point of failure, innermost last.
        self.trace: list[str] | None = None

    def classes(self) -> tuple[str, ...]:
        return self.condition_classes

    def __str__(self) -> str:
        if self.call is None:
            return self.message
        from rho.debug_utils.deparse import deparse

        return f"Error in {deparse(self.call)}: {self.message}"


class RhoLookupError(RhoError, LookupError):
    """Raised when a name is not bound anywhere in the environment chain"""

    condition_classes = ("lookupError", "error", "condition")


class RhoCallableError(RhoError, TypeError):
    """Raised when a call head is not invocable or a splice target has the wrong arity"""

    condition_classes = ("callableError", "error", "condition")


class RhoForceFailure(RhoError):
    """Raised when a promise cannot be forced or its expression can no longer be captured"""

    condition_classes = ("forceFailure", "error", "condition")


class RhoAmbiguousName(RhoError):
    """Raised when a pronoun-qualified lookup misses in the scope it is restricted to"""

    condition_classes = ("ambiguousNameError", "error", "condition")


class RhoMissingArgument(RhoError):
    """Raised when the missing-argument marker is evaluated"""

    condition_classes = ("missingArgumentError", "error", "condition")


class RhoArityError(RhoError):
    """Raised when supplied arguments cannot be matched to formals"""

    condition_classes = ("arityError", "error", "condition")


class RhoUnquoteError(RhoError):
    """Raised while building a template whose injection sites are illegal"""

    condition_classes = ("unquoteError", "error", "condition")


class RhoSyntaxError(RhoError):
    """Raised when there is a syntax error"""

    condition_classes = ("syntaxError", "error", "condition")


class RhoBindingError(RhoError):
    """Raised when a binding cannot be created"""

    condition_classes = ("bindingError", "error", "condition")


class RhoTypeError(RhoError, TypeError):
    """Raised when the types of arguments passed to a builtin are incorrect"""

    condition_classes = ("typeError", "error", "condition")


class RhoRecursionError(RhoError):
    """Raised when the frame stack grows past the configured depth"""

    condition_classes = ("recursionError", "error", "condition")


class RhoUserError(RhoError):
    """Raised by stop(); carries any extra condition classes the caller asked for"""

    def __init__(self, message: str = "", call: Any = None, classes: tuple[str, ...] = ()):
        super().__init__(message, call)
        self.condition_classes = (*classes, "simpleError", "error", "condition")


class ControlFlowSignal(Exception):
    """Non-local exit that is not a failure. Promises never cache these."""


class ReturnSignal(ControlFlowSignal):
    """Unwinds to the function frame whose environment evaluated return()."""

    def __init__(self, value: Any, env: Any):
        super().__init__("return")
        self.value = value
        self.env = env


def condition_classes_of(exc: BaseException) -> tuple[str, ...]:
    """Condition classes for any exception, host exceptions included."""
    if isinstance(exc, RhoError):
        return exc.classes()
    return (type(exc).__name__, "error", "condition")
