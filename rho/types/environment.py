"""Runtime environments for rho.

An Environment maps names to value slots and links to exactly one parent.
The chain ends at EMPTY, the root environment which has no parent and can
hold no bindings. Environments have reference semantics: every holder of a
handle sees every mutation, and nothing is ever copied implicitly. A binding
may refer back to its own environment; Python's cycle collector reclaims
such graphs once they become unreachable.
"""

from __future__ import annotations

from enum import Enum
from io import StringIO
from typing import Any, Iterator, Optional

from rho import Value
from rho.errors import RhoBindingError, RhoLookupError, RhoMissingArgument
from rho.types.expression import MISSING
from rho.types.symbol import Symbol


class LookupKind(Enum):
    VALUE = "value"
    CALLABLE = "callable"


_NOT_FOUND = object()


def _key(name: str | Symbol) -> str:
    if isinstance(name, Symbol):
        return name.id
    if isinstance(name, str):
        return name
    raise RhoBindingError(f"invalid binding name {name!r}")


class Environment:
    """Hierarchical mapping from names to values."""

    __slots__ = ("vars", "parent", "name", "__weakref__")

    def __init__(self, parent: Optional[Environment] = None, name: str | None = None):
        self.vars: dict[str, Value] = {}
        # Every environment except EMPTY has a parent; None means "hang off EMPTY".
        self.parent: Environment | None = EMPTY if parent is None else parent
        self.name = name

    # --- local slot access, overridden by data masks ---
    def get_local(self, name: str, default: Any = _NOT_FOUND) -> Any:
        return self.vars.get(name, default)

    def has_local(self, name: str | Symbol) -> bool:
        return self.get_local(_key(name)) is not _NOT_FOUND

    # --- mutation ---
    def define(self, name: str | Symbol, value: Value) -> None:
        """Bind `name` to `value` in this environment, overwriting any previous binding."""
        self.vars[_key(name)] = value

    def update(self, mapping: dict[str, Value]) -> None:
        """Bulk-define a mapping of name -> value in this frame."""
        for k, v in mapping.items():
            self.define(k, v)

    def unbind(self, name: str | Symbol) -> None:
        """Remove the local binding for `name`. Parents are never touched."""
        key = _key(name)
        if key not in self.vars:
            raise RhoLookupError(f"object '{key}' not found in this environment")
        del self.vars[key]

    def set(self, name: str | Symbol, value: Value) -> None:
        """Update the nearest existing binding for `name` in the chain."""
        env = self.find(name)
        if env is None:
            raise RhoLookupError(f"cannot set unbound object '{_key(name)}'")
        env.define(name, value)

    # --- resolution ---
    def find(self, name: str | Symbol) -> Optional[Environment]:
        """Find the nearest environment in the chain that binds `name`."""
        key = _key(name)
        env: Optional[Environment] = self
        while env is not None:
            if env.get_local(key) is not _NOT_FOUND:
                return env
            env = env.parent
        return None

    def get_binding(self, name: str | Symbol) -> Value:
        """Raw slot contents for `name` (promises unforced, MISSING returned as-is)."""
        key = _key(name)
        env: Optional[Environment] = self
        while env is not None:
            value = env.get_local(key)
            if value is not _NOT_FOUND:
                return value
            env = env.parent
        raise RhoLookupError(f"object '{key}' not found")

    def lookup(self, name: str | Symbol, kind: LookupKind = LookupKind.VALUE) -> Value:
        """Look up the value bound to `name`.

        Walks this environment and then each parent. Promises met on the way
        are forced. A CALLABLE lookup skips bindings whose (forced) value
        cannot be invoked, so a local non-function never hides a function of
        the same name further up the chain.
        """
        from rho.types.closure import is_invocable
        from rho.types.promise import Promise

        key = _key(name)
        env: Optional[Environment] = self
        while env is not None:
            value = env.get_local(key)
            if value is not _NOT_FOUND:
                if kind is LookupKind.CALLABLE:
                    if value is not MISSING:
                        if isinstance(value, Promise):
                            value = value.force()
                        if is_invocable(value):
                            return value
                else:
                    if value is MISSING:
                        raise RhoMissingArgument(f'argument "{key}" is missing, with no default')
                    if isinstance(value, Promise):
                        value = value.force()
                    return value
            env = env.parent
        if kind is LookupKind.CALLABLE:
            raise RhoLookupError(f'could not find function "{key}"')
        raise RhoLookupError(f"object '{key}' not found")

    # --- introspection ---
    def names(self) -> list[str]:
        return list(self.vars)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, (str, Symbol)) and self.has_local(name)

    def parents(self) -> Iterator[Environment]:
        """Yield this environment and each ancestor, EMPTY last."""
        env: Optional[Environment] = self
        while env is not None:
            yield env
            env = env.parent

    def is_ancestor_of(self, other: Environment) -> bool:
        return any(env is self for env in other.parents())

    @property
    def is_empty(self) -> bool:
        return False

    def _write_vars(self, buffer: StringIO) -> None:
        """Write this frame's variables into the buffer in a compact form."""
        buffer.write("{")
        first = True
        for k, v in self.vars.items():
            if not first:
                buffer.write(", ")
            # Self-references would recurse forever through repr.
            shown = "<self>" if v is self else _short_repr(v)
            buffer.write(f"{k}: {shown}")
            first = False
        buffer.write("}")

    def label(self) -> str:
        return self.name or f"0x{id(self):x}"

    def __str__(self) -> str:
        return f"<environment: {self.label()}>"

    def __repr__(self) -> str:
        """Detailed chain representation for debugging purposes."""
        with StringIO() as buffer:
            buffer.write("<Environment chain: ")
            chain = []
            for env in self.parents():
                if env.is_empty:
                    chain.append("<empty>")
                    continue
                env_buf = StringIO()
                env._write_vars(env_buf)
                chain.append(env_buf.getvalue())
            buffer.write(" -> ".join(chain))
            buffer.write(">")
            return buffer.getvalue()


def _short_repr(value: Value) -> str:
    if isinstance(value, Environment):
        return str(value)
    text = repr(value)
    return text if len(text) <= 40 else text[:37] + "..."


class EmptyEnvironment(Environment):
    """The root of every chain. It has no parent and refuses bindings."""

    __slots__ = ()

    def __init__(self):
        self.vars = {}
        self.parent = None
        self.name = "empty"

    def define(self, name, value):
        raise RhoBindingError("cannot assign values in the empty environment")

    @property
    def is_empty(self) -> bool:
        return True


EMPTY = EmptyEnvironment()


def new_environment(parent: Environment | None = None, name: str | None = None) -> Environment:
    return Environment(parent, name)
