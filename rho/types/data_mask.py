"""Data masks: auxiliary lookup scopes consulted ahead of an environment chain.

A DataMask owns a MaskEnvironment whose local slots are, in order, the
bindings made while evaluating under the mask, then each data scope from
left to right. Its parent is the environment of the quosure currently being
evaluated; when evaluation descends into an embedded quosure the mask is
temporarily re-parented onto that quosure's own environment.

Scopes can be plain mappings, Environments (local bindings only), column
tables backed by numpy arrays, or a single row of such a table.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional, Sequence

import numpy as np

from rho import Value
from rho.errors import RhoAmbiguousName, RhoTypeError
from rho.types.environment import EMPTY, Environment, _NOT_FOUND
from rho.types.promise import force

logger = logging.getLogger(__name__)

DATA_PRONOUN = ".data"
ENV_PRONOUN = ".env"


# -------------------------------
# Scopes
# -------------------------------
class MappingScope:
    """A flat key -> value table."""

    __slots__ = ("mapping",)

    def __init__(self, mapping: Mapping[str, Value]):
        self.mapping = mapping

    def get(self, name: str, default: Any = _NOT_FOUND) -> Any:
        return self.mapping.get(name, default)

    def names(self) -> list[str]:
        return [str(k) for k in self.mapping]


class EnvScope:
    """An Environment used as a scope; only its own bindings are visible."""

    __slots__ = ("env",)

    def __init__(self, env: Environment):
        self.env = env

    def get(self, name: str, default: Any = _NOT_FOUND) -> Any:
        return self.env.get_local(name, default)

    def names(self) -> list[str]:
        return self.env.names()


class TableScope:
    """Named, equal-length columns. Column values are numpy arrays."""

    __slots__ = ("columns", "n_rows")

    def __init__(self, columns: Mapping[str, Any] | np.ndarray):
        if isinstance(columns, np.ndarray):
            if columns.dtype.names is None:
                raise RhoTypeError("a table scope needs a structured array or a mapping of columns")
            columns = {name: columns[name] for name in columns.dtype.names}
        self.columns: dict[str, np.ndarray] = {str(k): np.asarray(v) for k, v in columns.items()}
        lengths = {len(col) for col in self.columns.values()}
        if len(lengths) > 1:
            raise RhoTypeError(f"table columns must have equal lengths, got {sorted(lengths)}")
        self.n_rows = lengths.pop() if lengths else 0

    def get(self, name: str, default: Any = _NOT_FOUND) -> Any:
        return self.columns.get(name, default)

    def names(self) -> list[str]:
        return list(self.columns)

    def row(self, i: int) -> RowScope:
        if not -self.n_rows <= i < self.n_rows:
            raise IndexError(f"row {i} out of range for a table of {self.n_rows} rows")
        return RowScope(self, i % self.n_rows if self.n_rows else i)

    def rows(self) -> Iterator[RowScope]:
        for i in range(self.n_rows):
            yield RowScope(self, i)


class RowScope:
    """One row of a TableScope; column names resolve to that row's scalars."""

    __slots__ = ("table", "index")

    def __init__(self, table: TableScope, index: int):
        self.table = table
        self.index = index

    def get(self, name: str, default: Any = _NOT_FOUND) -> Any:
        col = self.table.columns.get(name)
        if col is None:
            return default
        cell = col[self.index]
        return cell.item() if isinstance(cell, np.generic) else cell

    def names(self) -> list[str]:
        return self.table.names()


Scope = MappingScope | EnvScope | TableScope | RowScope


def as_scope(obj: Any) -> Scope:
    if isinstance(obj, (MappingScope, EnvScope, TableScope, RowScope)):
        return obj
    if isinstance(obj, Environment):
        return EnvScope(obj)
    if isinstance(obj, np.void) and obj.dtype.names is not None:
        return MappingScope({name: obj[name].item() for name in obj.dtype.names})
    if isinstance(obj, np.ndarray):
        return TableScope(obj)
    if isinstance(obj, Mapping):
        return MappingScope(obj)
    # NamedList and other name-carrying sequences
    names = getattr(obj, "names", None)
    if names is not None and not callable(names):
        return MappingScope({n: v for n, v in zip(names, obj) if n is not None})
    raise RhoTypeError(f"cannot use a {type(obj).__name__} as a data mask scope")


# -------------------------------
# Pronouns
# -------------------------------
class DataPronoun:
    """`.data`: resolves strictly within the mask's data scopes."""

    __slots__ = ("mask",)

    def __init__(self, mask: DataMask):
        self.mask = mask

    def get(self, name: str) -> Value:
        return self.mask.lookup_data(name)

    def __repr__(self) -> str:
        return "<pronoun .data>"


class EnvPronoun:
    """`.env`: resolves strictly within the current quosure environment's chain."""

    __slots__ = ("mask",)

    def __init__(self, mask: DataMask):
        self.mask = mask

    def get(self, name: str) -> Value:
        return self.mask.env.lookup(name)

    def __repr__(self) -> str:
        return "<pronoun .env>"


# -------------------------------
# Mask
# -------------------------------
class MaskEnvironment(Environment):
    """Bottom environment of a data mask."""

    __slots__ = ("mask",)

    def __init__(self, mask: DataMask, parent: Environment):
        super().__init__(parent, name="data mask")
        self.mask = mask

    def get_local(self, name: str, default: Any = _NOT_FOUND) -> Any:
        value = self.vars.get(name, _NOT_FOUND)
        if value is not _NOT_FOUND:
            return value
        for scope in self.mask.scopes:
            value = scope.get(name)
            if value is not _NOT_FOUND:
                return value
        return default

    def names(self) -> list[str]:
        seen = dict.fromkeys(self.vars)
        for scope in self.mask.scopes:
            seen.update(dict.fromkeys(scope.names()))
        return list(seen)


class DataMask:
    def __init__(self, scopes: Sequence[Any] = (), env: Optional[Environment] = None):
        self.scopes: list[Scope] = [as_scope(s) for s in scopes]
        self.bottom = MaskEnvironment(self, env if env is not None else EMPTY)
        self.bottom.vars[DATA_PRONOUN] = DataPronoun(self)
        self.bottom.vars[ENV_PRONOUN] = EnvPronoun(self)

    @property
    def env(self) -> Environment:
        """The environment the mask currently falls back to."""
        return self.bottom.parent

    def rechain(self, env: Environment) -> Environment:
        """Point the mask at `env`; returns the previous fallback environment."""
        previous = self.bottom.parent
        self.bottom.parent = env
        if previous is not env:
            logger.debug("data mask rechained onto %s", env)
        return previous

    @contextmanager
    def scoped(self, env: Environment):
        previous = self.rechain(env)
        try:
            yield self.bottom
        finally:
            self.rechain(previous)

    def has(self, name: str) -> bool:
        return any(scope.get(name) is not _NOT_FOUND for scope in self.scopes)

    def lookup_data(self, name: str) -> Value:
        for scope in self.scopes:
            value = scope.get(name)
            if value is not _NOT_FOUND:
                return force(value)
        raise RhoAmbiguousName(f"column `{name}` not found in `.data`")

    def names(self) -> list[str]:
        seen: dict[str, None] = {}
        for scope in self.scopes:
            seen.update(dict.fromkeys(scope.names()))
        return list(seen)

    def __repr__(self) -> str:
        return f"<data mask: {', '.join(self.names())}>"


def new_data_mask(*scopes: Any, env: Optional[Environment] = None) -> DataMask:
    return DataMask(scopes, env)


def as_data_mask(data: Any, env: Optional[Environment] = None) -> DataMask:
    """Wrap `data` (a scope, a list of scopes, or an existing mask) as a DataMask."""
    if isinstance(data, DataMask):
        if env is not None:
            data.rechain(env)
        return data
    if data is None:
        return DataMask((), env)
    if isinstance(data, (list, tuple)) and not hasattr(data, "names"):
        return DataMask(data, env)
    return DataMask([data], env)


def find_mask(env: Environment) -> Optional[DataMask]:
    """The data mask whose bottom environment is on `env`'s chain, if any."""
    for e in env.parents():
        if isinstance(e, MaskEnvironment):
            return e.mask
    return None
