"""Expression model for rho.

Code is data built from a closed set of node kinds:

    Constant   a literal (bool, int, float, str, NULL) or an inlined opaque value
    Symbol     an interned name (rho.types.symbol)
    Call       a head expression plus ordered, optionally named argument slots
    Pairlist   ordered name -> default pairs, used for formal parameter lists
    MissingArg the singleton "no value supplied here" marker

Nodes are immutable. Operations that "modify" a tree return a new tree which
may share untouched subtrees with the original.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Union

import numpy as np

from rho.errors import RhoCallableError, RhoSyntaxError, RhoTypeError
from rho.types.null import Null
from rho.types.symbol import Symbol, make_symbol


class MissingArg:
    """The missing-argument marker. Storing and comparing it is fine; evaluating it fails."""

    _instance: MissingArg | None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<missing>"

    def __bool__(self):
        return False

    def __reduce__(self):
        return MissingArg, ()


MISSING = MissingArg()


def _same_value(a: Any, b: Any) -> bool:
    """Equality for constant payloads: 1, 1.0 and True are three different literals."""
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    if isinstance(a, np.ndarray):
        return a.dtype == b.dtype and bool(np.array_equal(a, b))
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        # array-like payloads without a single truth value
        return False


def _array_hash(a: np.ndarray) -> int:
    try:
        return hash((Constant, a.dtype.str, a.shape, tuple(a.ravel().tolist())))
    except TypeError:
        return hash((Constant, a.dtype.str, a.shape))


@dataclass(frozen=True, eq=False, slots=True)
class Constant:
    value: Any = Null

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Constant) and _same_value(self.value, other.value)

    def __hash__(self) -> int:
        if isinstance(self.value, np.ndarray):
            return _array_hash(self.value)
        try:
            return hash((Constant, type(self.value), self.value))
        except TypeError:
            return hash((Constant, id(self.value)))

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"

    def __str__(self) -> str:
        from rho.debug_utils.deparse import deparse

        return deparse(self)


@dataclass(frozen=True, slots=True)
class Arg:
    """One argument slot of a Call: an expression optionally tagged with a name."""

    name: str | None
    value: Expression

    def __post_init__(self):
        if self.name is not None and not isinstance(self.name, str):
            object.__setattr__(self, "name", str(self.name))
        if not is_expression(self.value):
            object.__setattr__(self, "value", as_expression(self.value))


@dataclass(frozen=True, slots=True)
class Call:
    head: Expression
    args: tuple[Arg, ...] = ()

    def __post_init__(self):
        if not is_expression(self.head):
            object.__setattr__(self, "head", as_expression(self.head))
        object.__setattr__(self, "args", tuple(_as_arg(a) for a in self.args))

    # --- positional access: 0 is the head, 1.. are argument slots ---
    def __len__(self) -> int:
        return 1 + len(self.args)

    def _index(self, i: int) -> int:
        n = len(self)
        if i < 0:
            i += n
        if not 0 <= i < n:
            raise IndexError(f"call position {i} out of range for a call of length {n}")
        return i

    def __getitem__(self, i: int) -> Expression:
        i = self._index(i)
        if i == 0:
            return self.head
        return self.args[i - 1].value

    @property
    def head_name(self) -> str | None:
        return self.head.id if isinstance(self.head, Symbol) else None

    @property
    def arg_values(self) -> tuple[Expression, ...]:
        return tuple(a.value for a in self.args)

    @property
    def arg_names(self) -> tuple[str | None, ...]:
        return tuple(a.name for a in self.args)

    def arg(self, name: str) -> Expression:
        for a in self.args:
            if a.name == name:
                return a.value
        raise KeyError(name)

    def with_head(self, head: Expression) -> Call:
        return Call(head, self.args)

    def with_args(self, args: Iterable[Arg | Expression]) -> Call:
        return Call(self.head, tuple(args))

    def replace(self, i: int, expr: Expression) -> Call:
        """Return a copy with position `i` replaced; argument names are kept."""
        i = self._index(i)
        if i == 0:
            return Call(expr, self.args)
        args = list(self.args)
        args[i - 1] = Arg(args[i - 1].name, expr)
        return Call(self.head, tuple(args))

    def drop(self, i: int) -> Call:
        """Return a copy without position `i`.

        Dropping the head promotes the first argument to head position, which
        is only allowed when that argument is unnamed and could be invoked.
        """
        i = self._index(i)
        if i > 0:
            return Call(self.head, self.args[: i - 1] + self.args[i:])
        if not self.args:
            raise RhoCallableError("cannot drop the head of a call without arguments")
        first, rest = self.args[0], self.args[1:]
        if first.name is not None or not _is_head_like(first.value):
            raise RhoCallableError(
                "dropping the head would leave a call whose head cannot be invoked"
            )
        return Call(first.value, rest)

    def __str__(self) -> str:
        from rho.debug_utils.deparse import deparse

        return deparse(self)


@dataclass(frozen=True, slots=True)
class Pairlist:
    """Formal parameter list: ordered (name, default) pairs, MISSING meaning no default."""

    items: tuple[tuple[str, Expression], ...] = ()

    def __post_init__(self):
        seen: set[str] = set()
        items = []
        for name, default in self.items:
            name = str(name)
            if name in seen:
                raise RhoSyntaxError(f"repeated formal argument '{name}'")
            seen.add(name)
            items.append((name, default if is_expression(default) else as_expression(default)))
        object.__setattr__(self, "items", tuple(items))

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[tuple[str, Expression]]:
        return iter(self.items)

    def __contains__(self, name: object) -> bool:
        return any(n == name for n, _ in self.items)

    def __getitem__(self, key: int | str) -> Expression:
        if isinstance(key, str):
            for name, default in self.items:
                if name == key:
                    return default
            raise KeyError(key)
        return self.items[key][1]

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def __str__(self) -> str:
        from rho.debug_utils.deparse import deparse

        return deparse(self)


Expression = Union[Constant, Symbol, Call, Pairlist, MissingArg]
EXPRESSION_TYPES = (Constant, Symbol, Call, Pairlist, MissingArg)


def is_expression(x: Any) -> bool:
    return isinstance(x, EXPRESSION_TYPES)


def as_expression(x: Any) -> Expression:
    """Return `x` if it already is an Expression, else a Constant wrapping it."""
    if isinstance(x, EXPRESSION_TYPES):
        return x
    return Constant(x)


def _is_head_like(expr: Expression) -> bool:
    if isinstance(expr, (Symbol, Call)):
        return True
    if isinstance(expr, Constant):
        from rho.types.closure import is_invocable

        return is_invocable(expr.value)
    return False


def _as_arg(a: Any) -> Arg:
    if isinstance(a, Arg):
        return a
    return Arg(None, as_expression(a))


# -------------------------------
# Construction
# -------------------------------
def make_constant(value: Any = Null) -> Constant:
    """Wrap a scalar (or opaque) value as a literal node."""
    if isinstance(value, EXPRESSION_TYPES):
        raise RhoTypeError(f"cannot wrap expression {value!r} as a constant; quote it instead")
    return Constant(value)


def make_call(head: Any, args: Iterable[Any] = (), **named: Any) -> Call:
    """Build a Call. A string head becomes a Symbol; keyword arguments become named slots."""
    if isinstance(head, str):
        head = make_symbol(head)
    slots = [_as_arg(a) for a in args]
    slots.extend(Arg(name, as_expression(value)) for name, value in named.items())
    return Call(as_expression(head), tuple(slots))


def make_pairlist(items: Iterable[Any] = (), **defaults: Any) -> Pairlist:
    """Build formals from names (no default) and (name, default) pairs."""
    pairs: list[tuple[str, Expression]] = []
    for item in items:
        if isinstance(item, (str, Symbol)):
            pairs.append((str(item), MISSING))
        else:
            name, default = item
            pairs.append((str(name), as_expression(default)))
    pairs.extend((name, as_expression(value)) for name, value in defaults.items())
    return Pairlist(tuple(pairs))


def is_call(x: Any, name: str | None = None) -> bool:
    if not isinstance(x, Call):
        return False
    return name is None or x.head_name == name


# -------------------------------
# Traversal
# -------------------------------
def walk(
    expr: Expression,
    on_leaf: Callable[[Expression], Any],
    on_branch: Callable[[Expression, list[Any]], Any],
) -> Any:
    """Fold over a tree.

    Symbols, Constants and the missing marker are passed to `on_leaf`. Calls
    (head first, then each argument) and Pairlists (each default) are walked
    recursively and their children's results handed to `on_branch`.
    """
    match expr:
        case Call(head=head, args=args):
            children = [walk(head, on_leaf, on_branch)]
            children.extend(walk(a.value, on_leaf, on_branch) for a in args)
            return on_branch(expr, children)
        case Pairlist(items=items):
            return on_branch(expr, [walk(d, on_leaf, on_branch) for _, d in items])
        case _:
            return on_leaf(expr)


def rebuild(node: Call | Pairlist, children: list[Any]) -> Expression:
    """Rebuild a branch node from new children, keeping argument and formal names."""
    if isinstance(node, Call):
        head, *values = children
        args = tuple(Arg(a.name, as_expression(v)) for a, v in zip(node.args, values))
        return Call(as_expression(head), args)
    if isinstance(node, Pairlist):
        return Pairlist(tuple((name, as_expression(v)) for (name, _), v in zip(node.items, children)))
    raise TypeError(f"cannot rebuild leaf node {node!r}")


def map_leaves(expr: Expression, fn: Callable[[Expression], Any]) -> Expression:
    """Return a new tree with every leaf replaced by `fn(leaf)`."""
    return walk(expr, lambda leaf: as_expression(fn(leaf)), rebuild)


def all_names(expr: Expression, unique: bool = False) -> list[str]:
    """Names of every Symbol in the tree, heads included, in reading order."""

    def leaf(x):
        return [x.id] if isinstance(x, Symbol) else []

    def branch(_node, children):
        return [name for child in children for name in child]

    names = walk(expr, leaf, branch)
    if unique:
        return list(dict.fromkeys(names))
    return names
