from __future__ import annotations
import sys


class Symbol:
    """An interned name. Symbol("x") is Symbol("x")."""

    __slots__ = ("id",)
    _table: dict[str, Symbol] = {}

    def __new__(cls, name: str):
        if not isinstance(name, str):
            raise TypeError(f"Symbol name must be a string, got {type(name).__name__}")
        sym = cls._table.get(name)
        if sym is None:
            sym = super().__new__(cls)
            # Intern to ensure fast equality/hash and reduce memory
            sym.id = sys.intern(name)
            cls._table[name] = sym
        return sym

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Symbol) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __reduce__(self):
        return Symbol, (self.id,)

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

    def __repr__(self):
        return f"Symbol({self.id!r})"

    def __str__(self):
        return self.id


def make_symbol(name: str | Symbol) -> Symbol:
    if isinstance(name, Symbol):
        return name
    return Symbol(name)
