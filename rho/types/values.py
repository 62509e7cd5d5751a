"""Host list value with optional names, produced by list(), exprs() and quos()."""

from __future__ import annotations

from typing import Any, Iterable, Iterator


class NamedList(list):
    """A list whose elements may carry names.

    `names` is parallel to the elements; unnamed elements have None.
    """

    def __init__(self, items: Iterable[Any] = (), names: Iterable[str | None] | None = None):
        super().__init__(items)
        names = list(names) if names is not None else [None] * len(self)
        if len(names) != len(self):
            raise ValueError("names must be as long as the list")
        self.names: list[str | None] = names

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str | None, Any]]) -> NamedList:
        pairs = list(pairs)
        return cls((v for _, v in pairs), (n for n, _ in pairs))

    def pairs(self) -> Iterator[tuple[str | None, Any]]:
        return zip(self.names, self)

    def get(self, name: str, default: Any = None) -> Any:
        for n, v in self.pairs():
            if n == name:
                return v
        return default

    def has_names(self) -> bool:
        return any(n is not None for n in self.names)

    def append(self, value: Any, name: str | None = None) -> None:
        super().append(value)
        self.names.append(name)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, NamedList):
            return list.__eq__(self, other) and self.names == other.names
        return list.__eq__(self, other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if not self.has_names():
            return f"NamedList({list.__repr__(self)})"
        return f"NamedList({list(self.pairs())!r})"
