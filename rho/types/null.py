from __future__ import annotations


class NullType:
    """The distinguished null/empty constant."""

    _instance: NullType | None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self): return "NULL"
    def __bool__(self): return False
    def __len__(self): return 0
    def __iter__(self): return iter(())

    def __eq__(self, other):
        return isinstance(other, NullType)

    def __hash__(self):
        return hash(NullType)

    def __reduce__(self):
        return NullType, ()


Null = NullType()
