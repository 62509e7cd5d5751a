"""Rendering expressions and values back to text.

deparse gives the one-line S-expression form the reader accepts again, for
everything except opaque values inlined into a tree. pprint_expr breaks long
calls over several lines. format_value is what print() shows.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

import numpy as np

from rho.types.expression import MISSING, Call, Constant, MissingArg, Pairlist
from rho.types.null import Null
from rho.types.symbol import Symbol

# ----------------- Defaults -----------------
DEFAULT_OPTIONS = {
    "max_line_length": 80,
    "max_depth": 8,
}

LABEL_WIDTH = 60

_LITERAL_NAMES = frozenset({"TRUE", "FALSE", "NULL", "Inf", "-Inf", "NaN"})

# Names the reader accepts without backquotes.
_PLAIN_NAME = re.compile(r"^[^\s()'`\",;:^][^\s()'`\",;]*$")


def _deparse_name(name: str) -> str:
    if name in (":", ":="):
        return name
    if _PLAIN_NAME.match(name) and name not in _LITERAL_NAMES and not _is_number(name):
        return name
    return "`" + name.replace("\\", "\\\\").replace("`", "\\`") + "`"


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True


def _deparse_atom(value: Any) -> str:
    if isinstance(value, np.generic):
        value = value.item()
    if value is Null or value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Inf" if value > 0 else "-Inf"
        return repr(value)
    if isinstance(value, int):
        return repr(value)
    if isinstance(value, np.ndarray) and value.ndim == 1 and value.dtype.names is None:
        return "(c " + " ".join(_deparse_atom(v) for v in value) + ")" if value.size else "NULL"
    from rho.types.quosure import Quosure

    if isinstance(value, Quosure):
        return "^" + deparse(value.expr)
    return f"<{type(value).__name__}>"


def deparse(expr: Any) -> str:
    """One-line text for an expression; opaque inlined values print as <type>."""
    if isinstance(expr, Symbol):
        return _deparse_name(expr.id)
    if isinstance(expr, Constant):
        return _deparse_atom(expr.value)
    if isinstance(expr, Call):
        parts = [deparse(expr.head)]
        for a in expr.args:
            if a.name is not None:
                parts.append(":" + _deparse_name(a.name))
            parts.append(deparse(a.value))
        return "(" + " ".join(parts) + ")"
    if isinstance(expr, Pairlist):
        parts = []
        for name, default in expr:
            if default is MISSING:
                parts.append(_deparse_name(name))
            else:
                parts.append(f"({_deparse_name(name)} {deparse(default)})")
        return "(" + " ".join(parts) + ")"
    if isinstance(expr, MissingArg):
        return "<missing>"
    return _deparse_atom(expr)


# ----------------- Pretty printer -----------------
def pprint_expr(expr: Any, indent: int = 0, options: dict = DEFAULT_OPTIONS, _current_depth: int = 0) -> str:
    if _current_depth >= options.get("max_depth", 8):
        return "..."

    if not isinstance(expr, Call):
        return deparse(expr)

    pad = "  " * indent
    parts = [pprint_expr(expr.head, indent + 1, options, _current_depth)]
    for a in expr.args:
        text = pprint_expr(a.value, indent + 1, options, _current_depth + 1)
        parts.append(text if a.name is None else f":{_deparse_name(a.name)} {text}")

    single_line = "(" + " ".join(parts) + ")"
    if "\n" not in single_line and len(single_line) + indent * 2 <= options.get("max_line_length", 80):
        return single_line

    aligned_lines = ["(" + parts[0]]
    for part in parts[1:]:
        aligned_lines.append(pad + "  " + part)
    aligned_lines[-1] += ")"
    return "\n".join(aligned_lines)


# ----------------- Values -----------------
def format_value(value: Any) -> str:
    """Text for a runtime value, as print() shows it."""
    from rho.types.values import NamedList

    if isinstance(value, (Symbol, Call, Pairlist, MissingArg)):
        return pprint_expr(value)
    if isinstance(value, Constant):
        return deparse(value)
    if isinstance(value, NamedList):
        parts = []
        for name, v in value.pairs():
            text = format_value(v)
            parts.append(text if name is None else f":{_deparse_name(name)} {text}")
        return "(list" + "".join(" " + p for p in parts) + ")"
    if isinstance(value, np.ndarray):
        return np.array2string(value)
    if isinstance(value, BaseException):
        return f"<{type(value).__name__}: {value}>"
    if value is Null or value is None or isinstance(value, (bool, int, float, str, np.generic)):
        return _deparse_atom(value)
    return str(value)


def as_label(x: Any) -> str:
    """A short single-line label for an expression, quosure or value."""
    from rho.types.quosure import Quosure

    if isinstance(x, Quosure):
        x = x.expr
    if isinstance(x, Symbol):
        return x.id
    if isinstance(x, Constant) and isinstance(x.value, Quosure):
        return as_label(x.value.expr)
    text = deparse(x) if isinstance(x, (Call, Constant, Pairlist, MissingArg)) else format_value(x)
    text = " ".join(text.split())
    if len(text) > LABEL_WIDTH:
        text = text[: LABEL_WIDTH - 3] + "..."
    return text
