"""Member access: ($ target name) and (@ target name).

The name slot is never evaluated. `[[`, the evaluated-index counterpart, is a
regular builtin sharing `get_member`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from rho import Value
from rho.errors import RhoArityError, RhoTypeError
from rho.types.data_mask import DataPronoun, EnvPronoun
from rho.types.environment import Environment, _NOT_FOUND
from rho.types.expression import Arg, Constant, Symbol
from rho.types.null import Null
from rho.types.promise import force
from rho.types.values import NamedList


def get_member(target: Any, name: str) -> Value:
    """Element `name` of `target`; NULL when a container has no such element."""
    if isinstance(target, (DataPronoun, EnvPronoun)):
        return target.get(name)
    if isinstance(target, Environment):
        value = target.get_local(name)
        return Null if value is _NOT_FOUND else force(value)
    if isinstance(target, NamedList):
        return target.get(name, Null)
    if isinstance(target, Mapping):
        return target.get(name, Null)
    if isinstance(target, (np.ndarray, np.void)) and target.dtype.names is not None:
        if name not in target.dtype.names:
            return Null
        return target[name]
    if target is Null or isinstance(target, (bool, int, float, str, np.ndarray, np.generic)):
        raise RhoTypeError("$ operator is invalid for atomic vectors")
    try:
        return getattr(target, name)
    except AttributeError:
        return Null


def member_name(slot: Any) -> str:
    if isinstance(slot, Symbol):
        return slot.id
    if isinstance(slot, Constant) and isinstance(slot.value, str):
        return slot.value
    raise RhoTypeError(f"invalid subscript type for `$`: {slot}")


def dollar_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 2:
        raise RhoArityError("$ expects a target and a name")
    target = ctx.eval(args[0].value, env)
    return get_member(target, member_name(args[1].value))
