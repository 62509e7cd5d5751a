"""Built-in functions for the rho runtime environment.

This module defines arithmetic, comparison, list construction, environment
and frame introspection, condition signalling, and the quosure and data-mask
utilities exposed to evaluated code. Every function here is called as
fn(args, kwargs, env, ctx) with already evaluated arguments; special forms
are registered alongside them from rho.evaluation.special_forms.
"""

from __future__ import annotations

import logging
import operator
import sys
from collections.abc import Mapping
from typing import Any

import numpy as np

from rho import Value
from rho.debug_utils.deparse import as_label, deparse, format_value
from rho.errors import RhoArityError, RhoError, RhoLookupError, RhoTypeError, RhoUserError
from rho.evaluation.special_forms import SPECIAL_FORMS
from rho.evaluation.special_forms.control_forms import as_condition
from rho.evaluation.special_forms.member_forms import get_member
from rho.quotation.quasiquote import quo_squash
from rho.types.closure import Builtin, Closure, DotsList, is_invocable
from rho.types.data_mask import DataMask, as_data_mask, new_data_mask
from rho.types.environment import EMPTY, Environment, LookupKind, _NOT_FOUND
from rho.types.expression import Call, Constant, Symbol, as_expression, is_expression, make_call
from rho.types.null import Null
from rho.types.promise import force
from rho.types.quosure import Quosure, get_env, quo_is_call, quo_is_missing, quo_is_symbol
from rho.types.values import NamedList

logger = logging.getLogger(__name__)


def _arity(name: str, args: list, n: int, at_most: int | None = None) -> None:
    at_most = n if at_most is None else at_most
    if not n <= len(args) <= at_most:
        expected = str(n) if n == at_most else f"{n} to {at_most}"
        raise RhoArityError(f"{name} expects {expected} argument(s), got {len(args)}")


def _scalar(x: Any) -> Any:
    """Unwrap numpy scalars so results compare and print like host numbers."""
    return x.item() if isinstance(x, np.generic) else x


def _as_string(x: Value) -> str:
    if isinstance(x, str):
        return x
    if isinstance(x, Symbol):
        return x.id
    raise RhoTypeError(f"expected a character string, got {format_value(x)}")


# -------------------------------
# Arithmetic and comparison
# -------------------------------
def _binary(name: str, op):
    def fn(args, kwargs, env, ctx):
        _arity(name, args, 2)
        a, b = args
        try:
            return _scalar(op(a, b))
        except TypeError:
            raise RhoTypeError(f"non-numeric argument to binary operator `{name}`") from None
        except ZeroDivisionError:
            # division by zero gives Inf or NaN rather than failing
            with np.errstate(divide="ignore", invalid="ignore"):
                return _scalar(op(np.float64(a), b))

    fn.__name__ = f"builtin_{op.__name__}"
    return fn


def add(args, kwargs, env, ctx) -> Value:
    """(+ a b) or unary (+ a)."""
    if len(args) == 1:
        return args[0]
    return _binary("+", operator.add)(args, kwargs, env, ctx)


def sub(args, kwargs, env, ctx) -> Value:
    """(- a b) or unary negation (- a)."""
    if len(args) == 1:
        try:
            return _scalar(-args[0])
        except TypeError:
            raise RhoTypeError("invalid argument to unary operator `-`") from None
    return _binary("-", operator.sub)(args, kwargs, env, ctx)


def logical_not(args, kwargs, env, ctx) -> Value:
    _arity("!", args, 1)
    (x,) = args
    if isinstance(x, np.ndarray):
        return np.logical_not(x)
    return not as_condition(x, "!")


def identical(args, kwargs, env, ctx) -> bool:
    _arity("identical", args, 2)
    return is_equal(*args)


def is_equal(a: Any, b: Any) -> bool:
    """Deep equality, element-wise over lists and arrays."""
    if a is b:
        return True
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return bool(np.array_equal(np.asarray(a), np.asarray(b)))
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        if getattr(a, "names", None) != getattr(b, "names", None):
            return False
        return all(is_equal(x, y) for x, y in zip(a, b))
    if type(a) != type(b):
        return False
    return a == b


# -------------------------------
# Vectors and lists
# -------------------------------
def combine(args, kwargs, env, ctx) -> Value:
    """c(...): a numpy vector of atomic values, or a NamedList when any part is a list."""
    parts = list(args) + list(kwargs.values())
    if not parts:
        return Null
    if any(isinstance(p, (list, tuple)) or is_expression(p) or isinstance(p, Quosure) for p in parts):
        out = NamedList()
        for name, p in [(None, a) for a in args] + list(kwargs.items()):
            if isinstance(p, NamedList):
                for n, v in p.pairs():
                    out.append(v, n)
            elif isinstance(p, (list, tuple)):
                for v in p:
                    out.append(v)
            else:
                out.append(p, name)
        return out
    vectors = [np.atleast_1d(np.asarray(p)) for p in parts if p is not Null]
    return np.concatenate(vectors) if vectors else Null


def list_builtin(args, kwargs, env, ctx) -> NamedList:
    return NamedList.from_pairs([(None, a) for a in args] + list(kwargs.items()))


def length(args, kwargs, env, ctx) -> int:
    _arity("length", args, 1)
    (x,) = args
    if x is Null:
        return 0
    if isinstance(x, Environment):
        return len(x.names())
    if isinstance(x, (str, bool, int, float, np.generic, Symbol, Constant, Closure, Builtin)):
        return 1
    if isinstance(x, np.ndarray):
        return int(x.size)
    try:
        return len(x)
    except TypeError:
        return 1


def names(args, kwargs, env, ctx) -> Value:
    _arity("names", args, 1)
    (x,) = args
    if isinstance(x, NamedList):
        return [n or "" for n in x.names] if x.has_names() else Null
    if isinstance(x, Environment):
        return sorted(x.names())
    if isinstance(x, DataMask):
        return x.names()
    if isinstance(x, Mapping):
        return [str(k) for k in x]
    if isinstance(x, Call):
        return ["", *(n or "" for n in x.arg_names)]
    if isinstance(x, (np.ndarray, np.void)) and x.dtype.names is not None:
        return list(x.dtype.names)
    return Null


def subset2(args, kwargs, env, ctx) -> Value:
    """([[ x i): element by name, or by 1-based position."""
    _arity("[[", args, 2)
    x, i = args
    if isinstance(i, str):
        return get_member(x, i)
    if isinstance(i, (np.integer, np.floating)):
        i = i.item()
    if not isinstance(i, (int, float)) or isinstance(i, bool) or int(i) != i:
        raise RhoTypeError(f"invalid subscript type for `[[`: {format_value(i)}")
    i = int(i)
    try:
        if i < 1:
            raise IndexError(i)
        if isinstance(x, Call):
            return x[i - 1]
        if isinstance(x, DotsList):
            return force(x[i - 1])
        return _scalar(x[i - 1])
    except (IndexError, TypeError):
        raise RhoTypeError(f"subscript {i} out of bounds") from None


def is_null(args, kwargs, env, ctx) -> bool:
    _arity("is.null", args, 1)
    return args[0] is Null or args[0] is None


def is_function(args, kwargs, env, ctx) -> bool:
    _arity("is.function", args, 1)
    return is_invocable(args[0])


def is_environment(args, kwargs, env, ctx) -> bool:
    _arity("is.environment", args, 1)
    return isinstance(args[0], Environment)


def sum_builtin(args, kwargs, env, ctx) -> Value:
    return _scalar(np.sum([np.sum(a) for a in args])) if args else 0


def mean_builtin(args, kwargs, env, ctx) -> Value:
    _arity("mean", args, 1)
    return _scalar(np.mean(args[0]))


def sqrt_builtin(args, kwargs, env, ctx) -> Value:
    _arity("sqrt", args, 1)
    return _scalar(np.sqrt(args[0]))


def lapply(args, kwargs, env, ctx) -> NamedList:
    """lapply(X, FUN, ...): FUN applied to every element of X, names kept."""
    if len(args) < 2:
        raise RhoArityError("lapply needs a list and a function")
    xs, fn, *extra = args
    if isinstance(xs, NamedList):
        pairs = list(xs.pairs())
    elif isinstance(xs, Mapping):
        pairs = list(xs.items())
    else:
        pairs = [(None, _scalar(x)) for x in xs]
    return NamedList.from_pairs((n, ctx.call_function(fn, [x, *extra], kwargs, env)) for n, x in pairs)


def do_call(args, kwargs, env, ctx) -> Value:
    """do.call(what, args): call `what` with a list of (possibly named) arguments."""
    _arity("do.call", args, 1, 2)
    what = args[0]
    if isinstance(what, (str, Symbol)):
        what = env.lookup(what, LookupKind.CALLABLE)
    arg_list = args[1] if len(args) == 2 else NamedList()
    pairs = arg_list.pairs() if isinstance(arg_list, NamedList) else ((None, a) for a in arg_list)
    positional, named = [], {}
    for n, v in pairs:
        if n:
            named[n] = v
        else:
            positional.append(v)
    return ctx.call_function(what, positional, named, env)


# -------------------------------
# Output and strings
# -------------------------------
def paste(args, kwargs, env, ctx) -> str:
    sep = kwargs.get("sep", " ")
    return sep.join(_paste_part(a) for a in args)


def paste0(args, kwargs, env, ctx) -> str:
    return "".join(_paste_part(a) for a in args)


def _paste_part(x: Value) -> str:
    if isinstance(x, str):
        return x
    if isinstance(x, np.ndarray):
        return " ".join(_paste_part(_scalar(v)) for v in x)
    return format_value(x)


def print_builtin(args, kwargs, env, ctx) -> Value:
    """Print the deparsed form of one value followed by a newline; returns the value."""
    _arity("print", args, 1)
    print(format_value(args[0]))
    return args[0]


def cat(args, kwargs, env, ctx) -> Value:
    sep = kwargs.get("sep", " ")
    sys.stdout.write(sep.join(_paste_part(a) for a in args))
    return Null


def identity(args, kwargs, env, ctx) -> Value:
    _arity("identity", args, 1)
    return args[0]


def invisible(args, kwargs, env, ctx) -> Value:
    return args[0] if args else Null


def deparse_builtin(args, kwargs, env, ctx) -> str:
    _arity("deparse", args, 1)
    x = args[0]
    if isinstance(x, Quosure):
        x = Constant(x)
    return deparse(as_expression(x))


# -------------------------------
# Conditions
# -------------------------------
def stop(args, kwargs, env, ctx) -> Value:
    """stop(message..., class=) raises a user error; stop(condition) re-raises it."""
    if len(args) == 1 and isinstance(args[0], BaseException):
        raise args[0]
    classes = kwargs.get("class", ())
    if isinstance(classes, str):
        classes = (classes,)
    message = "".join(_paste_part(a) for a in args)
    frame = ctx.function_frame(env)
    call = frame.call if frame is not None and kwargs.get("call.", True) else None
    raise RhoUserError(message, call, tuple(classes))


def warning(args, kwargs, env, ctx) -> str:
    message = "".join(_paste_part(a) for a in args)
    frame = ctx.function_frame(env)
    if frame is not None:
        logger.warning("Warning in %s: %s", deparse(frame.call), message)
    else:
        logger.warning("Warning: %s", message)
    return message


def message(args, kwargs, env, ctx) -> Value:
    sys.stderr.write("".join(_paste_part(a) for a in args) + "\n")
    return Null


def condition_message(args, kwargs, env, ctx) -> str:
    _arity("conditionMessage", args, 1)
    exc = args[0]
    return exc.message if isinstance(exc, RhoError) else str(exc)


def condition_call(args, kwargs, env, ctx) -> Value:
    _arity("conditionCall", args, 1)
    call = getattr(args[0], "call", None)
    return Null if call is None else call


# -------------------------------
# Environments and frames
# -------------------------------
def _env_arg(value: Value, name: str) -> Environment:
    if not isinstance(value, Environment):
        raise RhoTypeError(f"`{name}` must be an environment, got {format_value(value)}")
    return value


def new_env(args, kwargs, env, ctx) -> Environment:
    parent = kwargs.get("parent", args[0] if args else env)
    return Environment(parent=_env_arg(parent, "parent"))


def environment(args, kwargs, env, ctx) -> Value:
    fn = kwargs.get("fun", args[0] if args else Null)
    if fn is Null:
        return env
    if isinstance(fn, Closure):
        return fn.env
    return Null


def parent_frame(args, kwargs, env, ctx) -> Environment:
    n = kwargs.get("n", args[0] if args else 1)
    return ctx.parent_frame(env, int(n))


def parent_env(args, kwargs, env, ctx) -> Environment:
    _arity("parent.env", args, 1)
    e = _env_arg(args[0], "env")
    if e.parent is None:
        raise RhoLookupError("the empty environment has no parent")
    return e.parent


def empty_env(args, kwargs, env, ctx) -> Environment:
    return EMPTY


def global_env(args, kwargs, env, ctx) -> Environment:
    return ctx.global_env or EMPTY


def sys_call(args, kwargs, env, ctx) -> Value:
    frame = ctx.function_frame(env)
    return Null if frame is None else frame.call


def sys_function(args, kwargs, env, ctx) -> Value:
    frame = ctx.function_frame(env)
    if frame is None or frame.function is None:
        return Null
    return frame.function


def assign(args, kwargs, env, ctx) -> Value:
    _arity("assign", args, 2, 3)
    name, value = _as_string(args[0]), args[1]
    target = _env_arg(kwargs.get("envir", args[2] if len(args) == 3 else env), "envir")
    target.define(name, value)
    return value


def get(args, kwargs, env, ctx) -> Value:
    _arity("get", args, 1, 2)
    name = _as_string(args[0])
    target = _env_arg(kwargs.get("envir", args[1] if len(args) == 2 else env), "envir")
    if kwargs.get("inherits", True):
        return target.lookup(name)
    value = target.get_local(name)
    if value is _NOT_FOUND:
        raise RhoLookupError(f"object '{name}' not found")
    return force(value)


def exists(args, kwargs, env, ctx) -> bool:
    _arity("exists", args, 1, 2)
    name = _as_string(args[0])
    target = _env_arg(kwargs.get("envir", args[1] if len(args) == 2 else env), "envir")
    if kwargs.get("inherits", True):
        return target.find(name) is not None
    return target.has_local(name)


def rm(args, kwargs, env, ctx) -> Value:
    target = _env_arg(kwargs.get("envir", env), "envir")
    for name in args:
        target.unbind(_as_string(name))
    return Null


def force_builtin(args, kwargs, env, ctx) -> Value:
    _arity("force", args, 1)
    return args[0]


def eval_builtin(args, kwargs, env, ctx) -> Value:
    """eval(expr, envir, enclos).

    `envir` may be an Environment, a data mask, or a named list / mapping
    whose entries become bindings of a fresh child of `enclos`.
    """
    _arity("eval", args, 1, 3)
    expr = args[0]
    envir = kwargs.get("envir", args[1] if len(args) > 1 else env)
    enclos = _env_arg(kwargs.get("enclos", args[2] if len(args) > 2 else env), "enclos")
    if isinstance(expr, Quosure):
        expr = Constant(expr)
    expr = as_expression(expr)
    if isinstance(envir, DataMask):
        with envir.scoped(enclos) as bottom:
            return ctx.eval_in(expr, bottom)
    if isinstance(envir, NamedList):
        scope = Environment(parent=enclos)
        scope.update({n: v for n, v in envir.pairs() if n is not None})
        envir = scope
    elif isinstance(envir, Mapping):
        scope = Environment(parent=enclos)
        scope.update(dict(envir))
        envir = scope
    return ctx.eval_in(expr, _env_arg(envir, "envir"))


# -------------------------------
# Quosures and data masks
# -------------------------------
def eval_tidy_builtin(args, kwargs, env, ctx) -> Value:
    _arity("eval_tidy", args, 1, 3)
    expr = args[0]
    data = kwargs.get("data", args[1] if len(args) > 1 else None)
    home = kwargs.get("env", args[2] if len(args) > 2 else env)
    return ctx.eval_tidy(expr, None if data is Null else data, _env_arg(home, "env"))


def new_data_mask_builtin(args, kwargs, env, ctx) -> DataMask:
    return new_data_mask(*args)


def as_data_mask_builtin(args, kwargs, env, ctx) -> DataMask:
    _arity("as_data_mask", args, 1)
    return as_data_mask(args[0])


def _quosure_arg(x: Value, name: str) -> Quosure:
    if not isinstance(x, Quosure):
        raise RhoTypeError(f"{name}() expects a quosure, got {format_value(x)}")
    return x


def quo_get_expr(args, kwargs, env, ctx) -> Value:
    _arity("quo_get_expr", args, 1)
    return _quosure_arg(args[0], "quo_get_expr").expr


def quo_get_env(args, kwargs, env, ctx) -> Value:
    _arity("quo_get_env", args, 1)
    return get_env(_quosure_arg(args[0], "quo_get_env"))


def new_quosure(args, kwargs, env, ctx) -> Quosure:
    _arity("new_quosure", args, 1, 2)
    home = kwargs.get("env", args[1] if len(args) == 2 else env)
    return Quosure(as_expression(args[0]), _env_arg(home, "env"))


def quo_squash_builtin(args, kwargs, env, ctx) -> Value:
    _arity("quo_squash", args, 1)
    return quo_squash(args[0])


def as_label_builtin(args, kwargs, env, ctx) -> str:
    _arity("as_label", args, 1)
    return as_label(args[0])


def _predicate(name: str, test):
    def fn(args, kwargs, env, ctx):
        _arity(name, args, 1)
        return test(args[0])

    fn.__name__ = f"builtin_{name.replace('.', '_')}"
    return fn


def sym(args, kwargs, env, ctx) -> Symbol:
    _arity("sym", args, 1)
    return Symbol(_as_string(args[0]))


def syms(args, kwargs, env, ctx) -> NamedList:
    _arity("syms", args, 1)
    xs = args[0]
    pairs = xs.pairs() if isinstance(xs, NamedList) else ((None, x) for x in np.atleast_1d(xs))
    return NamedList.from_pairs((n, Symbol(_as_string(_scalar(x)))) for n, x in pairs)


def call2(args, kwargs, env, ctx) -> Call:
    """call2(head, ...): build a call; a string head becomes a name."""
    if not args:
        raise RhoArityError("call2 needs a head")
    head, *rest = args
    return make_call(head, rest, **kwargs)


BUILTINS = {
    "+": add,
    "-": sub,
    "*": _binary("*", operator.mul),
    "/": _binary("/", operator.truediv),
    "^": _binary("^", operator.pow),
    "%%": _binary("%%", operator.mod),
    "==": _binary("==", operator.eq),
    "!=": _binary("!=", operator.ne),
    "<": _binary("<", operator.lt),
    "<=": _binary("<=", operator.le),
    ">": _binary(">", operator.gt),
    ">=": _binary(">=", operator.ge),
    "!": logical_not,
    "identical": identical,
    "c": combine,
    "list": list_builtin,
    "length": length,
    "names": names,
    "[[": subset2,
    "is.null": is_null,
    "is.function": is_function,
    "is.environment": is_environment,
    "sum": sum_builtin,
    "mean": mean_builtin,
    "sqrt": sqrt_builtin,
    "lapply": lapply,
    "do.call": do_call,
    "paste": paste,
    "paste0": paste0,
    "print": print_builtin,
    "cat": cat,
    "identity": identity,
    "invisible": invisible,
    "deparse": deparse_builtin,
    "expr_text": deparse_builtin,
    "stop": stop,
    "warning": warning,
    "message": message,
    "conditionMessage": condition_message,
    "conditionCall": condition_call,
    "new.env": new_env,
    "environment": environment,
    "parent.frame": parent_frame,
    "parent.env": parent_env,
    "emptyenv": empty_env,
    "globalenv": global_env,
    "sys.call": sys_call,
    "sys.function": sys_function,
    "assign": assign,
    "get": get,
    "exists": exists,
    "rm": rm,
    "force": force_builtin,
    "eval": eval_builtin,
    "eval_tidy": eval_tidy_builtin,
    "new_data_mask": new_data_mask_builtin,
    "as_data_mask": as_data_mask_builtin,
    "quo_get_expr": quo_get_expr,
    "quo_get_env": quo_get_env,
    "new_quosure": new_quosure,
    "quo_squash": quo_squash_builtin,
    "as_label": as_label_builtin,
    "is_quosure": _predicate("is_quosure", lambda x: isinstance(x, Quosure)),
    "quo_is_missing": _predicate("quo_is_missing", lambda x: quo_is_missing(_quosure_arg(x, "quo_is_missing"))),
    "quo_is_symbol": _predicate("quo_is_symbol", lambda x: quo_is_symbol(_quosure_arg(x, "quo_is_symbol"))),
    "quo_is_call": _predicate("quo_is_call", lambda x: quo_is_call(_quosure_arg(x, "quo_is_call"))),
    "is.symbol": _predicate("is.symbol", lambda x: isinstance(x, Symbol)),
    "is.call": _predicate("is.call", lambda x: isinstance(x, Call)),
    "sym": sym,
    "syms": syms,
    "call2": call2,
}


def register(env: Environment) -> None:
    """Register all special forms and builtin functions into the given environment."""
    env.update({name: Builtin(name, fn, special=True) for name, fn in SPECIAL_FORMS.items()})
    env.update({name: Builtin(name, fn) for name, fn in BUILTINS.items()})
