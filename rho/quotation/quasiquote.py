"""Quasiquotation: structural injection into quoted templates.

Inside a template:

    (!! x)            evaluate x where the template is being built and put the
                      resulting expression (or a Constant wrapping the value)
                      in its place
    (!!! xs)          evaluate xs to a sequence and splice its elements into
                      the enclosing argument list, keeping their names
    ({{ arg)          inject the quosure of a function argument, i.e. (!! (enquo arg))
    (:= (!! nm) v)    in argument position, name the slot after the value of nm

Injection is structural: a Call is inserted as a subtree, so its grouping
survives whatever operators surround the injection site.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Iterable, Sequence

import numpy as np

from rho import Value
from rho.errors import RhoCallableError, RhoUnquoteError
from rho.types.environment import Environment
from rho.types.expression import (
    Arg,
    Call,
    Constant,
    Expression,
    Pairlist,
    Symbol,
    as_expression,
    is_call,
    rebuild,
    walk,
)
from rho.types.null import Null
from rho.types.quosure import Quosure
from rho.types.values import NamedList

if TYPE_CHECKING:
    from rho.evaluation.evaluator import Evaluator

logger = logging.getLogger(__name__)

UNQUOTE = "!!"
SPLICE = "!!!"
EMBRACE = "{{"
NAME_ASSIGN = ":="
# Heads whose second argument is a bare name, not an expression slot.
MEMBER_HEADS = frozenset({"$", "@"})

Position = int | Sequence[int]


def is_unquote(x: Any) -> bool:
    return is_call(x, UNQUOTE) and len(x.args) == 1


def is_splice(x: Any) -> bool:
    return is_call(x, SPLICE) and len(x.args) == 1


def is_embrace(x: Any) -> bool:
    return is_call(x, EMBRACE) and len(x.args) == 1


def _is_injection(x: Any) -> bool:
    return is_unquote(x) or is_splice(x) or is_embrace(x)


def inject(value: Value) -> Expression:
    """The node that stands for `value` inside a template.

    Expressions are inserted as trees; a quosure becomes an embedded
    quosure node; any other value is wrapped as a Constant.
    """
    return as_expression(value)


def splice_items(value: Value) -> list[Arg]:
    """Turn a spliced value into argument slots, preserving order and names."""
    if value is Null or value is None:
        return []
    if isinstance(value, NamedList):
        return [Arg(name, inject(v)) for name, v in value.pairs()]
    if isinstance(value, Mapping):
        return [Arg(str(k), inject(v)) for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        return [v if isinstance(v, Arg) else Arg(None, inject(v)) for v in value]
    if isinstance(value, np.ndarray):
        # Atomic vectors splice element-wise.
        items = np.atleast_1d(value)
        return [Arg(None, Constant(v.item() if isinstance(v, np.generic) else v)) for v in items]
    raise RhoCallableError(
        f"cannot splice a {type(value).__name__} into an argument list; expected a list of expressions"
    )


# -------------------------------
# Positional injection
# -------------------------------
def _as_path(position: Position) -> tuple[int, ...]:
    if isinstance(position, int):
        return (position,)
    return tuple(position)


def _check_member_slot(call: Call, i: int) -> None:
    if call.head_name in MEMBER_HEADS and i == 2:
        raise RhoUnquoteError(
            f"cannot inject into the name slot of `{call.head_name}`; "
            "rewrite it as a `[[` call first"
        )


def _edit(template: Expression, path: tuple[int, ...], edit) -> Expression:
    i, rest = path[0], path[1:]
    if not isinstance(template, Call):
        raise RhoUnquoteError(f"position {i} does not exist: {template} is not a call")
    try:
        i = template._index(i)
    except IndexError as exc:
        raise RhoUnquoteError(str(exc)) from None
    if not rest:
        return edit(template, i)
    return template.replace(i, _edit(template[i], rest, edit))


def unquote(template: Expression, position: Position, value_or_expr: Any) -> Expression:
    """Return `template` with the node at `position` replaced by `value_or_expr`.

    `position` indexes a Call (0 is the head) or, as a sequence, a path of
    such indices from the root. An empty path replaces the whole template.
    """
    path = _as_path(position)
    node = inject(value_or_expr)
    if not path:
        return node

    def edit(call: Call, i: int) -> Call:
        _check_member_slot(call, i)
        return call.replace(i, node)

    return _edit(template, path, edit)


def unquote_splice(template: Expression, position: Position, exprs: Any) -> Expression:
    """Replace the argument slot at `position` by the N elements of `exprs`.

    Order and names are preserved; with zero elements the slot disappears.
    """
    path = _as_path(position)
    if not path:
        raise RhoCallableError("splicing needs an argument slot, not a whole expression")
    items = splice_items(exprs)

    def edit(call: Call, i: int) -> Call:
        if i == 0:
            raise RhoCallableError("cannot splice into the head of a call")
        _check_member_slot(call, i)
        args = call.args[: i - 1] + tuple(items) + call.args[i:]
        return Call(call.head, args)

    return _edit(template, path, edit)


# -------------------------------
# Template expansion
# -------------------------------
def quasiquote(template: Expression, env: Environment, ctx: Evaluator) -> Expression:
    """Expand every injection operator in `template`, evaluating in `env`.

    `env` is the environment where the template is being built, not where
    the result will eventually be evaluated.
    """
    if is_splice(template):
        raise RhoUnquoteError("`!!!` can only be used inside an argument list")
    return _expand(template, env, ctx)


def _expand(node: Expression, env: Environment, ctx: Evaluator) -> Expression:
    match node:
        case Call() if is_unquote(node):
            return inject(ctx.eval(node[1], env))
        case Call() if is_embrace(node):
            return inject(embrace(node[1], env, ctx))
        case Call() if is_splice(node):
            raise RhoUnquoteError("`!!!` can only be used inside an argument list")
        case Call():
            return _expand_call(node, env, ctx)
        case Pairlist():
            return Pairlist(tuple((name, _expand(d, env, ctx)) for name, d in node))
        case _:
            return node


def _expand_call(call: Call, env: Environment, ctx: Evaluator) -> Call:
    if call.head_name in MEMBER_HEADS and len(call.args) >= 2 and _is_injection(call.args[1].value):
        _check_member_slot(call, 2)
    if is_splice(call.head):
        raise RhoCallableError("cannot splice into the head of a call")
    head = _expand(call.head, env, ctx)
    args: list[Arg] = []
    for a in call.args:
        value = a.value
        if is_splice(value):
            if a.name is not None:
                raise RhoUnquoteError(f"cannot name the spliced argument `{a.name}`")
            items = splice_items(ctx.eval(value[1], env))
            logger.debug("spliced %d argument(s) into %s", len(items), call.head)
            args.extend(items)
        elif a.name is None and is_call(value, NAME_ASSIGN) and len(value.args) == 2:
            name = _injected_name(value[1], env, ctx)
            args.append(Arg(name, _expand(value[2], env, ctx)))
        else:
            args.append(Arg(a.name, _expand(value, env, ctx)))
    return Call(head, tuple(args))


def _injected_name(lhs: Expression, env: Environment, ctx: Evaluator) -> str:
    if is_unquote(lhs):
        value = ctx.eval(lhs[1], env)
    elif isinstance(lhs, Constant):
        value = lhs.value
    else:
        value = lhs
    if isinstance(value, Symbol):
        return value.id
    if isinstance(value, str):
        return value
    raise RhoUnquoteError("the left-hand side of `:=` must be a name or a string")


def embrace(arg: Expression, env: Environment, ctx: Evaluator) -> Quosure:
    """`({{ x)`: the quosure of argument x, as enquo(x) would capture it."""
    from rho.quotation.capture import enquo

    if not isinstance(arg, Symbol):
        raise RhoUnquoteError("`{{` must wrap the name of a function argument")
    return enquo(arg, env, ctx)


# -------------------------------
# Rewrites
# -------------------------------
def rewrite_member_access(expr: Expression) -> Expression:
    """Rewrite ($ x name) nodes as ([[ x "name"), whose second slot takes any expression."""

    def branch(node, children):
        node = rebuild(node, children)
        if is_call(node, "$") and len(node.args) == 2:
            target, name = node.args
            if isinstance(name.value, Symbol):
                label = name.value.id
            elif isinstance(name.value, Constant) and isinstance(name.value.value, str):
                label = name.value.value
            else:
                return node
            return Call(Symbol("[["), (target, Arg(None, Constant(label))))
        return node

    return walk(expr, lambda leaf: leaf, branch)


def quo_squash(x: Any) -> Expression:
    """Replace every embedded quosure by its bare expression, recursively."""

    def leaf(node):
        if isinstance(node, Constant) and isinstance(node.value, Quosure):
            return quo_squash(node.value.expr)
        return node

    if isinstance(x, Quosure):
        x = x.expr
    return walk(as_expression(x), leaf, rebuild)


def contains_injection(expr: Expression) -> bool:
    def leaf(_):
        return False

    def branch(node, children):
        return _is_injection(node) or any(children)

    return walk(expr, leaf, branch)


def expand_all(templates: Iterable[Arg], env: Environment, ctx: Evaluator) -> list[Arg]:
    """Expand a sequence of argument slots as if they were one call's arguments."""
    return list(_expand_call(Call(Symbol("list"), tuple(templates)), env, ctx).args)
