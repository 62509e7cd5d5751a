"""Special forms that capture code: quote, expr, quo and friends."""

from __future__ import annotations

from rho import Value
from rho.errors import RhoArityError, RhoUnquoteError
from rho.evaluation.apply import DOTS, match_slots
from rho.quotation import capture
from rho.quotation.quasiquote import expand_all, quasiquote
from rho.types.environment import Environment
from rho.types.expression import MISSING, Arg, Constant, Symbol
from rho.types.quosure import Quosure
from rho.types.values import NamedList


def _single(args: tuple[Arg, ...], form: str):
    if len(args) != 1:
        raise RhoArityError(f"{form}() expects exactly 1 argument, got {len(args)}")
    return args[0].value


def quote_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    return capture.quote_now(_single(args, "quote"))


def expr_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    return quasiquote(_single(args, "expr"), env, ctx)


def quo_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    expr = quasiquote(_single(args, "quo"), env, ctx)
    return Quosure(expr, env)


def _template_list(args: tuple[Arg, ...], env: Environment, ctx) -> list[Arg]:
    slots = [a for a in args if a.value is not MISSING]
    return expand_all(slots, env, ctx)


def exprs_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    return NamedList.from_pairs((a.name, a.value) for a in _template_list(args, env, ctx))


def quos_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    out = NamedList()
    for a in _template_list(args, env, ctx):
        value = a.value
        if isinstance(value, Constant) and isinstance(value.value, Quosure):
            out.append(value.value, a.name)
        else:
            out.append(Quosure(value, env), a.name)
    return out


def enexpr_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    return capture.enexpr(_single(args, "enexpr"), env, ctx)


def enquo_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    return capture.enquo(_single(args, "enquo"), env, ctx)


def _only_dots(args: tuple[Arg, ...], form: str) -> None:
    if len(args) != 1 or not (isinstance(args[0].value, Symbol) and args[0].value.id == DOTS):
        raise RhoArityError(f"{form}() expects `...` as its only argument")


def enexprs_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    _only_dots(args, "enexprs")
    return capture.enexprs(env, ctx)


def enquos_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    _only_dots(args, "enquos")
    return capture.enquos(env, ctx)


def substitute_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    matched, _ = match_slots(args, ("expr", "env"))
    expr = matched.get("expr", MISSING)
    if expr is MISSING:
        return MISSING
    target = matched.get("env", MISSING)
    target = env if target is MISSING else ctx.eval(target, env)
    return capture.substitute(expr, target, ctx)


def _outside_template(op: str):
    def form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
        raise RhoUnquoteError(f"`{op}` can only be used within a quasiquoted argument")

    form.__name__ = "outside_template_form"
    return form


unquote_form = _outside_template("!!")
unquote_splice_form = _outside_template("!!!")
embrace_form = _outside_template("{{")
name_assign_form = _outside_template(":=")
