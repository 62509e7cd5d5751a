"""Special forms: <-, = and <<-.

- `(<- name value)` and `(= name value)` bind in the current environment.
- `(<<- name value)` rebinds the nearest existing binding above the current
  environment, or binds in the global environment when there is none.
"""

from rho import Value
from rho.errors import RhoArityError, RhoBindingError
from rho.types.closure import Closure
from rho.types.environment import Environment
from rho.types.expression import Arg, Constant, Expression, Symbol


def assignment_target(target: Expression) -> str:
    if isinstance(target, Symbol):
        return target.id
    if isinstance(target, Constant) and isinstance(target.value, str):
        return target.value
    raise RhoBindingError(f"invalid assignment target: {target}")


def _name_closure(value: Value, name: str) -> None:
    if isinstance(value, Closure) and value.name is None:
        value.name = name


def assign_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 2:
        raise RhoArityError("assignment requires a target and a value")
    name = assignment_target(args[0].value)
    value = ctx.eval(args[1].value, env)
    _name_closure(value, name)
    env.define(name, value)
    return value


def super_assign_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    if len(args) != 2:
        raise RhoArityError("assignment requires a target and a value")
    name = assignment_target(args[0].value)
    value = ctx.eval(args[1].value, env)
    _name_closure(value, name)

    target = env.parent.find(name) if env.parent is not None else None
    if target is None or target.is_empty:
        target = ctx.global_env
    if target is None:
        raise RhoBindingError(f"cannot assign '{name}': no enclosing binding and no global environment")
    target.define(name, value)
    return value
