from rho import Value
from rho.errors import RhoArityError, RhoTypeError
from rho.evaluation.apply import match_slots
from rho.types.environment import Environment
from rho.types.expression import Arg


def local_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    """(local expr [envir]): evaluate expr in a fresh child of the current environment."""
    matched, _ = match_slots(args, ("expr", "envir"))
    if "expr" not in matched:
        raise RhoArityError("local() needs an expression")
    if "envir" in matched:
        scope = ctx.eval(matched["envir"], env)
        if not isinstance(scope, Environment):
            raise RhoTypeError("local() needs an environment for `envir`")
    else:
        scope = Environment(parent=env)
    return ctx.eval_in(matched["expr"], scope)
