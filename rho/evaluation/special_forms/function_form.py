from rho import Value
from rho.errors import RhoArityError, RhoSyntaxError
from rho.types.closure import Closure
from rho.types.environment import Environment
from rho.types.expression import Arg, Call, Constant, Pairlist, Symbol
from rho.types.null import Null


def function_form(args: tuple[Arg, ...], env: Environment, ctx) -> Value:
    # (function (formals...) body...) allows zero or more body forms.
    # Several forms are evaluated as one `{` block; none gives NULL.
    if not args:
        raise RhoArityError("function requires at least a parameter list")

    formals = args[0].value
    if isinstance(formals, Constant) and formals.value is Null:
        formals = Pairlist()
    if not isinstance(formals, Pairlist):
        raise RhoSyntaxError(f"invalid formal argument list for function: {formals}")

    body_forms = [a.value for a in args[1:]]
    if not body_forms:
        body = Constant(Null)
    elif len(body_forms) == 1:
        body = body_forms[0]
    else:
        body = Call(Symbol("{"), tuple(body_forms))

    return Closure(formals, body, env)
