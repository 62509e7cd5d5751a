"""Registry of special forms for the rho evaluator.

Maps names to handlers called as handler(args, env, ctx) with the
unevaluated argument slots of the call. Each handler implements its own
evaluation rule; the builtin environment binds them as special Builtins.
"""

from rho.evaluation.special_forms.assign_forms import assign_form, super_assign_form
from rho.evaluation.special_forms.condition_forms import on_exit_form, try_catch_form
from rho.evaluation.special_forms.control_forms import (
    and_form,
    block_form,
    if_form,
    or_form,
    paren_form,
    return_form,
)
from rho.evaluation.special_forms.eval_forms import local_form
from rho.evaluation.special_forms.function_form import function_form
from rho.evaluation.special_forms.lazy_forms import delayed_assign_form, missing_form
from rho.evaluation.special_forms.member_forms import dollar_form
from rho.evaluation.special_forms.quote_forms import (
    embrace_form,
    enexpr_form,
    enexprs_form,
    enquo_form,
    enquos_form,
    expr_form,
    exprs_form,
    name_assign_form,
    quo_form,
    quos_form,
    quote_form,
    substitute_form,
    unquote_form,
    unquote_splice_form,
)

SPECIAL_FORMS = {
    "quote": quote_form,
    "expr": expr_form,
    "quo": quo_form,
    "exprs": exprs_form,
    "quos": quos_form,
    "enexpr": enexpr_form,
    "enquo": enquo_form,
    "enexprs": enexprs_form,
    "enquos": enquos_form,
    "substitute": substitute_form,
    "!!": unquote_form,
    "!!!": unquote_splice_form,
    "{{": embrace_form,
    ":=": name_assign_form,
    "function": function_form,
    "<-": assign_form,
    "=": assign_form,
    "<<-": super_assign_form,
    "{": block_form,
    "(": paren_form,
    "if": if_form,
    "&&": and_form,
    "||": or_form,
    "return": return_form,
    "on.exit": on_exit_form,
    "tryCatch": try_catch_form,
    "missing": missing_form,
    "delayedAssign": delayed_assign_form,
    "local": local_form,
    "$": dollar_form,
    "@": dollar_form,
}
