# Core type aliases for rho's data model.
# Code is represented by the closed Expression union in rho.types.expression
# (Constant, Symbol, Call, Pairlist, MissingArg). Runtime values are opaque
# host objects: ints, floats, strings, numpy arrays, closures, environments.
#
# Naming guidance:
# - Expression: use in reader/quotation code to denote code-as-data.
# - Value:      use in evaluator/runtime code to denote evaluated values.

from typing import Any, Callable

# Runtime value alias
Value = Any

# Evaluator function type: (expression, environment) -> value
EvaluatorFn = Callable[..., Value]

__version__ = "0.1.0"
