from __future__ import annotations

from typing import Any, Optional

from rho import Value
from rho.builtin.env_builtin import register
from rho.evaluation.evaluator import Evaluator
from rho.reader.parser import parse_all, parse_capture
from rho.types.environment import EMPTY, Environment
from rho.types.expression import Expression
from rho.types.null import Null



class Interpreter:
    """
    Reads and evaluates rho source text.

    Holds a base environment with the builtins, a global environment below
    it for user bindings, and the Evaluator every request runs through.
    """

    def __init__(self, prelude: str | None = None, max_depth: Optional[int] = None):
        self.base_env = Environment(parent=EMPTY, name="base")
        register(self.base_env)
        self.global_env = Environment(parent=self.base_env, name="global")
        self.evaluator = Evaluator(self.global_env, max_depth=max_depth)

        if prelude:
            self.eval(prelude)

    def parse(self, code: str) -> Expression:
        return parse_capture(code)

    def eval(self, code: str, env: Optional[Environment] = None) -> Value:
        """Evaluate every expression in `code`; the value of the last one is returned."""
        env = env if env is not None else self.global_env
        result: Value = Null
        for expr in parse_all(code):
            result = self.evaluator.evaluate(expr, env)
        return result

    def eval_expr(self, expr: Expression, env: Optional[Environment] = None) -> Value:
        return self.evaluator.evaluate(expr, env if env is not None else self.global_env)

    def eval_tidy(self, code: str, data: Any = None, env: Optional[Environment] = None) -> Value:
        """Evaluate one expression with names resolved against `data` first."""
        expr = parse_capture(code)
        home = env if env is not None else self.global_env
        with self.evaluator.request():
            return self.evaluator.eval_tidy(expr, data, home)

    def define(self, name: str, value: Value) -> None:
        self.global_env.define(name, value)

    def __getitem__(self, name: str) -> Value:
        return self.global_env.lookup(name)
