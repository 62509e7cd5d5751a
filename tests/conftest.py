import pytest

from rho import api
from rho.evaluation.evaluator import Evaluator
from rho.interpreter import Interpreter


@pytest.fixture
def interp():
    """A fresh interpreter: builtins in its base env, user bindings in its global env."""
    return Interpreter()


@pytest.fixture
def env():
    """A fresh environment hanging off its own builtin base environment."""
    return api.new_environment()


@pytest.fixture
def ctx():
    return Evaluator()
