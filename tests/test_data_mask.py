import numpy as np
import pytest

from rho import api
from rho.errors import RhoAmbiguousName, RhoLookupError, RhoTypeError
from rho.types.data_mask import DataMask, MaskEnvironment, TableScope, as_data_mask, find_mask
from rho.types.environment import Environment
from rho.types.quosure import Quosure
from rho.types.symbol import Symbol
from rho.types.values import NamedList


@pytest.fixture
def home(env):
    """Environment binding x = 1, with builtins further up."""
    return api.bind(env, "x", 1)


# -----------------------------------------------------
# Precedence and pronouns
# -----------------------------------------------------

def test_mask_shadows_environment(home):
    assert api.eval_tidy(api.quote_now(Symbol("x")), {"x": 10}, home) == 10


def test_env_pronoun_skips_mask(home):
    assert api.eval_tidy(api.parse_capture("($ .env x)"), {"x": 10}, home) == 1


def test_data_pronoun_reads_mask(home):
    assert api.eval_tidy(api.parse_capture("($ .data x)"), {"x": 10}, home) == 10


def test_data_pronoun_refuses_environment_names(home):
    with pytest.raises(RhoAmbiguousName):
        api.eval_tidy(api.parse_capture("($ .data x)"), {"y": 10}, home)


def test_environment_used_when_mask_lacks_name(home):
    assert api.eval_tidy(api.parse_capture("(+ x y)"), {"y": 10}, home) == 11


def test_scopes_are_tried_left_to_right(home):
    mask = api.new_data_mask({"x": 2}, {"x": 3, "z": 4})
    assert api.eval_tidy(api.parse_capture("(+ x z)"), mask, home) == 6


def test_quosure_brings_its_own_environment(home):
    other = api.extend(home, "x", 50)
    quo = api.make_quosure(Symbol("x"), other)
    assert api.eval_tidy(quo, None, home) == 50
    assert api.eval_tidy(quo, {"x": 7}) == 7


def test_no_name_anywhere_is_a_lookup_error(home):
    with pytest.raises(RhoLookupError):
        api.eval_tidy(Symbol("nowhere"), {"x": 1}, home)


# -----------------------------------------------------
# Nested quosures
# -----------------------------------------------------

@pytest.fixture
def nested(home):
    inner_env = api.extend(home, "x", 100)
    inner = Quosure(api.parse_capture("(+ x 1)"), inner_env)
    outer = api.make_call("*", [api.make_constant(inner), Symbol("y")])
    return outer


def test_embedded_quosure_uses_its_own_environment(nested, home):
    assert api.eval_tidy(nested, {"y": 2}, home) == 202


def test_data_still_masks_embedded_quosure(nested, home):
    assert api.eval_tidy(nested, {"y": 2, "x": 5}, home) == 12


def test_mask_rechained_back_after_embedded_quosure(nested, home):
    mask = as_data_mask({"y": 2})
    api.eval_tidy(nested, mask, home)
    assert mask.env is not home
    with mask.scoped(home) as bottom:
        assert mask.env is home
        assert find_mask(bottom) is mask


def test_embedded_quosure_without_mask(nested, home):
    api.bind(home, "y", 3)
    assert api.eval(nested, home) == 303


# -----------------------------------------------------
# Scope kinds
# -----------------------------------------------------

@pytest.fixture
def table():
    return np.array([(1, 2.0), (3, 4.0)], dtype=[("a", "i8"), ("b", "f8")])


def test_numpy_columns(home):
    data = {"a": np.array([1, 2, 3]), "b": np.array([10, 20, 30])}
    result = api.eval_tidy(api.parse_capture("(+ a b)"), data, home)
    np.testing.assert_array_equal(result, [11, 22, 33])


def test_structured_array_table(table, home):
    scope = TableScope(table)
    assert scope.names() == ["a", "b"]
    assert scope.n_rows == 2
    assert api.eval_tidy(api.parse_capture("(sum a)"), table, home) == 4


def test_eval_rows_binds_scalars(table, home):
    results = api.eval_rows(api.parse_capture("(+ a b)"), table, home)
    assert results == [3.0, 7.0]


def test_eval_rows_over_column_mapping(home):
    columns = {"a": np.array([1, 2, 3]), "label": np.array(["x", "y", "z"])}
    assert api.eval_rows(api.parse_capture("(paste0 label a)"), columns, home) == ["x1", "y2", "z3"]


def test_eval_rows_with_quosure(table, home):
    quo = api.make_quosure(api.parse_capture("(* a x)"), api.extend(home, "x", 10))
    assert api.eval_rows(quo, table, home) == [10, 30]


def test_eval_rows_needs_a_table(home):
    with pytest.raises(RhoTypeError):
        api.eval_rows(Symbol("a"), 42, home)


def test_unequal_columns_rejected():
    with pytest.raises(RhoTypeError):
        TableScope({"a": np.array([1, 2]), "b": np.array([1])})


def test_environment_scope_sees_only_local_bindings(home):
    scope_env = Environment(home)
    scope_env.define("w", 9)
    assert api.eval_tidy(api.parse_capture("(+ w x)"), scope_env, home) == 10
    with pytest.raises(RhoLookupError):
        api.eval_tidy(Symbol("x"), scope_env, api.new_environment())


def test_named_list_scope(home):
    data = NamedList([4, 5], ["p", None])
    assert api.eval_tidy(Symbol("p"), data, home) == 4


# -----------------------------------------------------
# Bindings made under a mask
# -----------------------------------------------------

def test_assignments_stay_in_mask(home):
    data = {"a": 1}
    result = api.eval_tidy(api.parse_capture("({ (<- z (+ a 1)) z)"), data, home)
    assert result == 2
    assert "z" not in home
    assert data == {"a": 1}


def test_mask_reused_across_calls_keeps_bindings(home):
    mask = api.new_data_mask({"a": 1})
    api.eval_tidy(api.parse_capture("(<- z 5)"), mask, home)
    assert api.eval_tidy(Symbol("z"), mask, home) == 5
    assert isinstance(mask.bottom, MaskEnvironment)
    assert "z" in mask.bottom.names()


def test_pronouns_are_bound_in_mask():
    mask = DataMask([{"a": 1}])
    assert mask.bottom.get_local(".data").get("a") == 1
    assert mask.names() == ["a"]


def test_eval_tidy_from_interpreter(interp):
    interp.eval("(<- k 2)")
    assert interp.eval_tidy("(* a k)", {"a": 21}) == 42
