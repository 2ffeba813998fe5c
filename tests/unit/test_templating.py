"""
Tests for variable resolution, filters and interpolation.
"""

import pytest

from bolt.engine.context import PlayContext, RegisteredResult
from bolt.engine.errors import InterpolationError
from bolt.engine.playbook import Play
from bolt.engine.templating import (
    FILTERS,
    apply_filter,
    format_value,
    interpolate_params,
    interpolate_string,
    interpolate_value,
    lookup_variable,
    parse_filter,
    resolve_expression,
)


def make_context(variables=None, registered=None) -> PlayContext:
    ctx = PlayContext(play=Play(hosts="localhost"))
    ctx.vars.update(variables or {})
    ctx.registered.update(registered or {})
    return ctx


class TestFormatValue:
    """Test value to string conversion."""

    def test_none_is_empty(self):
        assert format_value(None) == ""

    def test_bools_lowercase(self):
        assert format_value(True) == "true"
        assert format_value(False) == "false"

    def test_list_as_json(self):
        assert format_value(["a", 1]) == '["a", 1]'

    def test_dict_as_json(self):
        assert format_value({"k": "v"}) == '{"k": "v"}'

    def test_numbers(self):
        assert format_value(42) == "42"
        assert format_value(1.5) == "1.5"


class TestLookupVariable:
    """Test variable lookup order."""

    def test_plain_var(self):
        assert lookup_variable("port", make_context({"port": 80})) == 80

    def test_registered_wins(self):
        ctx = make_context({"out": "var"}, {"out": {"changed": True}})
        assert lookup_variable("out", ctx) == {"changed": True}

    def test_dotted_path(self):
        ctx = make_context({"facts": {"os": {"family": "Debian"}}})
        assert lookup_variable("facts.os.family", ctx) == "Debian"

    def test_dotted_through_non_mapping(self):
        ctx = make_context({"facts": {"os": "linux"}})
        assert lookup_variable("facts.os.family", ctx) is None

    def test_missing(self):
        assert lookup_variable("nope", make_context()) is None


class TestFilters:
    """Test the filter set."""

    def test_join_with_separator(self):
        assert apply_filter(["nginx", "redis", "postgresql"], "join(', ')") == "nginx, redis, postgresql"

    def test_join_default_separator(self):
        assert apply_filter(["a", "b"], "join") == "a,b"

    def test_join_non_list_passthrough(self):
        assert apply_filter("abc", "join(-)") == "abc"

    def test_default(self):
        assert apply_filter(None, "default('fallback')") == "fallback"
        assert apply_filter("", "default(x)") == "x"
        assert apply_filter("set", "default(x)") == "set"

    def test_case_and_trim(self):
        assert apply_filter("MiXed", "lower") == "mixed"
        assert apply_filter("MiXed", "upper") == "MIXED"
        assert apply_filter("  pad  ", "trim") == "pad"
        assert apply_filter(5, "upper") == 5

    def test_bool(self):
        assert apply_filter("yes", "bool") is True
        assert apply_filter("no", "bool") is False
        assert apply_filter("0", "bool") is True
        assert apply_filter(0, "bool") is False

    def test_int(self):
        assert apply_filter("42abc", "int") == 42
        assert apply_filter("abc", "int") == 0
        assert apply_filter(3.9, "int") == 3

    def test_int_non_finite_is_zero(self):
        assert apply_filter(float("inf"), "int") == 0
        assert apply_filter(float("-inf"), "int") == 0
        assert apply_filter(float("nan"), "int") == 0

    def test_filter_exception_becomes_interpolation_error(self, monkeypatch):
        def broken(value, arg=""):
            raise ValueError("cannot convert")

        monkeypatch.setitem(FILTERS, "broken", broken)

        with pytest.raises(InterpolationError, match="filter broken failed: cannot convert"):
            apply_filter(1, "broken")

    def test_first_last(self):
        assert apply_filter([1, 2, 3], "first") == 1
        assert apply_filter([1, 2, 3], "last") == 3
        assert apply_filter([], "first") is None

    def test_length_and_count(self):
        assert apply_filter([1, 2], "length") == 2
        assert apply_filter("abc", "count") == 3
        assert apply_filter(7, "length") == 0

    def test_string(self):
        assert apply_filter(True, "string") == "true"

    def test_unknown_filter(self):
        with pytest.raises(InterpolationError, match="unknown filter: shout"):
            apply_filter("x", "shout")

    def test_parse_filter(self):
        assert parse_filter("default('a(b)')") == ("default", "a(b)")
        assert parse_filter(" lower ") == ("lower", "")


class TestResolveExpression:
    """Test expression resolution."""

    def test_with_filter(self):
        ctx = make_context({"pkgs": ["a", "b"]})
        assert resolve_expression("pkgs | join(' ')", ctx) == "a b"

    def test_filter_on_missing_var(self):
        assert resolve_expression("missing | default('x')", make_context()) == "x"


class TestInterpolateString:
    """Test whole-string vs mixed interpolation."""

    def test_whole_string_preserves_int(self):
        result = interpolate_string("{{ count }}", make_context({"count": 42}))
        assert result == 42
        assert isinstance(result, int)

    def test_mixed_content_is_string(self):
        assert interpolate_string("n={{ count }}", make_context({"count": 42})) == "n=42"

    def test_whole_string_preserves_list(self):
        ctx = make_context({"pkgs": ["a", "b"]})
        assert interpolate_string("  {{ pkgs }}  ", ctx) == ["a", "b"]

    def test_whole_string_missing_is_none(self):
        assert interpolate_string("{{ missing }}", make_context()) is None

    def test_mixed_missing_is_empty(self):
        assert interpolate_string("x={{ missing }}!", make_context()) == "x=!"

    def test_mixed_formats_values(self):
        ctx = make_context({"flag": True, "items": [1, 2]})
        assert interpolate_string("{{ flag }} {{ items }}", ctx) == "true [1, 2]"

    def test_whole_string_error_propagates(self):
        with pytest.raises(InterpolationError):
            interpolate_string("{{ x | nosuch }}", make_context({"x": 1}))

    def test_mixed_error_left_verbatim(self):
        ctx = make_context({"x": 1, "y": 2})
        assert interpolate_string("a {{ x | nosuch }} b {{ y }}", ctx) == "a {{ x | nosuch }} b 2"

    def test_int_of_infinity_in_both_forms(self):
        ctx = make_context({"big": float("inf")})
        assert interpolate_string("{{ big | int }}", ctx) == 0
        assert interpolate_string("n={{ big | int }}", ctx) == "n=0"

    def test_plain_string_untouched(self):
        assert interpolate_string("no templates", make_context()) == "no templates"

    def test_registered_result_field(self):
        ctx = make_context()
        ctx.register("out", RegisteredResult(changed=True, message="done"))
        assert interpolate_string("status: {{ out.message }}", ctx) == "status: done"


class TestInterpolateParams:
    """Test recursive parameter interpolation."""

    def test_nested_structures(self):
        ctx = make_context({"name": "web", "port": 8080})
        value = interpolate_value(
            {"dest": "/etc/{{ name }}.conf", "ports": ["{{ port }}", 443], "mode": 420},
            ctx,
        )
        assert value == {"dest": "/etc/web.conf", "ports": [8080, 443], "mode": 420}

    def test_params_do_not_mutate_input(self):
        params = {"msg": "{{ greeting }}"}
        result = interpolate_params(params, make_context({"greeting": "hi"}))
        assert result == {"msg": "hi"}
        assert params == {"msg": "{{ greeting }}"}

    def test_error_names_parameter(self):
        with pytest.raises(InterpolationError, match="parameter 'msg': unknown filter: nosuch"):
            interpolate_params({"msg": "{{ x | nosuch }}"}, make_context({"x": 1}))
