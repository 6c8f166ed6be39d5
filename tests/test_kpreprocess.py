import io

import pytest

from nemukit.kpreprocess import PreprocessError, Preprocessor, VariableFlavor


@pytest.fixture
def pp():
    return Preprocessor("Kconfig", 7, environ={})


def test_simple_variable(pp):
    pp.variable_add("FOO", "bar", VariableFlavor.SIMPLE)
    assert pp.expand_string("x$(FOO)y") == "xbary"


def test_undefined_expands_to_nothing(pp):
    assert pp.expand_string("a$(NOPE)b") == "ab"


def test_recursive_is_deferred(pp):
    pp.variable_add("X", "$(Y)", VariableFlavor.RECURSIVE)
    pp.variable_add("Y", "late", VariableFlavor.SIMPLE)
    assert pp.expand_string("$(X)") == "late"


def test_simple_expands_at_definition(pp):
    pp.variable_add("Y", "first", VariableFlavor.SIMPLE)
    pp.variable_add("X", "$(Y)", VariableFlavor.SIMPLE)
    pp.variable_add("Y", "second", VariableFlavor.SIMPLE)
    assert pp.expand_string("$(X)") == "first"


def test_append_joins_with_space(pp):
    pp.variable_add("X", "a", VariableFlavor.SIMPLE)
    pp.variable_add("X", "b", VariableFlavor.APPEND)
    assert pp.expand_string("$(X)") == "a b"


def test_append_to_undefined_is_recursive(pp):
    pp.variable_add("X", "$(Y)", VariableFlavor.APPEND)
    pp.variable_add("Y", "val", VariableFlavor.SIMPLE)
    assert pp.expand_string("$(X)") == "val"


def test_user_function_arguments(pp):
    pp.variable_add("f", "$(1)-$(2)", VariableFlavor.RECURSIVE)
    assert pp.expand_string("$(f,left,right)") == "left-right"


def test_missing_argument_is_empty(pp):
    pp.variable_add("f", "[$(2)]", VariableFlavor.RECURSIVE)
    assert pp.expand_string("$(f,a)") == "[]"


def test_nested_parentheses_stay_in_one_argument(pp):
    pp.variable_add("f", "$(1)", VariableFlavor.RECURSIVE)
    assert pp.expand_string("$(f,(a,b))") == "(a,b)"


def test_lone_dollar_is_kept(pp):
    assert pp.expand_string("a$b") == "a$b"


def test_unterminated_reference(pp):
    with pytest.raises(PreprocessError, match="missing '\\)'"):
        pp.expand_string("$(FOO")


def test_self_reference_is_an_error(pp):
    pp.variable_add("X", "$(X)", VariableFlavor.RECURSIVE)
    with pytest.raises(PreprocessError, match="references itself"):
        pp.expand_string("$(X)")


def test_error_carries_location(pp):
    with pytest.raises(PreprocessError) as info:
        pp.expand_string("$(error-if,y,boom)")
    assert str(info.value) == "Kconfig:7: boom"
    assert info.value.lineno == 7


def test_error_if_false_is_empty(pp):
    assert pp.expand_string("<$(error-if,n,boom)>") == "<>"


def test_too_few_and_too_many_arguments(pp):
    with pytest.raises(PreprocessError, match="too few"):
        pp.expand_string("$(error-if,y)")
    with pytest.raises(PreprocessError, match="too many function arguments passed"):
        pp.expand_string("$(info,a,b)")


def test_argument_limit(pp):
    pp.variable_add("f", "ok", VariableFlavor.RECURSIVE)
    assert pp.expand_string("$(f" + ",a" * 15 + ")") == "ok"
    with pytest.raises(PreprocessError, match="too many function arguments"):
        pp.expand_string("$(f" + ",a" * 16 + ")")


def test_filename_and_lineno(pp):
    assert pp.expand_string("$(filename)") == "Kconfig"
    assert pp.expand_string("$(lineno)") == "7"


def test_info_and_warning(pp, capsys):
    assert pp.expand_string("$(info,hello)") == ""
    assert pp.expand_string("$(warning-if,y,careful)") == ""
    captured = capsys.readouterr()
    assert captured.out == "hello\n"
    assert captured.err == "Kconfig:7: careful\n"


def test_shell_output(pp):
    assert pp.expand_string("$(shell,echo hello)") == "hello"
    assert pp.expand_string("$(shell,printf 'a\\nb\\n\\n')") == "a b"


def test_environment_and_dependencies():
    pp = Preprocessor("Kconfig", 1, environ={"ARCH": "riscv"})
    assert pp.expand_string("$(ARCH)") == "riscv"
    out = io.StringIO()
    pp.env_write_dep(out, "auto.conf")
    assert out.getvalue() == 'ifneq "$(ARCH)" "riscv"\nauto.conf: FORCE\nendif\n'
    again = io.StringIO()
    pp.env_write_dep(again, "auto.conf")
    assert again.getvalue() == ""


def test_variable_shadows_environment():
    pp = Preprocessor("Kconfig", 1, environ={"ARCH": "riscv"})
    pp.variable_add("ARCH", "x86", VariableFlavor.SIMPLE)
    assert pp.expand_string("$(ARCH)") == "x86"
    out = io.StringIO()
    pp.env_write_dep(out, "auto.conf")
    assert out.getvalue() == ""


def test_variable_all_del(pp):
    pp.variable_add("X", "value", VariableFlavor.SIMPLE)
    pp.variable_all_del()
    assert pp.expand_string("$(X)") == ""


def test_expand_dollar(pp):
    pp.variable_add("FOO", "val", VariableFlavor.SIMPLE)
    assert pp.expand_dollar("(FOO)rest") == ("val", "rest")
    assert pp.expand_dollar("abc") == ("$", "abc")


def test_expand_one_token(pp):
    pp.variable_add("X", "pre", VariableFlavor.SIMPLE)
    assert pp.expand_one_token("FOO bar") == ("FOO", " bar")
    assert pp.expand_one_token("$(X)_name-1 tail") == ("pre_name-1", " tail")
    assert pp.expand_one_token("") == ("", "")