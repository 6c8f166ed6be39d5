import pytest

from nemukit.ksymbol import Symbol, SymbolFlag, SymbolType, Tristate
from nemukit.ksymstate import (
    effective_type,
    is_changeable,
    toggle_order,
    tristate_from_string,
    tristate_to_string,
    tristate_within_range,
)


def make(type_, visible=Tristate.YES, rev=Tristate.NO, flags=SymbolFlag.NONE):
    return Symbol(name="FOO", type=type_, visible=visible, rev_dep_tri=rev, flags=flags)


def test_effective_type_tristate_with_modules():
    sym = make(SymbolType.TRISTATE)
    assert effective_type(sym, True) is SymbolType.TRISTATE


def test_effective_type_tristate_without_modules_is_bool():
    sym = make(SymbolType.TRISTATE)
    assert effective_type(sym, False) is SymbolType.BOOLEAN


def test_effective_type_visible_choice_value_is_bool():
    sym = make(SymbolType.TRISTATE, flags=SymbolFlag.CHOICEVAL)
    assert effective_type(sym, True) is SymbolType.BOOLEAN
    sym.visible = Tristate.MOD
    assert effective_type(sym, True) is SymbolType.TRISTATE


@pytest.mark.parametrize("kind", [SymbolType.INT, SymbolType.HEX, SymbolType.STRING, SymbolType.BOOLEAN])
def test_effective_type_other_types_unchanged(kind):
    assert effective_type(make(kind), False) is kind


def test_invisible_symbol_out_of_range():
    sym = make(SymbolType.TRISTATE, visible=Tristate.NO)
    for val in Tristate:
        assert not tristate_within_range(sym, val)


def test_non_tristate_types_out_of_range():
    sym = make(SymbolType.STRING)
    assert not tristate_within_range(sym, Tristate.YES)


def test_bool_rejects_mod():
    sym = make(SymbolType.BOOLEAN)
    assert not tristate_within_range(sym, Tristate.MOD)
    assert tristate_within_range(sym, Tristate.YES)
    assert tristate_within_range(sym, Tristate.NO)


def test_tristate_bounded_by_visibility_and_selects():
    sym = make(SymbolType.TRISTATE, visible=Tristate.MOD)
    assert tristate_within_range(sym, Tristate.MOD)
    assert tristate_within_range(sym, Tristate.NO)
    assert not tristate_within_range(sym, Tristate.YES)

    sym = make(SymbolType.TRISTATE, visible=Tristate.YES, rev=Tristate.MOD)
    assert not tristate_within_range(sym, Tristate.NO)
    assert tristate_within_range(sym, Tristate.MOD)
    assert tristate_within_range(sym, Tristate.YES)


def test_selected_up_to_visibility_cannot_change():
    sym = make(SymbolType.TRISTATE, visible=Tristate.MOD, rev=Tristate.MOD)
    for val in Tristate:
        assert not tristate_within_range(sym, val)
    assert not is_changeable(sym)


def test_visible_choice_value_accepts_only_yes():
    sym = make(SymbolType.BOOLEAN, flags=SymbolFlag.CHOICEVAL)
    assert tristate_within_range(sym, Tristate.YES)
    assert not tristate_within_range(sym, Tristate.NO)


def test_is_changeable_matches_visibility_over_selects():
    for visible in Tristate:
        for rev in Tristate:
            sym = make(SymbolType.TRISTATE, visible=visible, rev=rev)
            assert is_changeable(sym) == (visible > rev)


def test_toggle_order_cycle():
    assert toggle_order(Tristate.NO) == (Tristate.MOD, Tristate.YES, Tristate.NO)
    assert toggle_order(Tristate.YES) == (Tristate.NO, Tristate.MOD, Tristate.YES)


@pytest.mark.parametrize("val", list(Tristate))
def test_toggle_order_visits_every_value_and_ends_at_start(val):
    order = toggle_order(val)
    assert set(order) == set(Tristate)
    assert order[-1] is val


@pytest.mark.parametrize("text,expected", [
    ("y", Tristate.YES), ("Y", Tristate.YES), ("m", Tristate.MOD),
    ("M", Tristate.MOD), ("n", Tristate.NO), ("No", Tristate.NO),
])
def test_tristate_from_string(text, expected):
    assert tristate_from_string(text) is expected


@pytest.mark.parametrize("text", ["", "x", "1", " y"])
def test_tristate_from_string_rejects(text):
    with pytest.raises(ValueError):
        tristate_from_string(text)


def test_tristate_to_string():
    assert tristate_to_string(Tristate.NO) == "n"
    assert tristate_to_string(Tristate.MOD) == "m"
    assert tristate_to_string(Tristate.YES) == "y"
    assert tristate_to_string(Tristate.MOD, False) == "n"


@pytest.mark.parametrize("val", list(Tristate))
def test_string_round_trip(val):
    assert tristate_from_string(tristate_to_string(val)) is val