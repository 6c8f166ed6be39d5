"""Tristate rules for Kconfig symbols: effective types, ranges and toggling."""

from __future__ import annotations

from typing import Union

from .ksymbol import Symbol, SymbolType, Tristate

_NEXT = {
    Tristate.NO: Tristate.MOD,
    Tristate.MOD: Tristate.YES,
    Tristate.YES: Tristate.NO,
}

_FROM_CHAR = {
    "y": Tristate.YES,
    "Y": Tristate.YES,
    "m": Tristate.MOD,
    "M": Tristate.MOD,
    "n": Tristate.NO,
    "N": Tristate.NO,
}


def effective_type(sym: Symbol, modules_enabled: bool = True) -> SymbolType:
    """Return the type a symbol behaves as.

    A tristate acts as a bool when it is a choice value visible as 'y', or when
    modules are disabled.
    """
    kind = SymbolType(sym.type)
    if kind is SymbolType.TRISTATE:
        if sym.is_choice_value and sym.visible == Tristate.YES:
            return SymbolType.BOOLEAN
        if not modules_enabled:
            return SymbolType.BOOLEAN
    return kind


def tristate_within_range(
    sym: Symbol, val: Union[Tristate, int], modules_enabled: bool = True
) -> bool:
    """Tell whether ``sym`` may be set to ``val`` given its visibility and selects."""
    val = Tristate(val)
    kind = effective_type(sym, modules_enabled)
    if sym.visible == Tristate.NO:
        return False
    if kind not in (SymbolType.BOOLEAN, SymbolType.TRISTATE):
        return False
    if kind is SymbolType.BOOLEAN and val is Tristate.MOD:
        return False
    if sym.visible <= sym.rev_dep_tri:
        return False
    if sym.is_choice_value and sym.visible == Tristate.YES:
        return val is Tristate.YES
    return sym.rev_dep_tri <= val <= sym.visible


def is_changeable(sym: Symbol) -> bool:
    """Tell whether the user can change the symbol's value."""
    return sym.visible > sym.rev_dep_tri


def toggle_order(val: Union[Tristate, int]) -> tuple[Tristate, ...]:
    """Return the values a toggle tries, in order, starting from ``val``.

    The cycle is n -> m -> y -> n; the last candidate is ``val`` itself.
    """
    current = Tristate(val)
    order = []
    candidate = current
    while True:
        candidate = _NEXT[candidate]
        order.append(candidate)
        if candidate is current:
            break
    return tuple(order)


def tristate_from_string(text: str) -> Tristate:
    """Parse a tristate from the first character of ``text`` (y, m or n, any case)."""
    try:
        return _FROM_CHAR[text[:1]]
    except KeyError:
        raise ValueError(f"not a tristate value: {text!r}") from None


def tristate_to_string(val: Union[Tristate, int], modules_enabled: bool = True) -> str:
    """Render a tristate as "n", "m" or "y"; 'm' reads as "n" without modules."""
    val = Tristate(val)
    if val is Tristate.YES:
        return "y"
    if val is Tristate.MOD:
        return "m" if modules_enabled else "n"
    return "n"