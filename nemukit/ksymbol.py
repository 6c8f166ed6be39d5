"""Kconfig symbols, their types and the table that names them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Iterator, Optional, Union

_HASH_SEED = 2166136261
_HASH_PRIME = 0x01000193
_U32 = 0xFFFFFFFF


class SymbolType(IntEnum):
    """Value type of a configuration symbol."""

    UNKNOWN = 0
    BOOLEAN = 1
    TRISTATE = 2
    INT = 3
    HEX = 4
    STRING = 5


class Tristate(IntEnum):
    """Three-valued logic: n < m < y."""

    NO = 0
    MOD = 1
    YES = 2


class PropType(IntEnum):
    """Kind of property attached to a symbol."""

    UNKNOWN = 0
    PROMPT = 1
    COMMENT = 2
    MENU = 3
    DEFAULT = 4
    CHOICE = 5
    SELECT = 6
    IMPLY = 7
    RANGE = 8
    SYMBOL = 9


class SymbolFlag(IntFlag):
    """State bits carried by a symbol."""

    NONE = 0
    CONST = 0x0001
    CHECK = 0x0008
    CHOICE = 0x0010
    CHOICEVAL = 0x0020
    VALID = 0x0080
    OPTIONAL = 0x0100
    WRITE = 0x0200
    CHANGED = 0x0400
    NO_WRITE = 0x1000
    CHECKED = 0x2000
    WARNED = 0x8000
    DEF_USER = 0x10000
    NEED_SET_CHOICE_VALUES = 0x100000
    ALLNOCONFIG_Y = 0x200000


_TYPE_NAMES = {
    SymbolType.BOOLEAN: "bool",
    SymbolType.TRISTATE: "tristate",
    SymbolType.INT: "integer",
    SymbolType.HEX: "hex",
    SymbolType.STRING: "string",
    SymbolType.UNKNOWN: "unknown",
}

_PROP_NAMES = {
    PropType.PROMPT: "prompt",
    PropType.COMMENT: "comment",
    PropType.MENU: "menu",
    PropType.DEFAULT: "default",
    PropType.CHOICE: "choice",
    PropType.SELECT: "select",
    PropType.IMPLY: "imply",
    PropType.RANGE: "range",
    PropType.SYMBOL: "symbol",
}


def sym_type_name(type: Union[SymbolType, int]) -> str:
    """Return the Kconfig keyword for a symbol type, or "???" if it is not one."""
    try:
        return _TYPE_NAMES[SymbolType(type)]
    except ValueError:
        return "???"


def prop_type_name(type: Union[PropType, int]) -> str:
    """Return the name of a property type, or "unknown"."""
    try:
        return _PROP_NAMES.get(PropType(type), "unknown")
    except ValueError:
        return "unknown"


def strhash(name: str) -> int:
    """FNV-style 32-bit hash of a symbol name, treating bytes as signed chars."""
    h = _HASH_SEED
    for b in name.encode("utf-8"):
        c = b - 256 if b >= 128 else b
        h = ((h ^ (c & _U32)) * _HASH_PRIME) & _U32
    return h


def escape_string_value(text: str) -> str:
    """Quote ``text``, escaping double quotes and backslashes."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _is_digit(c: str) -> bool:
    return c in "0123456789"


def _is_xdigit(c: str) -> bool:
    return c != "" and c in "0123456789abcdefABCDEF"


def string_valid(type: Union[SymbolType, int], text: str) -> bool:
    """Tell whether ``text`` is a well-formed value for a symbol of ``type``."""
    try:
        kind = SymbolType(type)
    except ValueError:
        return False
    if kind is SymbolType.STRING:
        return True
    if kind is SymbolType.INT:
        body = text[1:] if text.startswith("-") else text
        if not body or not _is_digit(body[0]):
            return False
        if body[0] == "0" and len(body) > 1:
            return False
        return all(_is_digit(c) for c in body)
    if kind is SymbolType.HEX:
        if text[:2] in ("0x", "0X"):
            text = text[2:]
        return bool(text) and all(_is_xdigit(c) for c in text)
    if kind in (SymbolType.BOOLEAN, SymbolType.TRISTATE):
        return text[:1] in ("y", "Y", "m", "M", "n", "N")
    return False


@dataclass(eq=False)
class Symbol:
    """A configuration symbol with its current and user-chosen values."""

    name: Optional[str]
    type: SymbolType = SymbolType.UNKNOWN
    flags: SymbolFlag = SymbolFlag.NONE
    curr_val: object = None
    curr_tri: Tristate = Tristate.NO
    visible: Tristate = Tristate.NO
    dir_dep_tri: Tristate = Tristate.NO
    rev_dep_tri: Tristate = Tristate.NO
    implied_tri: Tristate = Tristate.NO
    user_val: object = None
    user_tri: Tristate = Tristate.NO
    props: list = field(default_factory=list)

    @property
    def is_choice(self) -> bool:
        """True for the symbol that stands for a choice group."""
        return bool(self.flags & SymbolFlag.CHOICE)

    @property
    def is_choice_value(self) -> bool:
        """True for a symbol that is one of a choice group's values."""
        return bool(self.flags & SymbolFlag.CHOICEVAL)

    @property
    def has_value(self) -> bool:
        """True if the user has set a value."""
        return bool(self.flags & SymbolFlag.DEF_USER)

    @property
    def is_const(self) -> bool:
        """True for constant symbols such as y, m and n."""
        return bool(self.flags & SymbolFlag.CONST)


def _constant(name: str, tri: Tristate) -> Symbol:
    return Symbol(
        name=name,
        flags=SymbolFlag.CONST | SymbolFlag.VALID,
        curr_val=name,
        curr_tri=tri,
    )


class SymbolTable:
    """All symbols of a configuration, plus the constants y, m and n."""

    def __init__(self) -> None:
        self.yes = _constant("y", Tristate.YES)
        self.mod = _constant("m", Tristate.MOD)
        self.no = _constant("n", Tristate.NO)
        self._constants = {"y": self.yes, "m": self.mod, "n": self.no}
        self._symbols: list[Symbol] = []
        # Symbols per name, newest first.
        self._by_name: dict[str, list[Symbol]] = {}

    def __iter__(self) -> Iterator[Symbol]:
        return iter(list(self._symbols))

    def __len__(self) -> int:
        return len(self._symbols)

    def lookup(self, name: Optional[str], flags: SymbolFlag | int = 0) -> Symbol:
        """Return the symbol called ``name`` with matching flags, creating it if absent.

        With ``flags`` zero a symbol matches only if it is neither constant nor a
        choice; otherwise it must share at least one of ``flags``. A name of None
        always creates a new anonymous symbol.
        """
        flags = SymbolFlag(flags)
        if name is not None:
            constant = self._constants.get(name)
            if constant is not None:
                return constant
            for symbol in self._by_name.get(name, ()):
                if flags:
                    if symbol.flags & flags:
                        return symbol
                elif not symbol.flags & (SymbolFlag.CONST | SymbolFlag.CHOICE):
                    return symbol
        symbol = Symbol(name=name, type=SymbolType.UNKNOWN, flags=flags)
        self._symbols.append(symbol)
        if name is not None:
            self._by_name.setdefault(name, []).insert(0, symbol)
        return symbol

    def find(self, name: Optional[str]) -> Optional[Symbol]:
        """Return the newest non-constant symbol called ``name``, or None."""
        if name is None:
            return None
        constant = self._constants.get(name)
        if constant is not None:
            return constant
        for symbol in self._by_name.get(name, ()):
            if not symbol.is_const:
                return symbol
        return None

    def re_search(self, pattern: str) -> list[Symbol]:
        """Find named, non-constant symbols matching ``pattern`` case-insensitively.

        Exact matches come first, the rest follow in name order. An empty or
        invalid pattern finds nothing.
        """
        if not pattern:
            return []
        try:
            regex = re.compile(pattern, re.IGNORECASE)
        except re.error:
            return []
        found: list[tuple[bool, str, Symbol]] = []
        for symbol in self._symbols:
            if symbol.is_const or not symbol.name:
                continue
            match = regex.search(symbol.name)
            if match is None:
                continue
            exact = match.end() - match.start() == len(symbol.name)
            found.append((not exact, symbol.name, symbol))
        found.sort(key=lambda item: (item[0], item[1]))
        return [symbol for _, _, symbol in found]