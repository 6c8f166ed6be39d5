"""Variable and function expansion for Kconfig source text."""

from __future__ import annotations

import os
import re
import subprocess
import sys
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Mapping, Optional, Sequence, TextIO

FUNCTION_MAX_ARGS = 16
_MAX_EXPANSION_DEPTH = 1000
_SHELL_BUFFER = 256
_ARG_REFERENCE = re.compile(r"[ \t\n\v\f\r]*\+?[0-9]+")


class VariableFlavor(IntEnum):
    """How a variable assignment treats its right-hand side."""

    SIMPLE = 0
    RECURSIVE = 1
    APPEND = 2


class PreprocessError(Exception):
    """Raised on a fatal expansion error, tagged with the current location."""

    def __init__(self, filename: str, lineno: int, message: str) -> None:
        super().__init__(f"{filename}:{lineno}: {message}")
        self.filename = filename
        self.lineno = lineno
        self.message = message


@dataclass
class _Variable:
    value: str
    flavor: VariableFlavor
    exp_count: int = 0


@dataclass(frozen=True)
class _Function:
    min_args: int
    max_args: int
    func: Callable[[Sequence[str]], str]


def _is_end_of_str(c: str) -> bool:
    return c == ""


def _is_end_of_token(c: str) -> bool:
    return not ((c.isascii() and c.isalnum()) or c in ("_", "-"))


class Preprocessor:
    """Expands ``$(...)`` references to variables, built-in functions and the environment."""

    def __init__(
        self,
        filename: str = "",
        lineno: int = 0,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.filename = filename
        self.lineno = lineno
        self.environ = os.environ if environ is None else environ
        self._env_used: dict[str, str] = {}
        self._variables: dict[str, _Variable] = {}
        self._functions: dict[str, _Function] = {
            "error-if": _Function(2, 2, self._do_error_if),
            "filename": _Function(0, 0, self._do_filename),
            "info": _Function(1, 1, self._do_info),
            "lineno": _Function(0, 0, self._do_lineno),
            "shell": _Function(1, 1, self._do_shell),
            "warning-if": _Function(2, 2, self._do_warning_if),
        }

    def _error(self, message: str) -> PreprocessError:
        return PreprocessError(self.filename, self.lineno, message)

    # ----- environment -----

    def _env_expand(self, name: str) -> Optional[str]:
        if not name:
            return None
        if name in self._env_used:
            return self._env_used[name]
        value = self.environ.get(name)
        if value is None:
            return None
        # Remember every referenced environment variable for env_write_dep().
        self._env_used[name] = value
        return value

    def env_write_dep(self, stream: TextIO, autoconfig_name: str) -> None:
        """Write make rules that force a rebuild when a referenced variable changes."""
        for name, value in self._env_used.items():
            stream.write(f'ifneq "$({name})" "{value}"\n')
            stream.write(f"{autoconfig_name}: FORCE\n")
            stream.write("endif\n")
        self._env_used.clear()

    # ----- built-in functions -----

    def _do_error_if(self, args: Sequence[str]) -> str:
        if args[0] == "y":
            raise self._error(args[1])
        return ""

    def _do_filename(self, args: Sequence[str]) -> str:
        return self.filename

    def _do_info(self, args: Sequence[str]) -> str:
        print(args[0])
        return ""

    def _do_lineno(self, args: Sequence[str]) -> str:
        return str(self.lineno)

    def _do_shell(self, args: Sequence[str]) -> str:
        cmd = args[0]
        try:
            result = subprocess.run(cmd, shell=True, stdout=subprocess.PIPE)
        except OSError as exc:
            raise self._error(f"{cmd}: {exc}") from exc
        output = result.stdout[:_SHELL_BUFFER]
        if len(output) == _SHELL_BUFFER:
            output = output[:-1]
        output = output.rstrip(b"\n").replace(b"\n", b" ")
        return output.decode("utf-8", errors="replace")

    def _do_warning_if(self, args: Sequence[str]) -> str:
        if args[0] == "y":
            print(f"{self.filename}:{self.lineno}: {args[1]}", file=sys.stderr)
        return ""

    def _function_expand(self, name: str, args: Sequence[str]) -> Optional[str]:
        function = self._functions.get(name)
        if function is None:
            return None
        if len(args) < function.min_args:
            raise self._error(f"too few function arguments passed to '{name}'")
        if len(args) > function.max_args:
            raise self._error(f"too many function arguments passed to '{name}'")
        return function.func(args)

    # ----- variables -----

    def _variable_expand(self, name: str, args: Sequence[str]) -> Optional[str]:
        variable = self._variables.get(name)
        if variable is None:
            return None
        if not args and variable.exp_count:
            raise self._error(
                f"Recursive variable '{name}' references itself (eventually)"
            )
        if variable.exp_count > _MAX_EXPANSION_DEPTH:
            raise self._error("Too deep recursive expansion")
        variable.exp_count += 1
        try:
            if variable.flavor is VariableFlavor.RECURSIVE:
                return self._expand_with_args(variable.value, args)
            return variable.value
        finally:
            variable.exp_count -= 1

    def variable_add(
        self, name: str, value: str, flavor: VariableFlavor = VariableFlavor.RECURSIVE
    ) -> None:
        """Define, redefine or append to a variable."""
        flavor = VariableFlavor(flavor)
        variable = self._variables.get(name)
        append = False
        if variable is not None:
            # For defined variables, += inherits the existing flavor.
            if flavor is VariableFlavor.APPEND:
                flavor = variable.flavor
                append = True
        else:
            # For undefined variables, += assumes the recursive flavor.
            if flavor is VariableFlavor.APPEND:
                flavor = VariableFlavor.RECURSIVE
            variable = _Variable("", flavor)
            self._variables[name] = variable

        variable.flavor = flavor
        new_value = self.expand_string(value) if flavor is VariableFlavor.SIMPLE else value
        variable.value = f"{variable.value} {new_value}" if append else new_value

    def variable_all_del(self) -> None:
        """Forget every variable."""
        self._variables.clear()

    # ----- expansion -----

    def _eval_clause(self, clause: str, args: Sequence[str]) -> str:
        # '$(1)', '$(2)', ... refer to arguments of the enclosing user function.
        if _ARG_REFERENCE.fullmatch(clause):
            n = int(clause)
            if 0 < n <= len(args):
                return args[n - 1]

        parts: list[str] = []
        nest = 0
        start = 0
        for pos, c in enumerate(clause):
            if nest == 0 and c == ",":
                parts.append(clause[start:pos])
                start = pos + 1
            elif c == "(":
                nest += 1
            elif c == ")":
                nest -= 1
        parts.append(clause[start:])
        if len(parts) > FUNCTION_MAX_ARGS:
            raise self._error("too many function arguments")

        name = self._expand_with_args(parts[0], args)
        new_args = [self._expand_with_args(part, args) for part in parts[1:]]

        result = self._variable_expand(name, new_args)
        if result is not None:
            return result
        result = self._function_expand(name, new_args)
        if result is not None:
            return result
        if not new_args:
            result = self._env_expand(name)
            if result is not None:
                return result
        return ""

    def _expand_dollar_at(self, text: str, pos: int, args: Sequence[str]) -> tuple[str, int]:
        # Only "$(" starts a reference; a lone '$' stays as it is.
        if pos >= len(text) or text[pos] != "(":
            return "$", pos
        start = pos + 1
        nest = 0
        q = start
        while q < len(text):
            c = text[q]
            if c == "(":
                nest += 1
            elif c == ")":
                if nest == 0:
                    break
                nest -= 1
            q += 1
        else:
            raise self._error(f"unterminated reference to '{text[start:]}': missing ')'")
        return self._eval_clause(text[start:q], args), q + 1

    def _expand(
        self, text: str, is_end: Callable[[str], bool], args: Sequence[str]
    ) -> tuple[str, int]:
        out: list[str] = []
        begin = pos = 0
        while True:
            c = text[pos] if pos < len(text) else ""
            if c == "$":
                out.append(text[begin:pos])
                expansion, pos = self._expand_dollar_at(text, pos + 1, args)
                out.append(expansion)
                begin = pos
                continue
            if is_end(c):
                break
            pos += 1
        out.append(text[begin:pos])
        return "".join(out), pos

    def _expand_with_args(self, text: str, args: Sequence[str]) -> str:
        try:
            return self._expand(text, _is_end_of_str, args)[0]
        except RecursionError as exc:
            raise self._error("Too deep recursive expansion") from exc

    def expand_string(self, text: str) -> str:
        """Expand every reference in ``text``; undefined names expand to nothing."""
        return self._expand_with_args(text, ())

    def expand_dollar(self, text: str) -> tuple[str, str]:
        """Expand the reference that ``text`` (what follows a '$') starts with.

        Returns the expansion and the text after the reference.
        """
        try:
            expansion, pos = self._expand_dollar_at(text, 0, ())
        except RecursionError as exc:
            raise self._error("Too deep recursive expansion") from exc
        return expansion, text[pos:]

    def expand_one_token(self, text: str) -> tuple[str, str]:
        """Expand a token up to the first separator; return it and the rest."""
        try:
            expansion, pos = self._expand(text, _is_end_of_token, ())
        except RecursionError as exc:
            raise self._error("Too deep recursive expansion") from exc
        return expansion, text[pos:]