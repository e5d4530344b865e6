"""Structural parser: the acceptance oracle for generated code."""

from __future__ import annotations

import ast
import textwrap
from typing import Protocol


class ParseError(ValueError):
    """Source text is not syntactically valid.

    Attributes:
        lineno: 1-based line of the error, when known.
        offset: 1-based column of the error, when known.
    """

    def __init__(self, message: str, lineno: int | None = None, offset: int | None = None) -> None:
        super().__init__(message)
        self.lineno = lineno
        self.offset = offset

    def describe(self) -> str:
        where = f" (line {self.lineno}, column {self.offset})" if self.lineno else ""
        return f"{self.args[0]}{where}"


class StructuralParser(Protocol):
    def parse(self, text: str) -> ast.Module: ...


class PythonParser:
    """``ast.parse`` after dedent, so member-level fragments parse too."""

    def parse(self, text: str) -> ast.Module:
        source = textwrap.dedent(text)
        try:
            return ast.parse(source)
        except SyntaxError as exc:
            raise ParseError(exc.msg or "invalid syntax", exc.lineno, exc.offset) from exc
        except ValueError as exc:
            # e.g. source containing null bytes
            raise ParseError(str(exc)) from exc

    def is_valid(self, text: str) -> bool:
        try:
            self.parse(text)
        except ParseError:
            return False
        return True
