# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Import-specifier scanner for JavaScript module text.

The scanner tokenizes just enough of the language to find module specifiers
with exact source offsets: comments, string literals, template literals and
regular-expression literals are consumed so that their contents can never be
mistaken for an import.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass

# ###############
# Public Interface
# ###############


class ImportKind(enum.Enum):
    """How a module specifier appears in the source."""

    STATIC = "static"
    SIDE_EFFECT = "side-effect"
    DYNAMIC = "dynamic"


@dataclass(frozen=True)
class ImportSpecifier:
    """A module specifier string located in source text.

    Attributes:
        value: The raw text between the quotes.
        start: Offset of the first character after the opening quote.
        end: Offset of the closing quote.
        kind: Which import form carries the specifier.
        line: 1-based line number of the specifier.
    """

    value: str
    start: int
    end: int
    kind: ImportKind
    line: int


class LexerError(Exception):
    """Raised when the scanner meets an unterminated literal or comment.

    Attributes:
        line: 1-based line number of the error.
        column: 1-based column number of the error.
    """

    def __init__(self, message: str, line: int, column: int) -> None:
        super().__init__(f"Line {line}, column {column}: {message}")
        self.line = line
        self.column = column


def scan_imports(source: str) -> list[ImportSpecifier]:
    """Return every import/export specifier in *source*, in source order.

    Recognised forms are ``import ... from "x"``, ``import "x"``,
    ``export ... from "x"`` and ``import("x")`` with a literal argument.

    Raises:
        LexerError: On unterminated strings, template literals or block comments.
    """
    return _match_imports(_Lexer(source).tokenize())


def rewrite_specifiers(source: str, rewrite: Callable[[ImportSpecifier], str | None]) -> str:
    """Return *source* with specifiers replaced by the values *rewrite* returns.

    *rewrite* is called once per specifier; returning ``None`` leaves the
    specifier untouched. Replacement is by offset, so only import positions
    are ever changed.
    """
    parts: list[str] = []
    last = 0
    for spec in scan_imports(source):
        replacement = rewrite(spec)
        if replacement is None or replacement == spec.value:
            continue
        parts.append(source[last : spec.start])
        parts.append(replacement)
        last = spec.end
    if not parts:
        return source
    parts.append(source[last:])
    return "".join(parts)


# ################
# Implementation
# ################


class _Tok(enum.Enum):
    IDENT = "ident"
    STRING = "string"
    PUNCT = "punct"
    NUMBER = "number"
    TEMPLATE = "template"
    REGEX = "regex"


@dataclass(frozen=True)
class _Token:
    type: _Tok
    value: str
    start: int
    end: int
    line: int


# Keywords after which a '/' starts a regular expression rather than a division.
_REGEX_PREFIX_KEYWORDS = frozenset(
    {
        "return",
        "typeof",
        "instanceof",
        "in",
        "of",
        "new",
        "delete",
        "void",
        "throw",
        "case",
        "do",
        "else",
        "yield",
        "await",
    }
)

# Tokens allowed between ``import``/``export`` and ``from``.
_CLAUSE_PUNCT = frozenset({"{", "}", ",", "*"})


class _Lexer:
    """Internal scanner state machine."""

    def __init__(self, source: str) -> None:
        self._source = source
        self._pos = 0
        self._line = 1
        self._column = 1
        self._tokens: list[_Token] = []
        # Brace depth inside each open template substitution ``${ ... }``.
        self._template_depths: list[int] = []

    def tokenize(self) -> list[_Token]:
        while self._pos < len(self._source):
            self._skip_whitespace_and_comments()
            if self._pos >= len(self._source):
                break
            self._scan_token()
        return self._tokens

    # ------------------------------------------------------------------
    # Low-level character access helpers
    # ------------------------------------------------------------------

    def _current(self) -> str:
        if self._pos < len(self._source):
            return self._source[self._pos]
        return ""

    def _peek(self) -> str:
        if self._pos + 1 < len(self._source):
            return self._source[self._pos + 1]
        return ""

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._column = 1
        else:
            self._column += 1
        return ch

    # ------------------------------------------------------------------
    # Whitespace and comment skipping
    # ------------------------------------------------------------------

    def _skip_whitespace_and_comments(self) -> None:
        while self._pos < len(self._source):
            ch = self._current()
            if ch.isspace():
                self._advance()
            elif ch == "/" and self._peek() == "/":
                while self._pos < len(self._source) and self._current() != "\n":
                    self._advance()
            elif ch == "/" and self._peek() == "*":
                self._skip_block_comment()
            else:
                break

    def _skip_block_comment(self) -> None:
        start_line = self._line
        start_col = self._column
        self._advance()  # /
        self._advance()  # *
        while self._pos < len(self._source):
            if self._current() == "*" and self._peek() == "/":
                self._advance()
                self._advance()
                return
            self._advance()
        raise LexerError("Unterminated block comment", start_line, start_col)

    # ------------------------------------------------------------------
    # Token scanning dispatcher
    # ------------------------------------------------------------------

    def _scan_token(self) -> None:
        ch = self._current()
        if ch in ("'", '"'):
            self._scan_string(ch)
        elif ch == "`":
            self._advance()
            self._scan_template_chunk(self._pos - 1, self._line)
        elif ch == "/" and self._regex_allowed():
            self._scan_regex()
        elif ch.isdigit():
            self._scan_number()
        elif ch.isalpha() or ch in "_$" or ord(ch) > 127:
            self._scan_identifier()
        elif ch == "{":
            if self._template_depths:
                self._template_depths[-1] += 1
            self._emit_punct()
        elif ch == "}":
            if self._template_depths and self._template_depths[-1] == 0:
                self._template_depths.pop()
                start, line = self._pos, self._line
                self._advance()
                self._scan_template_chunk(start, line)
            else:
                if self._template_depths:
                    self._template_depths[-1] -= 1
                self._emit_punct()
        else:
            self._emit_punct()

    def _emit_punct(self) -> None:
        start, line = self._pos, self._line
        ch = self._advance()
        self._tokens.append(_Token(_Tok.PUNCT, ch, start, self._pos, line))

    def _regex_allowed(self) -> bool:
        if not self._tokens:
            return True
        prev = self._tokens[-1]
        if prev.type == _Tok.PUNCT:
            return prev.value not in (")", "]")
        if prev.type == _Tok.IDENT:
            return prev.value in _REGEX_PREFIX_KEYWORDS
        return False

    # ------------------------------------------------------------------
    # Literal scanners
    # ------------------------------------------------------------------

    def _scan_string(self, quote: str) -> None:
        start, line, col = self._pos, self._line, self._column
        self._advance()  # opening quote
        while self._pos < len(self._source):
            ch = self._current()
            if ch == quote:
                self._advance()
                self._tokens.append(_Token(_Tok.STRING, self._source[start + 1 : self._pos - 1], start, self._pos, line))
                return
            if ch == "\n":
                raise LexerError("Unterminated string literal", line, col)
            if ch == "\\":
                self._advance()
                if self._pos >= len(self._source):
                    break
            self._advance()
        raise LexerError("Unterminated string literal", line, col)

    def _scan_template_chunk(self, start: int, line: int) -> None:
        """Consume template text up to the closing backtick or the next ``${``."""
        col = self._column
        while self._pos < len(self._source):
            ch = self._current()
            if ch == "\\":
                self._advance()
                if self._pos < len(self._source):
                    self._advance()
                continue
            if ch == "`":
                self._advance()
                self._tokens.append(_Token(_Tok.TEMPLATE, "", start, self._pos, line))
                return
            if ch == "$" and self._peek() == "{":
                self._advance()
                self._advance()
                self._template_depths.append(0)
                self._tokens.append(_Token(_Tok.PUNCT, "(", start, self._pos, line))
                return
            self._advance()
        raise LexerError("Unterminated template literal", line, col)

    def _scan_regex(self) -> None:
        start, line, col = self._pos, self._line, self._column
        self._advance()  # opening /
        in_class = False
        while self._pos < len(self._source):
            ch = self._current()
            if ch == "\n":
                break
            if ch == "\\":
                self._advance()
                if self._pos < len(self._source):
                    self._advance()
                continue
            self._advance()
            if ch == "[":
                in_class = True
            elif ch == "]":
                in_class = False
            elif ch == "/" and not in_class:
                while self._pos < len(self._source) and self._current().isalpha():
                    self._advance()
                self._tokens.append(_Token(_Tok.REGEX, "", start, self._pos, line))
                return
        raise LexerError("Unterminated regular expression literal", line, col)

    def _scan_number(self) -> None:
        start, line = self._pos, self._line
        while self._pos < len(self._source) and (self._current().isalnum() or self._current() in "._"):
            self._advance()
        self._tokens.append(_Token(_Tok.NUMBER, self._source[start : self._pos], start, self._pos, line))

    def _scan_identifier(self) -> None:
        start, line = self._pos, self._line
        while self._pos < len(self._source):
            ch = self._current()
            if not (ch.isalnum() or ch in "_$" or ord(ch) > 127):
                break
            self._advance()
        self._tokens.append(_Token(_Tok.IDENT, self._source[start : self._pos], start, self._pos, line))


def _match_imports(tokens: list[_Token]) -> list[ImportSpecifier]:
    """Find specifier strings in the token stream of a module."""
    found: list[ImportSpecifier] = []
    count = len(tokens)
    for i, tok in enumerate(tokens):
        if tok.type != _Tok.IDENT or tok.value not in ("import", "export"):
            continue
        if i > 0 and tokens[i - 1].type == _Tok.PUNCT and tokens[i - 1].value == ".":
            continue
        nxt = tokens[i + 1] if i + 1 < count else None
        if nxt is None:
            continue
        if tok.value == "import":
            if nxt.type == _Tok.STRING:
                found.append(_specifier(nxt, ImportKind.SIDE_EFFECT))
                continue
            if nxt.type == _Tok.PUNCT and nxt.value == "(":
                if i + 3 < count and tokens[i + 2].type == _Tok.STRING:
                    after = tokens[i + 3]
                    if after.type == _Tok.PUNCT and after.value in (")", ","):
                        found.append(_specifier(tokens[i + 2], ImportKind.DYNAMIC))
                continue
            if nxt.type == _Tok.PUNCT and nxt.value == ".":
                continue
        elif not (nxt.type == _Tok.PUNCT and nxt.value in ("*", "{")) and not (
            nxt.type == _Tok.IDENT and nxt.value == "type"
        ):
            continue
        spec = _find_from_clause(tokens, i + 1)
        if spec is not None:
            found.append(_specifier(spec, ImportKind.STATIC))
    return found


def _find_from_clause(tokens: list[_Token], index: int) -> _Token | None:
    """Return the string token following ``from`` in an import/export clause."""
    while index < len(tokens):
        tok = tokens[index]
        if tok.type == _Tok.IDENT:
            if tok.value == "from" and index + 1 < len(tokens) and tokens[index + 1].type == _Tok.STRING:
                return tokens[index + 1]
        elif not (tok.type == _Tok.PUNCT and tok.value in _CLAUSE_PUNCT):
            return None
        index += 1
    return None


def _specifier(tok: _Token, kind: ImportKind) -> ImportSpecifier:
    return ImportSpecifier(value=tok.value, start=tok.start + 1, end=tok.end - 1, kind=kind, line=tok.line)
