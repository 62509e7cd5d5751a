"""
  Reader, Lexer and Parser

- Streaming, lazy parsing of S-expression source into rho Expressions:

    - (head arg ...)      -> Call
    - ()                  -> Constant(NULL)
    - :name value         -> named argument slot of the enclosing call
    - symbols, `quoted`   -> Symbol
    - "strings"           -> Constant(str)
    - integers, floats    -> Constant(int) / Constant(float), Inf and NaN included
    - TRUE FALSE NULL     -> Constant(True) / Constant(False) / Constant(NULL)
    - 'x                  -> (quote x)
    - ,x  ,@x             -> (!! x)  (!!! x)
    - (function (a (b 1) ...) body...) -> formals read as a Pairlist

   Infix operators are ordinary heads: (+ x 1), ($ .data x), (<- y 2).
"""

from __future__ import annotations

import json
import re
from typing import Iterator, Optional

from rho.errors import RhoSyntaxError
from rho.types.expression import MISSING, Arg, Call, Constant, Expression, Pairlist
from rho.types.null import Null
from rho.types.symbol import Symbol

TOKEN_RE = re.compile(
    r"\s*("
    r"(?P<lparen>\()"  # (
    r"|(?P<rparen>\))"  # )
    r'|(?P<string>"(?:\\.|[^\\"])*")'  # double-quoted strings
    r"|(?P<backquoted>`(?:\\.|[^\\`])*`)"  # `non syntactic name`
    r"|(?P<keyword>:[^\s()'`\",;:=][^\s()'`\",;]*)"  # :name
    r"|(?P<symbol>[^\s()'`\",;]+)"  # fallback: symbols and numbers
    r")",
    re.DOTALL,
)

NUMBER_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

QUOTE_FORMS = {
    "'": "quote",
    ",": "!!",
    ",@": "!!!",
}

LITERALS = {
    "TRUE": True,
    "FALSE": False,
    "NULL": Null,
    "Inf": float("inf"),
    "-Inf": float("-inf"),
    "NaN": float("nan"),
}

FUNCTION = "function"


def lex(source: str) -> Iterator[tuple[str, str, int]]:
    """Token generator: yields (token_type, token_value, offset) tuples."""
    pos = 0
    n = len(source)

    def skip_whitespace_and_comments():
        nonlocal pos
        while pos < n:
            if source[pos].isspace():
                pos += 1
                continue
            if source[pos] == ";":
                end = source.find("\n", pos)
                pos = n if end < 0 else end + 1
                continue
            if source.startswith("#|", pos):
                start = pos
                pos += 2
                depth = 1
                while depth > 0:
                    if pos >= n:
                        raise RhoSyntaxError(f"unterminated block comment starting at offset {start}")
                    if source.startswith("#|", pos):
                        depth += 1
                        pos += 2
                    elif source.startswith("|#", pos):
                        depth -= 1
                        pos += 2
                    else:
                        pos += 1
                continue
            break

    while pos < n:
        skip_whitespace_and_comments()
        if pos >= n:
            break

        current_char = source[pos]

        # ----------------------
        # Handle quote / unquote / unquote-splicing
        # ----------------------
        if current_char == "'":
            yield "quote", "'", pos
            pos += 1
            continue

        if current_char == ",":
            if pos + 1 < n and source[pos + 1] == "@":
                yield "quote", ",@", pos
                pos += 2
            else:
                yield "quote", ",", pos
                pos += 1
            continue

        # ----------------------
        # Regex-based tokens
        # ----------------------
        m = TOKEN_RE.match(source, pos)
        if not m or m.end() == pos:
            raise RhoSyntaxError(f"unexpected character {source[pos]!r} at offset {pos}")
        for nm in ("lparen", "rparen", "string", "backquoted", "keyword", "symbol"):
            if m.group(nm):
                yield nm, m.group(nm), m.start(nm)
                pos = m.end()
                break
        else:
            raise RhoSyntaxError(f"unexpected character {source[pos]!r} at offset {pos}")


def _unescape_backquoted(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


def _atom(text: str) -> Expression:
    if text in LITERALS:
        return Constant(LITERALS[text])
    if NUMBER_RE.match(text):
        digits = text.lstrip("+-")
        if digits.isdigit():
            return Constant(int(text))
        return Constant(float(text))
    return Symbol(text)


class TokenStream:
    def __init__(self, token_iter: Iterator[tuple[str, str, int]]):
        self.tokens = iter(token_iter)
        self.buffer: list[tuple[str, str, int]] = []

    def peek(self) -> tuple[Optional[str], Optional[str], int]:
        if not self.buffer:
            try:
                self.buffer.append(next(self.tokens))
            except StopIteration:
                return None, None, -1
        return self.buffer[0]

    def advance(self) -> tuple[Optional[str], Optional[str], int]:
        if self.buffer:
            return self.buffer.pop(0)
        return next(self.tokens, (None, None, -1))

    def parse_expr(self) -> Expression:
        tok_type, tok_val, offset = self.peek()
        if tok_type is None:
            raise RhoSyntaxError("unexpected end of input")

        if tok_type == "symbol":
            self.advance()
            return _atom(tok_val)

        if tok_type == "backquoted":
            self.advance()
            return Symbol(_unescape_backquoted(tok_val))

        if tok_type == "string":
            self.advance()
            try:
                return Constant(json.loads(tok_val))
            except json.JSONDecodeError as exc:
                raise RhoSyntaxError(f"invalid string literal at offset {offset}: {exc.msg}") from None

        # Quote forms
        if tok_type == "quote":
            self.advance()
            if self.peek()[0] is None:
                raise RhoSyntaxError(f"nothing to quote after {tok_val!r} at offset {offset}")
            expr = self.parse_expr()
            return Call(Symbol(QUOTE_FORMS[tok_val]), (expr,))

        if tok_type == "keyword":
            raise RhoSyntaxError(f"argument name {tok_val} outside of an argument list at offset {offset}")

        if tok_type == "rparen":
            raise RhoSyntaxError(f"unexpected ')' at offset {offset}")

        if tok_type == "lparen":
            self.advance()
            if self.peek()[0] == "rparen":
                self.advance()
                return Constant(Null)
            if self.peek()[0] == "keyword":
                raise RhoSyntaxError(f"a call head cannot be named, at offset {self.peek()[2]}")
            head = self.parse_expr()
            if head == Symbol(FUNCTION):
                return self._parse_function(offset)
            return Call(head, tuple(self._parse_args(offset)))

        raise RhoSyntaxError(f"unknown token {tok_val!r} at offset {offset}")

    def _parse_args(self, offset: int) -> list[Arg]:
        args: list[Arg] = []
        while True:
            tok_type, tok_val, at = self.peek()
            if tok_type is None:
                raise RhoSyntaxError(f"unmatched '(' at offset {offset}")
            if tok_type == "rparen":
                self.advance()
                return args
            if tok_type == "keyword":
                self.advance()
                if self.peek()[0] in (None, "rparen"):
                    raise RhoSyntaxError(f"argument name {tok_val} has no value, at offset {at}")
                args.append(Arg(tok_val[1:], self.parse_expr()))
            else:
                args.append(Arg(None, self.parse_expr()))

    def _parse_function(self, offset: int) -> Call:
        tok_type, _, at = self.peek()
        if tok_type != "lparen":
            raise RhoSyntaxError(f"function needs a parameter list, at offset {at}")
        self.advance()
        formals: list[tuple[str, Expression]] = []
        while True:
            tok_type, tok_val, at = self.peek()
            if tok_type is None:
                raise RhoSyntaxError(f"unmatched '(' at offset {offset}")
            if tok_type == "rparen":
                self.advance()
                break
            if tok_type == "lparen":
                # (name default)
                self.advance()
                name = self.parse_expr()
                default = self.parse_expr()
                if not isinstance(name, Symbol) or self.peek()[0] != "rparen":
                    raise RhoSyntaxError(f"a formal with a default reads (name default), at offset {at}")
                self.advance()
                formals.append((name.id, default))
                continue
            name = self.parse_expr()
            if not isinstance(name, Symbol):
                raise RhoSyntaxError(f"invalid formal argument {tok_val!r} at offset {at}")
            formals.append((name.id, MISSING))

        body = [a.value for a in self._parse_args(offset)]
        if len(body) > 1:
            body = [Call(Symbol("{"), tuple(body))]
        return Call(Symbol(FUNCTION), (Pairlist(tuple(formals)), *body))

    def parse_all(self) -> Iterator[Expression]:
        while True:
            tok_type, _, _ = self.peek()
            if tok_type is None:
                break
            yield self.parse_expr()


def parse_all(source: str) -> Iterator[Expression]:
    """Lazily read every top-level expression in `source`."""
    return TokenStream(lex(source)).parse_all()


def parse_capture(source: str) -> Expression:
    """Read exactly one expression from `source`."""
    stream = TokenStream(lex(source))
    if stream.peek()[0] is None:
        raise RhoSyntaxError("no expression to read")
    expr = stream.parse_expr()
    tok_type, tok_val, offset = stream.peek()
    if tok_type is not None:
        raise RhoSyntaxError(f"unexpected {tok_val!r} after the expression, at offset {offset}")
    return expr
