"""Reader for the s-expression syntax used by descriptors and forms.

Lists read as tuples, symbols as lower-case strings, characters as
one-character strings, and numbers as ``int``, ``Fraction``, ``float`` or,
for ``#c(re im)``, ``complex``. Nesting depth is not limited by the Python
stack: open lists are kept on an explicit stack.
"""

from __future__ import annotations

from typing import NoReturn

from .lexer import LexError, Token, parse_number_text, tokenize

_DATUM_KINDS = ("LPAREN", "NUMBER", "SYMBOL", "CHAR")


class ParseError(SyntaxError):
    """Reader failure covering source indices ``[start, end)``."""

    def __init__(
        self,
        message: str,
        start: int,
        end: int,
        expected: tuple[str, ...] = (),
        found: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.start = start
        self.end = end
        self.expected = expected
        self.found = found

    @property
    def span(self) -> tuple[int, int]:
        return self.start, self.end

    def __str__(self) -> str:
        parts = [f"{self.message} at span [{self.start}, {self.end})"]
        if self.expected:
            parts.append("expected " + ", ".join(self.expected))
        if self.found is not None:
            parts.append(f"found {self.found}")
        return "; ".join(parts)


def _describe(token: Token) -> str:
    if token.kind == "EOF" or not token.text:
        return token.kind
    return f"{token.kind}({token.text})"


def _fail(token: Token, message: str = "Unexpected token", expected: tuple[str, ...] = ()) -> NoReturn:
    raise ParseError(message, token.pos, token.end, expected=tuple(dict.fromkeys(expected)), found=_describe(token))


class _TokenStream:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0

    def peek(self) -> Token:
        return self.tokens[self.index]

    def take(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def at_end(self) -> bool:
        return self.peek().kind == "EOF"

    def datum(self) -> object:
        """Read one datum starting at the current token."""
        # Each entry is an open list: its "(" token and the items read so far.
        open_lists: list[tuple[Token, list[object]]] = []
        while True:
            token = self.take()
            if token.kind == "LPAREN":
                open_lists.append((token, []))
                continue
            if token.kind == "RPAREN" and open_lists:
                value: object = tuple(open_lists.pop()[1])
            elif token.kind == "EOF" and open_lists:
                opening = open_lists[-1][0]
                _fail(token, f"Unclosed list opened at index {opening.pos}", ("RPAREN",))
            elif token.kind == "NUMBER":
                value = parse_number_text(token.text)
            elif token.kind in ("SYMBOL", "CHAR"):
                value = token.text
            else:
                _fail(token, expected=_DATUM_KINDS)
            if not open_lists:
                return value
            open_lists[-1][1].append(value)


def _stream(source: str) -> _TokenStream:
    try:
        return _TokenStream(tokenize(source))
    except LexError as err:
        raise ParseError(err.message, err.pos, err.pos + 1) from err


def read(source: str) -> object:
    """Read exactly one datum from `source`."""
    stream = _stream(source)
    value = stream.datum()
    if not stream.at_end():
        _fail(stream.peek(), expected=("EOF",))
    return value


def read_all(source: str) -> tuple[object, ...]:
    stream = _stream(source)
    values: list[object] = []
    while not stream.at_end():
        values.append(stream.datum())
    return tuple(values)
