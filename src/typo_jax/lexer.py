"""Tokenization for the s-expression syntax of type descriptors and forms."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction
import re


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    pos: int
    end: int


class LexError(SyntaxError):
    def __init__(self, message: str, pos: int) -> None:
        super().__init__(message)
        self.message = message
        self.pos = pos


_SINGLE_TOKENS = {
    "(": "LPAREN",
    ")": "RPAREN",
}

_WHITESPACE = {" ", "\t", "\n", "\r", "\f", "\v"}
_DELIMITERS = _WHITESPACE | set(_SINGLE_TOKENS) | {";"}

_INTEGER_RE = re.compile(r"^[+-]?[0-9]+\.?$")
_RATIO_RE = re.compile(r"^[+-]?[0-9]+/[0-9]+$")
_FLOAT_RE = re.compile(
    r"""
    ^
    [+-]?
    (?:[0-9]+\.[0-9]*|\.[0-9]+|[0-9]+)        # mantissa
    (?:[eEdDfFsS][+-]?[0-9]+)?                # exponent, any float marker
    $
    """,
    re.VERBOSE,
)

_COMPLEX_RE = re.compile(r"^#[cC]\(\s*(\S+)\s+(\S+)\s*\)$")

_CHARACTER_NAMES = {
    "space": " ",
    "newline": "\n",
    "tab": "\t",
    "return": "\r",
    "null": "\0",
}


def _scan_atom(source: str, start: int) -> int:
    i = start
    while i < len(source) and source[i] not in _DELIMITERS:
        i += 1
    return i


def parse_number_text(text: str) -> int | Fraction | float | complex | None:
    """Return the numeric value of an atom, or None when it is a symbol."""
    complex_match = _COMPLEX_RE.match(text)
    if complex_match:
        return _complex_value(*complex_match.groups())
    if _INTEGER_RE.match(text):
        return int(text.rstrip("."))
    if _RATIO_RE.match(text):
        numerator, denominator = text.split("/")
        if int(denominator) == 0:
            return None
        value = Fraction(int(numerator), int(denominator))
        return int(value) if value.denominator == 1 else value
    if _FLOAT_RE.match(text) and any(ch.isdigit() for ch in text):
        normalized = re.sub(r"[dDfFsS]", "e", text)
        return float(normalized)
    return None


def _complex_value(real_text: str, imag_text: str) -> int | Fraction | complex | None:
    real = parse_number_text(real_text)
    imag = parse_number_text(imag_text)
    if real is None or imag is None or isinstance(real, complex) or isinstance(imag, complex):
        return None
    # An exact zero imaginary part collapses to the rational itself.
    if imag == 0 and not isinstance(imag, float) and not isinstance(real, float):
        return real
    return complex(float(real), float(imag))


def _scan_complex(source: str, start: int) -> int:
    # `start` points at the "#" of "#c(".
    close = source.find(")", start)
    if close < 0:
        raise LexError(f"Unclosed complex literal at index {start}", start)
    end = close + 1
    if parse_number_text(source[start:end]) is None:
        raise LexError(f"Malformed complex literal {source[start:end]!r} at index {start}", start)
    return end


def _scan_character(source: str, start: int) -> tuple[str, int]:
    # `start` points at the "#" of "#\x".
    i = start + 2
    if i >= len(source):
        raise LexError(f"Incomplete character literal at index {start}", start)
    end = i + 1
    while end < len(source) and source[end] not in _DELIMITERS:
        end += 1
    name = source[i:end]
    if len(name) == 1:
        return name, end
    value = _CHARACTER_NAMES.get(name.casefold())
    if value is None:
        raise LexError(f"Unknown character name {name!r} at index {start}", start)
    return value, end


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0

    while i < len(source):
        ch = source[i]

        if ch in _WHITESPACE:
            i += 1
            continue

        if ch == ";":
            while i < len(source) and source[i] not in {"\n", "\r"}:
                i += 1
            continue

        if ch in _SINGLE_TOKENS:
            tokens.append(Token(_SINGLE_TOKENS[ch], ch, i, i + 1))
            i += 1
            continue

        if source.startswith("#\\", i):
            value, end = _scan_character(source, i)
            tokens.append(Token("CHAR", value, i, end))
            i = end
            continue

        if source.startswith(("#c(", "#C("), i):
            end = _scan_complex(source, i)
            tokens.append(Token("NUMBER", source[i:end], i, end))
            i = end
            continue

        if ch in {"#", "'", "`", ",", '"', "|"}:
            raise LexError(f"Unsupported reader syntax {ch!r} at index {i}", i)

        end = _scan_atom(source, i)
        text = source[i:end]
        if parse_number_text(text) is not None:
            tokens.append(Token("NUMBER", text, i, end))
        else:
            tokens.append(Token("SYMBOL", text.casefold(), i, end))
        i = end

    tokens.append(Token("EOF", "", len(source), len(source)))
    return tokens
