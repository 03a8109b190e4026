"""Structured error types for descriptor parsing, registry and engine failures."""

from __future__ import annotations

from .reader import ParseError


class TypoError(Exception):
    """Base class for structured typo-jax errors."""


class DescriptorParseError(TypoError):
    """A type descriptor that is not well formed.

    Raised both for structurally malformed descriptor objects and for text that
    the reader rejects; in the latter case the span fields are populated.
    """

    def __init__(
        self,
        message: str,
        descriptor: object = None,
        start: int | None = None,
        end: int | None = None,
        expected: tuple[str, ...] = (),
        found: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.descriptor = descriptor
        self.start = start
        self.end = end
        self.expected = expected
        self.found = found

    @classmethod
    def from_parse_error(cls, err: ParseError) -> "DescriptorParseError":
        return cls(
            message=err.message,
            start=err.start,
            end=err.end,
            expected=err.expected,
            found=err.found,
        )

    def __str__(self) -> str:
        if self.start is None:
            return f"{self.message}: {self.descriptor!r}"
        expected = ""
        if self.expected:
            expected = f"; expected {', '.join(self.expected)}"
        found = ""
        if self.found is not None:
            found = f"; found {self.found}"
        return f"{self.message} at span [{self.start}, {self.end}){expected}{found}"


class ArityError(TypoError):
    """Argument count outside an operation's registered bounds."""

    def __init__(self, name: object, count: int, min_arguments: int, max_arguments: int | None) -> None:
        upper = "*" if max_arguments is None else str(max_arguments)
        super().__init__(f"{name!r} called with {count} argument(s); accepts [{min_arguments}, {upper}]")
        self.name = name
        self.count = count
        self.min_arguments = min_arguments
        self.max_arguments = max_arguments


class ArgumentIndexError(TypoError, IndexError):
    """Differentiation requested for an argument position that does not exist."""


class NotDifferentiableError(TypoError):
    """The operation has no registered differentiation rule."""

    def __init__(self, name: object) -> None:
        super().__init__(f"No differentiation rule for {name!r}")
        self.name = name


class RegistryFrozenError(TypoError):
    """Registration attempted after the function database was frozen."""


class SpecializationDepthError(TypoError):
    """Expression nesting exceeded the configured specialization depth."""


class NoImplementationError(TypoError):
    """An operation with no executable implementation was evaluated."""
