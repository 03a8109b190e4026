"""Ordered type dispatch with an explicit abort outcome."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .descriptors import descriptor_ntype
from .ntype import Ntype, ntype_subtypep


class _AbortSentinel:
    """Marker returned by rule bodies that give up on specialization."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (_AbortSentinel, ())


ABORT = _AbortSentinel()


def abort_specialization() -> _AbortSentinel:
    return ABORT


def aborted(result: object) -> bool:
    return result is ABORT


@dataclass(frozen=True)
class Branch:
    """One guarded arm: fires when `ntype` is proven to be a subtype of the guard.

    A negated branch fires when that subtype relation is *not* proven, which is
    the conservative reading of an exclusion guard such as ``(not number)``.
    """

    ntype: Ntype
    body: Callable[[], object]
    negated: bool = False

    @classmethod
    def of(cls, descriptor: object, body: Callable[[], object]) -> "Branch":
        negated = isinstance(descriptor, tuple) and len(descriptor) == 2 and descriptor[0] == "not"
        guard = descriptor[1] if negated else descriptor
        return cls(descriptor_ntype(guard).ntype, body, negated)

    def fires(self, ntype: Ntype) -> bool:
        proven = ntype_subtypep(ntype, self.ntype).value
        return not proven if self.negated else proven


def ntype_subtypecase(
    ntype: Ntype,
    branches: Sequence[Branch],
    fallback: Callable[[], object] = abort_specialization,
) -> object:
    """Run the body of the first firing branch, else `fallback`.

    A body returning ``ABORT`` ends the whole dispatch with ``ABORT``.
    """
    for branch in branches:
        if branch.fires(ntype):
            return branch.body()
    return fallback()
