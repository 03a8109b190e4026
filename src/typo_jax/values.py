"""Values-ntypes: the types of every value an operation may return."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .ntype import NULL, UNIVERSAL, Decision, Ntype, ntype_descriptor, ntype_subtypep, ntype_union


@dataclass(frozen=True)
class ValuesNtype:
    """Fixed prefix of required values, optional values, and a repeating tail.

    ``rest is None`` means the operation never returns more than
    ``non_rest_count`` values. Values past the end read as ``null``.
    """

    required: tuple[Ntype, ...] = ()
    optional: tuple[Ntype, ...] = ()
    rest: Ntype | None = None

    @property
    def minimum(self) -> int:
        return len(self.required)

    @property
    def non_rest_count(self) -> int:
        return len(self.required) + len(self.optional)

    @property
    def single_valued(self) -> bool:
        return self.non_rest_count <= 1 and self.rest is None

    def __repr__(self) -> str:
        return f"<values-ntype {values_ntype_descriptor(self)!r}>"


ANY_VALUES = ValuesNtype(rest=UNIVERSAL)
NO_VALUES = ValuesNtype()

_SINGLE_VALUE_NTYPES: dict[Ntype, ValuesNtype] = {}


def single_value_ntype(ntype: Ntype) -> ValuesNtype:
    """The canonical element for exactly one value of `ntype`."""
    existing = _SINGLE_VALUE_NTYPES.get(ntype)
    if existing is not None:
        return existing
    return _SINGLE_VALUE_NTYPES.setdefault(ntype, ValuesNtype(required=(ntype,)))


def nth_value_ntype(n: int, values: ValuesNtype) -> Ntype:
    if n < 0:
        raise IndexError(f"value index must be non-negative, got {n}")
    if n < len(values.required):
        return values.required[n]
    if n < values.non_rest_count:
        return values.optional[n - len(values.required)]
    if values.rest is not None:
        return values.rest
    return NULL


def _union_at(n: int, items: tuple[ValuesNtype, ...]) -> Ntype:
    result = nth_value_ntype(n, items[0])
    for values in items[1:]:
        result, _ = ntype_union(result, nth_value_ntype(n, values))
    return result


def union_values_ntypes(items: Iterable[ValuesNtype]) -> ValuesNtype:
    """Pointwise union.

    Positions every input guarantees stay required, the remaining fixed
    positions become optional, and any repeating tail folds into ``rest``.
    """
    items = tuple(items)
    if not items:
        raise ValueError("union_values_ntypes requires at least one values-ntype")
    if len(items) == 1:
        return items[0]
    shortest = min(values.minimum for values in items)
    longest = max(values.non_rest_count for values in items)
    required = tuple(_union_at(n, items) for n in range(shortest))
    optional = tuple(_union_at(n, items) for n in range(shortest, longest))
    rest = None
    if any(values.rest is not None for values in items):
        rest = _union_at(longest, items)
    return ValuesNtype(required=required, optional=optional, rest=rest)


def values_ntype_subtypep(a: ValuesNtype, b: ValuesNtype) -> Decision:
    """Whether every value sequence described by `a` is described by `b`."""
    if a == b:
        return Decision(True, True)
    precise = True
    for n in range(max(a.non_rest_count, b.non_rest_count) + 1):
        proven, exact = ntype_subtypep(nth_value_ntype(n, a), nth_value_ntype(n, b))
        precise = precise and exact
        if not proven:
            return Decision(False, precise)
    return Decision(True, precise)


def values_ntype_descriptor(values: ValuesNtype) -> object:
    if values == ANY_VALUES:
        return "*"
    parts: list[object] = ["values"]
    parts.extend(ntype_descriptor(ntype) for ntype in values.required)
    if values.optional:
        parts.append("&optional")
        parts.extend(ntype_descriptor(ntype) for ntype in values.optional)
    if values.rest is not None:
        parts.append("&rest")
        parts.append(ntype_descriptor(values.rest))
    return tuple(parts)
