"""Canonical approximate type-lattice elements and their algebra.

Every operation returns a two-field result ``(value, precise)``. A result
with ``precise=False`` is a conservative over-approximation: unions and
intersections may be wider than the true set, and a ``False`` subtype answer
means "not proven" rather than "definitely not".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import NamedTuple

import numpy as np

from .primitives import (
    ARRAY_STORAGE_INDEX,
    ATOM_INDEX,
    ATOM_PRIMITIVE,
    CONTAGION_TABLE,
    EMPTY_INDEX,
    INTERSECTION_TABLE,
    PRIMITIVE_BITS,
    PRIMITIVE_DESCRIPTORS,
    PRIMITIVE_INDEX_BY_DESCRIPTOR,
    PRIMITIVE_LIMIT,
    SUBTYPE_TABLE,
    UNION_TABLE,
    UNIVERSAL_INDEX,
    integer_atom,
)
from .tower import Tier, scalar_dtype, value_tier


class Ntype:
    """Base class of lattice elements."""

    __slots__ = ()


@dataclass(frozen=True, eq=False)
class PrimitiveNtype(Ntype):
    """One of the fixed, densely indexed built-in classes."""

    index: int
    descriptor: object = field(compare=False)

    @property
    def bits(self) -> int:
        return PRIMITIVE_BITS[self.index]

    def __repr__(self) -> str:
        return f"<ntype {_format_descriptor(self.descriptor)}>"


@dataclass(frozen=True, eq=False)
class EqlNtype(Ntype):
    """Singleton type of one concrete value. Interned per value."""

    value: object
    key: object = field(repr=False)
    atom: int = field(repr=False)

    @property
    def primitive(self) -> PrimitiveNtype:
        return PRIMITIVES[ATOM_PRIMITIVE[self.atom]]

    def __eq__(self, other: object) -> bool:
        return isinstance(other, EqlNtype) and other.key == self.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"<ntype (eql {self.value!r})>"


class NtypeResult(NamedTuple):
    ntype: Ntype
    precise: bool


class Decision(NamedTuple):
    value: bool
    precise: bool


def _format_descriptor(descriptor: object) -> str:
    if isinstance(descriptor, tuple):
        return "(" + " ".join(_format_descriptor(item) for item in descriptor) + ")"
    return str(descriptor)


PRIMITIVES: tuple[PrimitiveNtype, ...] = tuple(
    PrimitiveNtype(index=i, descriptor=PRIMITIVE_DESCRIPTORS[i]) for i in range(PRIMITIVE_LIMIT)
)

EMPTY = PRIMITIVES[EMPTY_INDEX]
UNIVERSAL = PRIMITIVES[UNIVERSAL_INDEX]


def find_primitive_ntype(descriptor: object) -> PrimitiveNtype:
    """Named class element for a primitive descriptor such as ``"double-float"``."""
    return PRIMITIVES[PRIMITIVE_INDEX_BY_DESCRIPTOR[descriptor]]


NULL = find_primitive_ntype("null")
NUMBER = find_primitive_ntype("number")


def value_atom(value: object) -> int:
    """The unique atom `value` belongs to."""
    if isinstance(value, bool):
        return ATOM_INDEX["boolean"]
    if value is None:
        return ATOM_INDEX["null"]
    tier = value_tier(value)
    if tier is not None:
        if tier == Tier.INTEGER:
            plain = value if isinstance(value, int) else int(value.item() if hasattr(value, "item") else value)
            return integer_atom(plain)
        return ATOM_INDEX[
            {
                Tier.RATIONAL: "ratio",
                Tier.FLOAT16: "float16",
                Tier.FLOAT32: "float32",
                Tier.FLOAT64: "float64",
                Tier.COMPLEX64: "complex64",
                Tier.COMPLEX128: "complex128",
            }[tier]
        ]
    if isinstance(value, str):
        return ATOM_INDEX["character" if len(value) == 1 else "string"]
    if isinstance(value, tuple):
        return ATOM_INDEX["cons" if value else "other"]
    if isinstance(value, list):
        return ATOM_INDEX["array:object"]
    dtype = getattr(value, "dtype", None)
    if dtype is not None and getattr(value, "ndim", None) is not None:
        if scalar_dtype(value) is not None:
            # 0-d with a dtype outside the tower, e.g. bool_ or bfloat16.
            return ATOM_INDEX["boolean" if scalar_dtype(value).name == "bool" else "other"]
        storage = dtype.name if dtype.name in ARRAY_STORAGE_INDEX else "object"
        return ATOM_INDEX[f"array:{storage}"]
    if callable(value) and not isinstance(value, type):
        return ATOM_INDEX["function"]
    return ATOM_INDEX["other"]


def ntype_of(value: object) -> PrimitiveNtype:
    """Primitive classification of a value."""
    return PRIMITIVES[ATOM_PRIMITIVE[value_atom(value)]]


def _eql_key(value: object) -> object:
    # Keyed on bit patterns so -0.0 and 0.0 differ and NaN equals itself.
    if isinstance(value, (float, np.floating)):
        return (type(value), float(value).hex())
    if isinstance(value, (complex, np.complexfloating)):
        plain = complex(value)
        return (type(value), plain.real.hex(), plain.imag.hex())
    hash(value)
    return (type(value), value)


_EQL_NTYPES: dict[object, EqlNtype] = {}


def make_eql_ntype(value: object) -> Ntype:
    """Canonical singleton for `value`.

    Raises TypeError for unhashable values. ``None`` is the whole ``null``
    class and therefore yields the primitive.
    """
    if value is None:
        return NULL
    key = _eql_key(value)
    existing = _EQL_NTYPES.get(key)
    if existing is not None:
        return existing
    return _EQL_NTYPES.setdefault(key, EqlNtype(value=value, key=key, atom=value_atom(value)))


def constant_ntype(value: object) -> Ntype:
    """Eql ntype when `value` can be interned, else its primitive class."""
    if isinstance(value, (bool, int, Fraction, float, complex, str, type(None), np.generic)):
        return make_eql_ntype(value)
    return ntype_of(value)


TRUE_NTYPE = make_eql_ntype(True)
FALSE_NTYPE = make_eql_ntype(False)


def primitive_ntype(ntype: Ntype) -> PrimitiveNtype:
    if isinstance(ntype, EqlNtype):
        return ntype.primitive
    return ntype


def eql_ntype_p(ntype: Ntype) -> bool:
    """Whether `ntype` is the singleton of one known value."""
    return isinstance(ntype, EqlNtype)


def ntype_descriptor(ntype: Ntype) -> object:
    """A descriptor for `ntype`; parsing it yields `ntype` back."""
    if isinstance(ntype, EqlNtype):
        return ("eql", ntype.value)
    return ntype.descriptor


def typep(value: object, ntype: Ntype) -> bool:
    """Exact membership test used as the host oracle."""
    if isinstance(ntype, EqlNtype):
        try:
            return _eql_key(value) == ntype.key
        except TypeError:
            return False
    return bool(ntype.bits & (1 << value_atom(value)))


def _lookup(table, a: PrimitiveNtype, b: PrimitiveNtype) -> NtypeResult:
    index, precise = table[a.index][b.index]
    return NtypeResult(PRIMITIVES[index], precise)


def _contains(primitive: PrimitiveNtype, eql: EqlNtype) -> bool:
    return bool(primitive.bits & (1 << eql.atom))


def ntype_union(a: Ntype, b: Ntype) -> NtypeResult:
    if a == b or b is EMPTY:
        return NtypeResult(a, True)
    if a is EMPTY:
        return NtypeResult(b, True)
    if isinstance(a, EqlNtype) and isinstance(b, PrimitiveNtype) and _contains(b, a):
        return NtypeResult(b, True)
    if isinstance(b, EqlNtype) and isinstance(a, PrimitiveNtype) and _contains(a, b):
        return NtypeResult(a, True)
    if isinstance(a, EqlNtype) or isinstance(b, EqlNtype):
        widened, _ = _lookup(UNION_TABLE, primitive_ntype(a), primitive_ntype(b))
        return NtypeResult(widened, False)
    return _lookup(UNION_TABLE, a, b)


def ntype_intersection(a: Ntype, b: Ntype) -> NtypeResult:
    if a == b:
        return NtypeResult(a, True)
    if isinstance(a, EqlNtype) and isinstance(b, EqlNtype):
        return NtypeResult(EMPTY, True)
    if isinstance(a, EqlNtype):
        return NtypeResult(a if _contains(b, a) else EMPTY, True)
    if isinstance(b, EqlNtype):
        return NtypeResult(b if _contains(a, b) else EMPTY, True)
    return _lookup(INTERSECTION_TABLE, a, b)


def ntype_contagion(a: Ntype, b: Ntype) -> NtypeResult:
    """Result class of binary arithmetic on `a` and `b` (see ``tower``)."""
    return _lookup(CONTAGION_TABLE, primitive_ntype(a), primitive_ntype(b))


def ntype_subtypep(a: Ntype, b: Ntype) -> Decision:
    if a == b:
        return Decision(True, True)
    if isinstance(a, EqlNtype):
        if isinstance(b, EqlNtype):
            return Decision(False, True)
        return Decision(_contains(b, a), True)
    if isinstance(b, EqlNtype):
        # Only the empty class fits inside a singleton; `null` never reaches
        # here because (eql nil) is canonicalized to it.
        return Decision(a is EMPTY, True)
    return Decision(SUBTYPE_TABLE[a.index][b.index], True)


def ntype_subtypepc2(a: Ntype, b: Ntype) -> Decision:
    """Table-only subtype test.

    Answers from the primitive relation alone, promoting an eql on the left to
    its class. Anything the table cannot settle is ``(False, False)``.
    """
    if a is b:
        return Decision(True, True)
    if isinstance(b, EqlNtype):
        return Decision(False, False)
    if SUBTYPE_TABLE[primitive_ntype(a).index][b.index]:
        return Decision(True, True)
    if isinstance(a, EqlNtype):
        return Decision(False, False)
    return Decision(False, True)


def union_all(ntypes, initial: Ntype = EMPTY) -> NtypeResult:
    result = initial
    precise = True
    for ntype in ntypes:
        result, exact = ntype_union(result, ntype)
        precise = precise and exact
    return NtypeResult(result, precise)


def intersect_all(ntypes, initial: Ntype = UNIVERSAL) -> NtypeResult:
    result = initial
    precise = True
    for ntype in ntypes:
        result, exact = ntype_intersection(result, ntype)
        precise = precise and exact
    return NtypeResult(result, precise)

