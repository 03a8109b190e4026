"""Dense primitive ntype enumeration and the table-driven lattice algebra.

Every value belongs to exactly one *atom*: an integer interval, one float or
complex representation, characters, strings, booleans, ``None``, non-empty
tuples (conses), callables, one array class per storage dtype, or "other".
A primitive ntype is a fixed set of atoms, stored as an ``int`` bitset, so
union, intersection and subtype tests are exact bit operations. When a
resulting bitset is not itself a primitive it is widened to the smallest
enclosing primitive and reported as imprecise.

Primitive indices, dense over ``[0, PRIMITIVE_LIMIT)``:

====  ================================  =================================
idx   descriptor                        contents
====  ================================  =================================
0     nil                               nothing
1     bit                               integers 0..1
2     (unsigned-byte 7)                 0..127
3     (unsigned-byte 8)                 0..255
4     (signed-byte 8)                   -128..127
5     (unsigned-byte 15)                0..32767
6     (unsigned-byte 16)                0..65535
7     (signed-byte 16)                  -32768..32767
8     (unsigned-byte 31)                0..2^31-1
9     (unsigned-byte 32)                0..2^32-1
10    (signed-byte 32)                  -2^31..2^31-1
11    (unsigned-byte 63)                0..2^63-1
12    (unsigned-byte 64)                0..2^64-1
13    (signed-byte 64)                  -2^63..2^63-1
14    integer                           all integers
15    ratio                             non-integer Fractions
16    rational                          integer + ratio
17    short-float                       float16 scalars
18    single-float                      float32 scalars
19    double-float                      Python float, float64 scalars
20    float                             all three floats
21    real                              rational + float
22    (complex single-float)            complex64 scalars
23    (complex double-float)            Python complex, complex128 scalars
24    complex                           both complexes
25    number                            real + complex
26    character                         one-character str
27    string                            any other str
28    boolean                           True, False
29    null                              None
30    cons                              non-empty tuple
31    list                              null + cons
32    function                          callables
33-47 (array <element> *)               arrays of one storage dtype
48    array                             all arrays
49    t                                 everything
====  ================================  =================================
"""

from __future__ import annotations

from typing import Final

from .tower import Tier, combine_tiers


# Integer primitives in classification order: a value classifies as the first
# range that contains it, which is always the narrowest.
_INTEGER_RANGES: Final[tuple[tuple[object, int | None, int | None], ...]] = (
    ("bit", 0, 1),
    (("unsigned-byte", 7), 0, 2**7 - 1),
    (("unsigned-byte", 8), 0, 2**8 - 1),
    (("signed-byte", 8), -(2**7), 2**7 - 1),
    (("unsigned-byte", 15), 0, 2**15 - 1),
    (("unsigned-byte", 16), 0, 2**16 - 1),
    (("signed-byte", 16), -(2**15), 2**15 - 1),
    (("unsigned-byte", 31), 0, 2**31 - 1),
    (("unsigned-byte", 32), 0, 2**32 - 1),
    (("signed-byte", 32), -(2**31), 2**31 - 1),
    (("unsigned-byte", 63), 0, 2**63 - 1),
    (("unsigned-byte", 64), 0, 2**64 - 1),
    (("signed-byte", 64), -(2**63), 2**63 - 1),
    ("integer", None, None),
)

# Storage dtypes for specialized arrays, paired with the element descriptor.
ARRAY_STORAGE: Final[tuple[tuple[str, object], ...]] = (
    ("bool", "boolean"),
    ("uint8", ("unsigned-byte", 8)),
    ("int8", ("signed-byte", 8)),
    ("uint16", ("unsigned-byte", 16)),
    ("int16", ("signed-byte", 16)),
    ("uint32", ("unsigned-byte", 32)),
    ("int32", ("signed-byte", 32)),
    ("uint64", ("unsigned-byte", 64)),
    ("int64", ("signed-byte", 64)),
    ("float16", "short-float"),
    ("float32", "single-float"),
    ("float64", "double-float"),
    ("complex64", ("complex", "single-float")),
    ("complex128", ("complex", "double-float")),
    ("object", "t"),
)


def _integer_intervals() -> tuple[tuple[int | None, int | None], ...]:
    cuts = set()
    for _, lo, hi in _INTEGER_RANGES:
        if lo is not None:
            cuts.add(lo)
        if hi is not None:
            cuts.add(hi + 1)
    ordered = sorted(cuts)
    intervals: list[tuple[int | None, int | None]] = [(None, ordered[0] - 1)]
    for left, right in zip(ordered, ordered[1:]):
        intervals.append((left, right - 1))
    intervals.append((ordered[-1], None))
    return tuple(intervals)


INTEGER_INTERVALS: Final = _integer_intervals()

_ATOM_NAMES: list[str] = [f"integer[{lo},{hi}]" for lo, hi in INTEGER_INTERVALS]
_ATOM_NAMES += [
    "ratio",
    "float16",
    "float32",
    "float64",
    "complex64",
    "complex128",
    "character",
    "string",
    "boolean",
    "null",
    "cons",
    "function",
]
_ATOM_NAMES += [f"array:{dtype}" for dtype, _ in ARRAY_STORAGE]
_ATOM_NAMES.append("other")

ATOM_NAMES: Final[tuple[str, ...]] = tuple(_ATOM_NAMES)
ATOM_INDEX: Final[dict[str, int]] = {name: i for i, name in enumerate(ATOM_NAMES)}
ALL_BITS: Final[int] = (1 << len(ATOM_NAMES)) - 1


def _bits(*names: str) -> int:
    out = 0
    for name in names:
        out |= 1 << ATOM_INDEX[name]
    return out


def integer_range_bits(lo: int | None, hi: int | None) -> int:
    """Bits of every integer atom overlapping ``[lo, hi]`` (None is unbounded)."""
    out = 0
    for i, (alo, ahi) in enumerate(INTEGER_INTERVALS):
        if hi is not None and alo is not None and alo > hi:
            continue
        if lo is not None and ahi is not None and ahi < lo:
            continue
        out |= 1 << i
    return out


INTEGER_BITS: Final = integer_range_bits(None, None)
RATIONAL_BITS: Final = INTEGER_BITS | _bits("ratio")
FLOAT_BITS: Final = _bits("float16", "float32", "float64")
REAL_BITS: Final = RATIONAL_BITS | FLOAT_BITS
COMPLEX_BITS: Final = _bits("complex64", "complex128")
NUMBER_BITS: Final = REAL_BITS | COMPLEX_BITS
ARRAY_BITS: Final = _bits(*(f"array:{dtype}" for dtype, _ in ARRAY_STORAGE))

_SPECS: list[tuple[object, int]] = [("nil", 0)]
_SPECS += [(descriptor, integer_range_bits(lo, hi)) for descriptor, lo, hi in _INTEGER_RANGES]
_SPECS += [
    ("ratio", _bits("ratio")),
    ("rational", RATIONAL_BITS),
    ("short-float", _bits("float16")),
    ("single-float", _bits("float32")),
    ("double-float", _bits("float64")),
    ("float", FLOAT_BITS),
    ("real", REAL_BITS),
    (("complex", "single-float"), _bits("complex64")),
    (("complex", "double-float"), _bits("complex128")),
    ("complex", COMPLEX_BITS),
    ("number", NUMBER_BITS),
    ("character", _bits("character")),
    ("string", _bits("string")),
    ("boolean", _bits("boolean")),
    ("null", _bits("null")),
    ("cons", _bits("cons")),
    ("list", _bits("null", "cons")),
    ("function", _bits("function")),
]
_SPECS += [(("array", element, "*"), _bits(f"array:{dtype}")) for dtype, element in ARRAY_STORAGE]
_SPECS += [("array", ARRAY_BITS), ("t", ALL_BITS)]

PRIMITIVE_DESCRIPTORS: Final[tuple[object, ...]] = tuple(descriptor for descriptor, _ in _SPECS)
PRIMITIVE_BITS: Final[tuple[int, ...]] = tuple(bits for _, bits in _SPECS)
PRIMITIVE_LIMIT: Final[int] = len(_SPECS)
EMPTY_INDEX: Final[int] = 0
UNIVERSAL_INDEX: Final[int] = PRIMITIVE_LIMIT - 1

_INDEX_BY_BITS: dict[int, int] = {}
for _index, _bitset in enumerate(PRIMITIVE_BITS):
    _INDEX_BY_BITS.setdefault(_bitset, _index)

PRIMITIVE_INDEX_BY_DESCRIPTOR: Final[dict[object, int]] = {
    descriptor: index for index, descriptor in enumerate(PRIMITIVE_DESCRIPTORS)
}

INTEGER_RANGE_INDEX: Final[dict[tuple[int | None, int | None], int]] = {
    (lo, hi): PRIMITIVE_INDEX_BY_DESCRIPTOR[descriptor] for descriptor, lo, hi in _INTEGER_RANGES
}

ARRAY_STORAGE_INDEX: Final[dict[str, int]] = {
    dtype: PRIMITIVE_INDEX_BY_DESCRIPTOR[("array", element, "*")] for dtype, element in ARRAY_STORAGE
}


def enclosing_primitive(bits: int) -> tuple[int, bool]:
    """Smallest primitive containing `bits`, and whether it is an exact match."""
    exact = _INDEX_BY_BITS.get(bits)
    if exact is not None:
        return exact, True
    best = UNIVERSAL_INDEX
    best_size = ALL_BITS.bit_count()
    for index, candidate in enumerate(PRIMITIVE_BITS):
        if bits & ~candidate:
            continue
        size = candidate.bit_count()
        if size < best_size:
            best, best_size = index, size
    return best, False


def _atom_primitives() -> tuple[int, ...]:
    out = []
    for atom in range(len(ATOM_NAMES)):
        index, _ = enclosing_primitive(1 << atom)
        out.append(index)
    return tuple(out)


ATOM_PRIMITIVE: Final[tuple[int, ...]] = _atom_primitives()


# Contagion works on tiers: every number atom carries the tier of the values
# it holds, and the result of a primitive pair is the union of the tier
# results of all atom pairs.
_TIER_BITS: dict[Tier, int] = {
    Tier.INTEGER: INTEGER_BITS,
    Tier.RATIONAL: RATIONAL_BITS,
    Tier.FLOAT16: _bits("float16"),
    Tier.FLOAT32: _bits("float32"),
    Tier.FLOAT64: _bits("float64"),
    Tier.COMPLEX64: _bits("complex64"),
    Tier.COMPLEX128: _bits("complex128"),
}

_ATOM_TIERS: dict[int, Tier] = {atom: Tier.INTEGER for atom in range(len(INTEGER_INTERVALS))}
_ATOM_TIERS.update(
    {
        ATOM_INDEX["ratio"]: Tier.RATIONAL,
        ATOM_INDEX["float16"]: Tier.FLOAT16,
        ATOM_INDEX["float32"]: Tier.FLOAT32,
        ATOM_INDEX["float64"]: Tier.FLOAT64,
        ATOM_INDEX["complex64"]: Tier.COMPLEX64,
        ATOM_INDEX["complex128"]: Tier.COMPLEX128,
    }
)


def _tiers_of(bits: int) -> set[Tier]:
    return {tier for atom, tier in _ATOM_TIERS.items() if bits & (1 << atom)}


def _contagion_entry(a: int, b: int) -> tuple[int, bool]:
    if a == 0 or b == 0:
        return EMPTY_INDEX, True
    numeric_a = a & NUMBER_BITS
    numeric_b = b & NUMBER_BITS
    if numeric_a == 0 or numeric_b == 0:
        return PRIMITIVE_INDEX_BY_DESCRIPTOR["number"], False
    bits = 0
    for tier_a in _tiers_of(numeric_a):
        for tier_b in _tiers_of(numeric_b):
            bits |= _TIER_BITS[combine_tiers(tier_a, tier_b)]
    index, exact = enclosing_primitive(bits)
    return index, exact and numeric_a == a and numeric_b == b


def _build_tables():
    union = []
    intersection = []
    subtype = []
    contagion = []
    for a in PRIMITIVE_BITS:
        union.append(tuple(enclosing_primitive(a | b) for b in PRIMITIVE_BITS))
        intersection.append(tuple(enclosing_primitive(a & b) for b in PRIMITIVE_BITS))
        subtype.append(tuple(not (a & ~b) for b in PRIMITIVE_BITS))
        contagion.append(tuple(_contagion_entry(a, b) for b in PRIMITIVE_BITS))
    return tuple(union), tuple(intersection), tuple(subtype), tuple(contagion)


UNION_TABLE, INTERSECTION_TABLE, SUBTYPE_TABLE, CONTAGION_TABLE = _build_tables()


def complement_primitive(index: int) -> tuple[int, bool]:
    return enclosing_primitive(ALL_BITS & ~PRIMITIVE_BITS[index])


def integer_atom(value: int) -> int:
    for atom, (lo, hi) in enumerate(INTEGER_INTERVALS):
        if (lo is None or value >= lo) and (hi is None or value <= hi):
            return atom
    raise AssertionError("integer intervals cover every integer")
