"""Conversion of external type descriptors into canonical ntypes.

Descriptors are symbols (``"double-float"``), Python classes (``float``),
``jax.numpy`` dtypes or scalar types (``jnp.float32``), ntypes, or tuples
headed by a symbol (``("array", "single-float", (2, "*"))``). ``"*"`` is the
wildcard. Results are interned by structure, so structurally equal
descriptors map to the very same result object.
"""

from __future__ import annotations

from fractions import Fraction
import logging
from numbers import Real

import jax
import jax.numpy as jnp
import numpy as np

from .errors import DescriptorParseError
from .ntype import (
    EMPTY,
    NULL,
    PRIMITIVES,
    UNIVERSAL,
    EqlNtype,
    Ntype,
    NtypeResult,
    PrimitiveNtype,
    find_primitive_ntype,
    intersect_all,
    make_eql_ntype,
    ntype_subtypep,
    ntype_union,
    primitive_ntype,
    union_all,
)
from .primitives import (
    ARRAY_STORAGE,
    ARRAY_STORAGE_INDEX,
    INTEGER_RANGE_INDEX,
    PRIMITIVE_INDEX_BY_DESCRIPTOR,
    complement_primitive,
    enclosing_primitive,
    integer_range_bits,
)
from .reader import ParseError, read
from .values import ANY_VALUES, ValuesNtype, nth_value_ntype, single_value_ntype

logger = logging.getLogger(__name__)

_DESCRIPTOR_CACHE: dict[object, object] = {}
_DESCRIPTOR_CACHE_STATS: dict[str, int] = {"hits": 0, "misses": 0}

_NAMED_ALIASES: dict[str, object] = {
    "float16": "short-float",
    "half-float": "short-float",
    "float32": "single-float",
    "float64": "double-float",
    "long-float": "double-float",
    "complex64": ("complex", "single-float"),
    "complex128": ("complex", "double-float"),
    "fixnum": ("signed-byte", 64),
    "signed-byte": "integer",
    "unsigned-byte": ("integer", 0, "*"),
    "bignum": ("and", "integer", ("not", ("signed-byte", 64))),
    "simple-array": "array",
    "vector": ("array", "*", 1),
    "simple-vector": ("array", "t", 1),
    "sequence": ("or", "list", ("array", "*", 1)),
    "atom": ("not", "cons"),
    "base-char": "character",
    "standard-char": "character",
    "simple-string": "string",
    "bool": "boolean",
    "*": "t",
}

_CLASS_DESCRIPTORS: dict[type, object] = {
    bool: "boolean",
    int: "integer",
    Fraction: "rational",
    float: "double-float",
    complex: ("complex", "double-float"),
    str: ("or", "character", "string"),
    type(None): "null",
    list: ("array", "t", "*"),
}

_REAL_HEADS = {"float", "short-float", "single-float", "double-float", "real", "rational"}

# Lisp-level storage upgrade order: the first class containing the element
# type decides the array representation.
_STORAGE_ORDER: tuple[tuple[object, str], ...] = (
    ("boolean", "bool"),
    (("unsigned-byte", 8), "uint8"),
    (("signed-byte", 8), "int8"),
    (("unsigned-byte", 16), "uint16"),
    (("signed-byte", 16), "int16"),
    (("unsigned-byte", 32), "uint32"),
    (("signed-byte", 32), "int32"),
    (("unsigned-byte", 64), "uint64"),
    (("signed-byte", 64), "int64"),
    ("short-float", "float16"),
    ("single-float", "float32"),
    ("double-float", "float64"),
    (("complex", "single-float"), "complex64"),
    (("complex", "double-float"), "complex128"),
)

_STORAGE_ELEMENTS: dict[str, object] = dict(ARRAY_STORAGE)


def _malformed(message: str, descriptor: object) -> DescriptorParseError:
    return DescriptorParseError(message=message, descriptor=descriptor)


def _descriptor_key(descriptor: object) -> object:
    if isinstance(descriptor, str):
        return ("symbol", descriptor)
    if isinstance(descriptor, bool):
        return ("bool", descriptor)
    if isinstance(descriptor, int):
        return ("int", descriptor)
    if isinstance(descriptor, Fraction):
        return ("ratio", descriptor.numerator, descriptor.denominator)
    # Float leaves key on exact type and bit pattern: -0.0 differs from 0.0,
    # np.float64(1.0) from 1.0, and every NaN of one type shares an entry.
    if isinstance(descriptor, (float, np.floating)):
        return ("float", type(descriptor).__name__, float(descriptor).hex())
    if isinstance(descriptor, (complex, np.complexfloating)):
        plain = complex(descriptor)
        return ("complex", type(descriptor).__name__, plain.real.hex(), plain.imag.hex())
    if isinstance(descriptor, (tuple, list)):
        return ("tuple", tuple(_descriptor_key(item) for item in descriptor))
    try:
        hash(descriptor)
    except TypeError as err:
        raise _malformed("Unhashable descriptor component", descriptor) from err
    return (type(descriptor).__name__, descriptor)


def _interned(key: object, compute):
    cached = _DESCRIPTOR_CACHE.get(key)
    if cached is not None:
        _DESCRIPTOR_CACHE_STATS["hits"] += 1
        return cached
    _DESCRIPTOR_CACHE_STATS["misses"] += 1
    return _DESCRIPTOR_CACHE.setdefault(key, compute())


def descriptor_ntype(descriptor: object) -> NtypeResult:
    """Canonical ntype of `descriptor`, with a precision flag."""
    return _interned(_descriptor_key(descriptor), lambda: _parse(descriptor))


def descriptor_values_ntype(descriptor: object) -> tuple[ValuesNtype, bool]:
    """Values-ntype of a ``values`` descriptor, or of a single-value descriptor."""
    key = ("values", _descriptor_key(descriptor))
    return _interned(key, lambda: _parse_values_ntype(descriptor))


def read_descriptor(source: str) -> object:
    """Read the textual s-expression form of a descriptor."""
    try:
        return read(source)
    except ParseError as err:
        raise DescriptorParseError.from_parse_error(err) from err


def parse_descriptor(source: str) -> NtypeResult:
    return descriptor_ntype(read_descriptor(source))


def descriptor_cache_stats(*, reset: bool = False) -> dict[str, float | int]:
    hits = _DESCRIPTOR_CACHE_STATS["hits"]
    misses = _DESCRIPTOR_CACHE_STATS["misses"]
    total = hits + misses
    stats: dict[str, float | int] = {
        "hits": hits,
        "misses": misses,
        "size": len(_DESCRIPTOR_CACHE),
        "hit_rate": float(hits / total) if total else 0.0,
    }
    if reset:
        _DESCRIPTOR_CACHE.clear()
        _DESCRIPTOR_CACHE_STATS["hits"] = 0
        _DESCRIPTOR_CACHE_STATS["misses"] = 0
    return stats


def _parse(descriptor: object) -> NtypeResult:
    if isinstance(descriptor, Ntype):
        return NtypeResult(descriptor, True)
    if isinstance(descriptor, str):
        return _parse_symbol(descriptor)
    if isinstance(descriptor, (tuple, list)):
        return _parse_compound(tuple(descriptor))
    if isinstance(descriptor, (bool, int, Fraction, float, complex)) or descriptor is None:
        raise _malformed("Literal value is not a type descriptor", descriptor)
    return _parse_class(descriptor)


def _parse_symbol(name: str) -> NtypeResult:
    index = PRIMITIVE_INDEX_BY_DESCRIPTOR.get(name)
    if index is not None:
        return NtypeResult(PRIMITIVES[index], True)
    alias = _NAMED_ALIASES.get(name)
    if alias is not None:
        return descriptor_ntype(alias)
    if not name or name.startswith("&"):
        raise _malformed("Invalid type name", name)
    logger.debug("Unknown type name %r degraded to t", name)
    return NtypeResult(UNIVERSAL, False)


def _dtype_descriptor(dtype) -> object | None:
    name = dtype.name
    if name == "bool":
        return "boolean"
    if name.startswith("uint"):
        return ("unsigned-byte", int(name[4:]))
    if name.startswith("int"):
        return ("signed-byte", int(name[3:]))
    return {
        "float16": "short-float",
        "float32": "single-float",
        "float64": "double-float",
        "complex64": ("complex", "single-float"),
        "complex128": ("complex", "double-float"),
    }.get(name)


def _parse_class(descriptor: object) -> NtypeResult:
    mapped = _CLASS_DESCRIPTORS.get(descriptor) if isinstance(descriptor, type) else None
    if mapped is not None:
        return descriptor_ntype(mapped)
    try:
        dtype = jnp.dtype(descriptor)
    except (TypeError, ValueError):
        dtype = None
    if dtype is None:
        if isinstance(descriptor, type):
            logger.debug("Unknown class %r degraded to t", descriptor)
            return NtypeResult(UNIVERSAL, False)
        raise _malformed("Not a type descriptor", descriptor)
    mapped = _dtype_descriptor(dtype)
    if mapped is None:
        return NtypeResult(UNIVERSAL, False)
    return descriptor_ntype(mapped)


def _parse_compound(descriptor: tuple) -> NtypeResult:
    if not descriptor:
        raise _malformed("Empty compound descriptor", descriptor)
    head, args = descriptor[0], descriptor[1:]
    if not isinstance(head, str):
        raise _malformed("Compound descriptor head must be a symbol", descriptor)
    if head in _REAL_HEADS:
        return _parse_real_range(descriptor, head, args)
    handler = _COMPOUND_PARSERS.get(head)
    if handler is None:
        logger.debug("Unknown compound descriptor head %r degraded to t", head)
        return NtypeResult(UNIVERSAL, False)
    return handler(descriptor, args)


def _arity(descriptor: tuple, args: tuple, low: int, high: int) -> None:
    if not low <= len(args) <= high:
        raise _malformed(f"{descriptor[0]!r} takes {low} to {high} parameters", descriptor)


def _wildcard(arg: object) -> bool:
    return isinstance(arg, str) and arg == "*"


def _parse_eql(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 1, 1)
    try:
        return NtypeResult(make_eql_ntype(args[0]), True)
    except TypeError as err:
        raise _malformed("eql value must be hashable", descriptor) from err


def _parse_member(descriptor: tuple, args: tuple) -> NtypeResult:
    try:
        return union_all(make_eql_ntype(value) for value in args)
    except TypeError as err:
        raise _malformed("member values must be hashable", descriptor) from err


def _integer_bound(descriptor: tuple, bound: object, *, lower: bool) -> int | None:
    if _wildcard(bound):
        return None
    if isinstance(bound, int) and not isinstance(bound, bool):
        return bound
    if isinstance(bound, tuple) and len(bound) == 1 and isinstance(bound[0], int) and not isinstance(bound[0], bool):
        return bound[0] + 1 if lower else bound[0] - 1
    raise _malformed("Integer bound must be an integer, (integer) or *", descriptor)


def integer_range_ntype(lo: int | None, hi: int | None) -> NtypeResult:
    if lo is not None and hi is not None:
        if lo > hi:
            return NtypeResult(EMPTY, True)
        if lo == hi:
            return NtypeResult(make_eql_ntype(lo), True)
    index = INTEGER_RANGE_INDEX.get((lo, hi))
    if index is not None:
        return NtypeResult(PRIMITIVES[index], True)
    index, _ = enclosing_primitive(integer_range_bits(lo, hi))
    return NtypeResult(PRIMITIVES[index], False)


def _parse_integer(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 2)
    lo = _integer_bound(descriptor, args[0], lower=True) if args else None
    hi = _integer_bound(descriptor, args[1], lower=False) if len(args) > 1 else None
    return integer_range_ntype(lo, hi)


def _byte_size(descriptor: tuple, args: tuple) -> int | None:
    _arity(descriptor, args, 0, 1)
    if not args or _wildcard(args[0]):
        return None
    size = args[0]
    if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
        raise _malformed("Byte size must be a positive integer", descriptor)
    return size


def _parse_signed_byte(descriptor: tuple, args: tuple) -> NtypeResult:
    size = _byte_size(descriptor, args)
    if size is None:
        return integer_range_ntype(None, None)
    return integer_range_ntype(-(2 ** (size - 1)), 2 ** (size - 1) - 1)


def _parse_unsigned_byte(descriptor: tuple, args: tuple) -> NtypeResult:
    size = _byte_size(descriptor, args)
    if size is None:
        return integer_range_ntype(0, None)
    return integer_range_ntype(0, 2**size - 1)


def _parse_mod(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 1, 1)
    size = args[0]
    if not isinstance(size, int) or isinstance(size, bool) or size <= 0:
        raise _malformed("mod needs a positive integer", descriptor)
    return integer_range_ntype(0, size - 1)


def _parse_real_range(descriptor: tuple, head: str, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 2)
    precise = True
    for bound in args:
        if _wildcard(bound):
            continue
        inner = bound[0] if isinstance(bound, tuple) and len(bound) == 1 else bound
        if not isinstance(inner, Real) or isinstance(inner, bool):
            raise _malformed("Real bound must be a real number, (real) or *", descriptor)
        precise = False
    return NtypeResult(find_primitive_ntype(head), precise)


def complex_ntype_for_part(part: Ntype) -> PrimitiveNtype:
    """Complex class whose upgraded part type contains `part`."""
    if ntype_subtypep(part, find_primitive_ntype("short-float")).value or ntype_subtypep(
        part, find_primitive_ntype("single-float")
    ).value:
        return find_primitive_ntype(("complex", "single-float"))
    if ntype_subtypep(part, find_primitive_ntype("double-float")).value or ntype_subtypep(
        part, find_primitive_ntype("rational")
    ).value:
        return find_primitive_ntype(("complex", "double-float"))
    return find_primitive_ntype("complex")


def _parse_complex(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 1)
    if not args or _wildcard(args[0]):
        return NtypeResult(find_primitive_ntype("complex"), True)
    part, precise = descriptor_ntype(args[0])
    return NtypeResult(complex_ntype_for_part(part), precise)


def storage_dtype_for(element: Ntype) -> str:
    """Array storage a Lisp-style upgrade picks for `element`."""
    for candidate, dtype in _STORAGE_ORDER:
        if ntype_subtypep(element, descriptor_ntype(candidate).ntype).value:
            return dtype
    return "object"


def _dimensions_precise(descriptor: tuple, dims: object) -> bool:
    if _wildcard(dims):
        return True
    if isinstance(dims, int) and not isinstance(dims, bool) and dims >= 0:
        return False
    if isinstance(dims, tuple) and all(
        _wildcard(d) or (isinstance(d, int) and not isinstance(d, bool) and d >= 0) for d in dims
    ):
        return False
    raise _malformed("Array dimensions must be *, a rank, or a list of sizes", descriptor)


def _array_ntype(descriptor: tuple, element: object) -> NtypeResult:
    if _wildcard(element):
        return NtypeResult(find_primitive_ntype("array"), True)
    ntype, precise = descriptor_ntype(element)
    return NtypeResult(PRIMITIVES[ARRAY_STORAGE_INDEX[storage_dtype_for(ntype)]], precise)


def _parse_array(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 2)
    element = args[0] if args else "*"
    dims_precise = _dimensions_precise(descriptor, args[1]) if len(args) > 1 else True
    ntype, precise = _array_ntype(descriptor, element)
    return NtypeResult(ntype, precise and dims_precise)


def _parse_vector(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 2)
    if len(args) > 1 and not _wildcard(args[1]):
        size = args[1]
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise _malformed("Vector size must be a non-negative integer or *", descriptor)
    ntype, _ = _array_ntype(descriptor, args[0] if args else "*")
    return NtypeResult(ntype, False)


def _parse_cons(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 2)
    precise = True
    for part in args:
        if _wildcard(part):
            continue
        ntype, exact = descriptor_ntype(part)
        precise = precise and exact and ntype is UNIVERSAL
    return NtypeResult(find_primitive_ntype("cons"), precise)


def _parse_function(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 0, 2)
    precise = True
    if args and not _wildcard(args[0]):
        if not isinstance(args[0], tuple):
            raise _malformed("function parameter types must be a list or *", descriptor)
        for parameter in args[0]:
            if isinstance(parameter, str) and parameter.startswith("&"):
                continue
            descriptor_ntype(parameter)
        precise = False
    if len(args) > 1 and not _wildcard(args[1]):
        descriptor_values_ntype(args[1])
        precise = False
    return NtypeResult(find_primitive_ntype("function"), precise)


def _parse_values(descriptor: tuple, args: tuple) -> NtypeResult:
    values, precise = descriptor_values_ntype(descriptor)
    primary = nth_value_ntype(0, values)
    if values.required:
        return NtypeResult(primary, precise)
    widened, _ = ntype_union(primary, NULL)
    return NtypeResult(widened, False)


def _parse_and(descriptor: tuple, args: tuple) -> NtypeResult:
    parts = [descriptor_ntype(arg) for arg in args]
    ntype, precise = intersect_all(part.ntype for part in parts)
    return NtypeResult(ntype, precise and all(part.precise for part in parts))


def _parse_or(descriptor: tuple, args: tuple) -> NtypeResult:
    parts = [descriptor_ntype(arg) for arg in args]
    ntype, precise = union_all(part.ntype for part in parts)
    return NtypeResult(ntype, precise and all(part.precise for part in parts))


def _parse_not(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 1, 1)
    inner, precise = descriptor_ntype(args[0])
    # The complement of an over-approximation would be an under-approximation.
    if not precise or isinstance(inner, EqlNtype):
        return NtypeResult(UNIVERSAL, False)
    index, exact = complement_primitive(inner.index)
    return NtypeResult(PRIMITIVES[index], exact)


def _parse_satisfies(descriptor: tuple, args: tuple) -> NtypeResult:
    _arity(descriptor, args, 1, 1)
    return NtypeResult(UNIVERSAL, False)


_COMPOUND_PARSERS = {
    "eql": _parse_eql,
    "member": _parse_member,
    "integer": _parse_integer,
    "signed-byte": _parse_signed_byte,
    "unsigned-byte": _parse_unsigned_byte,
    "mod": _parse_mod,
    "complex": _parse_complex,
    "array": _parse_array,
    "simple-array": _parse_array,
    "vector": _parse_vector,
    "cons": _parse_cons,
    "function": _parse_function,
    "values": _parse_values,
    "and": _parse_and,
    "or": _parse_or,
    "not": _parse_not,
    "satisfies": _parse_satisfies,
}


def _parse_values_ntype(descriptor: object) -> tuple[ValuesNtype, bool]:
    if _wildcard(descriptor):
        return ANY_VALUES, True
    if not (isinstance(descriptor, (tuple, list)) and descriptor and descriptor[0] == "values"):
        ntype, precise = descriptor_ntype(descriptor)
        return single_value_ntype(ntype), precise

    sections: dict[str, list[Ntype]] = {"required": [], "&optional": [], "&rest": []}
    section = "required"
    precise = True
    for item in tuple(descriptor)[1:]:
        if isinstance(item, str) and item.startswith("&"):
            if item not in sections or list(sections).index(item) <= list(sections).index(section):
                raise _malformed(f"Misplaced lambda-list keyword {item!r}", descriptor)
            section = item
            continue
        ntype, exact = descriptor_ntype(item)
        precise = precise and exact
        sections[section].append(ntype)
    if section == "&rest" and len(sections["&rest"]) != 1:
        raise _malformed("&rest must be followed by exactly one descriptor", descriptor)
    rest = sections["&rest"][0] if sections["&rest"] else None
    values = ValuesNtype(
        required=tuple(sections["required"]),
        optional=tuple(sections["&optional"]),
        rest=rest,
    )
    if values.required and not values.optional and rest is None and len(values.required) == 1:
        values = single_value_ntype(values.required[0])
    return values, precise


def array_element_ntype(ntype: Ntype) -> NtypeResult:
    """Element class of an array class; unknown elements widen to ``t``."""
    primitive = primitive_ntype(ntype)
    for dtype, element in ARRAY_STORAGE:
        if primitive.index == ARRAY_STORAGE_INDEX[dtype]:
            return descriptor_ntype(element)
    return NtypeResult(UNIVERSAL, False)


def complex_part_ntype(ntype: Ntype) -> NtypeResult:
    primitive = primitive_ntype(ntype)
    if primitive is find_primitive_ntype(("complex", "single-float")):
        return NtypeResult(find_primitive_ntype("single-float"), True)
    if primitive is find_primitive_ntype(("complex", "double-float")):
        return NtypeResult(find_primitive_ntype("double-float"), True)
    if ntype_subtypep(primitive, find_primitive_ntype("complex")).value:
        return NtypeResult(find_primitive_ntype("float"), False)
    return NtypeResult(UNIVERSAL, False)


def _canonical_storage(dtype: str) -> str:
    """Storage JAX actually allocates for `dtype` under the current config."""
    if dtype == "object":
        return dtype
    return jax.dtypes.canonicalize_dtype(jnp.dtype(dtype)).name


def upgraded_array_element_ntype(descriptor: object) -> NtypeResult:
    """Element class stored by a JAX array created for `descriptor` elements."""
    element, precise = descriptor_ntype(descriptor)
    storage = _canonical_storage(storage_dtype_for(element))
    return NtypeResult(descriptor_ntype(_STORAGE_ELEMENTS[storage]).ntype, precise)


def upgraded_complex_part_ntype(descriptor: object) -> NtypeResult:
    part, precise = descriptor_ntype(descriptor)
    container = complex_ntype_for_part(part)
    if container is find_primitive_ntype("complex"):
        return NtypeResult(find_primitive_ntype("real"), precise)
    single = container is find_primitive_ntype(("complex", "single-float"))
    storage = _canonical_storage("complex64" if single else "complex128")
    stored = descriptor_ntype(_STORAGE_ELEMENTS[storage]).ntype
    return NtypeResult(complex_part_ntype(stored).ntype, precise)
