"""Numeric tower: representation tiers, promotion, and per-tier coercion.

Tiers, narrowest first::

    integer < rational < short-float (float16) < single-float (float32)
            < double-float (float64) < (complex single-float) (complex64)
            < (complex double-float) (complex128)

Promotion of a binary arithmetic operation (``combine_tiers``):

=============  ========  ========  =======  =======  =======  =====  ======
a \\ b          integer   ratio     float16  float32  float64  c64    c128
=============  ========  ========  =======  =======  =======  =====  ======
integer        integer   rational  float16  float32  float64  c64    c128
ratio          rational  rational  float16  float32  float64  c64    c128
float16        float16   float16   float16  float32  float64  c64    c128
float32        float32   float32   float32  float32  float64  c64    c128
float64        float64   float64   float64  float64  float64  c128   c128
c64            c64       c64       c64      c64      c128     c64    c128
c128           c128      c128      c128     c128     c128     c128   c128
=============  ========  ========  =======  =======  =======  =====  ======

Mixed exactness is a lossy promotion to the float tier; a real mixed with a
complex promotes to the complex tier whose part precision is the wider of
the two. Irrational functions of exact arguments use double-float, the
default float format.
"""

from __future__ import annotations

from enum import IntEnum
from fractions import Fraction

import jax.numpy as jnp
import numpy as np


class Tier(IntEnum):
    INTEGER = 0
    RATIONAL = 1
    FLOAT16 = 2
    FLOAT32 = 3
    FLOAT64 = 4
    COMPLEX64 = 5
    COMPLEX128 = 6


TIER_NAMES: dict[Tier, str] = {
    Tier.INTEGER: "integer",
    Tier.RATIONAL: "rational",
    Tier.FLOAT16: "float16",
    Tier.FLOAT32: "float32",
    Tier.FLOAT64: "float64",
    Tier.COMPLEX64: "complex64",
    Tier.COMPLEX128: "complex128",
}

TIER_DESCRIPTORS: dict[Tier, object] = {
    Tier.INTEGER: "integer",
    Tier.RATIONAL: "rational",
    Tier.FLOAT16: "short-float",
    Tier.FLOAT32: "single-float",
    Tier.FLOAT64: "double-float",
    Tier.COMPLEX64: ("complex", "single-float"),
    Tier.COMPLEX128: ("complex", "double-float"),
}

DEFAULT_FLOAT_TIER = Tier.FLOAT64

_COMPLEX_PART: dict[Tier, Tier] = {
    Tier.COMPLEX64: Tier.FLOAT32,
    Tier.COMPLEX128: Tier.FLOAT64,
}

_NARROW_SCALARS = {
    Tier.FLOAT16: np.float16,
    Tier.FLOAT32: np.float32,
    Tier.COMPLEX64: np.complex64,
}

_DTYPE_TIERS: dict[str, Tier] = {
    "float16": Tier.FLOAT16,
    "float32": Tier.FLOAT32,
    "float64": Tier.FLOAT64,
    "complex64": Tier.COMPLEX64,
    "complex128": Tier.COMPLEX128,
}


def is_exact(tier: Tier) -> bool:
    return tier <= Tier.RATIONAL


def is_complex(tier: Tier) -> bool:
    return tier >= Tier.COMPLEX64


def complex_part_tier(tier: Tier) -> Tier:
    return _COMPLEX_PART.get(tier, tier)


def complex_tier_for(part: Tier) -> Tier:
    if part == Tier.FLOAT64:
        return Tier.COMPLEX128
    return Tier.COMPLEX64


def float_tier_for(tier: Tier) -> Tier:
    """Tier an irrational function of a `tier` argument computes in."""
    if is_exact(tier):
        return DEFAULT_FLOAT_TIER
    return tier


def combine_tiers(a: Tier, b: Tier) -> Tier:
    if is_complex(a) or is_complex(b):
        # Exact parts place no demand on precision.
        part = max(
            Tier.FLOAT16 if is_exact(a) else complex_part_tier(a),
            Tier.FLOAT16 if is_exact(b) else complex_part_tier(b),
        )
        return complex_tier_for(part)
    if is_exact(a) and is_exact(b):
        if a == Tier.INTEGER and b == Tier.INTEGER:
            return Tier.INTEGER
        return Tier.RATIONAL
    return max(a, b)


def scalar_dtype(value: object):
    """Dtype of a 0-d array or array scalar, else None."""
    dtype = getattr(value, "dtype", None)
    if dtype is None or getattr(value, "ndim", None) != 0:
        return None
    return jnp.dtype(dtype)


def value_tier(value: object) -> Tier | None:
    """Tier of a scalar number, or None for anything outside the tower."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Tier.INTEGER
    if isinstance(value, Fraction):
        return Tier.INTEGER if value.denominator == 1 else Tier.RATIONAL
    if isinstance(value, float):
        return Tier.FLOAT64
    if isinstance(value, complex):
        return Tier.COMPLEX128
    dtype = scalar_dtype(value)
    if dtype is None:
        return None
    if jnp.issubdtype(dtype, jnp.bool_):
        return None
    if jnp.issubdtype(dtype, jnp.integer):
        return Tier.INTEGER
    return _DTYPE_TIERS.get(dtype.name)


def normalize_rational(value):
    if isinstance(value, Fraction) and value.denominator == 1:
        return int(value.numerator)
    return value


def _plain_scalar(value):
    if isinstance(value, Fraction):
        return float(value)
    return value


def to_tier(value, tier: Tier):
    """Coerce a number upward into the representation of `tier`."""
    if tier == Tier.INTEGER:
        if isinstance(value, (int, Fraction)):
            return int(value)
        return int(value.item()) if hasattr(value, "item") else int(value)
    if tier == Tier.RATIONAL:
        if isinstance(value, (int, Fraction)):
            return normalize_rational(Fraction(value))
        return int(value.item()) if hasattr(value, "item") else int(value)
    if tier == Tier.FLOAT64:
        return float(_plain_scalar(value))
    if tier == Tier.COMPLEX128:
        return complex(_plain_scalar(value))
    return _NARROW_SCALARS[tier](_plain_scalar(value))


def host_scalar(value):
    """Hashable host scalar for a 0-d JAX result, so constants stay internable."""
    if isinstance(value, (int, Fraction, float, complex, np.generic)):
        return value
    return np.asarray(value)[()]
