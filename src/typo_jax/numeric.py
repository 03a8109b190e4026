"""Standard numeric library: generic arithmetic, per-tier primitives, and their rules.

Generic operations (``+``, ``sin``, ``expt``, ...) follow the tower's
contagion rules on whatever numbers they receive. Each representation tier
also has low-level operations named ``"<tier>.<op>"`` (``"float32.sin"``,
``"rational.div"``) that only accept operands already in that tier. The
specializer rules pick the low-level operation from the argument ntypes and
insert coercions; the differentiator rules build derivatives from generic
calls so the derivative is specialized in turn.
"""

from __future__ import annotations

import cmath
from fractions import Fraction
from functools import lru_cache, partial, reduce
import logging
import math
import operator

import jax.numpy as jnp

from .descriptors import descriptor_ntype
from .fndb import FOLDABLE, MOVABLE, FunctionDatabase
from .ntype import Ntype, ntype_contagion, ntype_subtypep
from .specialize import Specialization
from .subtypecase import ABORT, Branch, abort_specialization, aborted, ntype_subtypecase
from .tower import (
    TIER_DESCRIPTORS,
    TIER_NAMES,
    Tier,
    combine_tiers,
    complex_part_tier,
    complex_tier_for,
    float_tier_for,
    host_scalar,
    is_complex,
    is_exact,
    normalize_rational,
    to_tier,
    value_tier,
)

logger = logging.getLogger(__name__)

_PURE = (FOLDABLE, MOVABLE)

_TIER_NTYPES: dict[Tier, Ntype] = {tier: descriptor_ntype(d).ntype for tier, d in TIER_DESCRIPTORS.items()}

COERCIONS: dict[Tier, str] = {
    Tier.FLOAT16: "float16",
    Tier.FLOAT32: "float32",
    Tier.FLOAT64: "float64",
    Tier.COMPLEX64: "complex64",
    Tier.COMPLEX128: "complex128",
}

UNARY_OPS = ("neg", "abs", "sqrt", "exp", "log", "sin", "cos", "tan")
BINARY_OPS = ("add", "sub", "mul", "div", "expt", "lt", "eq")

GENERIC_OPS: dict[str, str] = {
    "+": "add",
    "-": "sub",
    "*": "mul",
    "/": "div",
    "abs": "abs",
    "sqrt": "sqrt",
    "exp": "exp",
    "log": "log",
    "sin": "sin",
    "cos": "cos",
    "tan": "tan",
    "expt": "expt",
    "<": "lt",
    "=": "eq",
}


def low_level_name(tier: Tier, op: str) -> str:
    return f"{TIER_NAMES[tier]}.{op}"


# ---------------------------------------------------------------------------
# Per-tier implementations


def _exact(fn):
    def apply(*args):
        return normalize_rational(fn(*args))

    return apply


def _integer_expt(x, y):
    if y < 0:
        raise ValueError("integer.expt needs a non-negative exponent")
    return x**y


def _rational_expt(x, y):
    return normalize_rational(Fraction(x) ** int(y))


def _rational_div(x, y):
    return normalize_rational(Fraction(x) / Fraction(y))


def _compare(fn):
    def apply(a, b):
        return bool(fn(a, b))

    return apply


def _real_sqrt(x):
    return cmath.sqrt(x) if x < 0 else math.sqrt(x)


def _real_log(x):
    return cmath.log(x) if x < 0 else math.log(x)


def _narrow(fn):
    def apply(*args):
        return host_scalar(fn(*args))

    return apply


def _narrow_branch_cut(fn):
    # Negative reals leave the real line; jnp would answer NaN instead.
    def apply(x):
        if x < 0:
            return host_scalar(fn(jnp.asarray(x, dtype=jnp.complex64)))
        return host_scalar(fn(x))

    return apply


def _narrow_real_expt(x, y):
    if x < 0 and not float(y).is_integer():
        return host_scalar(jnp.power(jnp.asarray(x, dtype=jnp.complex64), jnp.asarray(y, dtype=jnp.complex64)))
    return host_scalar(jnp.power(x, y))


_EXACT_IMPLEMENTATIONS = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "neg": operator.neg,
    "abs": abs,
    "lt": _compare(operator.lt),
    "eq": _compare(operator.eq),
}

_FLOAT64_IMPLEMENTATIONS = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "div": operator.truediv,
    "neg": operator.neg,
    "abs": abs,
    "sqrt": _real_sqrt,
    "exp": math.exp,
    "log": _real_log,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "expt": operator.pow,
    "lt": _compare(operator.lt),
    "eq": _compare(operator.eq),
}

_COMPLEX128_IMPLEMENTATIONS = {
    "add": operator.add,
    "sub": operator.sub,
    "mul": operator.mul,
    "div": operator.truediv,
    "neg": operator.neg,
    "abs": abs,
    "sqrt": cmath.sqrt,
    "exp": cmath.exp,
    "log": cmath.log,
    "sin": cmath.sin,
    "cos": cmath.cos,
    "tan": cmath.tan,
    "expt": operator.pow,
    "eq": _compare(operator.eq),
}

_NARROW_IMPLEMENTATIONS = {
    "add": _narrow(jnp.add),
    "sub": _narrow(jnp.subtract),
    "mul": _narrow(jnp.multiply),
    "div": _narrow(jnp.true_divide),
    "neg": _narrow(jnp.negative),
    "abs": _narrow(jnp.abs),
    "sqrt": _narrow_branch_cut(jnp.sqrt),
    "exp": _narrow(jnp.exp),
    "log": _narrow_branch_cut(jnp.log),
    "sin": _narrow(jnp.sin),
    "cos": _narrow(jnp.cos),
    "tan": _narrow(jnp.tan),
    "expt": _narrow_real_expt,
    "lt": _compare(operator.lt),
    "eq": _compare(operator.eq),
}

_NARROW_COMPLEX_IMPLEMENTATIONS = {
    **{op: fn for op, fn in _NARROW_IMPLEMENTATIONS.items() if op != "lt"},
    "sqrt": _narrow(jnp.sqrt),
    "log": _narrow(jnp.log),
    "expt": _narrow(jnp.power),
}

LOW_LEVEL_IMPLEMENTATIONS: dict[Tier, dict[str, object]] = {
    Tier.INTEGER: {
        **{op: _EXACT_IMPLEMENTATIONS[op] for op in ("add", "sub", "mul", "neg", "abs", "lt", "eq")},
        "expt": _integer_expt,
    },
    Tier.RATIONAL: {
        **{op: _exact(fn) for op, fn in _EXACT_IMPLEMENTATIONS.items() if op not in ("lt", "eq")},
        "div": _rational_div,
        "expt": _rational_expt,
        "lt": _EXACT_IMPLEMENTATIONS["lt"],
        "eq": _EXACT_IMPLEMENTATIONS["eq"],
    },
    Tier.FLOAT16: _NARROW_IMPLEMENTATIONS,
    Tier.FLOAT32: _NARROW_IMPLEMENTATIONS,
    Tier.FLOAT64: _FLOAT64_IMPLEMENTATIONS,
    Tier.COMPLEX64: _NARROW_COMPLEX_IMPLEMENTATIONS,
    Tier.COMPLEX128: _COMPLEX128_IMPLEMENTATIONS,
}


def _low_level_values(tier: Tier, op: str) -> object:
    own = TIER_DESCRIPTORS[tier]
    if op in ("lt", "eq"):
        return "boolean"
    if op == "abs":
        return TIER_DESCRIPTORS[complex_part_tier(tier)]
    if op in ("sqrt", "log", "expt") and not is_exact(tier) and not is_complex(tier):
        return ("or", own, TIER_DESCRIPTORS[complex_tier_for(tier)])
    return own


# ---------------------------------------------------------------------------
# Generic implementations


def _tier(value) -> Tier:
    tier = value_tier(value)
    if tier is None:
        raise TypeError(f"Not a number: {value!r}")
    return tier


def _apply_binary(op: str, a, b):
    tier = combine_tiers(_tier(a), _tier(b))
    if op == "div" and tier == Tier.INTEGER:
        tier = Tier.RATIONAL
    impl = LOW_LEVEL_IMPLEMENTATIONS[tier].get(op)
    if impl is None:
        raise TypeError(f"{op} is not defined on {TIER_NAMES[tier]} operands")
    return impl(to_tier(a, tier), to_tier(b, tier))


def _apply_unary(op: str, x):
    tier = _tier(x)
    if op not in ("abs", "neg"):
        tier = float_tier_for(tier)
    return LOW_LEVEL_IMPLEMENTATIONS[tier][op](to_tier(x, tier))


def _generic_add(*args):
    return reduce(partial(_apply_binary, "add"), args, 0)


def _generic_mul(*args):
    return reduce(partial(_apply_binary, "mul"), args, 1)


def _generic_sub(first, *rest):
    if not rest:
        return _apply_unary("neg", first)
    return reduce(partial(_apply_binary, "sub"), rest, first)


def _generic_div(first, *rest):
    if not rest:
        return _apply_binary("div", 1, first)
    return reduce(partial(_apply_binary, "div"), rest, first)


def _generic_expt(x, y):
    tx, ty = _tier(x), _tier(y)
    if is_exact(tx) and ty == Tier.INTEGER:
        y = to_tier(y, Tier.INTEGER)
        if tx == Tier.INTEGER and y >= 0:
            return _integer_expt(to_tier(x, Tier.INTEGER), y)
        return _rational_expt(x, y)
    tier = combine_tiers(tx, ty)
    if is_exact(tier):
        tier = Tier.FLOAT64
    return LOW_LEVEL_IMPLEMENTATIONS[tier]["expt"](to_tier(x, tier), to_tier(y, tier))


def _generic_floor(x, y=1):
    tier = combine_tiers(_tier(x), _tier(y))
    if is_complex(tier):
        raise TypeError("floor is only defined on real numbers")
    if is_exact(tier):
        quotient = math.floor(Fraction(x) / Fraction(y))
        return quotient, normalize_rational(Fraction(x) - quotient * Fraction(y))
    fx, fy = float(x), float(y)
    quotient = math.floor(fx / fy)
    return quotient, to_tier(fx - quotient * fy, tier)


def _coercion(tier: Tier):
    def coerce(x):
        source = _tier(x)
        if is_complex(source) and not is_complex(tier):
            raise TypeError(f"Cannot coerce complex {x!r} to {TIER_NAMES[tier]}")
        return to_tier(x, tier)

    coerce.__name__ = COERCIONS[tier]
    return coerce


# ---------------------------------------------------------------------------
# Specializer rules


def _proven(ctx: Specialization, wrapper, descriptor) -> bool:
    return ntype_subtypep(ctx.ntype(wrapper), descriptor_ntype(descriptor).ntype).value


def _rejects_non_numbers(ctx: Specialization, *args) -> bool:
    """Whether some argument is not proven to be a number."""
    guard = [Branch.of(("not", "number"), abort_specialization)]
    return any(aborted(ntype_subtypecase(ctx.ntype(arg), guard, fallback=lambda: None)) for arg in args)


def _coerce_to_tier(ctx: Specialization, wrapper, tier: Tier):
    via = COERCIONS.get(tier)
    if via is None:
        return wrapper
    return ctx.coerce(wrapper, _TIER_NTYPES[tier], via)


def _tier_dispatch(ntype: Ntype, emit):
    # Integer precedes rational, so the narrowest tier always wins.
    return ntype_subtypecase(ntype, [Branch(_TIER_NTYPES[tier], partial(emit, tier)) for tier in Tier])


def _emit_binary(ctx: Specialization, op: str, a, b, *, inexact_tier: bool = False):
    result, _ = ntype_contagion(ctx.ntype(a), ctx.ntype(b))

    def emit(tier: Tier):
        if op == "div" and tier == Tier.INTEGER:
            tier = Tier.RATIONAL
        if inexact_tier and is_exact(tier):
            tier = Tier.FLOAT64
        name = low_level_name(tier, op)
        if name not in ctx.fndb:
            return ABORT
        return ctx.call(name, _coerce_to_tier(ctx, a, tier), _coerce_to_tier(ctx, b, tier))

    return _tier_dispatch(result, emit)


def _emit_unary(ctx: Specialization, op: str, x):
    def emit(tier: Tier):
        if op not in ("abs", "neg"):
            tier = float_tier_for(tier)
        return ctx.call(low_level_name(tier, op), _coerce_to_tier(ctx, x, tier))

    return _tier_dispatch(ctx.ntype(x), emit)


def _simplify(ctx: Specialization, name: str, a, b):
    if name == "+":
        if ctx.is_exact_constant(b, 0):
            return a
        if ctx.is_exact_constant(a, 0):
            return b
    elif name == "-":
        if ctx.is_exact_constant(b, 0):
            return a
    elif name == "*":
        if ctx.is_exact_constant(b, 1):
            return a
        if ctx.is_exact_constant(a, 1):
            return b
        # 0 * 0.5 is 0.0, so only exact operands annihilate.
        if ctx.is_exact_constant(b, 0) and _proven(ctx, a, "rational"):
            return b
        if ctx.is_exact_constant(a, 0) and _proven(ctx, b, "rational"):
            return a
    elif name == "/":
        if ctx.is_exact_constant(b, 1):
            return a
    return None


_IDENTITIES = {"+": 0, "*": 1}


def _single_argument(ctx: Specialization, name: str, x):
    if name == "-":
        return _emit_unary(ctx, "neg", x)
    if name == "/":
        return ctx.call("/", ctx.constant(1), x)
    return x


def _arithmetic_rule(name: str):
    op = GENERIC_OPS[name]

    def rule(ctx: Specialization, *args):
        if not args:
            return ctx.constant(_IDENTITIES[name])
        if len(args) > 2:
            result = args[0]
            for arg in args[1:]:
                result = ctx.call(name, result, arg)
            return result
        if _rejects_non_numbers(ctx, *args):
            return ABORT
        if len(args) == 1:
            return _single_argument(ctx, name, args[0])
        a, b = args
        simplified = _simplify(ctx, name, a, b)
        if simplified is not None:
            return simplified
        return _emit_binary(ctx, op, a, b)

    rule.__name__ = f"specialize_{op}"
    return rule


def _comparison_rule(name: str):
    op = GENERIC_OPS[name]

    def rule(ctx: Specialization, a, b):
        if _rejects_non_numbers(ctx, a, b):
            return ABORT
        return _emit_binary(ctx, op, a, b)

    return rule


def _unary_rule(name: str):
    op = GENERIC_OPS[name]

    def rule(ctx: Specialization, x):
        if _rejects_non_numbers(ctx, x):
            return ABORT
        return _emit_unary(ctx, op, x)

    rule.__name__ = f"specialize_{op}"
    return rule


def _specialize_expt(ctx: Specialization, x, y):
    if _rejects_non_numbers(ctx, x, y):
        return ABORT
    if ctx.is_exact_constant(y, 2):
        return ctx.call("*", x, x)
    if ctx.is_exact_constant(y, 1):
        return x
    if _proven(ctx, y, "integer") and _proven(ctx, x, "rational"):
        if _proven(ctx, x, "integer") and _proven(ctx, y, ("unsigned-byte", 64)):
            return ctx.call("integer.expt", x, y)
        return ctx.call("rational.expt", x, y)
    return _emit_binary(ctx, "expt", x, y, inexact_tier=True)


def _coercion_rule(tier: Tier):
    target = _TIER_NTYPES[tier]

    def rule(ctx: Specialization, x):
        if ntype_subtypep(ctx.ntype(x), target).value:
            return x
        return ABORT

    return rule


# ---------------------------------------------------------------------------
# Differentiation rules: rule(ctx, index, *args) -> partial derivative


def _d_add(ctx: Specialization, index: int, *args):
    return ctx.constant(1)


def _d_sub(ctx: Specialization, index: int, *args):
    if len(args) == 1 or index > 0:
        return ctx.constant(-1)
    return ctx.constant(1)


def _d_mul(ctx: Specialization, index: int, *args):
    others = args[:index] + args[index + 1 :]
    if not others:
        return ctx.constant(1)
    return ctx.call("*", *others)


def _d_div(ctx: Specialization, index: int, *args):
    if len(args) == 1:
        (x,) = args
        return ctx.call("/", ctx.constant(-1), ctx.call("*", x, x))
    if index == 0:
        return ctx.call("/", ctx.constant(1), *args[1:])
    return ctx.call("-", ctx.call("/", ctx.call("/", *args), args[index]))


def _d_neg(ctx: Specialization, index: int, x):
    return ctx.constant(-1)


def _d_abs(ctx: Specialization, index: int, x):
    return ctx.call("/", x, ctx.call("abs", x))


def _d_sqrt(ctx: Specialization, index: int, x):
    return ctx.call("/", ctx.constant(1), ctx.call("*", ctx.constant(2), ctx.call("sqrt", x)))


def _d_exp(ctx: Specialization, index: int, x):
    return ctx.call("exp", x)


def _d_log(ctx: Specialization, index: int, x):
    return ctx.call("/", ctx.constant(1), x)


def _d_sin(ctx: Specialization, index: int, x):
    return ctx.call("cos", x)


def _d_cos(ctx: Specialization, index: int, x):
    return ctx.call("-", ctx.call("sin", x))


def _d_tan(ctx: Specialization, index: int, x):
    tangent = ctx.call("tan", x)
    return ctx.call("+", ctx.constant(1), ctx.call("*", tangent, tangent))


def _d_expt(ctx: Specialization, index: int, x, y):
    if index == 0:
        return ctx.call("*", y, ctx.call("expt", x, ctx.call("-", y, ctx.constant(1))))
    return ctx.call("*", ctx.call("log", x), ctx.call("expt", x, y))


def _d_coercion(ctx: Specialization, index: int, x):
    return ctx.constant(1)


DIFFERENTIATORS = {
    "add": _d_add,
    "sub": _d_sub,
    "mul": _d_mul,
    "div": _d_div,
    "neg": _d_neg,
    "abs": _d_abs,
    "sqrt": _d_sqrt,
    "exp": _d_exp,
    "log": _d_log,
    "sin": _d_sin,
    "cos": _d_cos,
    "tan": _d_tan,
    "expt": _d_expt,
}


# ---------------------------------------------------------------------------
# Registration


def install_numeric_library(fndb: FunctionDatabase) -> FunctionDatabase:
    """Register the generic numeric operations, coercions and per-tier primitives."""
    for name, implementation, min_arguments in (
        ("+", _generic_add, 0),
        ("*", _generic_mul, 0),
        ("-", _generic_sub, 1),
        ("/", _generic_div, 1),
    ):
        fndb.register(
            name,
            min_arguments=min_arguments,
            properties=_PURE,
            values="number",
            implementation=implementation,
            specializer=_arithmetic_rule(name),
            differentiator=DIFFERENTIATORS[GENERIC_OPS[name]],
        )

    for name in ("sqrt", "exp", "log", "sin", "cos", "tan", "abs"):
        op = GENERIC_OPS[name]
        fndb.register(
            name,
            min_arguments=1,
            max_arguments=1,
            properties=_PURE,
            values="real" if name == "abs" else "number",
            implementation=partial(_apply_unary, op),
            specializer=_unary_rule(name),
            differentiator=DIFFERENTIATORS[op],
        )

    fndb.register(
        "expt",
        min_arguments=2,
        max_arguments=2,
        properties=_PURE,
        values="number",
        implementation=_generic_expt,
        specializer=_specialize_expt,
        differentiator=_d_expt,
    )
    fndb.register(
        "floor",
        min_arguments=1,
        max_arguments=2,
        properties=_PURE,
        values=("values", "integer", "real"),
        implementation=_generic_floor,
    )
    for name in ("<", "="):
        fndb.register(
            name,
            min_arguments=2,
            max_arguments=2,
            properties=_PURE,
            values="boolean",
            implementation=partial(_apply_binary, GENERIC_OPS[name]),
            specializer=_comparison_rule(name),
        )

    for tier, name in COERCIONS.items():
        fndb.register(
            name,
            min_arguments=1,
            max_arguments=1,
            properties=_PURE,
            values=TIER_DESCRIPTORS[tier],
            implementation=_coercion(tier),
            specializer=_coercion_rule(tier),
            differentiator=_d_coercion,
        )

    for tier, implementations in LOW_LEVEL_IMPLEMENTATIONS.items():
        for op, implementation in implementations.items():
            arity = 1 if op in UNARY_OPS else 2
            fndb.register(
                low_level_name(tier, op),
                min_arguments=arity,
                max_arguments=arity,
                properties=_PURE,
                values=_low_level_values(tier, op),
                implementation=implementation,
                differentiator=DIFFERENTIATORS.get(op),
            )
    logger.debug("Installed numeric library: %d operations", len(fndb))
    return fndb


@lru_cache(maxsize=1)
def default_function_database() -> FunctionDatabase:
    """Shared, frozen database holding the standard numeric library."""
    return install_numeric_library(FunctionDatabase()).freeze()
