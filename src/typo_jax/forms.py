"""Expression-tree driver: specialization, chain-rule derivatives, evaluation, JAX lowering."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from fractions import Fraction
from functools import reduce
import logging

import jax
import jax.numpy as jnp

from .ast import Call, Const, Form, Var
from .descriptors import descriptor_ntype
from .errors import NoImplementationError
from .fndb import FunctionDatabase
from .ntype import UNIVERSAL, Ntype, constant_ntype
from .numeric import COERCIONS, GENERIC_OPS, default_function_database
from .reader import ParseError, read
from .specialize import Specialization, Strategy, _check_depth, specialize
from .tower import TIER_NAMES
from .values import ValuesNtype, nth_value_ntype, single_value_ntype

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Wrapper:
    form: Form
    values: ValuesNtype


class ExpressionStrategy:
    """Builds ``Form`` trees; the ntype of a wrapper is carried alongside its form."""

    def wrap_constant(self, value: object) -> Wrapper:
        return Wrapper(Const(value), single_value_ntype(constant_ntype(value)))

    def wrap_function(self, fn: object, args: tuple[Wrapper, ...], values: ValuesNtype) -> Wrapper:
        return Wrapper(Call(fn, tuple(arg.form for arg in args)), values)

    def wrapper_nth_value_ntype(self, wrapper: Wrapper, n: int) -> Ntype:
        return nth_value_ntype(n, wrapper.values)


def _datum_form(datum: object, source: str) -> Form:
    # Post-order over the nested tuples; finished forms collect on `built`.
    built: list[Form] = []
    pending: list[tuple[object, bool]] = [(datum, False)]
    while pending:
        item, ready = pending.pop()
        if ready:
            count = len(item) - 1
            args = tuple(built[len(built) - count :])
            del built[len(built) - count :]
            built.append(Call(item[0], args))
        elif isinstance(item, tuple):
            if not item or not isinstance(item[0], str):
                raise ParseError("Call form needs an operator symbol", 0, len(source), found=repr(item))
            pending.append((item, True))
            pending.extend((arg, False) for arg in reversed(item[1:]))
        elif isinstance(item, str):
            built.append(Var(item))
        else:
            built.append(Const(item))
    return built[0]


def read_form(source: str) -> Form:
    """Parse ``(sin (* 2 x))`` style text into a form."""
    return _datum_form(read(source), source)


def _as_form(form: Form | str) -> Form:
    return read_form(form) if isinstance(form, str) else form


def _calls_postorder(form: Form) -> list[tuple[Call, int]]:
    """Distinct call nodes of `form`, arguments before callers, with their nesting depth."""
    order: list[tuple[Call, int]] = []
    seen: set[int] = set()
    pending: list[tuple[Form, int, bool]] = [(form, 0, False)]
    while pending:
        node, depth, ready = pending.pop()
        if not isinstance(node, Call):
            continue
        if ready:
            order.append((node, depth))
            continue
        if id(node) in seen:
            continue
        seen.add(id(node))
        pending.append((node, depth, True))
        pending.extend((arg, depth + 1, False) for arg in reversed(node.args))
    return order


def depends_on(form: Form, var: str) -> bool:
    pending = [form]
    while pending:
        node = pending.pop()
        if isinstance(node, Var) and node.name == var:
            return True
        if isinstance(node, Call):
            pending.extend(node.args)
    return False


def _variable_ntypes(ntypes: Mapping[str, object] | None) -> dict[str, Ntype]:
    out: dict[str, Ntype] = {}
    for name, descriptor in (ntypes or {}).items():
        out[name] = descriptor if isinstance(descriptor, Ntype) else descriptor_ntype(descriptor).ntype
    return out


@dataclass
class _Driver:
    """One walk over one form. Wrappers are memoized per call node."""

    ntypes: dict[str, Ntype]
    fndb: FunctionDatabase
    strategy: Strategy
    wrappers: dict[int, Wrapper] = field(default_factory=dict)

    def wrapper(self, node: Form) -> Wrapper:
        if isinstance(node, Call):
            return self.wrappers[id(node)]
        if isinstance(node, Const):
            return self.strategy.wrap_constant(node.value)
        return Wrapper(node, single_value_ntype(self.ntypes.get(node.name, UNIVERSAL)))

    def walk(self, form: Form) -> list[tuple[Call, int]]:
        calls = _calls_postorder(form)
        for node, depth in calls:
            _check_depth(node.fn, depth)
        return calls

    def specialize(self, form: Form) -> Wrapper:
        for node, depth in self.walk(form):
            if id(node) not in self.wrappers:
                args = [self.wrapper(arg) for arg in node.args]
                self.wrappers[id(node)] = specialize(node.fn, args, self.strategy, fndb=self.fndb, _depth=depth)
        return self.wrapper(form)

    def derivative(self, form: Form, var: str) -> Wrapper:
        self.specialize(form)
        derivatives: dict[int, Wrapper] = {}

        def mentions(node: Form) -> bool:
            if isinstance(node, Var):
                return node.name == var
            return isinstance(node, Call) and id(node) in derivatives

        def derivative_of(node: Form) -> Wrapper:
            if isinstance(node, Call) and id(node) in derivatives:
                return derivatives[id(node)]
            return self.strategy.wrap_constant(1 if isinstance(node, Var) and node.name == var else 0)

        for node, depth in self.walk(form):
            dependent = [index for index, arg in enumerate(node.args) if mentions(arg)]
            if not dependent:
                continue
            logger.debug("Chain rule through %r in %r", node.fn, var)
            ctx = Specialization(fndb=self.fndb, strategy=self.strategy, depth=depth)
            args = [self.wrapper(arg) for arg in node.args]
            terms = [
                ctx.call("*", ctx.partial(node.fn, args, index), derivative_of(node.args[index]))
                for index in dependent
            ]
            derivatives[id(node)] = terms[0] if len(terms) == 1 else ctx.call("+", *terms)
        return derivative_of(form)


def _driver(ntypes, fndb, strategy) -> _Driver:
    return _Driver(
        ntypes=_variable_ntypes(ntypes),
        fndb=fndb if fndb is not None else default_function_database(),
        strategy=strategy if strategy is not None else ExpressionStrategy(),
    )


def specialize_form(
    form: Form | str,
    ntypes: Mapping[str, object] | None = None,
    *,
    fndb: FunctionDatabase | None = None,
    strategy: Strategy | None = None,
) -> Wrapper:
    """Specialize every call in `form` bottom-up, given descriptors for its variables."""
    return _driver(ntypes, fndb, strategy).specialize(_as_form(form))


def derivative_form(
    form: Form | str,
    var: str,
    ntypes: Mapping[str, object] | None = None,
    *,
    fndb: FunctionDatabase | None = None,
    strategy: Strategy | None = None,
) -> Wrapper:
    """Derivative of `form` in `var` by the chain rule.

    Each call contributes the sum, over arguments that depend on `var`, of
    the partial derivative times the argument's own derivative. Arguments
    that do not mention `var` contribute nothing.
    """
    return _driver(ntypes, fndb, strategy).derivative(_as_form(form), var)


def _fold_form(form: Form, leaf: Callable[[Form], object], combine: Callable[[Call, list], object]) -> object:
    """Bottom-up fold of `form`: `leaf` for constants and variables, `combine` for calls."""
    results: dict[int, object] = {}

    def value(node: Form) -> object:
        return results[id(node)] if isinstance(node, Call) else leaf(node)

    for node, _ in _calls_postorder(form):
        results[id(node)] = combine(node, [value(arg) for arg in node.args])
    return value(form)


def _bound(env: Mapping[str, object], node: Var) -> object:
    if node.name not in env:
        raise NameError(f"Unbound variable {node.name!r}")
    return env[node.name]


def evaluate_form(
    form: Form | str,
    env: Mapping[str, object] | None = None,
    *,
    fndb: FunctionDatabase | None = None,
) -> object:
    """Evaluate with the registered implementations; multi-valued calls yield their primary value."""
    fndb = fndb if fndb is not None else default_function_database()
    env = env or {}

    def leaf(node: Form) -> object:
        return node.value if isinstance(node, Const) else _bound(env, node)

    def combine(node: Call, args: list) -> object:
        record = fndb.check_arity(node.fn, len(args))
        if record.implementation is None:
            raise NoImplementationError(f"No implementation registered for {node.fn!r}")
        value = record.implementation(*args)
        if not record.values.single_valued and isinstance(value, tuple):
            return value[0]
        return value

    return _fold_form(_as_form(form), leaf, combine)


# ---------------------------------------------------------------------------
# JAX lowering

_JAX_OPS: dict[str, Callable] = {
    "add": jnp.add,
    "sub": jnp.subtract,
    "mul": jnp.multiply,
    "div": jnp.true_divide,
    "neg": jnp.negative,
    "abs": jnp.abs,
    "sqrt": jnp.sqrt,
    "exp": jnp.exp,
    "log": jnp.log,
    "sin": jnp.sin,
    "cos": jnp.cos,
    "tan": jnp.tan,
    "expt": jnp.power,
    "lt": jnp.less,
    "eq": jnp.equal,
}

_TIER_PREFIXES = frozenset(TIER_NAMES.values())
_COERCION_NAMES = frozenset(COERCIONS.values())


def _lower_generic(name: str, args: Sequence[object]):
    if name == "floor":
        if len(args) == 1:
            return jnp.floor(args[0])
        return jnp.floor_divide(*args)
    if name in _COERCION_NAMES:
        # Under the default 32-bit config float64 and complex128 requests narrow.
        return jnp.asarray(args[0], dtype=jax.dtypes.canonicalize_dtype(jnp.dtype(name)))
    op = GENERIC_OPS.get(name)
    if op is None:
        raise NoImplementationError(f"No JAX lowering for {name!r}")
    if name == "+":
        return reduce(jnp.add, args, 0)
    if name == "*":
        return reduce(jnp.multiply, args, 1)
    if name == "-" and len(args) == 1:
        return jnp.negative(args[0])
    if name == "/" and len(args) == 1:
        return jnp.true_divide(1, args[0])
    if name in ("-", "/"):
        return reduce(_JAX_OPS[op], args[1:], args[0])
    return _JAX_OPS[op](*args)


def _lower_call(name: str, args: Sequence[object]):
    prefix, dot, op = name.partition(".")
    if dot and prefix in _TIER_PREFIXES:
        fn = _JAX_OPS.get(op)
        if fn is None:
            raise NoImplementationError(f"No JAX lowering for {name!r}")
        return fn(*args)
    return _lower_generic(name, args)


def _lower_constant(value: object):
    if isinstance(value, Fraction):
        return float(value)
    return value


def lower_to_jax(form: Form | str, arg_names: Sequence[str]) -> Callable:
    """Python function computing `form` with ``jax.numpy``; traceable by ``jax.jit`` and ``jax.grad``."""
    form = _as_form(form)
    names = tuple(arg_names)

    def fn(*args):
        if len(args) != len(names):
            raise TypeError(f"Expected {len(names)} argument(s) ({', '.join(names)}), got {len(args)}")
        env = dict(zip(names, args))

        def leaf(node: Form):
            return _lower_constant(node.value) if isinstance(node, Const) else _bound(env, node)

        return _fold_form(form, leaf, lambda node, values: _lower_call(node.fn, values))

    return fn
