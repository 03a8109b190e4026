"""Specializer engine: pick the narrowest implementation of a generic call."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from fractions import Fraction
import logging
import os
from typing import Final, Protocol

from .errors import SpecializationDepthError
from .fndb import FunctionDatabase
from .ntype import Ntype, eql_ntype_p, ntype_subtypep
from .subtypecase import aborted
from .values import ValuesNtype

logger = logging.getLogger(__name__)

_MAX_SPECIALIZATION_DEPTH: Final[int] = max(1, int(os.environ.get("TYPO_JAX_MAX_SPECIALIZATION_DEPTH", "256")))
_USE_CONSTANT_FOLDING: Final[bool] = os.environ.get("TYPO_JAX_DISABLE_CONSTANT_FOLDING", "0") != "1"

# Errors a foldable implementation may raise on legal-looking constants,
# e.g. division by zero. Folding is skipped and the call is emitted instead.
_FOLD_ERRORS: Final = (ArithmeticError, ValueError, TypeError)


class Strategy(Protocol):
    """How the caller represents generated code.

    The engines never look inside a wrapper except through
    ``wrapper_nth_value_ntype``.
    """

    def wrap_constant(self, value: object) -> object: ...

    def wrap_function(self, fn: object, args: tuple[object, ...], values: ValuesNtype) -> object: ...

    def wrapper_nth_value_ntype(self, wrapper: object, n: int) -> Ntype: ...


@dataclass(frozen=True)
class Specialization:
    """Context handed to specializer rules."""

    fndb: FunctionDatabase
    strategy: Strategy
    depth: int = 0

    def ntype(self, wrapper: object, n: int = 0) -> Ntype:
        return self.strategy.wrapper_nth_value_ntype(wrapper, n)

    def is_constant(self, wrapper: object) -> bool:
        return eql_ntype_p(self.ntype(wrapper))

    def constant_value(self, wrapper: object) -> object:
        ntype = self.ntype(wrapper)
        if not eql_ntype_p(ntype):
            raise ValueError(f"Wrapper {wrapper!r} is not a constant")
        return ntype.value

    def is_exact_constant(self, wrapper: object, value: object) -> bool:
        """Whether `wrapper` is the exact (integer or ratio) literal `value`."""
        if not self.is_constant(wrapper):
            return False
        literal = self.constant_value(wrapper)
        return isinstance(literal, (int, Fraction)) and not isinstance(literal, bool) and literal == value

    def constant(self, value: object) -> object:
        return self.strategy.wrap_constant(value)

    def call(self, fn: object, *args: object) -> object:
        """Specialize a nested call, so it is folded and narrowed too."""
        return specialize(fn, args, self.strategy, fndb=self.fndb, _depth=self.depth + 1)

    def wrap(self, fn: object, *args: object, values: ValuesNtype | None = None) -> object:
        """Emit a call to `fn` as is, with its declared (or the given) result type."""
        record = self.fndb.check_arity(fn, len(args))
        return self.strategy.wrap_function(fn, tuple(args), values if values is not None else record.values)

    def coerce(self, wrapper: object, target: Ntype, via: object) -> object:
        """`wrapper` unchanged when already of `target`, else the call ``(via wrapper)``."""
        if ntype_subtypep(self.ntype(wrapper), target).value:
            return wrapper
        return self.call(via, wrapper)

    def partial(self, fn: object, args: Sequence[object], index: int) -> object:
        from .differentiate import differentiate

        return differentiate(fn, args, index, self.strategy, fndb=self.fndb, _depth=self.depth + 1)


def _check_depth(fn: object, depth: int) -> None:
    if depth > _MAX_SPECIALIZATION_DEPTH:
        raise SpecializationDepthError(
            f"Specialization of {fn!r} exceeded depth {_MAX_SPECIALIZATION_DEPTH}; "
            "raise TYPO_JAX_MAX_SPECIALIZATION_DEPTH for deeper expressions"
        )


def _try_fold(record, args: tuple[object, ...], ctx: Specialization) -> tuple[bool, object]:
    if not (_USE_CONSTANT_FOLDING and record.foldable and record.implementation is not None):
        return False, None
    if not record.values.single_valued:
        return False, None
    if not all(ctx.is_constant(arg) for arg in args):
        return False, None
    literals = [ctx.constant_value(arg) for arg in args]
    try:
        value = record.implementation(*literals)
    except _FOLD_ERRORS as err:
        logger.debug("Not folding %r%r: %s", record.name, tuple(literals), err)
        return False, None
    logger.debug("Folded %r%r to %r", record.name, tuple(literals), value)
    return True, ctx.constant(value)


def specialize(
    fn: object,
    args: Sequence[object],
    strategy: Strategy,
    *,
    fndb: FunctionDatabase | None = None,
    _depth: int = 0,
) -> object:
    """Wrapper for ``fn(*args)`` using the narrowest implementation the argument types allow.

    Constant arguments to a foldable operation are evaluated on the spot.
    Otherwise the operation's specializer rule chooses a low-level call; when
    there is no rule or the rule aborts, the generic call is emitted with the
    record's declared values-ntype.
    """
    if fndb is None:
        from .numeric import default_function_database

        fndb = default_function_database()
    _check_depth(fn, _depth)
    args = tuple(args)
    record = fndb.check_arity(fn, len(args))
    ctx = Specialization(fndb=fndb, strategy=strategy, depth=_depth)

    folded, wrapper = _try_fold(record, args, ctx)
    if folded:
        return wrapper

    if record.specializer is not None:
        result = record.specializer(ctx, *args)
        if not aborted(result):
            return result
        logger.debug("Specializer for %r aborted; emitting generic call", fn)
    return strategy.wrap_function(fn, args, record.values)
