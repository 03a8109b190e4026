"""Differentiator engine: symbolic partial derivatives of registered operations."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from .errors import ArgumentIndexError, NotDifferentiableError
from .fndb import FunctionDatabase
from .specialize import Specialization, Strategy, _check_depth

logger = logging.getLogger(__name__)


def differentiate(
    fn: object,
    args: Sequence[object],
    index: int,
    strategy: Strategy,
    *,
    fndb: FunctionDatabase | None = None,
    _depth: int = 0,
) -> object:
    """Wrapper for the partial derivative of ``fn(*args)`` in argument `index`.

    The rule receives a ``Specialization`` context, so every call it builds is
    folded and specialized like any other. An operation without a rule is an
    error; there is no generic derivative to fall back to.
    """
    if fndb is None:
        from .numeric import default_function_database

        fndb = default_function_database()
    _check_depth(fn, _depth)
    args = tuple(args)
    record = fndb.check_arity(fn, len(args))
    if not 0 <= index < len(args):
        raise ArgumentIndexError(f"{fn!r} has no argument {index} (called with {len(args)})")
    if record.differentiator is None:
        raise NotDifferentiableError(fn)
    logger.debug("Differentiating %r in argument %d", fn, index)
    ctx = Specialization(fndb=fndb, strategy=strategy, depth=_depth)
    return record.differentiator(ctx, index, *args)
