"""Timing and run-context helpers for the specializer benchmarks."""

from __future__ import annotations

from dataclasses import dataclass
import os
import platform
import statistics
import time
from typing import Any

import jax


AFFINITY_ENV = "TYPO_JAX_BENCH_CPU_AFFINITY"
RUNTIME_ENV = ("OMP_NUM_THREADS", "JAX_NUM_THREADS", "JAX_ENABLE_X64", "XLA_FLAGS")


@dataclass(frozen=True)
class Timing:
    """Summary of per-call milliseconds across samples."""

    mean_ms: float
    stdev_ms: float
    median_ms: float
    p95_ms: float
    best_ms: float

    @classmethod
    def of(cls, ms: list[float]) -> "Timing":
        if len(ms) == 1:
            only = ms[0]
            return cls(only, 0.0, only, only, only)
        # Inclusive quantiles interpolate between the observed samples.
        cuts = statistics.quantiles(ms, n=20, method="inclusive")
        return cls(
            mean_ms=statistics.fmean(ms),
            stdev_ms=statistics.stdev(ms),
            median_ms=statistics.median(ms),
            p95_ms=cuts[-1],
            best_ms=min(ms),
        )


def cpu_set(text: str) -> set[int]:
    """CPUs named by ``"0,2,4-7"``."""
    cpus: set[int] = set()
    for chunk in filter(None, (part.strip() for part in text.split(","))):
        first, _, last = chunk.partition("-")
        lo, hi = sorted((int(first), int(last or first)))
        cpus.update(range(lo, hi + 1))
    return cpus


def pin_cpus() -> dict[str, Any]:
    """Apply the affinity requested in the environment, where the platform allows it."""
    requested = os.environ.get(AFFINITY_ENV, "").strip()
    cpus = cpu_set(requested) if requested else set()
    applied = False
    if cpus and hasattr(os, "sched_setaffinity"):
        try:
            os.sched_setaffinity(0, cpus)
            applied = True
        except OSError:
            pass
    active = sorted(os.sched_getaffinity(0)) if applied else None
    return {"requested": requested or None, "applied": applied, "active": active}


def run_context() -> dict[str, Any]:
    return {
        "platform": platform.platform(),
        "python": platform.python_version(),
        "jax": jax.__version__,
        "backend": jax.default_backend(),
        "devices": [str(device) for device in jax.devices()],
        "cpu_count": os.cpu_count(),
        "env": {name: os.environ[name] for name in RUNTIME_ENV if name in os.environ},
    }


def per_call_ms(fn, *, repeats: int, warmup: int, samples: int) -> list[float]:
    """Mean wall time of one call of `fn`, once per sample of `repeats` calls.

    Results are synchronized with ``jax.block_until_ready`` so asynchronous
    dispatch is included in the measurement.
    """
    for _ in range(max(0, warmup)):
        jax.block_until_ready(fn())
    out: list[float] = []
    for _ in range(samples):
        start = time.perf_counter_ns()
        for _ in range(repeats):
            jax.block_until_ready(fn())
        out.append((time.perf_counter_ns() - start) / repeats / 1e6)
    return out
