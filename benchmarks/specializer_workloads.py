"""Benchmark slice: descriptor parsing, specialization, differentiation and lowered evaluation."""

from __future__ import annotations

import argparse
import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path

import jax
import jax.numpy as jnp

from typo_jax import derivative_form, descriptor_cache_stats, descriptor_ntype, lower_to_jax, specialize_form
from timing import Timing, per_call_ms, pin_cpus, run_context


PROFILE_PRESETS: dict[str, dict[str, int]] = {
    "quick": {"samples": 3, "warmup": 1, "repeats": 50},
    "full": {"samples": 7, "warmup": 3, "repeats": 400},
}

DESCRIPTORS = (
    "double-float",
    ("integer", 0, 255),
    ("or", "single-float", ("complex", "single-float")),
    ("and", "real", ("not", "ratio")),
    ("array", "double-float", (3, 3)),
    ("member", 1, 2.5, "x"),
)

MODEL = "(+ (* (sin x) (exp x)) (/ 1 (+ x 2)) (expt x 3))"


@dataclass(frozen=True)
class WorkloadRow:
    workload: str
    repeats: int
    samples: int
    timing: Timing
    note: str


def _parse_all_cold() -> None:
    descriptor_cache_stats(reset=True)
    for descriptor in DESCRIPTORS:
        descriptor_ntype(descriptor)


def _parse_all_warm() -> None:
    for descriptor in DESCRIPTORS:
        descriptor_ntype(descriptor)


def run_benchmarks(*, profile: str, repeats: int, warmup: int, samples: int) -> list[WorkloadRow]:
    print("Benchmark: ntype specialization and differentiation")
    print(f"profile={profile} samples={samples} warmup={warmup} repeats={repeats}")
    print()

    ntypes = {"x": "double-float"}
    derivative = derivative_form(MODEL, "x", ntypes)
    lowered = jax.jit(lower_to_jax(derivative.form, ["x"]))
    xs = jnp.linspace(0.1, 3.0, 100_000)
    batched = jax.jit(jax.vmap(lower_to_jax(derivative.form, ["x"])))
    jax.block_until_ready(batched(xs))

    workloads = (
        ("descriptor_parse_cold", _parse_all_cold, "descriptor cache cleared before each call"),
        ("descriptor_parse_warm", _parse_all_warm, "interned descriptor lookups"),
        ("specialize_model", lambda: specialize_form(MODEL, ntypes), "bottom-up specialization of one form"),
        ("derivative_model", lambda: derivative_form(MODEL, "x", ntypes), "chain rule plus specialization"),
        ("lowered_derivative_scalar", lambda: lowered(0.7), "jitted symbolic derivative, scalar input"),
        ("lowered_derivative_vmap", lambda: batched(xs), "jitted symbolic derivative over 100k points"),
    )

    rows: list[WorkloadRow] = []
    for name, fn, note in workloads:
        ms = per_call_ms(fn, repeats=repeats, warmup=warmup, samples=samples)
        rows.append(WorkloadRow(workload=name, repeats=repeats, samples=len(ms), timing=Timing.of(ms), note=note))

    print("workload                    mean(ms)   p95(ms)")
    print("-------------------------  ---------  --------")
    for row in rows:
        print(f"{row.workload:25}  {row.timing.mean_ms:9.4f}  {row.timing.p95_ms:8.4f}")
    print()
    return rows


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--profile", choices=sorted(PROFILE_PRESETS), default="quick", help="fixed benchmark profile")
    parser.add_argument("--samples", type=int, default=None, help="override sample count")
    parser.add_argument("--warmup", type=int, default=None, help="override warmup rounds")
    parser.add_argument("--repeats", type=int, default=None, help="override calls per sample")
    parser.add_argument("--json-out", default="", help="optional path to write machine-readable workload results")
    args = parser.parse_args()
    affinity_info = pin_cpus()

    profile = PROFILE_PRESETS[args.profile]
    samples = int(profile["samples"] if args.samples is None else args.samples)
    warmup = int(profile["warmup"] if args.warmup is None else args.warmup)
    repeats = int(profile["repeats"] if args.repeats is None else args.repeats)

    rows = run_benchmarks(profile=args.profile, repeats=repeats, warmup=warmup, samples=samples)
    if args.json_out:
        outpath = Path(args.json_out)
        outpath.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "timestamp_utc": datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"),
            "profile": args.profile,
            "samples": samples,
            "warmup": warmup,
            "repeats": repeats,
            "affinity": affinity_info,
            "host": run_context(),
            "rows": [asdict(row) for row in rows],
        }
        outpath.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Wrote JSON workload output: {outpath}")
