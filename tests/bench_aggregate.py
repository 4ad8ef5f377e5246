"""
Batch aggregation performance benchmark.

Compares sequential vs parallel batch_aggregate_user_events() across
different worker counts, over a synthetic snapshot of user interactions.

Usage (from the project root):
    python tests/bench_aggregate.py

    # Override worker counts, event count or shard size:
    BENCH_WORKERS=1,2,4,8 BENCH_EVENTS=500000 BENCH_SHARD=50000 python tests/bench_aggregate.py

Results are printed as they arrive so you can see progress in real time.
"""

import json
import os
import random
import statistics
import sys
import tempfile
import time
from pathlib import Path

from dispute_lib import DisputeService

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

N_EVENTS = int(os.environ.get("BENCH_EVENTS", "200000"))
SHARD_SIZE = int(os.environ.get("BENCH_SHARD", "20000"))
N_USERS = 5000
N_WARMUP = 1
N_RUNS = 3

_env_workers = os.environ.get("BENCH_WORKERS")
if _env_workers:
    WORKER_COUNTS = [int(w) for w in _env_workers.split(",")]
else:
    WORKER_COUNTS = [2, 4, 8]


def build_events(n_events: int, seed: int = 42) -> list:
    """Reproducible mix of click/view/purchase events."""
    rng = random.Random(seed)
    events = []
    for _ in range(n_events):
        event_type = rng.choice(["click", "view", "view", "purchase"])
        event = {
            "userId": f"user-{rng.randrange(N_USERS)}",
            "type": event_type,
            "timestamp": rng.randrange(1_700_000_000, 1_800_000_000),
        }
        if event_type == "purchase":
            event["metadata"] = {"value": round(rng.uniform(1, 500), 2)}
        events.append(event)
    return events


# ---------------------------------------------------------------------------
# Benchmark runner
# ---------------------------------------------------------------------------


def run_config(label: str, data_path: str, n_workers=None) -> dict:
    """
    Benchmark one configuration.

    Args:
        label: Display label.
        data_path: Snapshot file to aggregate.
        n_workers: None = sequential (no pool). int = parallel with that many workers.

    Returns:
        Dict with label, mean_ms, min_ms, max_ms, throughput, speedup (added later).
    """
    svc = DisputeService(data_path=data_path)
    svc.config_loader.local_config["aggregation_shard_size"] = SHARD_SIZE

    if n_workers is not None:
        # Patch local_config so different worker counts can be tested without
        # editing the bundled YAML between runs.
        svc.config_loader.local_config["batch_parallelism"] = True
        svc.config_loader.local_config["batch_max_workers"] = n_workers
        svc._create_pool()

    try:
        times_ms = []
        for i in range(N_WARMUP + N_RUNS):
            t0 = time.perf_counter()
            summary = svc.batch_aggregate_user_events()
            elapsed_ms = (time.perf_counter() - t0) * 1000
            tag = (
                f"warmup {i + 1}"
                if i < N_WARMUP
                else f"run {i - N_WARMUP + 1}/{N_RUNS}"
            )
            print(f"    [{tag}] {elapsed_ms:,.0f} ms", flush=True)
            if i >= N_WARMUP:
                times_ms.append(elapsed_ms)

        total = sum(agg["totalEvents"] for agg in summary.values())
        assert total == N_EVENTS, f"Expected {N_EVENTS} events aggregated, got {total}"

    finally:
        svc.close()

    mean_ms = statistics.mean(times_ms)
    return {
        "label": label,
        "mean_ms": mean_ms,
        "min_ms": min(times_ms),
        "max_ms": max(times_ms),
        "throughput": N_EVENTS / (mean_ms / 1000),
        "speedup": None,
    }


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cpu = os.cpu_count()
    print(
        f"\nPython {sys.version.split()[0]}  |  cpus={cpu}  |  events={N_EVENTS:,}"
        f"  |  shard={SHARD_SIZE:,}  |  runs={N_RUNS} timed + {N_WARMUP} warmup"
    )
    print("=" * 68)

    with tempfile.TemporaryDirectory() as tmp:
        data_path = Path(tmp) / "bench_data.json"
        with open(data_path, "w") as f:
            json.dump({"loans": {}, "disputes": {}, "userInteractions": build_events(N_EVENTS)}, f)

        configs = [("Sequential (no pool)", None)] + [
            (f"Parallel, {n} worker{'s' if n != 1 else ''}", n)
            for n in WORKER_COUNTS
            if n <= cpu
        ]

        rows = []
        for label, n_workers in configs:
            print(f"\n{label}:")
            row = run_config(label, str(data_path), n_workers)
            rows.append(row)
            print(f"  -> mean {row['mean_ms']:,.0f} ms  |  {row['throughput']:,.0f} events/sec")

    seq_mean = rows[0]["mean_ms"]
    for row in rows:
        row["speedup"] = seq_mean / row["mean_ms"]

    print(f"\n\n{'=' * 68}")
    print(f"  {N_EVENTS:,} events  |  shard {SHARD_SIZE:,}  |  {N_RUNS} timed runs + {N_WARMUP} warmup")
    print(f"{'=' * 68}")
    print(
        f"  {'Config':<26} {'Mean ms':>8} {'Min ms':>8} {'Max ms':>8}"
        f" {'Ev/sec':>10} {'Speedup':>8}"
    )
    print(f"  {'-' * 66}")
    for row in rows:
        print(
            f"  {row['label']:<26} "
            f"{row['mean_ms']:>8,.0f} "
            f"{row['min_ms']:>8,.0f} "
            f"{row['max_ms']:>8,.0f} "
            f"{row['throughput']:>10,.0f} "
            f"{row['speedup']:>8.2f}x"
        )
    print(f"{'=' * 68}")

    best = max(rows, key=lambda r: r["throughput"])
    print(
        f"\n  Optimal: {best['label']}"
        f"  ({best['throughput']:,.0f} events/sec, {best['speedup']:.2f}x sequential)\n"
    )
