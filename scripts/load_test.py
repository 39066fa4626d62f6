"""Load test: concurrent mutual likes against a running Matchbox server.

For every pair of seeded demo users both sides like each other many times
at once; afterwards each pair must own exactly one match.  Run
``scripts/seed_profiles.py`` first.
Usage: python -m scripts.load_test [--users 10] [--burst 25] [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import itertools
import statistics
import sys
import time
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_USERS = 10
DEFAULT_BURST = 25


async def like(client: httpx.AsyncClient, base_url: str, user_id: str, profile_id: str) -> tuple[int | None, float]:
    """Send one like; returns the match id (if any) and the latency."""
    t0 = time.monotonic()
    resp = await client.post(
        f"{base_url}/api/v1/profiles/{profile_id}/like",
        headers={"X-User-ID": user_id},
    )
    dt = time.monotonic() - t0
    resp.raise_for_status()
    match = resp.json().get("match")
    return (match["id"] if match else None), dt


async def storm_pair(
    client: httpx.AsyncClient,
    base_url: str,
    user_a: str,
    user_b: str,
    burst: int,
    results: dict[str, Any],
) -> None:
    calls = []
    for _ in range(burst):
        calls.append(like(client, base_url, user_a, f"p-{user_b}"))
        calls.append(like(client, base_url, user_b, f"p-{user_a}"))

    outcomes = await asyncio.gather(*calls, return_exceptions=True)

    ids = set()
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            results["errors"].append(f"{user_a} x {user_b}: {outcome}")
            continue
        match_id, dt = outcome
        results["timings"].append(dt)
        if match_id is not None:
            ids.add(match_id)

    if len(ids) != 1:
        results["violations"].append(f"{user_a} x {user_b}: match ids {sorted(ids)}")


async def count_matches(client: httpx.AsyncClient, base_url: str, user_id: str) -> int:
    resp = await client.get(f"{base_url}/api/v1/matches", headers={"X-User-ID": user_id})
    resp.raise_for_status()
    return len(resp.json())


async def run_load_test(base_url: str, users: int, burst: int) -> dict[str, Any]:
    user_ids = [f"demo-{i}" for i in range(1, users + 1)]
    pairs = list(itertools.combinations(user_ids, 2))

    print(f"\n{'='*60}")
    print(f"Matchbox Load Test — {len(pairs)} pairs x {burst * 2} likes")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results: dict[str, Any] = {"pairs": len(pairs), "timings": [], "errors": [], "violations": []}

    async with httpx.AsyncClient(timeout=30.0) as client:
        print(f"[1/2] Firing likes for {len(pairs)} pairs...")
        for i, (a, b) in enumerate(pairs):
            await storm_pair(client, base_url, a, b, burst, results)
            if (i + 1) % 10 == 0:
                print(f"  Processed {i + 1}/{len(pairs)} pairs")

        print("[2/2] Checking match counts...")
        for uid in user_ids:
            found = await count_matches(client, base_url, uid)
            if found != users - 1:
                results["violations"].append(f"{uid}: {found} matches, expected {users - 1}")

    print(f"\n{'='*60}")
    print("LOAD TEST RESULTS")
    print(f"{'='*60}")
    timings = results["timings"]
    if timings:
        print(f"Likes sent: {len(timings)}")
        print(f"  mean:   {statistics.mean(timings):.3f}s")
        print(f"  median: {statistics.median(timings):.3f}s")
        print(f"  p95:    {sorted(timings)[int(len(timings)*0.95)]:.3f}s")
        print(f"  max:    {max(timings):.3f}s")

    for label in ("errors", "violations"):
        if results[label]:
            print(f"\n{label.title()} ({len(results[label])}):")
            for e in results[label][:10]:
                print(f"  - {e}")

    print(f"\n{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="Matchbox Load Test")
    parser.add_argument("--users", type=int, default=DEFAULT_USERS, help="Number of seeded demo users")
    parser.add_argument("--burst", type=int, default=DEFAULT_BURST, help="Concurrent likes per side per pair")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    args = parser.parse_args()

    results = asyncio.run(run_load_test(args.base_url, args.users, args.burst))

    if results["violations"] or results["errors"]:
        print("FAIL: duplicate matches or failed requests detected")
        sys.exit(1)
    print("PASS: exactly one match per pair")


if __name__ == "__main__":
    main()
