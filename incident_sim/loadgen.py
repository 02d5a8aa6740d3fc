"""
Load generator: drives the core API with concurrent transaction traffic so
incidents show up in the telemetry pipeline.

Each stream is one thread sending ``count`` transactions with ``delay``
seconds between them. The default pair mirrors the demo load test: a fast
stream of 50 requests one second apart next to a slower one of 30 requests
two seconds apart.
"""

import logging
import random
import threading
import time

import httpx

log = logging.getLogger(__name__)

DEFAULT_STREAMS = ((50, 1.0), (30, 2.0))


def make_transaction(rng: random.Random) -> dict:
    return {
        "user_id": f"user_{rng.randint(0, 99)}",
        "amount": rng.randint(0, 999) + 0.50,
        "operation": "transfer",
    }


def parse_stream(value: str) -> tuple[int, float]:
    """``"50:1"`` -> ``(50, 1.0)``. Used as an argparse type."""
    count, sep, delay = value.partition(":")
    try:
        stream = (int(count), float(delay) if sep else 1.0)
    except ValueError:
        raise ValueError(f"invalid stream {value!r}, expected COUNT[:DELAY]") from None
    if stream[0] < 0 or stream[1] < 0:
        raise ValueError(f"invalid stream {value!r}, values must not be negative")
    return stream


def run_load(base_url: str, streams=DEFAULT_STREAMS, timeout: float = 30.0,
             transport: httpx.BaseTransport = None, seed: int = None) -> dict:
    """Run one thread per ``(count, delay)`` stream, each POSTing transactions.

    Returns ``{"ok": n, "err": n}``. Non-200 answers and transport failures
    both count as errors; neither stops the run.
    """
    counts = {"ok": 0, "err": 0}
    lock = threading.Lock()

    def worker(idx: int, count: int, delay: float):
        rng = random.Random(None if seed is None else seed + idx)
        with httpx.Client(base_url=base_url, timeout=timeout, transport=transport) as client:
            for _ in range(count):
                try:
                    resp = client.post("/api/transaction", json=make_transaction(rng))
                    ok = resp.status_code == 200
                except httpx.HTTPError as e:
                    log.warning("[stream-%d] request failed: %s", idx, e)
                    ok = False
                with lock:
                    counts["ok" if ok else "err"] += 1
                if delay:
                    time.sleep(delay)

    threads = [threading.Thread(target=worker, args=(i, count, delay), daemon=True, name=f"load-{i}")
               for i, (count, delay) in enumerate(streams)]
    log.info("Starting load test with %d streams: %s", len(threads),
             ", ".join(f"{c} req @ {d:g}s" for c, d in streams))
    start = time.time()
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    log.info("Load test completed in %.1fs: ok=%d err=%d",
             time.time() - start, counts["ok"], counts["err"])
    return counts
