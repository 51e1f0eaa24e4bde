"""Example: ship an asyncio application's logs to OpenObserve.

This demonstrates:
- Building the configuration from OPENOBSERVE_* environment variables
- Routing the standard ``logging`` module through the shipper
- Logging from worker threads as well as the event loop
- Flushing on the way out

Run with: python ship_logs.py
Set OPENOBSERVE_URL (e.g. http://localhost:5080), OPENOBSERVE_ORG,
OPENOBSERVE_STREAM, OPENOBSERVE_USERNAME and OPENOBSERVE_PASSWORD first.
"""

import asyncio
import logging
import os
import random
import sys
import time

# Add SDK to path for development
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from openobserve_shipper import ShipperConfig, attach

log = logging.getLogger("example.worker")


def blocking_job(job_id: int) -> None:
    """Simulated blocking work that logs from a worker thread."""
    time.sleep(random.uniform(0.05, 0.2))
    log.info("job %d finished", job_id, extra={"job_id": job_id})


async def main() -> None:
    config = ShipperConfig.from_env(batch_size=10, time_threshold=2000)
    handler = attach(config, loop=asyncio.get_running_loop())
    logging.getLogger().setLevel(logging.INFO)
    # Shipper diagnostics go to stderr instead of back into the stream.
    logging.getLogger("openobserve_shipper").addHandler(logging.StreamHandler())

    print(f"Shipping to {handler.shipper.api_url}")

    for i in range(25):
        log.info("request %d handled", i, extra={"latency_ms": round(random.uniform(5, 80), 1)})
        await asyncio.sleep(0.05)

    await asyncio.gather(*(asyncio.to_thread(blocking_job, j) for j in range(5)))

    try:
        1 / 0
    except ZeroDivisionError:
        log.exception("something went wrong")

    await handler.shipper.aclose(timeout=10)
    logging.getLogger().removeHandler(handler)


if __name__ == "__main__":
    asyncio.run(main())
