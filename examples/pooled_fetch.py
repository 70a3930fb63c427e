"""Minimal tether demo: one-shot and pooled requests.

It demonstrates how to:

1. Load settings (timeouts, pool size) from the repo-root `.env` file.
2. Make a one-shot request on a dedicated connection.
3. Fan several requests out over a small pool of persistent connections,
   with one deliberately short timeout to show slot replacement.

Run with:
    python pooled_fetch.py https://example.com
"""

from __future__ import annotations

import asyncio
import logging
import sys

from pathlib import Path

import tether.client as tc


async def main(base_url: str) -> None:
    # ------------------------------------------------------------------
    # 0. Environment
    # ------------------------------------------------------------------
    tc.load_dotenv_for_client(Path(__file__).parent.parent / ".env")

    # ------------------------------------------------------------------
    # 1. One-shot request
    # ------------------------------------------------------------------
    response = await tc.request("GET", base_url, [("accept", "text/html")])
    print(f"one-shot: {response.status_code} ({len(response.body)} bytes)")

    # ------------------------------------------------------------------
    # 2. Pooled requests
    # ------------------------------------------------------------------
    async with tc.ConnectionPool(base_url, capacity=2) as pool:
        results = await asyncio.gather(
            *(tc.pool_request(pool, "GET", "/") for _ in range(4)),
            tc.pool_request(pool, "GET", "/", options={"timeout": 1}),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, tc.TetherError):
                print(f"pooled: failed ({result.reason})")
            else:
                print(f"pooled: {result.status_code}")
        print(f"pool stats: {pool.stats()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "https://example.com"))
