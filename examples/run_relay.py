"""
Minimal reportrelay script: queue a few error reports and deliver them.

Usage:
    python examples/run_relay.py --endpoint URL --token TOKEN [--count N] [--database-url DSN]

Options:
    --endpoint URL        Collection endpoint that accepts JSON POSTs
    --token TOKEN         Access token sent in the X-Access-Token header
    --count N             Number of reports to submit (default: 3)
    --database-url DSN    PostgreSQL DSN; without it records are kept in memory
"""

import argparse
import asyncio
import json
import logging

from reportrelay.infrastructure import Infrastructure
from reportrelay.types import Config, PayloadRecord

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def main() -> None:
    parser = argparse.ArgumentParser(description="reportrelay demo")
    parser.add_argument("--endpoint", required=True)
    parser.add_argument("--token", required=True)
    parser.add_argument("--count", type=int, default=3)
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args()

    config = Config(
        endpoint=args.endpoint,
        access_token=args.token,
        persist_payloads=args.database_url is not None,
        database_url=args.database_url,
    )
    infra = await Infrastructure.start(config)

    for i in range(args.count):
        body = json.dumps({"level": "error", "message": f"{i}: demo error report"})
        infra.submit(PayloadRecord(payload_json=body, destination=config.destination))
    logger.info("submitted %d reports", args.count)

    try:
        await asyncio.sleep(2)
    finally:
        await infra.dispose()
        logger.info("relay stopped")


if __name__ == "__main__":
    asyncio.run(main())
