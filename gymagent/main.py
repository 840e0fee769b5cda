"""Command-line entry point."""

import asyncio
import logging
import sys

from gymagent.app import run_service

logger = logging.getLogger(__name__)


def main() -> None:
    try:
        asyncio.run(run_service())
    except KeyboardInterrupt:
        logger.info("Agent stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    main()
