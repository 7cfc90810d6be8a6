from __future__ import annotations

import argparse
import logging
import sys

from bootstrap import run_bootstrap
from database import Base, engine

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create fest tables and seed settings and the first admin.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Drop every table before creating it again. Destroys all data.",
    )
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.reset:
        logger.warning("Dropping all tables...")
        Base.metadata.drop_all(bind=engine)
    logger.info("Creating tables and seeding defaults...")
    run_bootstrap()
    logger.info("Database ready.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
