"""Run the sweepstake draw scheduler until interrupted."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from sweepdraw.config import DrawSettings
from sweepdraw.db.engine import get_sessionmaker, make_engine
from sweepdraw.notifications import notifier_from_url
from sweepdraw.scheduler import DrawScheduler, run_forever


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--database-url", default=None, help="Overrides DB_URL")
    parser.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit"
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    settings = DrawSettings.from_env()
    engine = make_engine(args.database_url)
    scheduler = DrawScheduler(
        get_sessionmaker(engine),
        notifier=notifier_from_url(settings.broadcast_url),
        settings=settings,
    )
    try:
        if args.once:
            summary = scheduler.tick()
            logging.getLogger(__name__).info("Sweep result: %s", summary)
            return 1 if summary.failed else 0
        run_forever(scheduler)
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    raise SystemExit(main())
