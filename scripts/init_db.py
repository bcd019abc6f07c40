from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from sweepdraw.db.engine import make_engine

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head", database_url: Optional[str] = None) -> None:
    """Apply Alembic migrations up to ``target_revision``."""
    alembic_cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    if database_url:
        alembic_cfg.cmd_opts = argparse.Namespace(x=[f"db_url={database_url}"])
    command.upgrade(alembic_cfg, target_revision)


def print_tables(database_url: Optional[str] = None) -> None:
    """Print the tables present in the target database."""
    engine = make_engine(database_url)
    try:
        insp = inspect(engine)
        print("Current tables:", ", ".join(sorted(insp.get_table_names())))
    finally:
        engine.dispose()


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Create or upgrade the sweepstake schema.")
    parser.add_argument("--revision", default="head", help="Alembic revision (default: head)")
    parser.add_argument("--database-url", default=None, help="Overrides DB_URL")
    args = parser.parse_args(argv)

    upgrade_db(args.revision, args.database_url)
    print_tables(args.database_url)


if __name__ == "__main__":
    main()
