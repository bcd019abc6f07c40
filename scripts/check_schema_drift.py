"""Compare the live database schema against the SQLAlchemy models.

Exit status: 0 when in sync, 1 when differences exist, 2 on error.
"""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext

from sweepdraw.db.engine import make_engine
from sweepdraw.models import Base


def _iter_ops(ops, depth: int = 0):
    for op in ops:
        yield depth, op
        yield from _iter_ops(getattr(op, "ops", None) or [], depth + 1)


def check(database_url: Optional[str] = None) -> int:
    engine = make_engine(database_url)
    url_display = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except Exception as exc:
        print(f"Schema drift check: ERROR for {url_display}: {exc}", file=sys.stderr)
        return 2
    finally:
        engine.dispose()

    if upgrade_ops is None:
        print(f"Schema drift check: ERROR for {url_display}: no upgrade operations produced.")
        return 2
    if upgrade_ops.is_empty():
        print(f"Schema drift check: OK for {url_display}.")
        return 0
    print(f"Schema drift check: {url_display} differs from the models:")
    for depth, op in _iter_ops(upgrade_ops.ops or []):
        print(f"{'  ' * depth}- {op}")
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--database-url", default=None, help="Overrides DB_URL")
    args = parser.parse_args(argv)
    return check(args.database_url)


if __name__ == "__main__":
    raise SystemExit(main())
