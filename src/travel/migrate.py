"""Apply, revert and inspect schema migrations.

Usage::

    python -m travel.migrate up
    python -m travel.migrate down [steps]
    python -m travel.migrate status
    python -m travel.migrate force <version>

Applied versions are recorded by Alembic in the ``alembic_version`` table.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import create_engine

from .config import settings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "alembic"


def alembic_config(database_url: Optional[str] = None) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolation would choke on percent-encoded passwords
    cfg.set_main_option("sqlalchemy.url", (database_url or settings.database_url).replace("%", "%%"))
    return cfg


def upgrade(database_url: Optional[str] = None) -> None:
    logger.info("applying pending migrations")
    command.upgrade(alembic_config(database_url), "head")


def downgrade(steps: int = 1, database_url: Optional[str] = None) -> None:
    if steps <= 0:
        raise ValueError("steps must be greater than zero")
    logger.info("reverting %d migration(s)", steps)
    command.downgrade(alembic_config(database_url), f"-{steps}")


def force(version: str, database_url: Optional[str] = None) -> None:
    """Record ``version`` as the current schema version without running scripts."""
    cfg = alembic_config(database_url)
    script = ScriptDirectory.from_config(cfg)
    if version not in {rev.revision for rev in script.walk_revisions()}:
        raise ValueError(f"unknown migration version: {version}")
    command.stamp(cfg, version, purge=True)
    logger.info("forced schema version to %s", version)


def status(database_url: Optional[str] = None) -> List[Tuple[str, str, bool]]:
    """Return ``(version, description, applied)`` for every migration, oldest first."""
    url = database_url or settings.database_url
    script = ScriptDirectory.from_config(alembic_config(url))
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            heads = MigrationContext.configure(conn).get_current_heads()
    finally:
        engine.dispose()

    applied = set()
    for head in heads:
        applied.update(rev.revision for rev in script.iterate_revisions(head, "base"))
    revisions = reversed(list(script.walk_revisions()))
    return [(rev.revision, rev.doc, rev.revision in applied) for rev in revisions]


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Travel request schema migrations")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("up", help="Apply all pending migrations")
    down_parser = subparsers.add_parser("down", help="Revert the latest migrations")
    down_parser.add_argument("steps", nargs="?", type=int, default=1)
    subparsers.add_parser("status", help="Show applied and pending migrations")
    force_parser = subparsers.add_parser("force", help="Set the recorded schema version")
    force_parser.add_argument("version")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=settings.log_level)
    try:
        if args.command == "up":
            upgrade()
        elif args.command == "down":
            downgrade(args.steps)
        elif args.command == "force":
            force(args.version)
        else:
            for version, description, applied in status():
                print(f"{version}: {description} ({'applied' if applied else 'pending'})")
    except ValueError as exc:
        logger.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
