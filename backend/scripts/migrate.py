"""Migration helper script

Usage:
    python scripts/migrate.py upgrade
    python scripts/migrate.py downgrade -1

Wraps Alembic's API so deployments can migrate without the alembic CLI or
an alembic.ini file; the database URL comes from DATABASE_URL.
"""

import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]


def _get_config() -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg


def upgrade(rev: str = "head") -> None:
    command.upgrade(_get_config(), rev)


def downgrade(rev: str = "-1") -> None:
    command.downgrade(_get_config(), rev)


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    if not argv or argv[0] not in ("upgrade", "downgrade"):
        print("Usage: python scripts/migrate.py <upgrade|downgrade> [revision]")
        return 2

    rev = argv[1] if len(argv) > 1 else None
    if argv[0] == "upgrade":
        upgrade(rev or "head")
    else:
        downgrade(rev or "-1")
    return 0


if __name__ == "__main__":
    sys.exit(main())
