"""
Programmatic Alembic migration runner for the shared schema.

Runs migrations without an alembic.ini by pointing Alembic at this package's
migrations directory. Tenant schemas are not migrated here; they are created
from the ORM metadata when a tenant is provisioned.

Usage examples:
    python -m src.db.run_migrations upgrade head
    python -m src.db.run_migrations downgrade -1
    python -m src.db.run_migrations stamp head
    python -m src.db.run_migrations history
"""

import sys
from pathlib import Path
from typing import Callable, Dict, List

from alembic import command
from alembic.config import Config

from src.db.config import get_settings

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def build_config() -> Config:
    """Alembic Config bound to the migrations folder and the shared database URL."""
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # Offline mode reads this; env.py uses the async URL online.
    cfg.set_main_option("sqlalchemy.url", get_settings().sync_database_url)
    return cfg


_COMMANDS: Dict[str, Callable[[Config, List[str]], None]] = {
    "upgrade": lambda cfg, rest: command.upgrade(cfg, *(rest or ["head"])),
    "downgrade": lambda cfg, rest: command.downgrade(cfg, *(rest or ["-1"])),
    "stamp": lambda cfg, rest: command.stamp(cfg, *(rest or ["head"])),
    "history": lambda cfg, rest: command.history(cfg, *rest),
    "current": lambda cfg, rest: command.current(cfg, *rest),
    "heads": lambda cfg, rest: command.heads(cfg, *rest),
}


# PUBLIC_INTERFACE
def main(argv: List[str] | None = None) -> None:
    """Run an Alembic command with programmatic configuration."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("No Alembic arguments provided. Example: upgrade head")
        sys.exit(1)

    cmd, rest = args[0], args[1:]
    handler = _COMMANDS.get(cmd)
    if handler is None:
        print(f"Unsupported Alembic command: {cmd}")
        sys.exit(2)
    handler(build_config(), rest)


if __name__ == "__main__":
    main()
