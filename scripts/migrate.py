"""Script to run database migrations.

Usage:
    python scripts/migrate.py                  upgrade to head
    python scripts/migrate.py down <revision>  downgrade to a revision
    python scripts/migrate.py create <message> autogenerate a revision
"""

import sys

from alembic import command
from alembic.config import Config

ALEMBIC_INI = "alembic.ini"


def upgrade(revision: str = "head") -> None:
    """Upgrade the schema to a revision."""
    print(f"Upgrading database to {revision}...")
    command.upgrade(Config(ALEMBIC_INI), revision)
    print("✓ Migrations completed successfully!")


def downgrade(revision: str) -> None:
    """Downgrade the schema to a revision."""
    print(f"Downgrading database to {revision}...")
    command.downgrade(Config(ALEMBIC_INI), revision)
    print("✓ Downgrade completed successfully!")


def create_migration(message: str) -> None:
    """Autogenerate a new migration from the table models."""
    print(f"Creating migration: {message}")
    command.revision(Config(ALEMBIC_INI), message=message, autogenerate=True)
    print("✓ Migration created successfully!")


def main(argv: list[str]) -> int:
    """Dispatch the migration command."""
    try:
        if not argv:
            upgrade()
        elif argv[0] == "down" and len(argv) == 2:
            downgrade(argv[1])
        elif argv[0] == "create" and len(argv) > 1:
            create_migration(" ".join(argv[1:]))
        else:
            print(__doc__)
            return 2
    except Exception as e:
        print(f"✗ Migration failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
