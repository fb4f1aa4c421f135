"""Apply pending schema migrations to the configured SQLite database."""

import argparse
import sys

from mangrat.core.config import load_settings
from mangrat.core.logger import configure_logging
from mangrat.stores import migrations
from mangrat.stores.sqlite_store import SQLiteRepository


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", help="Path to settings.yaml (default: config/settings.yaml)")
    parser.add_argument("--db", help="Override storage.db_path")
    parser.add_argument("--check", action="store_true", help="Only report the schema version")
    args = parser.parse_args()

    settings = load_settings(args.config)
    configure_logging(settings.logging)
    db_path = args.db or settings.storage.db_path

    repository = SQLiteRepository(db_path, pool_size=1)
    try:
        if args.check:
            version = repository.schema_version()
            print(f"{db_path}: schema version {version} (latest {migrations.LATEST_VERSION})")
            return 0 if version == migrations.LATEST_VERSION else 1
        applied = repository.migrate()
    finally:
        repository.close()

    if applied:
        print(f"Applied migrations {applied} to {db_path}")
    else:
        print(f"{db_path} is already at schema version {migrations.LATEST_VERSION}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
