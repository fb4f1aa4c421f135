"""Delete expired sessions. Optional housekeeping; expired tokens are already rejected."""

import argparse
import sys
from datetime import timedelta

from mangrat.auth.sessions import SessionManager
from mangrat.core.config import load_settings
from mangrat.core.logger import configure_logging
from mangrat.stores.sqlite_store import SQLiteRepository


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", help="Path to settings.yaml (default: config/settings.yaml)")
    args = parser.parse_args()

    settings = load_settings(args.config)
    configure_logging(settings.logging)

    repository = SQLiteRepository(settings.storage.db_path, pool_size=1)
    try:
        repository.ensure_schema_current()
        sessions = SessionManager(repository, ttl=timedelta(hours=settings.auth.session_ttl_hours))
        removed = sessions.purge_expired()
    finally:
        repository.close()

    print(f"Removed {removed} expired session(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
