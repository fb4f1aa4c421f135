import os
import sys
import signal
import traceback
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Load .env before reading settings
env_path = Path(__file__).resolve().parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

from mangrat.core.config import load_settings


def _unhandled_exception(exc_type, exc_value, exc_tb):
    """Log unhandled exceptions so the process manager shows the cause before restart."""
    if exc_type is KeyboardInterrupt:
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    msg = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
    print("Unhandled exception (process will exit):\n" + msg, file=sys.stderr, flush=True)
    sys.__excepthook__(exc_type, exc_value, exc_tb)


if __name__ == "__main__":
    """
    Entry point for the Mangrat chat backend.
    Run scripts/migrate_db.py once before the first start and after upgrades.
    """
    sys.excepthook = _unhandled_exception

    settings = load_settings()
    host = os.getenv("HOST", settings.server.host)
    port = int(os.getenv("PORT", str(settings.server.port)))
    production = settings.app.is_production
    workers = int(os.getenv("WORKERS", "1")) if production else 1

    print(f"Starting {settings.app.name} ({settings.app.environment}) on http://{host}:{port}")
    print("Press CTRL+C to stop the server")

    def signal_handler(sig, frame):
        print("\n\nShutdown signal received. Stopping server...")
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, signal_handler)

    try:
        uvicorn.run(
            "mangrat_web.app:create_app",
            factory=True,
            host=host,
            port=port,
            workers=workers,
            reload=not production,
            log_level="info" if production else "debug",
        )
    except KeyboardInterrupt:
        print("\n\nShutdown complete.")
