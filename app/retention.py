"""
CLI entrypoint for the code purge job. Run from cron, e.g.:

  python -m app.retention

Or every 10 minutes: */10 * * * * cd /path/to/artmart && .venv/bin/python -m app.retention
"""

import logging
import sys

from app.core.config import get_settings
from app.core.database import SessionLocal
from app.services.retention import run_retention

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Run retention: delete expired and consumed one-time codes."""
    settings = get_settings()
    db = SessionLocal()
    try:
        codes_deleted = run_retention(db, settings)
        logger.info("Retention completed: codes_deleted=%s", codes_deleted)
        return 0
    except Exception as e:
        logger.exception("Retention job failed: %s", e)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
