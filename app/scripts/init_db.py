"""
Create all tables that do not exist yet. Run from project root:
  python -m app.scripts.init_db
"""
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from app.core.database import create_all_tables

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    try:
        create_all_tables()
    except SQLAlchemyError as e:
        logger.error("Could not create tables: %s", e)
        return 1
    logger.info("Tables created (or already present).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
