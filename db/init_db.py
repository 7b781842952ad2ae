"""Create all database tables from ORM models."""

import logging

from db.models import Base
from db.session import engine

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    Base.metadata.create_all(bind=engine)
    logger.info("Catalog schema created on %s", engine.url.render_as_string(hide_password=True))
