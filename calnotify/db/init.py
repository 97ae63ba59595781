"""Initialize database tables."""
import logging

from sqlmodel import SQLModel

# Imported for their side effect of registering tables on SQLModel.metadata
from calnotify.models.event import Event  # noqa: F401
from calnotify.models.notification import Notification  # noqa: F401
from calnotify.models.user import User  # noqa: F401
from calnotify.models.user_preference import UserPreference  # noqa: F401
from calnotify.db.config import engine

logger = logging.getLogger(__name__)


def init_db(bind=None):
    """Create all tables in the database."""
    logger.info("Creating notification engine tables")
    SQLModel.metadata.create_all(bind or engine)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
    print("Database tables created successfully.")
