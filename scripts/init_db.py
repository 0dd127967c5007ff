from changelog_harvester.config import load_settings
from changelog_harvester.store.db import init_db
import logging

logging.basicConfig(level=logging.INFO)

if __name__ == "__main__":
    settings = load_settings()
    logging.info(f"Initializing database at {settings.DB_PATH}...")
    init_db(settings.DB_PATH)
    logging.info("Database initialized.")
