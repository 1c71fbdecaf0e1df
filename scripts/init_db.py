#!/usr/bin/env python3
"""
Create (or upgrade) the roomsplit document database.

Uses the same settings as the CLI, so ROOMSPLIT_DB and config/settings.json
are honoured.
"""
from roomsplit.config.settings import Settings
from roomsplit.database.connection import DatabaseConfig, DatabaseManager


def main():
    settings = Settings.load()
    config = DatabaseConfig(settings.database_path)
    print(f"Database: {config.location}")

    with DatabaseManager(config) as db:
        db.initialize()
        version = db.schema_version()
        counts = db.get_connection().execute(
            "SELECT collection, COUNT(*) AS n FROM documents GROUP BY collection"
        ).fetchall()

    if version is None:
        print("✗ Schema version missing, initialization may have failed")
        return

    print(f"✓ Ready (schema v{version})")
    for row in counts:
        print(f"  {row['collection']}: {row['n']} documents")


if __name__ == "__main__":
    main()
