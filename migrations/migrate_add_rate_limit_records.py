#!/usr/bin/env python3
"""Migration script to create the shared rate_limit_records table used by RATE_LIMIT_BACKEND=database."""

import os
import sys
from sqlalchemy import create_engine, text, inspect

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    print("ERROR: DATABASE_URL environment variable is required.")
    sys.exit(1)

# Heroku uses postgres:// but SQLAlchemy 2.0+ requires postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

engine = create_engine(DATABASE_URL)


def table_exists(connection, table_name):
    """Check if a table exists."""
    inspector = inspect(connection)
    return table_name in inspector.get_table_names()


def run_migration():
    print("Running migration to create rate_limit_records table...")
    print(f"Database: {engine.url.host}:{engine.url.port}/{engine.url.database}")

    with engine.connect() as connection:
        if not table_exists(connection, 'rate_limit_records'):
            print("Creating rate_limit_records table...")
            connection.execute(text(
                "CREATE TABLE rate_limit_records ("
                "identity_key VARCHAR PRIMARY KEY, "
                "count INTEGER NOT NULL DEFAULT 0, "
                "window_reset_at DOUBLE PRECISION NOT NULL)"
            ))
            connection.execute(text(
                "CREATE INDEX ix_rate_limit_records_window_reset_at "
                "ON rate_limit_records (window_reset_at)"
            ))
            connection.commit()
            print("✓ Successfully created rate_limit_records table.")
        else:
            print("✓ Table 'rate_limit_records' already exists.")

    print("\n✓ Migration completed successfully!")


if __name__ == "__main__":
    run_migration()
