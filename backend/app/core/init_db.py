"""
Database initialization script.

Creates the lifecycle schema directly from the ORM metadata. Production
deployments use the Alembic migrations under backend/alembic instead.
"""

import asyncio
import sys

from sqlalchemy.ext.asyncio import create_async_engine

from backend.app.core.config import get_settings
from backend.app.core.database import Base
import backend.app.models  # noqa: F401  (registers all tables)

settings = get_settings()


async def init_database():
    print(f"📡 Initializing database at {settings.database_url}...")
    engine = create_async_engine(settings.database_url, echo=settings.debug)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    print("✅ Database initialized successfully!")


async def drop_all_tables():
    """Drop all tables (use with caution!)."""
    engine = create_async_engine(settings.database_url, echo=True)
    async with engine.begin() as conn:
        print("⚠️ Dropping all tables...")
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()
    print("✅ All tables dropped.")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "--drop":
        print("⚠️ WARNING: This will drop all tables!")
        confirm = input("Type 'yes' to confirm: ")
        if confirm == "yes":
            asyncio.run(drop_all_tables())
        else:
            print("Aborted.")
    else:
        asyncio.run(init_database())
