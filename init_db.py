"""Initialize or upgrade the database schema for the employee records service.

Creates the employees table when missing and adds any optional columns an
older database lacks. Existing rows are left untouched. The API runs the same
step on startup; this script is for preparing a database ahead of time.
"""

import asyncio
import sys

from kepegawaian.config import get_settings
from kepegawaian.db import create_engine, safe_url
from kepegawaian.migrations import bootstrap_schema
from kepegawaian.models import Base


async def init_database():
    """Create the table and add missing columns."""
    settings = get_settings()
    print(f"Initializing database: {safe_url(settings.db.url)}")

    engine = create_engine(settings.db)
    try:
        added = await bootstrap_schema(engine)
    finally:
        await engine.dispose()

    if added:
        for name in added:
            print(f"✓ Added missing column: {name}")
    else:
        print("✓ Schema already up to date")

    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(Base.metadata.tables.keys())}")


async def main():
    """Main entry point."""
    try:
        await init_database()
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
