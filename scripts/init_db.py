"""Script to create the scheduling tables without running migrations.

Usage:
    python scripts/init_db.py            # create missing tables
    python scripts/init_db.py --reset    # drop and recreate (local development only)
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy import text  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import engine  # noqa: E402
from app.models import metadata  # noqa: E402


async def init_db(reset: bool = False) -> None:
    """Create the doctor, appointment and organization booking tables."""
    if reset and settings.is_production:
        print("✗ Refusing to drop tables in production", file=sys.stderr)
        sys.exit(1)

    async with engine.begin() as conn:
        # gen_random_uuid() defaults need pgcrypto
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        if reset:
            await conn.run_sync(metadata.drop_all)
            print("✓ Dropped scheduling tables")

        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Created tables: {', '.join(sorted(metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init_db(reset="--reset" in sys.argv[1:]))
