"""Create the CRM tables the report engine reads."""

import asyncio

from pipeline_intel.db.connection import engine
from pipeline_intel.db.models import Base


async def init() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print(f"[init_db] Created {len(Base.metadata.tables)} tables.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init())
