#!/usr/bin/env python3
"""Initialize the signals database.

Usage:
    python scripts/init_db.py           # create tables
    python scripts/init_db.py --clear   # create tables and delete all signals
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from sniper_service.storage.database import init_database
from sniper_service.storage.signal_repo import SignalRepository


async def main(clear: bool) -> None:
    print("Initializing database...")
    db = await init_database()
    print("Tables created: signals")

    if clear:
        await SignalRepository(db).clear()
        print("All signals deleted")

    await db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Initialize the signals database")
    parser.add_argument("--clear", action="store_true", help="Delete every stored signal")
    args = parser.parse_args()
    asyncio.run(main(args.clear))
