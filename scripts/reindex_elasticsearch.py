#!/usr/bin/env python3
"""
Reindex items from the database into Elasticsearch.
Use this after seeding, or after deleting a broken index; no new data is created.
Every item is indexed; the search gate filters out unavailable and unapproved ones.

If you get 503 / no_shard_available from Elasticsearch, delete the broken index and reindex:
  python scripts/reindex_elasticsearch.py --reset-index

  python scripts/reindex_elasticsearch.py
  python scripts/reindex_elasticsearch.py --batch-size 1000
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from app.config import get_settings
from app.db.models.item import Item
from app.db.session import async_session_maker
from app.search.elasticsearch_client import (
    close_elasticsearch,
    ensure_items_index,
    get_elasticsearch,
    index_items,
    item_to_document,
)


async def reindex(batch_size: int, reset_index: bool) -> None:
    settings = get_settings()
    es = await get_elasticsearch()
    try:
        if reset_index and await es.indices.exists(index=settings.items_index):
            await es.indices.delete(index=settings.items_index)
            print(f"Deleted index '{settings.items_index}'.")
        await ensure_items_index(es, settings.items_index)

        total = 0
        last_id = 0
        async with async_session_maker() as session:
            while True:
                result = await session.execute(
                    select(Item).where(Item.id > last_id).order_by(Item.id).limit(batch_size)
                )
                batch = list(result.scalars().all())
                if not batch:
                    break
                total += await index_items(es, settings.items_index, [item_to_document(i) for i in batch])
                last_id = batch[-1].id
                print(f"  ... {total} items indexed")
    finally:
        await close_elasticsearch()

    if total == 0:
        print("No items in DB. Run seed_data.py first.")
        return
    print(f"Indexed {total} items into '{settings.items_index}'.")
    print(f"Check: curl -s '{settings.elasticsearch_url}/{settings.items_index}/_count?pretty'")


def main():
    ap = argparse.ArgumentParser(description="Copy items from the database into Elasticsearch")
    ap.add_argument("--batch-size", type=int, default=500, help="Items per bulk request")
    ap.add_argument("--reset-index", action="store_true", help="Delete the items index first (fixes 503 / no_shard_available)")
    args = ap.parse_args()
    asyncio.run(reindex(args.batch_size, args.reset_index))


if __name__ == "__main__":
    main()
