#!/usr/bin/env python3
"""
Seed script: creates users and barter items directly in the database.
Items are scattered around a center point so proximity search has something to find.
  python scripts/seed_data.py
  python scripts/seed_data.py --users 20 --items-per-user 15 --lat 40.4168 --lng -3.7038

Prints a bearer token for the seeded admin (for POST /api/v1/items/geo-index).
"""

import argparse
import asyncio
import random
import sys
from pathlib import Path

# Project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app.core.security import create_access_token
from app.db.models.item import Category, Condition, Item, ModerationStatus
from app.db.models.user import ROLE_ADMIN, User
from app.db.repositories.user_repository import UserRepository
from app.db.session import async_session_maker

TITLES = [
    "Laptop stand", "MacBook Pro", "Mechanical keyboard", "Wireless mouse", "Bluetooth headphones",
    "27 inch monitor", "HD webcam", "Python programming book", "Web design book", "Coffee maker",
    "Electric kettle", "Toaster", "Blender", "Winter jacket", "Running shoes", "Wool scarf",
    "Oak bookshelf", "Desk chair", "Bedside table", "Acoustic guitar", "Board game", "Tripod",
]

DESCRIPTIONS = [
    "Works perfectly, just no longer needed.",
    "Some signs of use but in good shape.",
    "Great for home office and remote work.",
    "Looking to swap for books or kitchen items.",
    "Barely used, original box included.",
    "Pick up only, happy to meet nearby.",
]

LOCATIONS = ["Madrid, Spain", "Alcalá de Henares", "Getafe", "Móstoles", "Leganés", "Pozuelo de Alarcón"]

# Mostly approved and available so search has results; the rest exercise the gate
MODERATION_WEIGHTS = [(ModerationStatus.APPROVED, 8), (ModerationStatus.PENDING, 1), (ModerationStatus.REJECTED, 1)]


def random_item(owner_id: int, lat: float, lng: float) -> Item:
    located = random.random() > 0.2
    statuses, weights = zip(*MODERATION_WEIGHTS)
    return Item(
        title=random.choice(TITLES) + (" " + str(random.randint(1, 999)) if random.random() > 0.5 else ""),
        description=random.choice(DESCRIPTIONS),
        category=random.choice(list(Category)).value,
        condition=random.choice(list(Condition)).value,
        location=random.choice(LOCATIONS),
        # Within roughly 30 km of the center
        latitude=lat + random.uniform(-0.27, 0.27) if located else None,
        longitude=lng + random.uniform(-0.35, 0.35) if located else None,
        available=random.random() > 0.1,
        moderation_status=random.choices(statuses, weights)[0].value,
        owner_id=owner_id,
    )


async def seed(users: int, items_per_user: int, lat: float, lng: float) -> None:
    async with async_session_maker() as session:
        repo = UserRepository(session)
        admin = await repo.get_by_email("admin@example.com")
        if admin is None:
            admin = await repo.add(User(email="admin@example.com", full_name="Admin", role=ROLE_ADMIN))

        created_items = 0
        for i in range(users):
            email = f"user{i + 1}@example.com"
            user = await repo.get_by_email(email)
            if user is None:
                user = await repo.add(User(email=email, full_name=f"User {i + 1}"))
            for _ in range(items_per_user):
                session.add(random_item(user.id, lat, lng))
                created_items += 1
            if (i + 1) % 10 == 0:
                print(f"  ... {i + 1} users")
        await session.commit()

    print(f"\nDone. Users: {users}, Items created: {created_items}")
    print(f"Admin token: {create_access_token(admin.id)}")
    print("Tip: with SEARCH_BACKEND=elasticsearch run scripts/reindex_elasticsearch.py next.")


def main():
    ap = argparse.ArgumentParser(description="Seed users and items into the database")
    ap.add_argument("--users", type=int, default=30, help="Number of users to create")
    ap.add_argument("--items-per-user", type=int, default=10, help="Items per user")
    ap.add_argument("--lat", type=float, default=40.4168, help="Center latitude for item coordinates")
    ap.add_argument("--lng", type=float, default=-3.7038, help="Center longitude for item coordinates")
    args = ap.parse_args()
    asyncio.run(seed(args.users, args.items_per_user, args.lat, args.lng))


if __name__ == "__main__":
    main()
