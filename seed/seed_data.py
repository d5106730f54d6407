"""
Seed the database with sample clients.

Creates:
  - 12 clients across 3 zones
  - Edge cases: local-format numbers, a bare subscriber number, an
    international "+250" number, and a client with no phone on file

Run:
    python -m seed.seed_data
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from zonepay.database import async_session, init_db
from zonepay.models.payment import Client


CLIENTS = [
    # Zone 1
    {"username": "amahoro", "name": "Amahoro Guesthouse", "phone_number": "0788000111", "zone_id": 1},
    {"username": "ineza", "name": "Ineza Boutique", "phone_number": "0788000222", "zone_id": 1},
    {"username": "kigali_fresh", "name": "Kigali Fresh Market", "phone_number": "0788000333", "zone_id": 1},
    {"username": "umucyo", "name": "Umucyo Salon", "phone_number": "788000444", "zone_id": 1},

    # Zone 2
    {"username": "ubumwe", "name": "Ubumwe Hardware", "phone_number": "+250 788 000 555", "zone_id": 2},
    {"username": "isoko", "name": "Isoko Grocers", "phone_number": "250788000666", "zone_id": 2},
    {"username": "nyamirambo_bakery", "name": "Nyamirambo Bakery", "phone_number": "0788-000-777", "zone_id": 2},
    {"username": "akeza", "name": "Akeza Tailors", "phone_number": "0788000888", "zone_id": 2},

    # Zone 3
    {"username": "imena", "name": "Imena Pharmacy", "phone_number": "0788000999", "zone_id": 3},
    {"username": "gisozi_motors", "name": "Gisozi Motors", "phone_number": "0789000111", "zone_id": 3},
    {"username": "umurage", "name": "Umurage Restaurant", "phone_number": "0789000222", "zone_id": 3},

    # Edge case: no phone on file (payer must supply one)
    {"username": "no_phone", "name": "No Phone Kiosk", "phone_number": None, "zone_id": 3},
]


async def seed():
    await init_db()

    async with async_session() as session:
        existing = set((await session.execute(select(Client.username))).scalars().all())
        created = 0
        for data in CLIENTS:
            if data["username"] in existing:
                continue
            session.add(Client(**data))
            created += 1
        await session.commit()

    print(f"Seeded {created} clients ({len(CLIENTS) - created} already present)")


if __name__ == "__main__":
    asyncio.run(seed())
