#!/usr/bin/env python
"""Seed a starter set of sources for the default org.

Usage:
    python scripts/seed_sources.py

Sources are matched by name; existing ones are left untouched. Every config
goes through the same adapter validation as the API.
"""

import asyncio

from dotenv import load_dotenv
from sqlalchemy import select

load_dotenv()


# Initial sources to seed
INITIAL_SOURCES = [
    {
        "name": "ESPN NFL Headlines",
        "type": "RSS_FEED",
        "sport": "NFL",
        "config": {"feedUrl": "https://www.espn.com/espn/rss/nfl/news", "maxItems": 50},
        "is_scheduled": True,
        "refresh_interval": 30,
    },
    {
        "name": "ESPN NFL Scores",
        "type": "ESPN_API",
        "sport": "NFL",
        "config": {"section": "scores", "sport": "football", "league": "nfl"},
        "is_scheduled": True,
        "refresh_interval": 60,
    },
    {
        "name": "ESPN NBA News",
        "type": "ESPN_API",
        "sport": "NBA",
        "config": {"section": "news", "sport": "basketball", "league": "nba"},
        "is_scheduled": True,
        "refresh_interval": 60,
    },
    {
        "name": "DraftKings NFL Lines",
        "type": "DRAFTKINGS_API",
        "sport": "NFL",
        "config": {"sport": "nfl"},
        "is_scheduled": True,
        "refresh_interval": 120,
    },
]


async def seed_sources() -> None:
    """Create any missing starter sources."""
    from app.config import settings
    from app.errors import ConfigValidationError
    from app.models.sources import SourceCreate
    from app.schemas.sources import Source
    from app.services.source_service import create_source
    from app.utils.db_async import SessionLocal, dispose_engine

    org_id = settings.default_org_id
    added = 0
    skipped = 0

    async with SessionLocal() as session:
        async with session.begin():
            result = await session.execute(
                select(Source.name).where(Source.org_id == org_id)  # type: ignore[call-overload, arg-type]
            )
            existing = {row[0] for row in result.all()}

        for source_data in INITIAL_SOURCES:
            if source_data["name"] in existing:
                print(f"  SKIP: {source_data['name']} (already exists)")
                skipped += 1
                continue

            try:
                _, warnings = await create_source(
                    session, org_id, SourceCreate.model_validate(source_data)
                )
            except ConfigValidationError as exc:
                print(f"  FAIL: {source_data['name']} ({exc})")
                continue
            for warning in warnings:
                print(f"  WARN: {source_data['name']}: {warning}")
            print(f"  ADD: {source_data['name']}")
            added += 1

    print(f"\nSeeding complete: {added} added, {skipped} skipped")
    await dispose_engine()


if __name__ == "__main__":
    print("Seeding sources...")
    asyncio.run(seed_sources())
