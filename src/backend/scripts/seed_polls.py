"""
Seed script to create demo polls for development.

Polls are owned by the external poll-management service in production;
this only gives a local database something to vote on.

Run with: python -m scripts.seed_polls
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import scripts._common  # noqa: F401
from db.session import close_db, create_tables, get_engine, get_session_factory
from models.poll import Poll, PollOption, PollStatus, PollType

SEED_POLLS = [
    {
        "title": "Where should the team offsite be held?",
        "poll_type": PollType.SINGLE,
        "status": PollStatus.ACTIVE,
        "allow_revote": False,
        "options": ["Lisbon", "Kraków", "Valencia", "Stay home"],
        "duration_hours": 72,
    },
    {
        "title": "Which topics should the next all-hands cover?",
        "poll_type": PollType.MULTIPLE,
        "status": PollStatus.ACTIVE,
        "allow_revote": True,
        "options": ["Roadmap", "Hiring", "Budget", "Security review", "Open Q&A"],
        "duration_hours": 48,
    },
    {
        "title": "Pick the new office coffee supplier",
        "poll_type": PollType.SINGLE,
        "status": PollStatus.CLOSED,
        "allow_revote": False,
        "options": ["Local roaster", "Big chain", "Instant is fine"],
        "duration_hours": 24,
    },
]


async def seed_polls(session_factory: async_sessionmaker[AsyncSession] | None = None) -> int:
    """Create seed polls in the database. Returns the number created."""
    session_factory = session_factory or get_session_factory()

    async with session_factory() as session, session.begin():
        # Check if polls already exist
        existing = (await session.execute(select(Poll.id).limit(1))).scalar_one_or_none()
        if existing is not None:
            print("Polls already exist in database. Skipping seed.")
            return 0

        now = datetime.now(timezone.utc)
        for poll_data in SEED_POLLS:
            if poll_data["status"] is PollStatus.CLOSED:
                start_date = now - timedelta(hours=poll_data["duration_hours"] + 1)
            else:
                start_date = now - timedelta(hours=1)

            poll = Poll(
                title=poll_data["title"],
                creator_id=1,
                status=poll_data["status"].value,
                poll_type=poll_data["poll_type"].value,
                allow_revote=poll_data["allow_revote"],
                start_date=start_date,
                end_date=start_date + timedelta(hours=poll_data["duration_hours"]),
                options=[
                    PollOption(option_text=text, display_order=order)
                    for order, text in enumerate(poll_data["options"])
                ],
            )
            session.add(poll)
            print(f"Created poll: {poll_data['title'][:50]} ({poll_data['status'].value})")

    print(f"\nCreated {len(SEED_POLLS)} polls.")
    return len(SEED_POLLS)


async def main() -> None:
    try:
        await create_tables(get_engine())
        await seed_polls()
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
