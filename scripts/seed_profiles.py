"""Seed demo profiles for local development (users demo-1 .. demo-N).

Usage: python scripts/seed_profiles.py [--count 20]
"""
import argparse
import asyncio
import random
import sys
sys.path.insert(0, ".")

from sqlalchemy import select

from matchbox.database import create_engine_from_settings, create_session_factory
from matchbox.models.profile import Profile


NAMES = ["Ada", "Grace", "Linus", "Margaret", "Alan", "Barbara", "Dennis", "Frances", "Ken", "Radia"]
LOCATIONS = ["London", "Manchester", "Edinburgh", "Bristol"]
OCCUPATIONS = ["Engineer", "Teacher", "Designer", "Nurse", "Chef", "Writer"]


def demo_profile(index: int) -> Profile:
    user_id = f"demo-{index}"
    return Profile(
        id=f"p-{user_id}",
        user_id=user_id,
        name=NAMES[index % len(NAMES)],
        age=random.randint(21, 45),
        gender=random.choice(["male", "female"]),
        location=random.choice(LOCATIONS),
        occupation=random.choice(OCCUPATIONS),
        bio=f"Demo profile number {index}.",
        photos=[],
    )


async def seed(count: int):
    engine = create_engine_from_settings()
    session_factory = create_session_factory(engine)
    try:
        async with session_factory() as session:
            for i in range(1, count + 1):
                profile = demo_profile(i)
                existing = await session.execute(
                    select(Profile).where(Profile.user_id == profile.user_id)
                )
                if existing.scalar_one_or_none() is None:
                    session.add(profile)
                    print(f"  Seeded profile {profile.id} ({profile.name})")
                else:
                    print(f"  Profile for {profile.user_id} already exists, skipping.")
            await session.commit()
    finally:
        await engine.dispose()
    print("Done seeding profiles.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed Matchbox demo profiles")
    parser.add_argument("--count", type=int, default=20, help="Number of demo users")
    args = parser.parse_args()
    asyncio.run(seed(args.count))
