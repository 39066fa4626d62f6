"""
Matchbox — Profile Directory

Read-only lookups of dating profiles by profile id or owning user id, plus
the plain discovery listing (profiles the user has not swiped on yet).

Every method accepts an optional ``db_session`` so callers that already hold
a transaction can reuse it instead of opening a second connection.
"""

from __future__ import annotations

from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchbox.errors import NotFound
from matchbox.models.match import Swipe
from matchbox.models.profile import Profile

logger = structlog.get_logger("matchbox.profile_directory")


class ProfileDirectory:
    """Lookup service over the ``profiles`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_profile(
        self,
        profile_id: str,
        db_session: AsyncSession | None = None,
    ) -> Profile | None:
        stmt = select(Profile).where(Profile.id == profile_id)
        return await self._scalar(stmt, db_session)

    async def require_profile(
        self,
        profile_id: str,
        db_session: AsyncSession | None = None,
    ) -> Profile:
        """Return the profile or raise ``NotFound``."""
        profile = await self.get_profile(profile_id, db_session)
        if profile is None:
            logger.info("profile_not_found", profile_id=profile_id)
            raise NotFound(f"Profile {profile_id} not found.")
        return profile

    async def get_profile_by_user_id(
        self,
        user_id: str,
        db_session: AsyncSession | None = None,
    ) -> Profile | None:
        stmt = select(Profile).where(Profile.user_id == user_id)
        return await self._scalar(stmt, db_session)

    async def get_profiles_by_user_ids(
        self,
        user_ids: Iterable[str],
        db_session: AsyncSession | None = None,
    ) -> dict[str, Profile]:
        """Batch lookup keyed by owning user id; unknown ids are omitted."""
        ids = sorted(set(user_ids))
        if not ids:
            return {}

        stmt = select(Profile).where(Profile.user_id.in_(ids))
        if db_session is not None:
            profiles = (await db_session.execute(stmt)).scalars().all()
        else:
            async with self._session_factory() as session:
                profiles = (await session.execute(stmt)).scalars().all()

        return {p.user_id: p for p in profiles}

    async def list_discoverable(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        db_session: AsyncSession | None = None,
    ) -> list[Profile]:
        """Profiles owned by other users that ``user_id`` has not swiped on.

        Newest profiles first.  No ranking or distance filtering is applied.
        """
        already_swiped = select(Swipe.profile_id).where(Swipe.user_id == user_id)
        stmt = (
            select(Profile)
            .where(Profile.user_id != user_id)
            .where(Profile.id.not_in(already_swiped))
            .order_by(Profile.created_at.desc(), Profile.id)
            .limit(limit)
            .offset(offset)
        )
        if db_session is not None:
            profiles = (await db_session.execute(stmt)).scalars().all()
        else:
            async with self._session_factory() as session:
                profiles = (await session.execute(stmt)).scalars().all()

        logger.info("discover_profiles", user_id=user_id, count=len(profiles))
        return list(profiles)

    async def _scalar(self, stmt, db_session: AsyncSession | None):
        if db_session is not None:
            return (await db_session.execute(stmt)).scalar_one_or_none()
        async with self._session_factory() as session:
            return (await session.execute(stmt)).scalar_one_or_none()
