"""
Matchbox — Swipe Intake & Match Engine

Records like / skip decisions and materialises a match the moment both
users of a pair have liked each other:

  1. Resolve the candidate profile's owner (the *target user*).
  2. In one transaction: lock the canonical pair, upsert the swipe keyed
     by (user, profile); on a like, look for the target's like pointing back at the acting user;
     when it exists, find-or-create the match for the canonical pair
     ``(min(user, target), max(user, target))``.
  3. After commit, announce a *new* match to both users in the background.

Exactly-once creation under concurrent likes relies on the pair lock, on
the check and the insert sharing the transaction, and on the ``uq_match_pair`` constraint as
the final backstop: a losing insert is rolled back to its savepoint and
the winning row is re-read and returned.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt

from matchbox.config import get_settings
from matchbox.errors import Conflict, InvalidArgument, MatchboxError, Unavailable
from matchbox.models.match import Match, Swipe
from matchbox.models.profile import Profile
from matchbox.services.notification_hub import NotificationHub
from matchbox.services.profile_directory import ProfileDirectory

logger = structlog.get_logger("matchbox.match_engine")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def canonical_pair(user_x: str, user_y: str) -> tuple[str, str]:
    """Order two user ids so that the first sorts before the second."""
    if user_x == user_y:
        raise InvalidArgument("A match needs two distinct users.")
    return (user_x, user_y) if user_x < user_y else (user_y, user_x)


def pair_lock_key(user_a: str, user_b: str) -> int:
    """Stable signed 64-bit key for ``pg_advisory_xact_lock`` on a canonical pair."""
    digest = hashlib.blake2b(f"{user_a}\x00{user_b}".encode(), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


def _upsert_swipe_statement(dialect_name: str, values: dict):
    """``INSERT .. ON CONFLICT (user_id, profile_id) DO UPDATE`` for the
    dialects that support it, or ``None`` for the ORM fallback."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None

    stmt = insert(Swipe).values(**values)
    update_set = {
        "is_like": stmt.excluded.is_like,
        "updated_at": stmt.excluded.updated_at,
    }
    if values.get("message") is not None:
        update_set["message"] = stmt.excluded.message
    return stmt.on_conflict_do_update(
        index_elements=[Swipe.user_id, Swipe.profile_id],
        set_=update_set,
    )


class MatchEngine:
    """Swipe ledger writer and exactly-once match creator.

    Dependencies are injected at construction so that the engine can be
    tested against any database and with or without a notification hub.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        profiles: ProfileDirectory,
        notifier: NotificationHub | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.profiles = profiles
        self.notifier = notifier
        self.max_retries: int = max_retries or get_settings().MATCH_CREATE_MAX_RETRIES

        logger.info(
            "match_engine_initialised",
            max_retries=self.max_retries,
            has_notifier=notifier is not None,
        )

    # ── Public API ────────────────────────────────────────────────────────

    async def record_swipe(
        self,
        user_id: str,
        profile_id: str,
        is_like: bool,
        message: str | None = None,
    ) -> Match | None:
        """Record ``user_id``'s decision on ``profile_id``.

        Returns the pair's match when this like completes (or re-confirms)
        a mutual like, otherwise ``None``.  Skips never produce a match.

        Raises
        ------
        InvalidArgument
            Missing ids or a swipe on the user's own profile.
        NotFound
            ``profile_id`` does not exist.
        Unavailable
            The transaction failed and was rolled back; retrying the whole
            call is safe.
        """
        if not user_id:
            raise InvalidArgument("user_id is required.")
        if not profile_id:
            raise InvalidArgument("profile_id is required.")
        if message is not None:
            message = message.strip() or None

        log = logger.bind(user_id=user_id, profile_id=profile_id, is_like=is_like)

        profile = await self.profiles.require_profile(profile_id)
        target_user_id = profile.user_id
        if target_user_id == user_id:
            log.info("swipe_rejected", reason="self_swipe")
            raise InvalidArgument("You cannot swipe on your own profile.")

        match: Match | None = None
        created = False

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await self._lock_pair(session, *canonical_pair(user_id, target_user_id))
                    await self._upsert_swipe(session, user_id, profile_id, is_like, message)

                    if is_like and await self._has_mutual_like(session, user_id, target_user_id):
                        user_a, user_b = canonical_pair(user_id, target_user_id)
                        match, created = await self._get_or_create_match(session, user_a, user_b)
        except MatchboxError:
            raise
        except SQLAlchemyError as exc:
            log.error("swipe_transaction_failed", error=str(exc))
            raise Unavailable("Could not record the swipe, please retry.") from exc

        if match is None:
            log.info("swipe_recorded", mutual=False)
            return None

        log.info("swipe_recorded", mutual=True, match_id=match.id, created=created)
        if created:
            self._announce_match(match)
        return match

    async def like(self, user_id: str, profile_id: str, message: str | None = None) -> Match | None:
        return await self.record_swipe(user_id, profile_id, True, message)

    async def skip(self, user_id: str, profile_id: str) -> None:
        await self.record_swipe(user_id, profile_id, False)

    # ── Transaction steps ────────────────────────────────────────────────

    async def _lock_pair(self, session: AsyncSession, user_a: str, user_b: str) -> None:
        """Serialise swipes between the two users of a pair until commit.

        Without it two crossing likes under READ COMMITTED each miss the
        other's uncommitted swipe and neither creates the match.  SQLite
        needs nothing here: ``BEGIN IMMEDIATE`` already serialises writers.
        """
        dialect_name = session.get_bind().dialect.name
        if dialect_name == "postgresql":
            await session.execute(select(func.pg_advisory_xact_lock(pair_lock_key(user_a, user_b))))
        elif dialect_name != "sqlite":
            await session.execute(
                select(Profile.id)
                .where(Profile.user_id.in_((user_a, user_b)))
                .order_by(Profile.user_id)
                .with_for_update()
            )

    async def _upsert_swipe(
        self,
        session: AsyncSession,
        user_id: str,
        profile_id: str,
        is_like: bool,
        message: str | None,
    ) -> None:
        now = _utcnow()
        values = {
            "user_id": user_id,
            "profile_id": profile_id,
            "is_like": is_like,
            "message": message,
            "created_at": now,
            "updated_at": now,
        }
        stmt = _upsert_swipe_statement(session.get_bind().dialect.name, values)
        if stmt is not None:
            await session.execute(stmt)
            return

        existing = (
            await session.execute(
                select(Swipe).where(Swipe.user_id == user_id, Swipe.profile_id == profile_id)
            )
        ).scalar_one_or_none()
        if existing is None:
            session.add(Swipe(**values))
        else:
            existing.is_like = is_like
            existing.updated_at = now
            if message is not None:
                existing.message = message
        await session.flush()

    async def _has_mutual_like(
        self,
        session: AsyncSession,
        user_id: str,
        target_user_id: str,
    ) -> bool:
        """True when ``target_user_id`` has liked a profile owned by ``user_id``."""
        stmt = (
            select(Swipe.id)
            .join(Profile, Profile.id == Swipe.profile_id)
            .where(
                Swipe.user_id == target_user_id,
                Swipe.is_like.is_(True),
                Profile.user_id == user_id,
            )
            .limit(1)
        )
        return (await session.execute(stmt)).first() is not None

    async def _find_match(self, session: AsyncSession, user_a: str, user_b: str) -> Match | None:
        stmt = select(Match).where(Match.user_a_id == user_a, Match.user_b_id == user_b)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _insert_match(self, session: AsyncSession, user_a: str, user_b: str) -> Match:
        now = _utcnow()
        match = Match(
            user_a_id=user_a,
            user_b_id=user_b,
            created_at=now,
            last_message_at=now,
            user_a_last_read=now,
            user_b_last_read=now,
        )
        try:
            async with session.begin_nested():
                session.add(match)
                await session.flush()
        except IntegrityError as exc:
            raise Conflict(f"Match for {user_a} / {user_b} was created concurrently.") from exc
        return match

    async def _get_or_create_match(
        self,
        session: AsyncSession,
        user_a: str,
        user_b: str,
    ) -> tuple[Match, bool]:
        """Return ``(match, created)`` for the canonical pair.

        A lost insert race surfaces as ``Conflict``; the next attempt finds
        the winning row.  Runs at most ``max_retries`` attempts.
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(Conflict),
                stop=stop_after_attempt(self.max_retries),
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "match_insert_retry",
                            user_a=user_a,
                            user_b=user_b,
                            attempt_number=attempt.retry_state.attempt_number,
                        )
                    existing = await self._find_match(session, user_a, user_b)
                    if existing is not None:
                        return existing, False
                    return await self._insert_match(session, user_a, user_b), True
        except RetryError as retry_err:
            logger.error(
                "match_insert_retry_exhausted",
                user_a=user_a,
                user_b=user_b,
                attempts=self.max_retries,
            )
            raise Unavailable(
                "Could not settle the match for this pair, please retry."
            ) from retry_err

    # ── Notifications ────────────────────────────────────────────────────

    def _announce_match(self, match: Match) -> None:
        if self.notifier is None:
            return
        self.notifier.run_in_background(
            self._notify_match(match),
            name=f"notify:match:{match.id}",
        )

    async def _notify_match(self, match: Match) -> None:
        profiles = await self.profiles.get_profiles_by_user_ids(match.participants)
        if len(profiles) < 2:
            logger.warning(
                "match_notification_skipped",
                match_id=match.id,
                reason="profile_missing",
            )
            return

        for recipient in match.participants:
            partner = profiles[match.partner_of(recipient)]
            await self.notifier.publish(
                recipient,
                "match",
                {
                    "target_id": match.id,
                    "match_id": match.id,
                    "profile_id": partner.id,
                    "message": f"You matched with {partner.name}",
                },
            )
