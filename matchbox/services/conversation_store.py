"""
Matchbox — Conversation Store

Matches and their messages, with per-participant read tracking.

Ordering contract:
  * ``list_messages`` / ``get_conversation`` return messages oldest-first,
    for replaying a conversation.
  * ``preview_messages`` returns newest-first and is meant for summary views.
  * ``list_matches_for_user`` returns the most recently active match first.

Unread count for a participant = messages authored by the partner created
after that participant's last-read timestamp.  Reading never writes: the
read path calls ``mark_read`` explicitly.  ``mark_message_read`` only sets
the per-message ``is_read`` flag and leaves the read marker alone.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchbox.config import get_settings
from matchbox.errors import Forbidden, InvalidArgument, MatchboxError, NotFound, Unavailable
from matchbox.models.match import Match
from matchbox.models.message import Message
from matchbox.models.profile import Profile
from matchbox.services.notification_hub import NotificationHub
from matchbox.services.profile_directory import ProfileDirectory

logger = structlog.get_logger("matchbox.conversation_store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MatchOverview:
    """One row of a user's match list."""

    match: Match
    profile: Profile
    last_message: Message | None
    unread_count: int


@dataclass
class Conversation:
    match: Match
    profile: Profile | None
    messages: list[Message]


class ConversationStore:
    """Read / append operations over matches and messages."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        profiles: ProfileDirectory,
        notifier: NotificationHub | None = None,
        page_default: int | None = None,
        page_max: int | None = None,
        max_length: int | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self.profiles = profiles
        self.notifier = notifier
        self.page_max: int = page_max or settings.MESSAGE_PAGE_MAX
        self.page_default: int = min(page_default or settings.MESSAGE_PAGE_DEFAULT, self.page_max)
        self.max_length: int = max_length or settings.MESSAGE_MAX_LENGTH

        logger.info(
            "conversation_store_initialised",
            page_default=self.page_default,
            page_max=self.page_max,
            has_notifier=notifier is not None,
        )

    # ── Matches ───────────────────────────────────────────────────────────

    async def get_match(self, user_id: str, match_id: int) -> Match:
        """Return the match if ``user_id`` takes part in it.

        Raises ``NotFound`` for an unknown match and ``Forbidden`` when the
        user is not one of its two participants.
        """
        async with self._session_factory() as session:
            return await self._load_match(session, user_id, match_id)

    async def list_matches_for_user(self, user_id: str) -> list[MatchOverview]:
        """All matches of ``user_id``, most recent activity first.

        Matches whose partner has no profile are left out.
        """
        log = logger.bind(user_id=user_id)

        async with self._session_factory() as session:
            stmt = (
                select(Match)
                .where(or_(Match.user_a_id == user_id, Match.user_b_id == user_id))
                .order_by(Match.last_message_at.desc(), Match.id.desc())
            )
            matches = (await session.execute(stmt)).scalars().all()

            partner_ids = [m.partner_of(user_id) for m in matches]
            profiles = await self.profiles.get_profiles_by_user_ids(
                partner_ids, db_session=session
            )

            overviews: list[MatchOverview] = []
            for match in matches:
                partner_id = match.partner_of(user_id)
                profile = profiles.get(partner_id)
                if profile is None:
                    log.warning(
                        "match_partner_profile_missing",
                        match_id=match.id,
                        partner_id=partner_id,
                    )
                    continue

                last_message = (
                    await session.execute(
                        select(Message)
                        .where(Message.match_id == match.id)
                        .order_by(Message.created_at.desc(), Message.id.desc())
                        .limit(1)
                    )
                ).scalar_one_or_none()

                unread = await self._count_unread(session, match, user_id)
                overviews.append(MatchOverview(match, profile, last_message, unread))

        log.info("list_matches", count=len(overviews))
        return overviews

    # ── Messages ──────────────────────────────────────────────────────────

    async def list_messages(
        self,
        user_id: str,
        match_id: int,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Message]:
        """One page of the conversation, oldest message first."""
        limit = self._check_page(limit, offset)
        async with self._session_factory() as session:
            await self._load_match(session, user_id, match_id)
            stmt = (
                select(Message)
                .where(Message.match_id == match_id)
                .order_by(Message.created_at.asc(), Message.id.asc())
                .limit(limit)
                .offset(offset)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def preview_messages(
        self,
        user_id: str,
        match_id: int,
        limit: int = 3,
    ) -> list[Message]:
        """The newest ``limit`` messages, newest first."""
        limit = self._check_page(limit, 0)
        async with self._session_factory() as session:
            await self._load_match(session, user_id, match_id)
            stmt = (
                select(Message)
                .where(Message.match_id == match_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            return list((await session.execute(stmt)).scalars().all())

    async def send_message(self, sender_id: str, match_id: int, body: str) -> Message:
        """Append a message from ``sender_id`` and notify the partner.

        The partner notification is scheduled after commit and never
        awaited; its outcome does not affect the result.
        """
        text = (body or "").strip()
        if not text:
            raise InvalidArgument("Message body must not be empty.")
        if len(text) > self.max_length:
            raise InvalidArgument(
                f"Message body exceeds {self.max_length} characters."
            )

        log = logger.bind(sender_id=sender_id, match_id=match_id)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    match = await self._load_match(
                        session, sender_id, match_id, for_update=True
                    )
                    now = _utcnow()
                    message = Message(
                        match_id=match.id,
                        sender_id=sender_id,
                        body=text,
                        is_read=False,
                        created_at=now,
                    )
                    session.add(message)
                    match.last_message_at = now
                    await session.flush()
                    recipient = match.partner_of(sender_id)
        except MatchboxError:
            raise
        except SQLAlchemyError as exc:
            log.error("send_message_failed", error=str(exc))
            raise Unavailable("Could not send the message, please retry.") from exc

        log.info("message_sent", message_id=message.id)

        if self.notifier is not None:
            self.notifier.dispatch(
                recipient,
                "message",
                {
                    "target_id": match_id,
                    "match_id": match_id,
                    "sender_id": sender_id,
                    "message_id": message.id,
                    "message": text,
                    "created_at": message.created_at,
                },
            )
        return message

    async def mark_read(self, user_id: str, match_id: int) -> None:
        """Move the caller's read marker to now and flag the partner's
        messages as read.  Safe to repeat."""
        log = logger.bind(user_id=user_id, match_id=match_id)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    match = await self._load_match(
                        session, user_id, match_id, for_update=True
                    )
                    match.set_last_read(user_id, _utcnow())
                    result = await session.execute(
                        update(Message)
                        .where(
                            Message.match_id == match_id,
                            Message.sender_id != user_id,
                            Message.is_read.is_(False),
                        )
                        .values(is_read=True)
                    )
        except MatchboxError:
            raise
        except SQLAlchemyError as exc:
            log.error("mark_read_failed", error=str(exc))
            raise Unavailable("Could not update read state, please retry.") from exc

        log.info("match_marked_read", messages_flagged=result.rowcount)

    async def mark_message_read(self, user_id: str, message_id: int) -> None:
        """Flag a single message from the partner as read.

        Raises ``NotFound`` for an unknown message, ``Forbidden`` when the
        caller is not part of its match and ``InvalidArgument`` when the
        caller sent it.
        """
        log = logger.bind(user_id=user_id, message_id=message_id)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    message = await session.get(Message, message_id, with_for_update=True)
                    if message is None:
                        raise NotFound(f"Message {message_id} not found.")
                    await self._load_match(session, user_id, message.match_id)
                    if message.sender_id == user_id:
                        raise InvalidArgument("You cannot mark your own message as read.")
                    message.is_read = True
        except MatchboxError:
            raise
        except SQLAlchemyError as exc:
            log.error("mark_message_read_failed", error=str(exc))
            raise Unavailable("Could not update read state, please retry.") from exc

        log.info("message_marked_read", match_id=message.match_id)

    async def get_conversation(self, user_id: str, match_id: int) -> Conversation:
        """The match, the partner's profile and every message oldest-first.

        Opening a conversation counts as reading it, so ``mark_read`` runs
        before the messages are loaded.
        """
        await self.mark_read(user_id, match_id)

        async with self._session_factory() as session:
            match = await self._load_match(session, user_id, match_id)
            messages = (
                await session.execute(
                    select(Message)
                    .where(Message.match_id == match_id)
                    .order_by(Message.created_at.asc(), Message.id.asc())
                )
            ).scalars().all()
            profile = await self.profiles.get_profile_by_user_id(
                match.partner_of(user_id), db_session=session
            )

        return Conversation(match=match, profile=profile, messages=list(messages))

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _load_match(
        self,
        session: AsyncSession,
        user_id: str,
        match_id: int,
        for_update: bool = False,
    ) -> Match:
        stmt = select(Match).where(Match.id == match_id)
        if for_update:
            stmt = stmt.with_for_update()
        match = (await session.execute(stmt)).scalar_one_or_none()

        if match is None:
            raise NotFound(f"Match {match_id} not found.")
        if not match.is_participant(user_id):
            logger.warning("match_access_denied", user_id=user_id, match_id=match_id)
            raise Forbidden("You are not part of this match.")
        return match

    async def _count_unread(self, session: AsyncSession, match: Match, user_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(Message)
            .where(
                Message.match_id == match.id,
                Message.sender_id == match.partner_of(user_id),
                Message.created_at > match.last_read_for(user_id),
            )
        )
        return int((await session.execute(stmt)).scalar_one())

    def _check_page(self, limit: int | None, offset: int) -> int:
        if limit is None:
            limit = self.page_default
        if not 1 <= limit <= self.page_max:
            raise InvalidArgument(f"limit must be between 1 and {self.page_max}.")
        if offset < 0:
            raise InvalidArgument("offset must not be negative.")
        return limit
