"""Tests for ConversationStore — messaging, read tracking and match listing."""
import pytest
from sqlalchemy import func, select

from matchbox.errors import Forbidden, InvalidArgument, NotFound
from matchbox.models.message import Message
from matchbox.models.notification import Notification
from matchbox.services.conversation_store import ConversationStore


async def _unread_for(store, user_id, match_id):
    overviews = await store.list_matches_for_user(user_id)
    return next(o.unread_count for o in overviews if o.match.id == match_id)


class TestEndToEnd:
    """Like, like back, message, read."""

    @pytest.mark.asyncio
    async def test_full_scenario(self, engine, store, profiles):
        assert await engine.like("u1", "p-u2") is None
        match = await engine.like("u2", "p-u1")
        assert match.created_at == match.last_message_at

        sent = await store.send_message("u1", match.id, "hi")
        refreshed = await store.get_match("u2", match.id)
        assert refreshed.last_message_at > refreshed.created_at

        messages = await store.list_messages("u2", match.id)
        assert [m.body for m in messages] == ["hi"]
        assert messages[0].id == sent.id
        assert messages[0].is_read is False
        assert await _unread_for(store, "u2", match.id) == 1

        await store.mark_read("u2", match.id)

        assert await _unread_for(store, "u2", match.id) == 0
        messages = await store.list_messages("u2", match.id)
        assert messages[0].is_read is True


class TestSendMessage:
    """Validation and authorisation of the append path."""

    @pytest.mark.asyncio
    async def test_non_participant_forbidden(self, store, matched, session_factory):
        with pytest.raises(Forbidden):
            await store.send_message("u3", matched.id, "intruding")

        async with session_factory() as session:
            count = (
                await session.execute(select(func.count()).select_from(Message))
            ).scalar_one()
        assert count == 0

    @pytest.mark.asyncio
    async def test_unknown_match(self, store, profiles):
        with pytest.raises(NotFound):
            await store.send_message("u1", 999, "hello?")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["", "   ", None])
    async def test_empty_body_rejected(self, store, matched, body):
        with pytest.raises(InvalidArgument):
            await store.send_message("u1", matched.id, body)

    @pytest.mark.asyncio
    async def test_overlong_body_rejected(self, session_factory, directory, matched):
        store = ConversationStore(session_factory, directory, max_length=5)
        with pytest.raises(InvalidArgument):
            await store.send_message("u1", matched.id, "too long")

    @pytest.mark.asyncio
    async def test_body_is_trimmed(self, store, matched):
        message = await store.send_message("u1", matched.id, "  hey  ")
        assert message.body == "hey"

    @pytest.mark.asyncio
    async def test_partner_is_notified(self, store, hub, matched, session_factory):
        await hub.drain()
        subscription = await hub.subscribe("u2", event_types=frozenset({"message"}))

        message = await store.send_message("u1", matched.id, "hi")
        await hub.drain()

        event = await subscription.next_event(timeout=1)
        assert '"type": "message"' in event
        assert f'"message_id": {message.id}' in event
        assert '"sender_id": "u1"' in event

        async with session_factory() as session:
            rows = (
                await session.execute(
                    select(Notification).where(Notification.type == "message")
                )
            ).scalars().all()
        assert [(n.user_id, n.target_id, n.body) for n in rows] == [("u2", matched.id, "hi")]
        await subscription.close()


class TestReadTracking:
    """MarkRead and unread counts."""

    @pytest.mark.asyncio
    async def test_unread_resets_and_increments(self, store, matched):
        await store.send_message("u1", matched.id, "one")
        await store.send_message("u1", matched.id, "two")
        assert await _unread_for(store, "u2", matched.id) == 2

        await store.mark_read("u2", matched.id)
        assert await _unread_for(store, "u2", matched.id) == 0

        await store.send_message("u1", matched.id, "three")
        assert await _unread_for(store, "u2", matched.id) >= 1

    @pytest.mark.asyncio
    async def test_own_messages_are_never_unread(self, store, matched):
        await store.send_message("u1", matched.id, "hello")
        assert await _unread_for(store, "u1", matched.id) == 0

    @pytest.mark.asyncio
    async def test_mark_read_is_idempotent(self, store, matched):
        await store.send_message("u1", matched.id, "hello")
        await store.mark_read("u2", matched.id)
        await store.mark_read("u2", matched.id)
        assert await _unread_for(store, "u2", matched.id) == 0

    @pytest.mark.asyncio
    async def test_mark_read_leaves_own_messages(self, store, matched):
        await store.send_message("u1", matched.id, "from u1")
        await store.send_message("u2", matched.id, "from u2")

        await store.mark_read("u2", matched.id)

        messages = await store.list_messages("u1", matched.id)
        flags = {m.sender_id: m.is_read for m in messages}
        assert flags == {"u1": True, "u2": False}

    @pytest.mark.asyncio
    async def test_mark_read_forbidden_for_outsider(self, store, matched):
        with pytest.raises(Forbidden):
            await store.mark_read("u3", matched.id)

    @pytest.mark.asyncio
    async def test_conversation_marks_read(self, store, matched):
        await store.send_message("u1", matched.id, "hi")

        conversation = await store.get_conversation("u2", matched.id)

        assert conversation.profile.user_id == "u1"
        assert [m.body for m in conversation.messages] == ["hi"]
        assert conversation.messages[0].is_read is True
        assert await _unread_for(store, "u2", matched.id) == 0


class TestListing:
    """Ordering and pagination."""

    @pytest.mark.asyncio
    async def test_messages_oldest_first_preview_newest_first(self, store, matched):
        for body in ("a", "b", "c", "d"):
            await store.send_message("u1", matched.id, body)

        assert [m.body for m in await store.list_messages("u1", matched.id)] == ["a", "b", "c", "d"]
        assert [m.body for m in await store.preview_messages("u1", matched.id)] == ["d", "c", "b"]

    @pytest.mark.asyncio
    async def test_pagination(self, store, matched):
        for body in ("a", "b", "c", "d"):
            await store.send_message("u1", matched.id, body)

        page = await store.list_messages("u2", matched.id, limit=2, offset=1)
        assert [m.body for m in page] == ["b", "c"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit,offset", [(0, 0), (10_000, 0), (5, -1)])
    async def test_invalid_page(self, store, matched, limit, offset):
        with pytest.raises(InvalidArgument):
            await store.list_messages("u1", matched.id, limit=limit, offset=offset)

    @pytest.mark.asyncio
    async def test_list_messages_forbidden_for_outsider(self, store, matched):
        with pytest.raises(Forbidden):
            await store.list_messages("u3", matched.id)

    @pytest.mark.asyncio
    async def test_matches_ordered_by_activity(self, engine, store, matched):
        await engine.like("u3", "p-u1")
        newer = await engine.like("u1", "p-u3")

        overviews = await store.list_matches_for_user("u1")
        assert [o.match.id for o in overviews] == [newer.id, matched.id]

        await store.send_message("u2", matched.id, "bump")

        overviews = await store.list_matches_for_user("u1")
        assert [o.match.id for o in overviews] == [matched.id, newer.id]
        assert overviews[0].profile.user_id == "u2"
        assert overviews[0].last_message.body == "bump"
        assert overviews[1].last_message is None

    @pytest.mark.asyncio
    async def test_match_without_partner_profile_is_skipped(self, store, matched, session_factory):
        from matchbox.models.profile import Profile

        async with session_factory() as session:
            async with session.begin():
                profile = await session.get(Profile, "p-u2")
                await session.delete(profile)

        assert await store.list_matches_for_user("u1") == []

    @pytest.mark.asyncio
    async def test_get_match_outsider(self, store, matched):
        with pytest.raises(Forbidden):
            await store.get_match("u3", matched.id)
        assert (await store.get_match("u2", matched.id)).id == matched.id


class TestMarkMessageRead:
    """Acknowledging a single message."""

    @pytest.mark.asyncio
    async def test_recipient_marks_message(self, store, matched):
        first = await store.send_message("u1", matched.id, "one")
        second = await store.send_message("u1", matched.id, "two")

        await store.mark_message_read("u2", first.id)

        flags = {m.id: m.is_read for m in await store.list_messages("u2", matched.id)}
        assert flags == {first.id: True, second.id: False}
        # The read marker only moves on mark_read.
        assert await _unread_for(store, "u2", matched.id) == 2

    @pytest.mark.asyncio
    async def test_is_idempotent(self, store, matched):
        message = await store.send_message("u1", matched.id, "one")

        await store.mark_message_read("u2", message.id)
        await store.mark_message_read("u2", message.id)

        assert (await store.list_messages("u2", matched.id))[0].is_read is True

    @pytest.mark.asyncio
    async def test_sender_cannot_mark_own_message(self, store, matched):
        message = await store.send_message("u1", matched.id, "one")

        with pytest.raises(InvalidArgument):
            await store.mark_message_read("u1", message.id)
        assert (await store.list_messages("u1", matched.id))[0].is_read is False

    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, store, matched):
        message = await store.send_message("u1", matched.id, "one")

        with pytest.raises(Forbidden):
            await store.mark_message_read("u3", message.id)

    @pytest.mark.asyncio
    async def test_unknown_message(self, store, matched):
        with pytest.raises(NotFound):
            await store.mark_message_read("u2", 999)
