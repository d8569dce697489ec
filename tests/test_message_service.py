"""Tests for the message ledger."""
import uuid

import pytest
import pytest_asyncio
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sparkmatch.database import Base
from sparkmatch.errors import (
    EditWindowExpiredError,
    InactiveMatchError,
    MessageNotEditableError,
    NotAParticipantError,
    NotFoundOrUnauthorizedError,
)
from sparkmatch.models.match import Match
from sparkmatch.models.user import User
from sparkmatch.realtime.notifier import (
    MESSAGE_DELETED,
    MESSAGE_EDITED,
    MESSAGE_READ,
    MESSAGE_SENT,
    MESSAGES_READ,
    RECEIVE_MESSAGE,
)
from sparkmatch.schemas.message import (
    EmojiPayload,
    ImagePayload,
    MessageCreate,
    TextPayload,
)
from sparkmatch.services.match_service import MatchService
from sparkmatch.services.message_service import MessageService


def text(content):
    return TextPayload(content=content)


@pytest_asyncio.fixture
async def on_disk_sessions(tmp_path):
    """Session factory over a file database: every session gets its own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class TestPayloads:
    """The payload union only admits well-formed per-type content."""

    def test_text_is_stripped(self):
        assert text("  hello  ").content == "hello"

    def test_blank_text_rejected(self):
        with pytest.raises(ValidationError):
            text("   ")

    def test_blank_emoji_rejected(self):
        assert EmojiPayload(type="emoji", content=" 🎉 ").content == "🎉"
        with pytest.raises(ValidationError):
            EmojiPayload(type="emoji", content="   ")

    def test_text_length_limit(self):
        text("x" * 1000)
        with pytest.raises(ValidationError):
            text("x" * 1001)

    def test_discriminator_selects_type(self):
        body = MessageCreate.model_validate(
            {
                "match_id": str(uuid.uuid4()),
                "payload": {"type": "image", "image_url": "https://img.example.com/a.jpg"},
            }
        )
        assert isinstance(body.payload, ImagePayload)
        assert body.payload.columns()["message_type"] == "image"

    def test_image_requires_url(self):
        with pytest.raises(ValidationError):
            MessageCreate.model_validate(
                {"match_id": str(uuid.uuid4()), "payload": {"type": "image"}}
            )

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            MessageCreate.model_validate(
                {"match_id": str(uuid.uuid4()), "payload": {"type": "video", "content": "x"}}
            )


class TestSend:

    @pytest.mark.asyncio
    async def test_send_persists_and_notifies(
        self, db_session, message_service, matched_pair, connect, clock
    ):
        alice, bob, match = matched_pair
        alice_socket = connect(alice.id)
        bob_socket = connect(bob.id)

        message = await message_service.send(match.id, alice, text("hello"), db_session)

        assert message.sender_id == alice.id
        assert message.recipient_id == bob.id
        assert message.content == "hello"
        assert message.is_read is False
        assert message.is_delivered is True
        assert message.delivered_at == clock()

        refreshed = await db_session.get(Match, match.id)
        assert refreshed.last_message_id == message.id
        assert refreshed.last_activity == clock()

        received = bob_socket.last(RECEIVE_MESSAGE)
        assert received["message"]["id"] == str(message.id)
        assert received["match"]["sender"]["name"] == "Alice"
        assert alice_socket.events() == [MESSAGE_SENT]

    @pytest.mark.asyncio
    async def test_round_trip_returns_same_content(
        self, db_session, message_service, matched_pair, clock
    ):
        alice, bob, match = matched_pair
        await message_service.send(match.id, alice, text("how was the concert?"), db_session)
        clock.advance(seconds=1)
        await message_service.send(match.id, bob, text("amazing!"), db_session)

        newest_first = await message_service.list_messages(match.id, db_session)

        assert [m.content for m in newest_first] == ["amazing!", "how was the concert?"]
        assert [m.sender_id for m in newest_first] == [bob.id, alice.id]

    @pytest.mark.asyncio
    async def test_image_and_emoji(self, db_session, message_service, matched_pair):
        alice, _, match = matched_pair

        image = await message_service.send(
            match.id,
            alice,
            ImagePayload(type="image", image_url="https://img.example.com/cat.png"),
            db_session,
        )
        emoji = await message_service.send(
            match.id, alice, EmojiPayload(type="emoji", content="🔥"), db_session
        )

        assert image.message_type == "image"
        assert image.image_url == "https://img.example.com/cat.png"
        assert image.content is None
        assert emoji.message_type == "emoji"
        assert emoji.content == "🔥"

    @pytest.mark.asyncio
    async def test_outsider_cannot_send(
        self, db_session, make_user, message_service, matched_pair
    ):
        _, _, match = matched_pair
        outsider = await make_user()
        with pytest.raises(NotAParticipantError):
            await message_service.send(match.id, outsider, text("hi"), db_session)

    @pytest.mark.asyncio
    async def test_cannot_send_to_unmatched(
        self, db_session, match_service, message_service, matched_pair
    ):
        alice, bob, match = matched_pair
        await match_service.unmatch(match.id, bob.id, db_session)

        with pytest.raises(InactiveMatchError):
            await message_service.send(match.id, alice, text("still there?"), db_session)

    @pytest.mark.asyncio
    async def test_reply_must_belong_to_same_match(
        self, db_session, make_user, match_service, message_service, matched_pair
    ):
        alice, bob, match = matched_pair
        carol = await make_user()
        other, _ = await match_service.create_match([alice.id, carol.id], db_session)
        await db_session.commit()
        elsewhere = await message_service.send(other.id, carol, text("hey"), db_session)
        here = await message_service.send(match.id, bob, text("hi"), db_session)

        reply = await message_service.send(
            match.id, alice, text("hi back"), db_session, reply_to_id=here.id
        )
        assert reply.reply_to_id == here.id

        with pytest.raises(NotFoundOrUnauthorizedError):
            await message_service.send(
                match.id, alice, text("wrong thread"), db_session, reply_to_id=elsewhere.id
            )


class TestReadReceipts:

    @pytest.mark.asyncio
    async def test_mark_read_is_idempotent(
        self, db_session, message_service, matched_pair, connect, clock
    ):
        alice, bob, match = matched_pair
        alice_socket = connect(alice.id)
        message = await message_service.send(match.id, alice, text("hi"), db_session)
        first_read_at = clock.advance(minutes=1)

        await message_service.mark_read(message.id, bob.id, db_session)
        clock.advance(minutes=1)
        again = await message_service.mark_read(message.id, bob.id, db_session)

        assert again.is_read is True
        assert again.read_at == first_read_at
        assert alice_socket.events().count(MESSAGE_READ) == 1

    @pytest.mark.asyncio
    async def test_only_recipient_can_mark_read(
        self, db_session, message_service, matched_pair
    ):
        alice, _, match = matched_pair
        message = await message_service.send(match.id, alice, text("hi"), db_session)

        with pytest.raises(NotFoundOrUnauthorizedError):
            await message_service.mark_read(message.id, alice.id, db_session)

    @pytest.mark.asyncio
    async def test_mark_all_read(self, db_session, message_service, matched_pair, connect):
        alice, bob, match = matched_pair
        alice_socket = connect(alice.id)
        for n in range(3):
            await message_service.send(match.id, alice, text(f"msg {n}"), db_session)
        await message_service.send(match.id, bob, text("mine"), db_session)

        count = await message_service.mark_all_read(match.id, bob.id, db_session)

        assert count == 3
        assert await message_service.unread_count(bob.id, db_session) == 0
        assert await message_service.unread_count(alice.id, db_session) == 1
        assert alice_socket.events().count(MESSAGES_READ) == 1
        assert alice_socket.last(MESSAGES_READ)["read_count"] == 3


class TestEdit:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "elapsed",
        [{"minutes": 14, "seconds": 59}, {"minutes": 15}],
        ids=["14m59s", "exactly-15m"],
    )
    async def test_edit_inside_window(
        self, db_session, message_service, matched_pair, connect, clock, elapsed
    ):
        alice, bob, match = matched_pair
        bob_socket = connect(bob.id)
        message = await message_service.send(match.id, alice, text("helo"), db_session)
        edited_at = clock.advance(**elapsed)

        edited = await message_service.edit(message.id, alice.id, "hello", db_session)

        assert edited.content == "hello"
        assert edited.edited_at == edited_at
        assert bob_socket.last(MESSAGE_EDITED)["message"]["content"] == "hello"

    @pytest.mark.asyncio
    async def test_edit_after_window(self, db_session, message_service, matched_pair, clock):
        alice, _, match = matched_pair
        message = await message_service.send(match.id, alice, text("helo"), db_session)
        clock.advance(minutes=15, seconds=1)

        with pytest.raises(EditWindowExpiredError):
            await message_service.edit(message.id, alice.id, "hello", db_session)
        assert message.content == "helo"

    @pytest.mark.asyncio
    async def test_only_sender_can_edit(self, db_session, message_service, matched_pair):
        alice, bob, match = matched_pair
        message = await message_service.send(match.id, alice, text("hi"), db_session)

        with pytest.raises(NotFoundOrUnauthorizedError):
            await message_service.edit(message.id, bob.id, "hacked", db_session)

    @pytest.mark.asyncio
    async def test_non_text_not_editable(self, db_session, message_service, matched_pair):
        alice, _, match = matched_pair
        message = await message_service.send(
            match.id, alice, EmojiPayload(type="emoji", content="👋"), db_session
        )

        with pytest.raises(MessageNotEditableError):
            await message_service.edit(message.id, alice.id, "hello", db_session)


class TestSoftDelete:

    @pytest.mark.asyncio
    async def test_deleted_message_hidden_but_kept(
        self, db_session, message_service, matched_pair, connect
    ):
        alice, bob, match = matched_pair
        bob_socket = connect(bob.id)
        keep = await message_service.send(match.id, alice, text("keep"), db_session)
        gone = await message_service.send(match.id, alice, text("gone"), db_session)

        await message_service.soft_delete(gone.id, alice.id, db_session)

        visible = await message_service.list_messages(match.id, db_session)
        assert [m.id for m in visible] == [keep.id]
        assert await message_service.get_message(gone.id, db_session) is None
        audit = await message_service.get_message(gone.id, db_session, include_inactive=True)
        assert audit.is_active is False
        assert bob_socket.last(MESSAGE_DELETED)["message_id"] == str(gone.id)

    @pytest.mark.asyncio
    async def test_only_sender_can_delete(self, db_session, message_service, matched_pair):
        alice, bob, match = matched_pair
        message = await message_service.send(match.id, alice, text("hi"), db_session)

        with pytest.raises(NotFoundOrUnauthorizedError):
            await message_service.soft_delete(message.id, bob.id, db_session)

    @pytest.mark.asyncio
    async def test_deleted_message_cannot_be_edited(
        self, db_session, message_service, matched_pair
    ):
        alice, _, match = matched_pair
        message = await message_service.send(match.id, alice, text("hi"), db_session)
        await message_service.soft_delete(message.id, alice.id, db_session)

        with pytest.raises(NotFoundOrUnauthorizedError):
            await message_service.edit(message.id, alice.id, "edited", db_session)


class TestUnmatchScenario:
    """Three messages, then an unmatch: the conversation disappears."""

    @pytest.mark.asyncio
    async def test_conversation_gone_after_unmatch(
        self, db_session, match_service, message_service, matched_pair
    ):
        alice, bob, match = matched_pair
        await message_service.send(match.id, alice, text("one"), db_session)
        await message_service.send(match.id, bob, text("two"), db_session)
        await message_service.send(match.id, alice, text("three"), db_session)

        await match_service.unmatch(match.id, alice.id, db_session)

        assert await message_service.list_messages(match.id, db_session) == []
        assert await message_service.count_messages(match.id, db_session) == 0
        kept = await message_service.list_messages(match.id, db_session, include_inactive=True)
        assert len(kept) == 3
        assert await message_service.unread_count(bob.id, db_session) == 0

    @pytest.mark.asyncio
    async def test_unmatch_committed_mid_send_rejects_message(
        self, on_disk_sessions, notifier, clock, monkeypatch
    ):
        async with on_disk_sessions() as setup:
            alice = User(
                email="alice@example.com", name="Alice", age=28, gender="female",
                interested_in="male", password_hash="!",
            )
            bob = User(
                email="bob@example.com", name="Bob", age=30, gender="male",
                interested_in="female", password_hash="!",
            )
            setup.add_all([alice, bob])
            await setup.flush()
            match = Match.between([alice.id, bob.id], at=clock())
            setup.add(match)
            await setup.commit()

        sender_side = MatchService(notifier=notifier, clock=clock)
        ledger = MessageService(sender_side, clock=clock)
        unmatching_side = MatchService(notifier=notifier, clock=clock)
        check_participation = sender_side.get_for_participant

        async def check_then_unmatch(*args, **kwargs):
            found = await check_participation(*args, **kwargs)
            async with on_disk_sessions() as other:
                await unmatching_side.unmatch(match.id, bob.id, other)
            return found

        monkeypatch.setattr(sender_side, "get_for_participant", check_then_unmatch)

        async with on_disk_sessions() as session:
            with pytest.raises(InactiveMatchError):
                await ledger.send(match.id, alice, text("still there?"), session)

        async with on_disk_sessions() as session:
            assert await ledger.count_messages(match.id, session) == 0
            reloaded = await session.get(Match, match.id)
            assert reloaded.is_active is False
            assert reloaded.last_message_id is None


class TestQueries:

    @pytest.mark.asyncio
    async def test_pagination_newest_first(self, db_session, message_service, matched_pair, clock):
        alice, _, match = matched_pair
        for n in range(5):
            await message_service.send(match.id, alice, text(f"m{n}"), db_session)
            clock.advance(seconds=1)

        page1 = await message_service.list_messages(match.id, db_session, page=1, limit=2)
        page3 = await message_service.list_messages(match.id, db_session, page=3, limit=2)

        assert [m.content for m in page1] == ["m4", "m3"]
        assert [m.content for m in page3] == ["m0"]

    @pytest.mark.asyncio
    async def test_message_stats(self, db_session, message_service, matched_pair, clock):
        alice, bob, match = matched_pair
        await message_service.send(match.id, alice, text("yesterday"), db_session)
        clock.advance(days=1)
        await message_service.send(match.id, alice, text("today"), db_session)
        await message_service.send(
            match.id, alice, EmojiPayload(type="emoji", content="🙂"), db_session
        )
        await message_service.send(match.id, bob, text("reply"), db_session)

        stats = await message_service.message_stats(alice.id, db_session)

        assert stats.total_sent == 3
        assert stats.total_received == 1
        assert stats.unread_received == 1
        assert stats.todays_sent == 2
        assert stats.message_types == {"text": 2, "emoji": 1}

    @pytest.mark.asyncio
    async def test_search(
        self, db_session, make_user, match_service, message_service, matched_pair
    ):
        alice, bob, match = matched_pair
        carol = await make_user()
        other, _ = await match_service.create_match([bob.id, carol.id], db_session)
        await db_session.commit()

        hit = await message_service.send(match.id, alice, text("Pizza tonight?"), db_session)
        deleted = await message_service.send(match.id, alice, text("pizza again"), db_session)
        await message_service.soft_delete(deleted.id, alice.id, db_session)
        await message_service.send(other.id, carol, text("pizza with carol"), db_session)

        found = await message_service.search(alice.id, "PIZZA", db_session)
        assert [m.id for m in found] == [hit.id]

        for_bob = await message_service.search(bob.id, "pizza", db_session, match_id=match.id)
        assert [m.id for m in for_bob] == [hit.id]

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(
        self, db_session, message_service, matched_pair
    ):
        alice, _, match = matched_pair
        await message_service.send(match.id, alice, text("100% sure"), db_session)
        await message_service.send(match.id, alice, text("1000 sure"), db_session)

        found = await message_service.search(alice.id, "100%", db_session)

        assert [m.content for m in found] == ["100% sure"]
