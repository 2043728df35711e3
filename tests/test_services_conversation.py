import uuid
import pytest
from sqlalchemy import select
from app.core.exceptions import (
    ValidationError, NotFoundError, PermissionDenied, DenialCode,
)
from app.models.conversation import ConsentState
from app.models.message import Message
from app.models.notification import Notification, NotificationType
from app.models.user import MessagePrivacy
from app.services.conversation_service import ConversationService, generate_pin
from app.services.match_service import MatchService


@pytest.fixture
def gate(db_session, mock_publisher, mock_notifier):
    return ConversationService(db_session, publisher=mock_publisher, notifier=mock_notifier)


async def _message_count(session):
    return len((await session.execute(select(Message))).scalars().all())


@pytest.mark.asyncio
async def test_default_open_conversation_delivers(gate, db_session, make_user, mock_publisher, mock_notifier):
    alice, bob = await make_user("alice"), await make_user("bob")

    conversation = await gate.get_or_create(alice.id, bob.id)
    assert conversation.state == ConsentState.APPROVED
    assert conversation.chat_pin and 1000 <= int(conversation.chat_pin) <= 9999

    result = await gate.send_message(conversation.id, alice.id, "  hello  ")

    assert result.delivered and not result.request_pending
    assert result.message.content == "hello"
    assert conversation.last_message == "hello"
    assert conversation.unread_count == 1
    channels = [c.args[0] for c in mock_publisher.publish.await_args_list]
    assert channels == [f"conversation:{conversation.id}", f"user:{bob.id}"]
    assert mock_publisher.publish.await_args_list[0].args[1] == "new_message"
    mock_notifier.notify.assert_awaited_once()
    assert mock_notifier.notify.await_args.args[1] == NotificationType.MESSAGE


@pytest.mark.asyncio
async def test_get_or_create_is_symmetric(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")

    first = await gate.get_or_create(alice.id, bob.id)
    second = await gate.get_or_create(bob.id, alice.id)

    assert first.id == second.id


@pytest.mark.asyncio
async def test_get_or_create_validation(gate, make_user):
    alice = await make_user("alice")
    with pytest.raises(ValidationError):
        await gate.get_or_create(alice.id, alice.id)
    with pytest.raises(NotFoundError):
        await gate.get_or_create(alice.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_get_or_create_denied_when_dm_disabled(gate, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob", allow_messages_from=MessagePrivacy.NONE.value)

    with pytest.raises(PermissionDenied) as exc:
        await gate.get_or_create(alice.id, bob.id)
    assert exc.value.code == "DM_DISABLED"


@pytest.mark.asyncio
async def test_get_or_create_backfills_chat_id(gate, db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    forward, backward = await MatchService(db_session).ensure_match_pair(alice.id, bob.id)

    conversation = await gate.get_or_create(alice.id, bob.id)

    assert forward.chat_id == conversation.id
    assert backward.chat_id == conversation.id


@pytest.mark.asyncio
async def test_friends_only_first_send_becomes_request(gate, db_session, make_user, mock_publisher):
    alice = await make_user("alice")
    bob = await make_user("bob", allow_messages_from=MessagePrivacy.FRIENDS.value)
    conversation = await gate.get_or_create(alice.id, bob.id)
    assert conversation.state == ConsentState.NONE

    result = await gate.send_message(conversation.id, alice.id, "hey")

    assert result.request_pending and not result.delivered
    assert result.message is None
    assert conversation.state == ConsentState.PENDING_APPROVAL
    assert conversation.request_from == alice.id
    assert await _message_count(db_session) == 0
    mock_publisher.publish.assert_not_awaited()

    row = await MatchService(db_session).find_match(bob.id, alice.id)
    assert row.message_request_pending is True
    assert row.message_request_from == alice.id
    assert row.interaction_type == "message_request"
    assert row.chat_id == conversation.id


@pytest.mark.asyncio
async def test_pending_request_stays_pending_until_approved(gate, db_session, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob", allow_messages_from=MessagePrivacy.FRIENDS.value)
    conversation = await gate.get_or_create(alice.id, bob.id)
    await gate.send_message(conversation.id, alice.id, "hey")

    # Becoming a follower does not bypass a pending request
    bob.followers = [str(alice.id)]
    await db_session.commit()
    again = await gate.send_message(conversation.id, alice.id, "hey again")

    assert again.request_pending
    assert await _message_count(db_session) == 0


@pytest.mark.asyncio
async def test_approval_unlocks_delivery(gate, db_session, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob", allow_messages_from=MessagePrivacy.FRIENDS.value)
    conversation = await gate.get_or_create(alice.id, bob.id)
    await gate.send_message(conversation.id, alice.id, "hey")

    with pytest.raises(ValidationError):
        await gate.approve(conversation.id, alice.id)

    approved = await gate.approve(conversation.id, bob.id)
    assert approved.state == ConsentState.APPROVED and approved.is_approved

    rows = await MatchService(db_session).get_pair(alice.id, bob.id)
    assert rows and all(r.messaging_approved and not r.message_request_pending for r in rows)

    result = await gate.send_message(conversation.id, alice.id, "thanks")
    assert result.delivered
    assert await _message_count(db_session) == 1


@pytest.mark.asyncio
async def test_initiator_cannot_approve_before_request(gate, db_session, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob", allow_messages_from=MessagePrivacy.FRIENDS.value)
    conversation = await gate.get_or_create(alice.id, bob.id)

    with pytest.raises(ValidationError):
        await gate.approve(conversation.id, alice.id)
    with pytest.raises(ValidationError):
        await gate.approve(conversation.id, bob.id)
    assert conversation.state == ConsentState.NONE

    result = await gate.send_message(conversation.id, alice.id, "hi")
    assert result.request_pending
    assert await _message_count(db_session) == 0


@pytest.mark.asyncio
async def test_approving_open_conversation_is_noop(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)

    approved = await gate.approve(conversation.id, alice.id)

    assert approved.state == ConsentState.APPROVED


@pytest.mark.asyncio
async def test_block_overrides_prior_approval(gate, db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    assert (await gate.send_message(conversation.id, alice.id, "hi")).delivered

    bob.blocked_users = [str(alice.id)]
    await db_session.commit()

    with pytest.raises(PermissionDenied) as exc:
        await gate.send_message(conversation.id, alice.id, "hi?")
    assert exc.value.denial == DenialCode.BLOCKED_BY_PEER

    with pytest.raises(PermissionDenied) as exc:
        await gate.send_message(conversation.id, bob.id, "bye")
    assert exc.value.denial == DenialCode.I_BLOCKED
    assert await _message_count(db_session) == 1


@pytest.mark.asyncio
async def test_mutual_block_reports_blocked_by_peer_first(gate, db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    alice.blocked_users = [str(bob.id)]
    bob.blocked_users = [str(alice.id)]
    await db_session.commit()

    with pytest.raises(PermissionDenied) as exc:
        await gate.send_message(conversation.id, alice.id, "hi")
    assert exc.value.denial == DenialCode.BLOCKED_BY_PEER


@pytest.mark.asyncio
async def test_unfriend_resets_consent(gate, db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    await MatchService(db_session).ensure_match_pair(alice.id, bob.id)
    conversation = await gate.get_or_create(alice.id, bob.id)
    assert (await gate.send_message(conversation.id, alice.id, "hi")).delivered

    await MatchService(db_session).remove_match(bob.id, alice.id)

    result = await gate.send_message(conversation.id, alice.id, "still there?")
    assert result.request_pending
    assert conversation.request_from == alice.id
    row = await MatchService(db_session).find_match(bob.id, alice.id)
    assert row.message_request_pending and row.message_request_from == alice.id

    reply = await gate.send_message(conversation.id, bob.id, "who is this?")
    assert reply.request_pending and not reply.delivered
    assert conversation.request_from == alice.id

    history = await gate.get_messages(conversation.id, bob.id)
    assert history["messages"] == []

    await gate.approve(conversation.id, bob.id)
    assert (await gate.send_message(conversation.id, alice.id, "again")).delivered


@pytest.mark.asyncio
async def test_non_participant_is_denied(gate, make_user):
    alice, bob, eve = await make_user("alice"), await make_user("bob"), await make_user("eve")
    conversation = await gate.get_or_create(alice.id, bob.id)

    with pytest.raises(PermissionDenied) as exc:
        await gate.send_message(conversation.id, eve.id, "let me in")
    assert exc.value.denial == DenialCode.NOT_PARTICIPANT
    assert exc.value.message == "Access denied to this chat"

    with pytest.raises(NotFoundError):
        await gate.get_conversation(uuid.uuid4(), alice.id)


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
async def test_content_length_validated(gate, make_user, content):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    with pytest.raises(ValidationError):
        await gate.send_message(conversation.id, alice.id, content)


@pytest.mark.asyncio
async def test_unknown_message_type_rejected(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    with pytest.raises(ValidationError):
        await gate.send_message(conversation.id, alice.id, "hi", message_type="sticker")


@pytest.mark.asyncio
async def test_pin_and_unpin_are_idempotent(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    message = (await gate.send_message(conversation.id, alice.id, "pin me")).message

    assert await gate.pin_message(conversation.id, bob.id, message.id) == [str(message.id)]
    assert await gate.pin_message(conversation.id, alice.id, message.id) == [str(message.id)]
    assert message.is_pinned

    assert await gate.unpin_message(conversation.id, alice.id, message.id) == []
    assert await gate.unpin_message(conversation.id, alice.id, message.id) == []
    assert not message.is_pinned

    with pytest.raises(NotFoundError):
        await gate.pin_message(conversation.id, alice.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_mark_read_resets_counters_and_adds_receipts(gate, db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    await MatchService(db_session).ensure_match_pair(alice.id, bob.id)
    conversation = await gate.get_or_create(alice.id, bob.id)
    first = (await gate.send_message(conversation.id, alice.id, "one")).message
    await gate.send_message(conversation.id, alice.id, "two")
    await gate.send_message(conversation.id, bob.id, "three")

    bob_row = await MatchService(db_session).find_match(bob.id, alice.id)
    assert bob_row.unread_count == 2
    assert bob_row.last_message == "three"

    assert await gate.mark_read(conversation.id, bob.id) == 2
    assert conversation.unread_count == 0
    assert bob_row.unread_count == 0
    assert first.read_by[0]["user_id"] == str(bob.id)

    # Receipts are not duplicated
    assert await gate.mark_read(conversation.id, bob.id) == 0


@pytest.mark.asyncio
async def test_get_messages_pages_newest_first(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    for i in range(5):
        await gate.send_message(conversation.id, alice.id, f"m{i}")

    page1 = await gate.get_messages(conversation.id, bob.id, page=1, limit=2)
    assert [m.content for m in page1["messages"]] == ["m3", "m4"]
    assert page1["pagination"]["has_more"] is True

    page3 = await gate.get_messages(conversation.id, bob.id, page=3, limit=2)
    assert [m.content for m in page3["messages"]] == ["m0"]
    assert page3["pagination"]["has_more"] is False


@pytest.mark.asyncio
async def test_edit_and_delete_own_messages_only(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    message = (await gate.send_message(conversation.id, alice.id, "typo")).message

    with pytest.raises(PermissionDenied):
        await gate.edit_message(conversation.id, bob.id, message.id, "hacked")

    edited = await gate.edit_message(conversation.id, alice.id, message.id, "fixed")
    assert edited.is_edited and edited.content == "fixed"
    assert conversation.last_message == "fixed"

    await gate.pin_message(conversation.id, alice.id, message.id)
    deleted = await gate.delete_message(conversation.id, alice.id, message.id)
    assert deleted.is_deleted
    assert conversation.pinned_message_ids == []

    visible = await gate.get_messages(conversation.id, alice.id)
    assert visible["messages"] == []
    everything = await gate.get_messages(conversation.id, alice.id, include_deleted=True)
    assert [m.id for m in everything["messages"]] == [message.id]


@pytest.mark.asyncio
async def test_reactions_one_per_user(gate, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    conversation = await gate.get_or_create(alice.id, bob.id)
    message = (await gate.send_message(conversation.id, alice.id, "joke")).message

    await gate.add_reaction(conversation.id, bob.id, message.id, "😂")
    updated = await gate.add_reaction(conversation.id, bob.id, message.id, "👍")
    assert [r["emoji"] for r in updated.reactions] == ["👍"]

    await gate.add_reaction(conversation.id, alice.id, message.id, "❤️")
    cleared = await gate.remove_reaction(conversation.id, bob.id, message.id)
    assert [r["user_id"] for r in cleared.reactions] == [str(alice.id)]

    with pytest.raises(ValidationError):
        await gate.add_reaction(conversation.id, bob.id, message.id, "")


@pytest.mark.asyncio
async def test_reply_must_reference_same_conversation(gate, make_user):
    alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
    first = await gate.get_or_create(alice.id, bob.id)
    other = await gate.get_or_create(alice.id, carol.id)
    foreign = (await gate.send_message(other.id, alice.id, "elsewhere")).message
    original = (await gate.send_message(first.id, bob.id, "question")).message

    reply = await gate.send_message(first.id, alice.id, "answer", reply_to_id=original.id)
    assert reply.message.reply_to_id == original.id

    with pytest.raises(NotFoundError):
        await gate.send_message(first.id, alice.id, "answer", reply_to_id=foreign.id)


@pytest.mark.asyncio
async def test_list_conversations_and_reset_pin(gate, make_user):
    alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
    await gate.get_or_create(alice.id, bob.id)
    await gate.get_or_create(carol.id, alice.id)

    conversations = await gate.list_conversations(alice.id)
    assert len(conversations) == 2
    assert len(await gate.list_conversations(bob.id)) == 1

    pin = await gate.reset_pin(conversations[0].id, alice.id)
    assert len(pin) == 4 and pin.isdigit()


@pytest.mark.asyncio
async def test_list_conversations_pages(gate, make_user):
    alice = await make_user("alice")
    for name in ("bob", "carol", "dave"):
        other = await make_user(name)
        await gate.get_or_create(alice.id, other.id)

    first = await gate.list_conversations(alice.id, page=1, limit=2)
    second = await gate.list_conversations(alice.id, page=2, limit=2)

    assert len(first) == 2 and len(second) == 1
    assert {c.id for c in first}.isdisjoint({c.id for c in second})
    assert len(await gate.list_conversations(alice.id, limit=10_000)) == 3


def test_generate_pin_range():
    assert all(1000 <= int(generate_pin()) <= 9999 for _ in range(50))


@pytest.mark.asyncio
async def test_request_notification_is_durable(db_session, make_user, mock_publisher, notifier):
    alice = await make_user("alice")
    bob = await make_user("bob", allow_messages_from=MessagePrivacy.FRIENDS.value)
    gate = ConversationService(db_session, publisher=mock_publisher, notifier=notifier)
    conversation = await gate.get_or_create(alice.id, bob.id)

    await gate.send_message(conversation.id, alice.id, "hey")

    rows = (await db_session.execute(select(Notification))).scalars().all()
    assert [(n.recipient_id, n.type) for n in rows] == [(bob.id, "message_request")]
    assert rows[0].title == "Message Request"
