import uuid
import pytest
from sqlalchemy import select
from app.core.exceptions import NotFoundError, ValidationError
from app.models.conversation import ConsentState
from app.models.interaction import Interaction, InteractionType, InteractionContext
from app.models.match import Match, MatchOrigin
from app.models.message import Message
from app.services.conversation_service import ConversationService
from app.services.interaction_service import InteractionService
from app.services.match_service import MatchService


async def _likes_without_match(session, a, b):
    """Reciprocal likes recorded but the pair write never happened."""
    ledger = InteractionService(session)
    await ledger.record_interaction(a.id, b.id, InteractionType.LIKE, InteractionContext.MATCHING)
    await ledger.record_interaction(b.id, a.id, InteractionType.SUPERLIKE, InteractionContext.MATCHING)


@pytest.mark.asyncio
async def test_ensure_match_pair_writes_both_directions(db_session, make_user):
    alice, bob = await make_user("alice", avatar="a.png"), await make_user("bob")
    service = MatchService(db_session)

    forward, backward = await service.ensure_match_pair(alice.id, bob.id, MatchOrigin.MUTUAL_LIKE, score=150)

    assert forward.owner_id == alice.id and forward.partner_name == "bob"
    assert backward.owner_id == bob.id and backward.partner_avatar == "a.png"
    assert forward.match_score == 100
    assert forward.version == 1


@pytest.mark.asyncio
async def test_ensure_match_is_idempotent_and_reactivates(db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    service = MatchService(db_session)
    forward, _ = await service.ensure_match_pair(alice.id, bob.id)
    forward.is_active = False
    await db_session.commit()

    again, _ = await service.ensure_match_pair(alice.id, bob.id)

    assert again.id == forward.id
    assert again.is_active is True
    rows = (await db_session.execute(select(Match))).scalars().all()
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_ensure_match_pair_validates_users(db_session, make_user):
    alice = await make_user("alice")
    service = MatchService(db_session)
    with pytest.raises(ValidationError):
        await service.ensure_match_pair(alice.id, alice.id)
    with pytest.raises(NotFoundError):
        await service.ensure_match_pair(alice.id, uuid.uuid4())


@pytest.mark.asyncio
async def test_reconciliation_sweep_repairs_missing_pair(db_session, make_user):
    alice, bob, carol = await make_user("alice"), await make_user("bob"), await make_user("carol")
    await _likes_without_match(db_session, alice, bob)
    # One-sided like is not a match
    await InteractionService(db_session).record_interaction(
        alice.id, carol.id, InteractionType.LIKE, InteractionContext.MATCHING
    )
    service = MatchService(db_session)
    assert await service.list_matches(alice.id) == []

    repaired = await service.reconciliation_sweep(alice.id)

    assert repaired == 1
    assert [m.partner_id for m in await service.list_matches(alice.id)] == [bob.id]
    assert [m.partner_id for m in await service.list_matches(bob.id)] == [alice.id]
    likes = (await db_session.execute(
        select(Interaction).where(Interaction.interaction_type.in_(["like", "superlike"]),
                                  Interaction.target_id != carol.id)
    )).scalars().all()
    assert all(i.is_mutual for i in likes)

    # Nothing left to repair
    assert await service.reconciliation_sweep(alice.id) == 0
    assert await service.reconciliation_sweep(bob.id) == 0


@pytest.mark.asyncio
async def test_reconciliation_repairs_half_written_pair(db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    await _likes_without_match(db_session, alice, bob)
    service = MatchService(db_session)
    await service.ensure_match(alice.id, bob.id, "bob")
    await db_session.commit()

    assert await service.reconciliation_sweep(bob.id) == 1
    assert len(await service.list_matches(bob.id)) == 1


@pytest.mark.asyncio
async def test_message_request_rows_do_not_override_match(db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    service = MatchService(db_session)
    await service.ensure_match_pair(alice.id, bob.id)

    row = await service.ensure_match(alice.id, bob.id, "bob", interaction_type=MatchOrigin.MESSAGE_REQUEST)

    assert row.interaction_type == MatchOrigin.MUTUAL_LIKE.value


@pytest.mark.asyncio
async def test_remove_match_resets_consent_and_history(db_session, make_user, mock_publisher, mock_notifier):
    alice, bob = await make_user("alice"), await make_user("bob")
    await MatchService(db_session).ensure_match_pair(alice.id, bob.id)
    gate = ConversationService(db_session, publisher=mock_publisher, notifier=mock_notifier)
    conversation = await gate.get_or_create(alice.id, bob.id)
    sent = await gate.send_message(conversation.id, alice.id, "hi bob")
    assert sent.delivered

    forward, backward = await MatchService(db_session).remove_match(alice.id, bob.id)

    assert forward.is_active and backward.is_active
    assert not forward.messaging_approved and not backward.message_request_pending
    assert forward.chat_id == conversation.id
    refreshed = await gate.find_by_pair(alice.id, bob.id)
    assert refreshed.state == ConsentState.PENDING_APPROVAL
    assert refreshed.is_approved is False
    messages = (await db_session.execute(select(Message))).scalars().all()
    assert messages and all(m.is_deleted for m in messages)


@pytest.mark.asyncio
async def test_remove_match_without_conversation(db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")

    forward, backward = await MatchService(db_session).remove_match(alice.id, bob.id)

    assert forward.interaction_type == "mutual_like"
    assert forward.chat_id is None


@pytest.mark.asyncio
async def test_deactivate_pair(db_session, make_user):
    alice, bob = await make_user("alice"), await make_user("bob")
    service = MatchService(db_session)
    await service.ensure_match_pair(alice.id, bob.id)

    assert await service.deactivate_pair(alice.id, bob.id) == 2
    await db_session.commit()
    assert await service.list_matches(alice.id) == []
