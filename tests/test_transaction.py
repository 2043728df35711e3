import pytest
from unittest.mock import AsyncMock
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError
from app.core.exceptions import ConflictError, StoreError
from app.db.transaction import commit, flush
from app.realtime.publisher import RealtimePublisher, conversation_channel, user_channel


@pytest.mark.asyncio
async def test_commit_success(mock_session):
    await commit(mock_session)
    mock_session.commit.assert_awaited_once()
    mock_session.rollback.assert_not_awaited()


@pytest.mark.asyncio
async def test_commit_stale_data_is_conflict(mock_session):
    mock_session.commit.side_effect = StaleDataError("version mismatch")

    with pytest.raises(ConflictError):
        await commit(mock_session)
    mock_session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_commit_store_failure_is_opaque(mock_session):
    mock_session.commit.side_effect = OperationalError("COMMIT", {}, Exception("connection lost"))

    with pytest.raises(StoreError) as exc:
        await commit(mock_session)
    assert "connection lost" not in exc.value.message
    assert exc.value.status_code == 503
    mock_session.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_flush_stale_data_is_conflict(mock_session):
    mock_session.flush.side_effect = StaleDataError("version mismatch")
    with pytest.raises(ConflictError):
        await flush(mock_session)


def test_channel_names():
    assert conversation_channel("abc") == "conversation:abc"
    assert user_channel("u1") == "user:u1"


@pytest.mark.asyncio
async def test_publisher_disabled_skips_redis():
    client = AsyncMock()
    publisher = RealtimePublisher(client=client, enabled=False)

    assert await publisher.publish("user:1", "new_message", {}) is False
    client.publish.assert_not_awaited()


@pytest.mark.asyncio
async def test_publisher_sends_json_envelope():
    client = AsyncMock()
    publisher = RealtimePublisher(client=client, enabled=True)

    assert await publisher.publish("user:1", "new_message", {"chat_id": "c1"}) is True
    channel, body = client.publish.await_args.args
    assert channel == "user:1"
    assert body == '{"event": "new_message", "data": {"chat_id": "c1"}}'


@pytest.mark.asyncio
async def test_publisher_failure_is_swallowed():
    client = AsyncMock()
    client.publish.side_effect = ConnectionError("redis down")
    publisher = RealtimePublisher(client=client, enabled=True)

    assert await publisher.publish("user:1", "new_message", {}) is False

    await publisher.close()
    client.aclose.assert_awaited_once()
