"""Tests for the relay session registry and conversation saving."""

import asyncio

import pytest

from app.managers.cache_manager import CacheManager
from app.managers.realtime_manager import RealtimeManager
from tests.helpers.fakes import FakeConnection, FakeConnector, FakeDatabase


def feed_short_conversation(upstream: FakeConnection):
    upstream.feed({"type": "session.created", "session": {"id": "sess_1"}})
    upstream.feed({"type": "response.audio_transcript.delta", "delta": "What did you do today?",
                   "response_id": "r1", "item_id": "i1"})
    upstream.feed({"type": "response.audio_transcript.done", "response_id": "r1", "item_id": "i1"})
    upstream.feed({"type": "conversation.item.input_audio_transcription.completed",
                   "transcript": "i went to the park"})
    upstream.disconnect()


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def manager(relay_settings, connector, database):
    return RealtimeManager(
        settings=relay_settings,
        cache_manager=CacheManager(relay_settings),
        database_manager=database,
        connector=connector,
    )


@pytest.mark.asyncio
async def test_finished_session_is_saved_with_grammar_report(manager, connector, database, client_connection):
    feed_short_conversation(connector.upstream)
    session = manager.create_session(client_connection, user_id="learner-1", topic="daily")

    await asyncio.wait_for(manager.run_session(session), 2)

    assert len(database.saved) == 1
    saved = database.saved[0]
    assert saved["user_id"] == "learner-1"
    assert saved["topic_id"] == "daily"
    assert saved["title"].startswith("Daily Conversations")
    assert [t["speaker"] for t in saved["turns"]] == ["assistant", "user"]
    assert saved["grammar_score"] == 65
    assert len(saved["grammar_errors"]) == 2
    assert manager.saved_conversations == 1


@pytest.mark.asyncio
async def test_anonymous_session_is_not_saved(manager, connector, database, client_connection):
    feed_short_conversation(connector.upstream)
    session = manager.create_session(client_connection, topic="daily")

    await asyncio.wait_for(manager.run_session(session), 2)

    assert database.saved == []


@pytest.mark.asyncio
async def test_session_without_transcript_is_not_saved(manager, connector, database, client_connection):
    connector.upstream.disconnect()
    session = manager.create_session(client_connection, user_id="learner-1")

    await asyncio.wait_for(manager.run_session(session), 2)

    assert database.saved == []


@pytest.mark.asyncio
async def test_persistence_can_be_disabled(manager, connector, database, client_connection, relay_settings):
    relay_settings.persist_conversations = False
    feed_short_conversation(connector.upstream)
    session = manager.create_session(client_connection, user_id="learner-1")

    await asyncio.wait_for(manager.run_session(session), 2)

    assert database.saved == []


@pytest.mark.asyncio
async def test_live_session_is_registered_and_cached(manager, connector, client_connection):
    session = manager.create_session(client_connection, user_id="learner-1")
    runner = asyncio.create_task(manager.run_session(session))
    await asyncio.sleep(0.05)

    assert manager.get_session(session.session_id) is session
    stats = manager.get_connection_stats()
    assert stats["active_sessions"] == 1
    assert session.session_id in stats["sessions"]
    record = await manager.cache_manager.get_relay_session(session.session_id)
    assert record["user_id"] == "learner-1"

    await manager.cleanup_all_connections()
    await asyncio.wait_for(runner, 2)

    assert manager.get_session(session.session_id) is None
    assert await manager.cache_manager.get_relay_session(session.session_id) is None
    assert manager.get_connection_stats()["total_sessions"] == 1


@pytest.mark.asyncio
async def test_refused_session_is_unregistered(relay_settings, client_connection):
    relay_settings.openai_api_key = None
    manager = RealtimeManager(settings=relay_settings, cache_manager=CacheManager(relay_settings))

    session = manager.create_session(client_connection)
    await asyncio.wait_for(manager.run_session(session), 2)

    assert manager.sessions == {}
    assert client_connection.sent_types() == ["error"]
    assert manager.get_connection_stats()["upstream_configured"] is False
