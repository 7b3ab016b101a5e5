"""Tests for conversation and vocabulary persistence."""

import pytest
import pytest_asyncio

from app.managers.database_manager import DatabaseManager, DuplicateWordError
from app.models.database import init_db


@pytest_asyncio.fixture
async def db(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path}/nested/relay.db"
    engine = await init_db(url)
    manager = DatabaseManager(url, engine=engine)
    yield manager
    await manager.close()


async def save_sample(db, user_id="learner-1", grammar_score=75.0):
    return await db.save_conversation(
        user_id=user_id,
        topic_id="daily",
        title="Daily Conversations - practice",
        duration_seconds=42,
        turns=[{"speaker": "user", "message": "i like tea", "timestamp": "2024-01-01T00:00:00"}],
        transcript="user: i like tea",
        grammar_score=grammar_score,
        grammar_errors=["Sentence should start with a capital letter"],
    )


@pytest.mark.asyncio
async def test_saved_conversation_is_listed_for_its_user(db):
    saved = await save_sample(db)

    conversations = await db.get_conversations("learner-1")

    assert [c.id for c in conversations] == [saved.id]
    assert conversations[0].message_count == 1
    assert conversations[0].grammar_errors == ["Sentence should start with a capital letter"]
    assert await db.get_conversations("someone-else") == []


@pytest.mark.asyncio
async def test_delete_conversation_is_scoped_to_user(db):
    saved = await save_sample(db)

    assert await db.delete_conversation("someone-else", saved.id) is False
    assert await db.delete_conversation("learner-1", saved.id) is True
    assert await db.get_conversation("learner-1", saved.id) is None


@pytest.mark.asyncio
async def test_duplicate_vocabulary_word_rejected(db):
    await db.add_word("learner-1", "itinerary", definition="A planned route")

    with pytest.raises(DuplicateWordError):
        await db.add_word("learner-1", "itinerary")

    # Another user may add the same word
    await db.add_word("learner-2", "itinerary")
    assert len(await db.get_vocabulary("learner-1")) == 1


@pytest.mark.asyncio
async def test_practice_raises_mastery_to_cap(db):
    word = await db.add_word("learner-1", "negotiate")

    for _ in range(12):
        word = await db.practice_word("learner-1", word.id)

    assert word.times_practiced == 12
    assert word.mastery_level == 100
    assert word.last_practiced_at is not None


@pytest.mark.asyncio
async def test_practice_or_delete_unknown_word(db):
    assert await db.practice_word("learner-1", "missing") is None
    assert await db.delete_word("learner-1", "missing") is False


@pytest.mark.asyncio
async def test_user_summary(db):
    await save_sample(db, grammar_score=70.0)
    await save_sample(db, grammar_score=80.0)
    word = await db.add_word("learner-1", "fluent")
    for _ in range(10):
        await db.practice_word("learner-1", word.id)

    summary = await db.get_user_summary("learner-1")

    assert summary["total_conversations"] == 2
    assert summary["total_practice_seconds"] == 84
    assert summary["average_grammar_score"] == 75.0
    assert summary["vocabulary_size"] == 1
    assert summary["mastered_words"] == 1
