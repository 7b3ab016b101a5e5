# app/models/database.py - Conversation history and vocabulary tables

from sqlalchemy import Column, String, Integer, DateTime, JSON, Float, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import create_async_engine
from datetime import datetime
import logging
import os

logger = logging.getLogger(__name__)

Base = declarative_base()

class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    topic_id = Column(String, nullable=True)
    title = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Session outcome
    duration_seconds = Column(Integer, default=0)
    message_count = Column(Integer, default=0)
    transcript = Column(Text, nullable=True)
    turns = Column(JSON, default=list)  # [{speaker, message, timestamp}]

    # Grammar report
    grammar_score = Column(Float, nullable=True)
    grammar_errors = Column(JSON, default=list)

class VocabularyWord(Base):
    __tablename__ = "vocabulary"
    __table_args__ = (UniqueConstraint("user_id", "word", name="uq_vocabulary_user_word"),)

    id = Column(String, primary_key=True)
    user_id = Column(String, index=True, nullable=False)
    word = Column(String, nullable=False)
    definition = Column(Text, nullable=True)
    example_sentence = Column(Text, nullable=True)

    difficulty_level = Column(Integer, default=1)
    mastery_level = Column(Integer, default=0)  # 0-100
    times_practiced = Column(Integer, default=0)
    last_practiced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

def _ensure_sqlite_directory(database_url: str):
    """aiosqlite will not create missing parent directories"""
    if not database_url.startswith("sqlite") or ":memory:" in database_url:
        return
    db_path = database_url.split(":///", 1)[-1]
    directory = os.path.dirname(db_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

async def init_db(database_url: str):
    """Create tables and return the engine"""
    logger.info("Initializing database...")
    _ensure_sqlite_directory(database_url)
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    logger.info("Database initialization completed")
    return engine
