from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy import select, and_
from sqlalchemy.exc import IntegrityError
from app.models.database import Conversation, VocabularyWord
from typing import Optional, List, Dict, Any
import uuid
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

MASTERY_STEP = 10
MAX_MASTERY = 100

class DuplicateWordError(Exception):
    """Word already present in the user's vocabulary"""

class DatabaseManager:
    def __init__(self, database_url: str, engine=None):
        self.engine = engine or create_async_engine(database_url, echo=False)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def close(self):
        await self.engine.dispose()

    # === CONVERSATIONS ===

    async def save_conversation(self, user_id: str, topic_id: Optional[str], title: str,
                                duration_seconds: int, turns: List[Dict[str, Any]],
                                transcript: str, grammar_score: Optional[float] = None,
                                grammar_errors: Optional[List[str]] = None) -> Conversation:
        """Store a finished practice conversation"""
        async with self.async_session() as session:
            conversation = Conversation(
                id=str(uuid.uuid4()),
                user_id=user_id,
                topic_id=topic_id,
                title=title,
                duration_seconds=duration_seconds,
                message_count=len(turns),
                turns=turns,
                transcript=transcript,
                grammar_score=grammar_score,
                grammar_errors=grammar_errors or []
            )
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)

            logger.info(f"Saved conversation {conversation.id} for {user_id} ({len(turns)} turns)")
            return conversation

    async def get_conversations(self, user_id: str) -> List[Conversation]:
        """Conversations for a user, newest first"""
        async with self.async_session() as session:
            result = await session.execute(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        async with self.async_session() as session:
            result = await session.execute(
                select(Conversation).where(
                    and_(Conversation.id == conversation_id, Conversation.user_id == user_id)
                )
            )
            return result.scalars().first()

    async def delete_conversation(self, user_id: str, conversation_id: str) -> bool:
        async with self.async_session() as session:
            result = await session.execute(
                select(Conversation).where(
                    and_(Conversation.id == conversation_id, Conversation.user_id == user_id)
                )
            )
            conversation = result.scalars().first()
            if not conversation:
                return False

            await session.delete(conversation)
            await session.commit()
            return True

    # === VOCABULARY ===

    async def add_word(self, user_id: str, word: str, definition: Optional[str] = None,
                       example_sentence: Optional[str] = None, difficulty_level: int = 1) -> VocabularyWord:
        """Add a word; raises DuplicateWordError if the user already has it"""
        async with self.async_session() as session:
            entry = VocabularyWord(
                id=str(uuid.uuid4()),
                user_id=user_id,
                word=word.strip(),
                definition=(definition or "").strip() or None,
                example_sentence=(example_sentence or "").strip() or None,
                difficulty_level=difficulty_level,
                mastery_level=0,
                times_practiced=0
            )
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise DuplicateWordError(f"'{word.strip()}' is already in the vocabulary")

            await session.refresh(entry)
            return entry

    async def get_vocabulary(self, user_id: str) -> List[VocabularyWord]:
        async with self.async_session() as session:
            result = await session.execute(
                select(VocabularyWord)
                .where(VocabularyWord.user_id == user_id)
                .order_by(VocabularyWord.created_at.desc())
            )
            return list(result.scalars().all())

    async def delete_word(self, user_id: str, word_id: str) -> bool:
        async with self.async_session() as session:
            result = await session.execute(
                select(VocabularyWord).where(
                    and_(VocabularyWord.id == word_id, VocabularyWord.user_id == user_id)
                )
            )
            entry = result.scalars().first()
            if not entry:
                return False

            await session.delete(entry)
            await session.commit()
            return True

    async def practice_word(self, user_id: str, word_id: str) -> Optional[VocabularyWord]:
        """Count one practice: +1 times practiced, mastery +10 capped at 100"""
        async with self.async_session() as session:
            result = await session.execute(
                select(VocabularyWord).where(
                    and_(VocabularyWord.id == word_id, VocabularyWord.user_id == user_id)
                )
            )
            entry = result.scalars().first()
            if not entry:
                return None

            entry.times_practiced = (entry.times_practiced or 0) + 1
            entry.mastery_level = min((entry.mastery_level or 0) + MASTERY_STEP, MAX_MASTERY)
            entry.last_practiced_at = datetime.utcnow()
            await session.commit()
            await session.refresh(entry)
            return entry

    # === ANALYTICS ===

    async def get_user_summary(self, user_id: str) -> Dict[str, Any]:
        """Dashboard numbers for a user"""
        conversations = await self.get_conversations(user_id)
        vocabulary = await self.get_vocabulary(user_id)

        scores = [c.grammar_score for c in conversations if c.grammar_score is not None]
        return {
            "user_id": user_id,
            "total_conversations": len(conversations),
            "total_practice_seconds": sum(c.duration_seconds or 0 for c in conversations),
            "average_grammar_score": round(sum(scores) / len(scores), 1) if scores else None,
            "vocabulary_size": len(vocabulary),
            "mastered_words": len([w for w in vocabulary if (w.mastery_level or 0) >= MAX_MASTERY]),
        }
