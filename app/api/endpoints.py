# app/api/endpoints.py - REST API for topics, grammar, history and vocabulary

from fastapi import APIRouter, HTTPException, Depends
from typing import List, Dict, Any
from app.agents.topic_prompts import list_topics
from app.managers.database_manager import DuplicateWordError
from app.models.schemas import (
    TopicResponse, GrammarCheckRequest, GrammarCheckResponse,
    ConversationResponse, VocabularyCreate, VocabularyResponse
)
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

# Dependency injection - This will be overridden in main.py
async def get_managers() -> Dict[str, Any]:
    """Get managers - will be overridden with actual implementation"""
    raise HTTPException(status_code=500, detail="Managers not initialized")

# ============================================================================
# TOPICS & GRAMMAR
# ============================================================================

@router.get("/topics", response_model=List[TopicResponse])
async def get_topics():
    """Practice topics the client can pass as ?topic= when connecting"""
    return list_topics()

@router.post("/grammar-check", response_model=GrammarCheckResponse)
async def grammar_check(request: GrammarCheckRequest, managers: Dict = Depends(get_managers)):
    return managers['grammar'].check(request.text)

# ============================================================================
# CONVERSATION HISTORY
# ============================================================================

@router.get("/users/{user_id}/conversations", response_model=List[ConversationResponse])
async def get_conversations(user_id: str, managers: Dict = Depends(get_managers)):
    try:
        return await managers['database'].get_conversations(user_id)
    except Exception as e:
        logger.error(f"Error getting conversations for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/users/{user_id}/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(user_id: str, conversation_id: str, managers: Dict = Depends(get_managers)):
    conversation = await managers['database'].get_conversation(user_id, conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation

@router.delete("/users/{user_id}/conversations/{conversation_id}")
async def delete_conversation(user_id: str, conversation_id: str, managers: Dict = Depends(get_managers)):
    deleted = await managers['database'].delete_conversation(user_id, conversation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": True, "id": conversation_id}

@router.get("/users/{user_id}/summary")
async def get_user_summary(user_id: str, managers: Dict = Depends(get_managers)):
    """Practice totals for the dashboard"""
    try:
        return await managers['database'].get_user_summary(user_id)
    except Exception as e:
        logger.error(f"Error getting summary for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

# ============================================================================
# VOCABULARY
# ============================================================================

@router.get("/users/{user_id}/vocabulary", response_model=List[VocabularyResponse])
async def get_vocabulary(user_id: str, managers: Dict = Depends(get_managers)):
    try:
        return await managers['database'].get_vocabulary(user_id)
    except Exception as e:
        logger.error(f"Error getting vocabulary for {user_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

@router.post("/users/{user_id}/vocabulary", response_model=VocabularyResponse, status_code=201)
async def add_vocabulary_word(user_id: str, word: VocabularyCreate, managers: Dict = Depends(get_managers)):
    if not word.word.strip():
        raise HTTPException(status_code=400, detail="Word is required")
    try:
        return await managers['database'].add_word(
            user_id,
            word.word,
            definition=word.definition,
            example_sentence=word.example_sentence,
            difficulty_level=word.difficulty_level
        )
    except DuplicateWordError as e:
        raise HTTPException(status_code=409, detail=str(e))

@router.delete("/users/{user_id}/vocabulary/{word_id}")
async def delete_vocabulary_word(user_id: str, word_id: str, managers: Dict = Depends(get_managers)):
    deleted = await managers['database'].delete_word(user_id, word_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Word not found")
    return {"success": True, "id": word_id}

@router.post("/users/{user_id}/vocabulary/{word_id}/practice", response_model=VocabularyResponse)
async def practice_vocabulary_word(user_id: str, word_id: str, managers: Dict = Depends(get_managers)):
    entry = await managers['database'].practice_word(user_id, word_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Word not found")
    return entry

# ============================================================================
# LIVE SESSIONS
# ============================================================================

@router.get("/sessions/{session_id}")
async def get_relay_session(session_id: str, managers: Dict = Depends(get_managers)):
    """Live relay session stats, falling back to the cached record"""
    session = managers['realtime'].get_session(session_id)
    if session:
        return session.get_stats()

    record = await managers['cache'].get_relay_session(session_id)
    if not record:
        raise HTTPException(status_code=404, detail="Session not found")
    return record
