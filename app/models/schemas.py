from pydantic import BaseModel, Field
from typing import Optional, Dict, List, Any
from datetime import datetime

class TopicResponse(BaseModel):
    id: str
    title: str
    description: str
    level: str

class GrammarCheckRequest(BaseModel):
    text: str = ""

class GrammarCheckResponse(BaseModel):
    score: int
    errors: List[str]
    suggestions: List[str]
    error: Optional[str] = None

class ConversationResponse(BaseModel):
    id: str
    user_id: str
    topic_id: Optional[str] = None
    title: str
    created_at: datetime
    duration_seconds: int = 0
    message_count: int = 0
    transcript: Optional[str] = None
    turns: List[Dict[str, Any]] = []
    grammar_score: Optional[float] = None
    grammar_errors: List[str] = []

    class Config:
        from_attributes = True

class VocabularyCreate(BaseModel):
    word: str = Field(..., min_length=1)
    definition: Optional[str] = None
    example_sentence: Optional[str] = None
    difficulty_level: int = Field(1, ge=1, le=5)

class VocabularyResponse(BaseModel):
    id: str
    user_id: str
    word: str
    definition: Optional[str] = None
    example_sentence: Optional[str] = None
    difficulty_level: int = 1
    mastery_level: int = 0
    times_practiced: int = 0
    last_practiced_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
