from typing import Dict, Any, Optional, List
import logging

from app.config import settings as default_settings

logger = logging.getLogger(__name__)

BASE_TUTOR_PROMPT = (
    "You are a friendly English conversation partner helping the user practice speaking. "
    "Keep responses short, conversational and engaging, ask follow-up questions, and gently "
    "correct grammar or vocabulary mistakes by repeating the corrected sentence naturally."
)

TOPICS: Dict[str, Dict[str, Any]] = {
    "daily": {
        "title": "Daily Conversations",
        "description": "Practice everyday situations and small talk",
        "level": "Beginner",
        "focus": "everyday situations such as shopping, ordering food, weather and small talk",
    },
    "business": {
        "title": "Business English",
        "description": "Professional conversations and workplace scenarios",
        "level": "Intermediate",
        "focus": "workplace scenarios such as meetings, emails, negotiations and job interviews",
    },
    "travel": {
        "title": "Travel & Tourism",
        "description": "Navigate airports, hotels, and tourist attractions",
        "level": "Beginner",
        "focus": "travel situations at airports, hotels, restaurants and tourist attractions",
    },
    "academic": {
        "title": "Academic Discussions",
        "description": "University-level topics and presentations",
        "level": "Advanced",
        "focus": "university-level discussions, presentations and defending an opinion with evidence",
    },
    "social": {
        "title": "Social Interactions",
        "description": "Making friends and casual conversations",
        "level": "Beginner",
        "focus": "making friends, invitations, sharing feelings and casual conversation",
    },
    "entertainment": {
        "title": "Entertainment & Hobbies",
        "description": "Discuss movies, books, games, and interests",
        "level": "Intermediate",
        "focus": "movies, books, music, games and personal hobbies",
    },
}


def list_topics() -> List[Dict[str, Any]]:
    """Topic catalogue for the topic picker"""
    return [
        {"id": topic_id, "title": t["title"], "description": t["description"], "level": t["level"]}
        for topic_id, t in TOPICS.items()
    ]


def get_topic_instructions(topic_id: Optional[str]) -> str:
    topic = TOPICS.get(topic_id or "")
    if not topic:
        return BASE_TUTOR_PROMPT

    level = topic["level"].lower()
    return (
        f"{BASE_TUTOR_PROMPT} Today's topic is {topic['title']}: focus on {topic['focus']}. "
        f"The learner is at {level} level, so adapt your vocabulary and pace accordingly."
    )


def build_session_config(topic_id: Optional[str] = None, settings=None, voice: Optional[str] = None) -> Dict[str, Any]:
    """Default session.update frame sent upstream for a new relay session"""
    settings = settings or default_settings

    if topic_id and topic_id not in TOPICS:
        logger.warning(f"Unknown topic '{topic_id}', using general conversation instructions")

    return {
        "type": "session.update",
        "session": {
            "modalities": ["text", "audio"],
            "instructions": get_topic_instructions(topic_id),
            "voice": voice or settings.default_voice,
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
            "input_audio_transcription": {
                "model": settings.transcription_model
            },
            "turn_detection": {
                "type": "server_vad",
                "threshold": settings.vad_threshold,
                "prefix_padding_ms": settings.vad_prefix_padding_ms,
                "silence_duration_ms": settings.vad_silence_duration_ms
            },
            "temperature": settings.temperature
        }
    }
