# app/managers/realtime_manager.py - Registry of live relay sessions

import logging
from typing import Dict, Optional, Any

from app.config import settings as default_settings
from app.agents.topic_prompts import TOPICS
from app.managers.connections import FrameConnection, RealtimeConnector
from app.managers.grammar_manager import GrammarChecker
from app.managers.relay_session import RelaySession

logger = logging.getLogger(__name__)

class RealtimeManager:
    """Creates relay sessions, tracks the live ones and records them when they end"""

    def __init__(self, settings=None, cache_manager=None, database_manager=None,
                 grammar_checker: Optional[GrammarChecker] = None, connector=None):
        self.settings = settings or default_settings
        self.cache_manager = cache_manager
        self.database_manager = database_manager
        self.grammar_checker = grammar_checker or GrammarChecker()
        self.connector = connector or RealtimeConnector(
            self.settings.openai_api_key,
            self.settings.get_realtime_uri(),
            self.settings.upstream_connect_timeout
        )
        self.sessions: Dict[str, RelaySession] = {}
        self.total_sessions = 0
        self.saved_conversations = 0
        logger.info("RealtimeManager initialized")

    def create_session(self, client: FrameConnection, user_id: Optional[str] = None,
                       topic: Optional[str] = None) -> RelaySession:
        return RelaySession(
            client,
            self.connector,
            user_id=user_id,
            topic=topic,
            settings=self.settings,
            on_close=self._on_session_closed
        )

    async def run_session(self, session: RelaySession):
        """Register the session and relay until it closes"""
        self.sessions[session.session_id] = session
        self.total_sessions += 1
        logger.info(f"Relay session {session.session_id} registered ({len(self.sessions)} active)")

        if self.cache_manager:
            await self.cache_manager.set_relay_session(session.session_id, session.get_stats())

        try:
            await session.run()
        finally:
            # A session can end before the close hook ever ran (e.g. cancelled task)
            await session.close(session.close_reason)
            self.sessions.pop(session.session_id, None)

    async def _on_session_closed(self, session: RelaySession):
        self.sessions.pop(session.session_id, None)
        logger.info(f"Relay session {session.session_id} ended after {session.get_duration_seconds()}s")

        if self.cache_manager:
            await self.cache_manager.delete_relay_session(session.session_id)

        await self._save_conversation(session)

    async def _save_conversation(self, session: RelaySession):
        if not (self.database_manager and self.settings.persist_conversations):
            return
        if not session.user_id:
            return

        turns = session.transcript.to_list()
        if not turns:
            logger.debug(f"No transcript for {session.session_id}, nothing to save")
            return

        report = self.grammar_checker.check_conversation(session.transcript.user_utterances())
        topic = TOPICS.get(session.topic)
        title = f"{topic['title'] if topic else 'Free Conversation'} - {session.created_at.strftime('%Y-%m-%d %H:%M')}"

        try:
            await self.database_manager.save_conversation(
                user_id=session.user_id,
                topic_id=session.topic,
                title=title,
                duration_seconds=session.get_duration_seconds(),
                turns=turns,
                transcript=session.transcript.as_text(),
                grammar_score=report["score"],
                grammar_errors=report["errors"]
            )
            self.saved_conversations += 1
        except Exception as e:
            logger.error(f"Failed to save conversation for session {session.session_id}: {e}")

    def get_session(self, session_id: str) -> Optional[RelaySession]:
        return self.sessions.get(session_id)

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get connection statistics"""
        return {
            "active_sessions": len(self.sessions),
            "ready_sessions": len([s for s in self.sessions.values() if s.upstream_ready]),
            "total_sessions": self.total_sessions,
            "saved_conversations": self.saved_conversations,
            "upstream_configured": self.settings.has_upstream_credentials(),
            "sessions": {session_id: s.get_stats() for session_id, s in self.sessions.items()}
        }

    async def cleanup_all_connections(self):
        """Close every live session"""
        logger.info(f"Cleaning up {len(self.sessions)} relay sessions")

        for session in list(self.sessions.values()):
            await session.close()
