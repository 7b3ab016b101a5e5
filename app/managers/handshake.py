# app/managers/handshake.py - Readiness latch between client config and upstream session

import logging
from enum import Enum
from typing import List

from app.models.messages import Message

logger = logging.getLogger(__name__)


class HandshakeState(Enum):
    PENDING = "pending"
    READY = "ready"
    CLOSED = "closed"


class HandshakeCoordinator:
    """Holds client messages until the upstream signals it is ready.

    ``submit`` and ``mark_ready`` return the messages that may go upstream
    now; the caller does the sending, in the returned order.
    """

    def __init__(self, session_id: str = ""):
        self.session_id = session_id
        self.state = HandshakeState.PENDING
        self._pending: List[Message] = []

    @property
    def is_ready(self) -> bool:
        return self.state is HandshakeState.READY

    @property
    def pending(self) -> List[Message]:
        return list(self._pending)

    def submit(self, message: Message) -> List[Message]:
        if self.state is HandshakeState.READY:
            return [message]

        if self.state is HandshakeState.CLOSED:
            logger.debug(f"Handshake closed for {self.session_id}, dropping {message.type}")
            return []

        self._pending.append(message)
        logger.debug(f"Buffered {message.type} for {self.session_id} until upstream is ready ({len(self._pending)} pending)")
        return []

    def prepend(self, message: Message):
        """Put a message ahead of everything already pending"""
        if self.state is HandshakeState.PENDING:
            self._pending.insert(0, message)

    def mark_ready(self) -> List[Message]:
        """One-shot transition to READY; returns pending messages in arrival order"""
        if self.state is not HandshakeState.PENDING:
            return []

        self.state = HandshakeState.READY
        flushed, self._pending = self._pending, []
        logger.info(f"Upstream ready for {self.session_id}, flushing {len(flushed)} buffered messages")
        return flushed

    def discard(self) -> int:
        """Drop pending messages without forwarding; used when the session closes"""
        dropped = len(self._pending)
        self._pending = []
        self.state = HandshakeState.CLOSED
        if dropped:
            logger.info(f"Discarded {dropped} messages for {self.session_id} that never reached upstream")
        return dropped
