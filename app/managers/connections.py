# app/managers/connections.py - Frame connections on either side of the relay

import asyncio
import logging
from typing import Dict, Optional

import websockets

from app.errors import UpstreamDisconnect, UpstreamUnavailable

logger = logging.getLogger(__name__)


class FrameConnection:
    """Bidirectional text-frame connection as seen by a relay session.

    ``receive`` raises ClientDisconnect or UpstreamDisconnect once the peer
    is gone; ``close`` must be safe to call more than once.
    """

    name = "connection"

    async def send(self, text: str):
        raise NotImplementedError

    async def receive(self) -> str:
        raise NotImplementedError

    async def close(self):
        raise NotImplementedError


class UpstreamConnection(FrameConnection):
    """OpenAI Realtime websocket opened with the websockets client"""

    name = "upstream"

    def __init__(self, websocket):
        self.websocket = websocket
        self._closed = False

    async def send(self, text: str):
        if self._closed:
            raise UpstreamDisconnect("Upstream connection already closed")
        try:
            await self.websocket.send(text)
        except websockets.exceptions.ConnectionClosed as e:
            raise UpstreamDisconnect(f"Upstream closed while sending: {e}")

    async def receive(self) -> str:
        try:
            message = await self.websocket.recv()
        except websockets.exceptions.ConnectionClosed as e:
            raise UpstreamDisconnect(f"Upstream connection closed: {e}")

        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return message

    async def close(self):
        if self._closed:
            return
        self._closed = True
        try:
            await self.websocket.close()
        except Exception as e:
            logger.warning(f"Error closing upstream websocket: {e}")


class RealtimeConnector:
    """Opens upstream connections with the server-held credential"""

    def __init__(self, api_key: Optional[str], uri: str, connect_timeout: float = 10.0):
        self.api_key = api_key
        self.uri = uri
        self.connect_timeout = connect_timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

    async def connect(self) -> UpstreamConnection:
        """Connect upstream or raise UpstreamUnavailable"""
        if not self.api_key or not self.api_key.strip():
            # Fail closed: no credential, no network attempt
            raise UpstreamUnavailable("OpenAI API key not configured")

        try:
            websocket = await asyncio.wait_for(
                websockets.connect(
                    self.uri,
                    additional_headers=self._headers(),
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=10,
                    max_size=None,
                ),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError:
            raise UpstreamUnavailable(f"Timed out after {self.connect_timeout}s connecting to realtime API")
        except (websockets.exceptions.WebSocketException, OSError) as e:
            raise UpstreamUnavailable(f"Failed to connect to realtime API: {e}")

        logger.info("Connected to OpenAI Realtime API")
        return UpstreamConnection(websocket)
