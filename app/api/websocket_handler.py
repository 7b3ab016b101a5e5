# app/api/websocket_handler.py - Client side of the relay

import json
import logging
import time
from typing import Dict, Any, Optional
from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from app.config import settings as default_settings
from app.errors import ClientDisconnect, DecodeFailure
from app.managers.connections import FrameConnection
from app.utils.audio import AudioProcessor, REALTIME_SAMPLE_RATE

logger = logging.getLogger(__name__)

class ClientConnection(FrameConnection):
    """Browser websocket as a text-frame connection.

    Binary frames are raw PCM16 microphone audio; they are wrapped into
    input_audio_buffer.append so the relay only ever sees JSON text.
    """

    name = "client"

    def __init__(self, websocket: WebSocket, settings=None, audio_processor: Optional[AudioProcessor] = None):
        self.websocket = websocket
        self.settings = settings or default_settings
        self.audio_processor = audio_processor or AudioProcessor()
        self._closed = False

    async def send(self, text: str):
        if self._closed:
            raise ClientDisconnect("Client connection already closed")
        try:
            await self.websocket.send_text(text)
        except (WebSocketDisconnect, RuntimeError) as e:
            raise ClientDisconnect(f"Client went away while sending: {e}")

    async def receive(self) -> str:
        while True:
            try:
                message = await self.websocket.receive()
            except (WebSocketDisconnect, RuntimeError) as e:
                raise ClientDisconnect(f"Client disconnected: {e}")

            if message["type"] == "websocket.disconnect":
                self._closed = True
                raise ClientDisconnect(f"Client disconnected (code {message.get('code')})")

            if message.get("text") is not None:
                return message["text"]

            if message.get("bytes") is not None:
                frame = self._wrap_binary_audio(message["bytes"])
                if frame is not None:
                    return frame

    def _wrap_binary_audio(self, audio_data: bytes) -> Optional[str]:
        try:
            self.audio_processor.validate_pcm16(audio_data)
        except DecodeFailure as e:
            logger.warning(f"Dropping binary client frame: {e.message}")
            return None

        source_rate = self.settings.client_binary_sample_rate
        if source_rate != REALTIME_SAMPLE_RATE:
            audio_data = self.audio_processor.convert_sample_rate(audio_data, source_rate, REALTIME_SAMPLE_RATE)

        return json.dumps({
            "type": "input_audio_buffer.append",
            "audio": self.audio_processor.encode_base64_audio(audio_data)
        })

    async def close(self):
        if self._closed:
            return
        self._closed = True
        if self.websocket.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close()
        except RuntimeError as e:
            logger.debug(f"Client websocket already closed: {e}")

class WebSocketHandler:
    def __init__(self, managers: Dict[str, Any], settings=None):
        self.realtime_manager = managers['realtime']
        self.settings = settings or default_settings
        self.audio_processor = AudioProcessor()

    async def handle_connection(self, websocket: WebSocket, user_id: Optional[str] = None,
                                topic: Optional[str] = None):
        """Accept a browser connection and relay it until either side closes"""
        connection_start_time = time.time()
        await websocket.accept()

        client = ClientConnection(websocket, self.settings, self.audio_processor)
        session = self.realtime_manager.create_session(client, user_id=user_id, topic=topic)
        logger.info(f"🔌 Client connected: session {session.session_id} (user={user_id}, topic={topic})")

        try:
            await self.realtime_manager.run_session(session)
        finally:
            connection_duration = time.time() - connection_start_time
            logger.info(f"📊 Session {session.session_id} lasted {connection_duration:.2f} seconds")

    def get_connection_stats(self) -> dict:
        return self.realtime_manager.get_connection_stats()
