# app/managers/relay_session.py - One client <-> upstream realtime pairing

import asyncio
import json
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.agents.topic_prompts import build_session_config
from app.config import settings as default_settings
from app.errors import (
    ClientDisconnect,
    FrameParseError,
    RelayError,
    UpstreamDisconnect,
    UpstreamUnavailable,
)
from app.managers.audio_queue import AudioFrameQueue, AudioPlayback
from app.managers.connections import FrameConnection
from app.managers.handshake import HandshakeCoordinator
from app.managers.message_router import MessageRouter
from app.managers.outbound_buffer import OutboundBuffer
from app.managers.transcript import TranscriptAccumulator
from app.models.messages import Direction, Message
from app.utils.audio import AudioProcessor

logger = logging.getLogger(__name__)


class SessionState(Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class ClientAudioPlayback(AudioPlayback):
    """Plays audio chunks by handing them to the client writer in order"""

    def __init__(self, session_id: str, outbound: OutboundBuffer, audio_processor: AudioProcessor,
                 audio_format: str = "pcm16"):
        self.session_id = session_id
        self.outbound = outbound
        self.audio_processor = audio_processor
        self.audio_format = audio_format
        self.queue: Optional[AudioFrameQueue] = None
        self.audio_seconds = 0.0

    def start(self, chunk: bytes, meta: Optional[Dict[str, Any]] = None):
        self.audio_processor.validate_pcm16(chunk)

        data = self.audio_processor.pcm_to_wav(chunk) if self.audio_format == "wav" else chunk
        payload = {"type": "response.audio.delta"}
        payload.update(meta or {})
        payload["delta"] = self.audio_processor.encode_base64_audio(data)

        self.outbound.put(Message.build(payload, Direction.UPSTREAM_TO_CLIENT, self.session_id))
        self.audio_seconds += self.audio_processor.get_audio_duration(chunk)

        # Hand-off to the client writer counts as played
        if self.queue is not None:
            self.queue.on_playback_complete()


class RelaySession:
    """Relays frames between one client and one upstream realtime connection.

    State machine: CONNECTING -> ACTIVE -> CLOSED. While ACTIVE the
    handshake latch decides whether client frames go upstream or wait for
    the upstream's session.created. Closing either side closes both.
    """

    def __init__(self, client: FrameConnection, connector, *, session_id: Optional[str] = None,
                 user_id: Optional[str] = None, topic: Optional[str] = None, settings=None,
                 on_close: Optional[Callable[["RelaySession"], Awaitable[None]]] = None):
        self.settings = settings or default_settings
        self.session_id = session_id or str(uuid.uuid4())
        self.user_id = user_id
        self.topic = topic or self.settings.default_topic
        self.client = client
        self.connector = connector
        self.upstream: Optional[FrameConnection] = None
        self.on_close = on_close

        self.state = SessionState.CONNECTING
        self.close_reason: Optional[RelayError] = None
        self.created_at = datetime.utcnow()
        self.last_activity = self.created_at
        self.closed_at: Optional[datetime] = None

        self.audio_processor = AudioProcessor()
        self.handshake = HandshakeCoordinator(self.session_id)
        self.outbound = OutboundBuffer(self.settings.client_outbound_max_frames, name=self.session_id)
        self.playback = ClientAudioPlayback(self.session_id, self.outbound, self.audio_processor,
                                            self.settings.client_audio_format)
        self.audio_queue = AudioFrameQueue(self.playback, self.settings.audio_queue_max_chunks, name=self.session_id)
        self.playback.queue = self.audio_queue
        self.transcript = TranscriptAccumulator()
        self.router = MessageRouter(self.handshake, self.outbound, self.audio_queue, self.transcript,
                                    self.audio_processor)

        self._tasks: List[asyncio.Task] = []
        self._watchdog: Optional[asyncio.Task] = None
        self._upstream_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def upstream_ready(self) -> bool:
        return self.handshake.is_ready

    @property
    def pending_client_messages(self) -> List[Message]:
        return self.handshake.pending

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED

    async def open(self):
        """Connect upstream; raises UpstreamUnavailable after telling the client"""
        logger.info(f"Opening relay session {self.session_id} (user={self.user_id}, topic={self.topic})")

        try:
            upstream = await self.connector.connect()
        except UpstreamUnavailable as e:
            logger.error(f"Upstream unavailable for {self.session_id}: {e.message}")
            await self.close(e)
            raise
        except Exception as e:
            error = UpstreamUnavailable(f"Failed to connect to realtime API: {e}")
            logger.error(f"Upstream connect failed for {self.session_id}: {e}")
            await self.close(error)
            raise error from e

        if self.state is SessionState.CLOSED:
            # Torn down while we were connecting
            await upstream.close()
            return

        self.upstream = upstream
        self.state = SessionState.ACTIVE

        default_config = Message.build(build_session_config(self.topic, self.settings),
                                       Direction.CLIENT_TO_UPSTREAM, self.session_id)
        self.handshake.prepend(default_config)
        logger.info(f"Relay session {self.session_id} active, waiting for upstream session.created")

    async def run(self):
        """Open the session and pump frames until either side goes away"""
        try:
            await self.open()
        except UpstreamUnavailable:
            return

        if self.state is not SessionState.ACTIVE:
            return

        self._tasks = [
            asyncio.create_task(self._client_reader()),
            asyncio.create_task(self._upstream_reader()),
            asyncio.create_task(self._client_writer()),
        ]
        if self.settings.handshake_timeout > 0:
            self._watchdog = asyncio.create_task(self._handshake_watchdog(self.settings.handshake_timeout))

        try:
            await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await self.close(self.close_reason)
            pending = self._tasks + ([self._watchdog] if self._watchdog else [])
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self, reason: Optional[RelayError] = None):
        """Tear down both connections. Idempotent."""
        if self.state is SessionState.CLOSED:
            return

        self.state = SessionState.CLOSED
        self.close_reason = reason
        self.closed_at = datetime.utcnow()

        client_gone = isinstance(reason, ClientDisconnect)
        # Frames already routed to the client still go out ahead of the close
        undelivered = [] if client_gone else self.outbound.drain()

        self.handshake.discard()
        self.outbound.close()
        self.audio_queue.close()

        current = asyncio.current_task()
        for task in self._tasks + ([self._watchdog] if self._watchdog else []):
            if task is not current and not task.done():
                task.cancel()

        if reason is None or client_gone:
            logger.info(f"Closing relay session {self.session_id}" + (f": {reason.message}" if reason else ""))
        else:
            logger.warning(f"Closing relay session {self.session_id}: {reason.code}: {reason.message}")

        if self.upstream is not None:
            await self.upstream.close()

        if undelivered:
            await self._flush_to_client(undelivered)

        if reason is not None and reason.fatal and not client_gone:
            await self._send_error_to_client(reason)

        try:
            await self.client.close()
        except Exception as e:
            logger.warning(f"Error closing client connection for {self.session_id}: {e}")

        if self.on_close is not None:
            try:
                await self.on_close(self)
            except Exception as e:
                logger.error(f"Close hook failed for {self.session_id}: {e}")

    # ------------------------------------------------------------------
    # Frame handling
    # ------------------------------------------------------------------

    async def handle_client_frame(self, raw: str):
        if self.state is SessionState.CLOSED:
            return
        self.last_activity = datetime.utcnow()

        try:
            message = Message.parse(raw, Direction.CLIENT_TO_UPSTREAM, self.session_id)
        except FrameParseError as e:
            logger.warning(f"Invalid frame from client {self.session_id}: {e.message}")
            self.outbound.put(Message.build(e.to_frame(), Direction.UPSTREAM_TO_CLIENT, self.session_id))
            return

        logger.debug(f"Client -> upstream {self.session_id}: {message.type}")
        await self._send_upstream(self.router.route_client(message))

    async def handle_upstream_frame(self, raw: str):
        if self.state is SessionState.CLOSED:
            return
        self.last_activity = datetime.utcnow()

        try:
            message = Message.parse(raw, Direction.UPSTREAM_TO_CLIENT, self.session_id)
        except FrameParseError as e:
            logger.error(f"Invalid frame from upstream for {self.session_id}: {e.message}")
            return

        logger.debug(f"Upstream -> client {self.session_id}: {message.type}")
        await self._send_upstream(self.router.route_upstream(message))

    async def _send_upstream(self, messages: List[Message]):
        if not messages:
            return
        # The lock keeps a handshake flush ahead of frames released after it
        async with self._upstream_lock:
            for message in messages:
                if self.state is SessionState.CLOSED or self.upstream is None:
                    return
                await self.upstream.send(message.to_json())

    async def _flush_to_client(self, messages: List[Message]):
        logger.debug(f"Flushing {len(messages)} buffered frames to client {self.session_id}")
        for message in messages:
            try:
                await self.client.send(message.to_json())
            except Exception as e:
                logger.debug(f"Could not flush frames to {self.session_id}: {e}")
                return

    async def _send_error_to_client(self, error: RelayError):
        try:
            await self.client.send(json.dumps(error.to_frame()))
        except Exception as e:
            logger.debug(f"Could not deliver error frame to {self.session_id}: {e}")

    # ------------------------------------------------------------------
    # Pumps
    # ------------------------------------------------------------------

    async def _client_reader(self):
        try:
            while self.state is SessionState.ACTIVE:
                raw = await self.client.receive()
                await self.handle_client_frame(raw)
        except RelayError as e:
            await self.close(e)
        except Exception as e:
            logger.error(f"Client reader failed for {self.session_id}: {e}")
            await self.close(ClientDisconnect(f"Client I/O error: {e}"))

    async def _upstream_reader(self):
        try:
            while self.state is SessionState.ACTIVE:
                raw = await self.upstream.receive()
                await self.handle_upstream_frame(raw)
        except RelayError as e:
            await self.close(e)
        except Exception as e:
            logger.error(f"Upstream reader failed for {self.session_id}: {e}")
            await self.close(UpstreamDisconnect(f"Upstream I/O error: {e}"))

    async def _client_writer(self):
        try:
            while True:
                message = await self.outbound.get()
                if message is None:
                    return
                await self.client.send(message.to_json())
        except RelayError as e:
            await self.close(e)
        except Exception as e:
            logger.error(f"Client writer failed for {self.session_id}: {e}")
            await self.close(ClientDisconnect(f"Client I/O error: {e}"))

    async def _handshake_watchdog(self, timeout: float):
        await asyncio.sleep(timeout)
        if self.state is SessionState.ACTIVE and not self.handshake.is_ready:
            await self.close(UpstreamUnavailable(f"Upstream session was not created within {timeout}s"))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_duration_seconds(self) -> int:
        end = self.closed_at or datetime.utcnow()
        return int((end - self.created_at).total_seconds())

    def get_stats(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "topic": self.topic,
            "state": self.state.value,
            "upstream_ready": self.upstream_ready,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "duration_seconds": self.get_duration_seconds(),
            "audio_seconds_relayed": round(self.playback.audio_seconds, 3),
            "transcript_turns": len(self.transcript.turns),
            "close_reason": self.close_reason.code if self.close_reason else None,
            **self.router.get_state(),
        }
