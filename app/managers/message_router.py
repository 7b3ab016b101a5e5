# app/managers/message_router.py - Classifies relay frames and routes them

import logging
from typing import Any, Dict, List, Optional

from app.errors import DecodeFailure, UpstreamProtocolError
from app.managers.audio_queue import AudioFrameQueue
from app.managers.handshake import HandshakeCoordinator
from app.managers.outbound_buffer import OutboundBuffer
from app.managers.transcript import TranscriptAccumulator
from app.models.messages import Message, MessageKind, TURN_BOUNDARY_KINDS
from app.utils.audio import AudioProcessor

logger = logging.getLogger(__name__)


class MessageRouter:
    """Routes frames for one relay session.

    Both ``route_*`` methods are synchronous and return the messages that
    must be sent upstream right now, in order. Client-bound frames go into
    the outbound buffer or the audio queue and are never awaited here.
    """

    def __init__(self, handshake: HandshakeCoordinator, outbound: OutboundBuffer,
                 audio_queue: AudioFrameQueue, transcript: TranscriptAccumulator,
                 audio_processor: AudioProcessor = None):
        self.handshake = handshake
        self.outbound = outbound
        self.audio_queue = audio_queue
        self.transcript = transcript
        self.audio_processor = audio_processor or AudioProcessor()

        self.assistant_speaking = False
        self.user_speaking = False
        self.last_upstream_error: Optional[UpstreamProtocolError] = None
        self.counters: Dict[str, int] = {
            "client_frames": 0,
            "upstream_frames": 0,
            "audio_chunks": 0,
            "audio_decode_failures": 0,
            "upstream_errors": 0,
        }

    def route_client(self, message: Message) -> List[Message]:
        """Client -> upstream: everything passes through the handshake gate"""
        self.counters["client_frames"] += 1
        return self.handshake.submit(message)

    def route_upstream(self, message: Message) -> List[Message]:
        """Upstream -> client, following the routing table per frame kind"""
        self.counters["upstream_frames"] += 1
        kind = message.kind
        released: List[Message] = []

        if kind in TURN_BOUNDARY_KINDS:
            self.transcript.end_turn()

        if kind is MessageKind.SESSION_CREATED:
            released = self.handshake.mark_ready()
            self.outbound.put(message)

        elif kind is MessageKind.AUDIO_DELTA:
            self._route_audio_delta(message)

        elif kind is MessageKind.AUDIO_DONE:
            self.assistant_speaking = False
            self.outbound.put(message)

        elif kind is MessageKind.TRANSCRIPT_DELTA:
            if message.delta:
                self.transcript.append_delta(message.delta, message.turn_id)
            self.outbound.put_transcript_delta(message)

        elif kind is MessageKind.INPUT_TRANSCRIPT:
            self.transcript.add_user_utterance(message.payload.get("transcript", ""))
            self.outbound.put(message)

        elif kind is MessageKind.SPEECH_STARTED:
            self.user_speaking = True
            self.outbound.put(message)

        elif kind is MessageKind.SPEECH_STOPPED:
            self.user_speaking = False
            self.outbound.put(message)

        elif kind is MessageKind.ERROR:
            self.counters["upstream_errors"] += 1
            self.last_upstream_error = UpstreamProtocolError(_error_description(message.payload))
            logger.warning(f"Upstream error for {message.session_id}: {self.last_upstream_error.message}")
            self.outbound.put(message)

        else:
            self.outbound.put(message)

        return released

    def get_state(self) -> Dict[str, Any]:
        return {
            "assistant_speaking": self.assistant_speaking,
            "user_speaking": self.user_speaking,
            "handshake": self.handshake.state.value,
            "pending_client_messages": len(self.handshake.pending),
            "last_upstream_error": self.last_upstream_error.message if self.last_upstream_error else None,
            "outbound_pending": len(self.outbound),
            "audio_queue": self.audio_queue.get_stats(),
            **self.counters,
        }

    def _route_audio_delta(self, message: Message):
        try:
            chunk = self.audio_processor.decode_base64_audio(message.payload.get("delta"))
        except DecodeFailure as e:
            self.counters["audio_decode_failures"] += 1
            logger.warning(f"Skipping audio delta for {message.session_id}: {e}")
            return

        self.counters["audio_chunks"] += 1
        self.assistant_speaking = True
        meta = {key: value for key, value in message.payload.items() if key not in ("type", "delta")}
        self.audio_queue.enqueue(chunk, meta)


def _error_description(payload: Dict[str, Any]) -> str:
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or error.get("type") or "Unknown upstream error"
    if isinstance(error, str):
        return error
    return "Unknown upstream error"

