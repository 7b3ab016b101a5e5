# app/models/messages.py - Realtime frames exchanged through the relay

import json
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from app.errors import FrameParseError


class Direction(Enum):
    """Which way a frame travels through the relay"""
    CLIENT_TO_UPSTREAM = "client_to_upstream"
    UPSTREAM_TO_CLIENT = "upstream_to_client"


class MessageKind(Enum):
    """Frame kinds the relay treats specially; everything else is OPAQUE"""
    SESSION_UPDATE = "session.update"
    SESSION_CREATED = "session.created"
    AUDIO_DELTA = "response.audio.delta"
    AUDIO_DONE = "response.audio.done"
    TRANSCRIPT_DELTA = "response.audio_transcript.delta"
    TRANSCRIPT_DONE = "response.audio_transcript.done"
    INPUT_TRANSCRIPT = "conversation.item.input_audio_transcription.completed"
    RESPONSE_CREATED = "response.created"
    RESPONSE_DONE = "response.done"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    ERROR = "error"
    OPAQUE = "opaque"

    @classmethod
    def classify(cls, frame_type: str) -> "MessageKind":
        kind = _KINDS_BY_TYPE.get(frame_type)
        return kind if kind is not None else cls.OPAQUE


_KINDS_BY_TYPE = {kind.value: kind for kind in MessageKind if kind is not MessageKind.OPAQUE}

# Kinds that close the current assistant turn
TURN_BOUNDARY_KINDS = frozenset({
    MessageKind.TRANSCRIPT_DONE,
    MessageKind.RESPONSE_CREATED,
    MessageKind.RESPONSE_DONE,
    MessageKind.INPUT_TRANSCRIPT,
    MessageKind.SPEECH_STARTED,
})


class Message:
    """One frame bound to a single session and a single direction.

    ``raw`` keeps the original text so untouched frames are forwarded
    byte for byte; any mutation of ``payload`` must go through a method
    that drops it.
    """

    def __init__(self, kind: MessageKind, payload: Dict[str, Any], direction: Direction,
                 session_id: str, raw: Optional[str] = None):
        self.kind = kind
        self.payload = payload
        self.direction = direction
        self.session_id = session_id
        self.raw = raw

    @classmethod
    def parse(cls, raw: str, direction: Direction, session_id: str) -> "Message":
        """Parse a text frame, raising FrameParseError when it is not a typed JSON object"""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise FrameParseError(f"Invalid JSON frame: {e}")

        if not isinstance(payload, dict):
            raise FrameParseError("Frame must be a JSON object")

        frame_type = payload.get("type")
        if not isinstance(frame_type, str) or not frame_type:
            raise FrameParseError("Frame is missing a string 'type'")

        return cls(MessageKind.classify(frame_type), payload, direction, session_id, raw)

    @classmethod
    def build(cls, payload: Dict[str, Any], direction: Direction, session_id: str) -> "Message":
        """Create a message synthesised by the relay itself"""
        return cls(MessageKind.classify(payload["type"]), payload, direction, session_id)

    @property
    def type(self) -> str:
        return self.payload["type"]

    @property
    def delta(self) -> str:
        value = self.payload.get("delta")
        return value if isinstance(value, str) else ""

    @property
    def turn_id(self) -> Optional[Tuple[Optional[str], Optional[str]]]:
        """(response_id, item_id) when the frame carries either"""
        response_id = self.payload.get("response_id")
        item_id = self.payload.get("item_id")
        if response_id is None and item_id is None:
            return None
        return (response_id, item_id)

    def append_delta(self, text: str):
        """Concatenate text onto this frame's delta"""
        self.payload["delta"] = self.delta + text
        self.raw = None

    def to_json(self) -> str:
        if self.raw is not None:
            return self.raw
        return json.dumps(self.payload)

    def __repr__(self) -> str:
        return f"Message({self.type!r}, {self.direction.value}, session={self.session_id})"
