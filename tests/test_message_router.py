"""Tests for upstream/client frame routing."""

import base64
import json

import pytest

from app.managers.audio_queue import AudioFrameQueue, AudioPlayback
from app.managers.handshake import HandshakeCoordinator
from app.managers.message_router import MessageRouter
from app.managers.outbound_buffer import OutboundBuffer
from app.managers.transcript import TranscriptAccumulator
from app.models.messages import Direction, Message, MessageKind


class CollectingPlayback(AudioPlayback):
    def __init__(self):
        self.chunks = []
        self.metas = []

    def start(self, chunk, meta=None):
        self.chunks.append(chunk)
        self.metas.append(meta)


@pytest.fixture
def playback():
    return CollectingPlayback()


@pytest.fixture
def router(playback):
    audio_queue = AudioFrameQueue(playback)
    return MessageRouter(HandshakeCoordinator("s1"), OutboundBuffer(), audio_queue, TranscriptAccumulator())


def upstream(frame_type: str, **fields) -> Message:
    raw = json.dumps({"type": frame_type, **fields})
    return Message.parse(raw, Direction.UPSTREAM_TO_CLIENT, "s1")


def client(frame_type: str, **fields) -> Message:
    raw = json.dumps({"type": frame_type, **fields})
    return Message.parse(raw, Direction.CLIENT_TO_UPSTREAM, "s1")


def test_client_frames_gate_until_session_created(router):
    update = client("session.update", session={"voice": "verse"})

    assert router.route_client(update) == []

    released = router.route_upstream(upstream("session.created", session={"id": "sess_1"}))

    assert released == [update]
    assert [m.type for m in router.outbound.items()] == ["session.created"]
    assert router.route_client(client("response.create"))[0].type == "response.create"


def test_audio_delta_goes_to_audio_queue(router, playback):
    pcm = b"\x01\x00\x02\x00"
    router.route_upstream(upstream("response.audio.delta", delta=base64.b64encode(pcm).decode(),
                                   response_id="r1", item_id="i1"))

    assert playback.chunks == [pcm]
    assert playback.metas == [{"response_id": "r1", "item_id": "i1"}]
    assert router.assistant_speaking
    assert len(router.outbound) == 0


def test_malformed_audio_delta_is_skipped(router, playback):
    router.route_upstream(upstream("response.audio.delta", delta="@@not-base64@@"))
    router.route_upstream(upstream("response.audio.delta", delta=base64.b64encode(b"\x00\x00").decode()))

    assert playback.chunks == [b"\x00\x00"]
    assert router.counters["audio_decode_failures"] == 1
    assert router.counters["audio_chunks"] == 1


def test_transcript_deltas_merge_and_accumulate(router):
    router.route_upstream(upstream("response.audio_transcript.delta", delta="Hel", response_id="r1", item_id="i1"))
    router.route_upstream(upstream("response.audio_transcript.delta", delta="lo", response_id="r1", item_id="i1"))

    items = router.outbound.items()
    assert len(items) == 1
    assert items[0].delta == "Hello"
    assert router.transcript.current_text == "Hello"


def test_transcript_done_closes_turn(router):
    router.route_upstream(upstream("response.audio_transcript.delta", delta="Hi.", response_id="r1", item_id="i1"))
    router.route_upstream(upstream("response.audio_transcript.done", response_id="r1", item_id="i1"))
    router.route_upstream(upstream("response.audio_transcript.delta", delta="Next", response_id="r2", item_id="i2"))

    assert router.transcript.messages == ["Hi.", "Next"]


def test_input_transcript_records_user_turn(router):
    router.route_upstream(upstream("conversation.item.input_audio_transcription.completed",
                                   transcript="i like coffee"))

    assert router.transcript.user_utterances() == ["i like coffee"]
    assert router.outbound.items()[0].kind is MessageKind.INPUT_TRANSCRIPT


def test_speech_events_track_user_speaking(router):
    router.route_upstream(upstream("input_audio_buffer.speech_started"))
    assert router.user_speaking

    router.route_upstream(upstream("input_audio_buffer.speech_stopped"))
    assert not router.user_speaking
    assert len(router.outbound) == 2


def test_upstream_error_is_forwarded_and_counted(router):
    router.route_upstream(upstream("error", error={"type": "invalid_request_error", "message": "bad"}))

    assert router.counters["upstream_errors"] == 1
    assert router.outbound.items()[0].type == "error"
    assert router.get_state()["last_upstream_error"] == "bad"


def test_unknown_frames_pass_through_verbatim(router):
    raw = '{"type": "rate_limits.updated", "rate_limits": []}'
    router.route_upstream(Message.parse(raw, Direction.UPSTREAM_TO_CLIENT, "s1"))

    assert router.outbound.items()[0].to_json() == raw


def test_state_reports_handshake_and_counters(router):
    router.route_client(client("session.update"))
    state = router.get_state()

    assert state["handshake"] == "pending"
    assert state["pending_client_messages"] == 1
    assert state["client_frames"] == 1
