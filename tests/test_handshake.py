"""Tests for the handshake latch."""

from app.managers.handshake import HandshakeCoordinator, HandshakeState
from app.models.messages import Direction, Message


def client_message(frame_type: str, **fields) -> Message:
    return Message.build({"type": frame_type, **fields}, Direction.CLIENT_TO_UPSTREAM, "s1")


def test_messages_are_held_until_ready():
    handshake = HandshakeCoordinator("s1")

    assert handshake.submit(client_message("session.update")) == []
    assert handshake.submit(client_message("input_audio_buffer.append", audio="AAAA")) == []
    assert [m.type for m in handshake.pending] == ["session.update", "input_audio_buffer.append"]


def test_mark_ready_flushes_in_arrival_order_once():
    handshake = HandshakeCoordinator("s1")
    first = client_message("session.update")
    second = client_message("response.create")
    handshake.submit(first)
    handshake.submit(second)

    assert handshake.mark_ready() == [first, second]
    assert handshake.is_ready
    assert handshake.pending == []
    assert handshake.mark_ready() == []


def test_messages_pass_through_after_ready():
    handshake = HandshakeCoordinator("s1")
    handshake.mark_ready()
    message = client_message("response.create")

    assert handshake.submit(message) == [message]


def test_prepend_puts_message_ahead_of_pending():
    handshake = HandshakeCoordinator("s1")
    handshake.submit(client_message("session.update", session={"voice": "echo"}))
    handshake.prepend(client_message("session.update", session={"voice": "alloy"}))

    flushed = handshake.mark_ready()

    assert [m.payload["session"]["voice"] for m in flushed] == ["alloy", "echo"]


def test_discard_drops_pending_and_closes():
    handshake = HandshakeCoordinator("s1")
    handshake.submit(client_message("session.update"))

    assert handshake.discard() == 1
    assert handshake.state is HandshakeState.CLOSED
    assert handshake.submit(client_message("response.create")) == []
    assert handshake.mark_ready() == []
