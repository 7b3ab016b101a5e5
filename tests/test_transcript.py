"""Tests for the per-session transcript."""

from app.managers.transcript import ASSISTANT, USER, TranscriptAccumulator


def test_deltas_accumulate_into_one_turn():
    transcript = TranscriptAccumulator()

    transcript.append_delta("Good ", ("r1", "i1"))
    transcript.append_delta("morning!", ("r1", "i1"))

    assert transcript.messages == ["Good morning!"]
    assert transcript.current_text == "Good morning!"


def test_new_turn_id_starts_new_turn():
    transcript = TranscriptAccumulator()

    transcript.append_delta("First.", ("r1", "i1"))
    transcript.append_delta("Second.", ("r2", "i2"))

    assert transcript.messages == ["First.", "Second."]


def test_user_utterance_ends_assistant_turn():
    transcript = TranscriptAccumulator()
    transcript.append_delta("How are you?", ("r1", "i1"))

    transcript.add_user_utterance("  fine thanks ")
    transcript.append_delta("Great!", ("r1", "i1"))

    assert [(t.speaker, t.text) for t in transcript.turns] == [
        (ASSISTANT, "How are you?"),
        (USER, "fine thanks"),
        (ASSISTANT, "Great!"),
    ]
    assert transcript.user_utterances() == ["fine thanks"]


def test_blank_user_utterance_is_ignored():
    transcript = TranscriptAccumulator()

    assert transcript.add_user_utterance("   ") is None
    assert transcript.turns == []


def test_export_formats():
    transcript = TranscriptAccumulator()
    transcript.add_user_utterance("Hello.")
    transcript.append_delta("Hi!")

    assert transcript.as_text() == "user: Hello.\nassistant: Hi!"
    exported = transcript.to_list()
    assert [t["speaker"] for t in exported] == [USER, ASSISTANT]
    assert set(exported[0]) == {"speaker", "message", "timestamp"}
