# app/managers/transcript.py - Running transcript of a relay session

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

ASSISTANT = "assistant"
USER = "user"


class TranscriptTurn:
    """One speaker turn of the conversation"""

    def __init__(self, speaker: str, text: str = "", turn_id: Optional[Tuple] = None):
        self.speaker = speaker
        self.text = text
        self.turn_id = turn_id
        self.started_at = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speaker": self.speaker,
            "message": self.text,
            "timestamp": self.started_at.isoformat(),
        }


class TranscriptAccumulator:
    """Accumulates assistant deltas into one message per turn"""

    def __init__(self):
        self.turns: List[TranscriptTurn] = []
        self._open: Optional[TranscriptTurn] = None

    @property
    def current_text(self) -> str:
        return self._open.text if self._open else ""

    def append_delta(self, text: str, turn_id: Optional[Tuple] = None) -> TranscriptTurn:
        """Extend the open assistant turn, or start a new one"""
        if self._open is not None and turn_id is not None and self._open.turn_id is not None \
                and turn_id != self._open.turn_id:
            self.end_turn()

        if self._open is None:
            self._open = TranscriptTurn(ASSISTANT, "", turn_id)
            self.turns.append(self._open)
        elif self._open.turn_id is None:
            self._open.turn_id = turn_id

        self._open.text += text
        return self._open

    def end_turn(self) -> Optional[TranscriptTurn]:
        """Close the open assistant turn; the next delta starts a fresh one"""
        turn, self._open = self._open, None
        return turn

    def add_user_utterance(self, text: str) -> Optional[TranscriptTurn]:
        self.end_turn()
        text = (text or "").strip()
        if not text:
            return None
        turn = TranscriptTurn(USER, text)
        self.turns.append(turn)
        return turn

    def user_utterances(self) -> List[str]:
        return [turn.text for turn in self.turns if turn.speaker == USER]

    def as_text(self) -> str:
        return "\n".join(f"{turn.speaker}: {turn.text}" for turn in self.turns if turn.text)

    def to_list(self) -> List[Dict[str, Any]]:
        return [turn.to_dict() for turn in self.turns]
