# app/managers/grammar_manager.py - Lightweight grammar scoring for practice sentences

import logging
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

BASE_SCORE = 85
PENALTY_PER_ISSUE = 10
FALLBACK_SCORE = 50

CAPITALIZATION_ERROR = "Sentence should start with a capital letter"
PUNCTUATION_ERROR = "Sentence should end with proper punctuation"
GENERIC_SUGGESTION = "Check capitalization and punctuation"
FALLBACK_ERROR = "Unable to check grammar at this time"

_CAPITAL_START = re.compile(r"[A-Z]")
_TERMINAL_PUNCTUATION = re.compile(r"[.!?]\Z")


class GrammarChecker:
    """Rule-based scorer: 85 minus 10 per issue, floored at 0"""

    def check(self, text: str) -> Dict[str, Any]:
        if not text or not text.strip():
            logger.warning("Grammar check requested for empty text")
            return {
                "score": FALLBACK_SCORE,
                "errors": [FALLBACK_ERROR],
                "suggestions": [],
                "error": "Text is required",
            }

        # Checked as typed; only blank input is rejected above
        errors: List[str] = []

        if not _CAPITAL_START.match(text):
            errors.append(CAPITALIZATION_ERROR)
        if not _TERMINAL_PUNCTUATION.search(text):
            errors.append(PUNCTUATION_ERROR)

        logger.debug(f"Grammar check found {len(errors)} issues in {len(text)} chars")
        return {
            "score": max(BASE_SCORE - len(errors) * PENALTY_PER_ISSUE, 0),
            "errors": errors,
            "suggestions": [GENERIC_SUGGESTION] if errors else [],
        }

    def check_conversation(self, utterances: List[str]) -> Dict[str, Any]:
        """Average score and collected errors over a learner's utterances"""
        cleaned = [u.strip() for u in utterances if u and u.strip()]
        if not cleaned:
            return {"score": None, "errors": []}

        reports = [self.check(u) for u in cleaned]
        errors = [f"{error}: \"{u}\"" for u, report in zip(cleaned, reports) for error in report["errors"]]

        score = round(sum(r["score"] for r in reports) / len(reports))
        return {"score": score, "errors": errors}
