"""Partial-answer hints.

The segmentation is deterministic; which segments get masked is random.
Callers that need a stable hint for a card must keep the first result.
"""

import random
import re

from mnemo.domain.constants import (
    GROUP_PLACEHOLDER,
    HINT_GROUP_SIZE,
    HINT_LONG_WORD_LEN,
    HINT_SHORT_TEXT_LEN,
    HINT_SHORT_WORD_LEN,
    WORD_PLACEHOLDER,
)

_WHITESPACE_RE = re.compile(r"\s+")
_CJK_RE = re.compile(r"[\u4e00-\u9fff\u3000-\u303f]")
_PUNCT_RE = re.compile(r"\W+")


def _is_punctuation(segment: str) -> bool:
    return bool(_PUNCT_RE.fullmatch(segment))


def _is_cjk_or_long(text: str) -> bool:
    return bool(_CJK_RE.search(text)) or len(text) > HINT_LONG_WORD_LEN


class HintObfuscator:
    """Masks a share of a text so it can be shown as a hint."""

    def __init__(self, rng: random.Random | None = None):
        self._rng = rng or random.Random()

    def mask(self, text: str, difficulty: float) -> str:
        """
        Mask segments of ``text``.

        Args:
            text: The answer to obfuscate.
            difficulty: Probability (0-1) that each eligible segment is masked.

        Returns:
            The masked, whitespace-trimmed text. Unchanged if difficulty <= 0.
        """
        if difficulty <= 0 or not text.strip():
            return text
        difficulty = min(1.0, difficulty)

        trimmed = text.strip()
        has_spaces = bool(_WHITESPACE_RE.search(trimmed))

        # No word boundaries (or a short CJK phrase): mask by character group.
        if not has_spaces or (len(trimmed) <= HINT_SHORT_TEXT_LEN and _is_cjk_or_long(trimmed)):
            return self._mask_groups(trimmed, difficulty)

        words = _WHITESPACE_RE.split(trimmed)
        return " ".join(self._mask_word(word, difficulty) for word in words)

    def _mask_word(self, word: str, difficulty: float) -> str:
        if len(word) <= HINT_SHORT_WORD_LEN or _is_punctuation(word):
            return word
        if len(word) > HINT_LONG_WORD_LEN:
            return self._mask_groups(word, difficulty)
        return WORD_PLACEHOLDER if self._rng.random() < difficulty else word

    def _mask_groups(self, text: str, difficulty: float) -> str:
        parts = []
        for i in range(0, len(text), HINT_GROUP_SIZE):
            segment = text[i : i + HINT_GROUP_SIZE]
            if len(segment) <= 1 or _is_punctuation(segment):
                parts.append(segment)
            elif self._rng.random() < difficulty:
                parts.append(GROUP_PLACEHOLDER)
            else:
                parts.append(segment)
        return "".join(parts)
