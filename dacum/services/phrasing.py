"""
Performance-criterion phrasing strategies, one per target language.

A strategy turns a VOQ triple into a completed-outcome sentence and tells the
validator what such a sentence looks like. New languages are added with
``register_phrasing`` without touching the validator or the document model.
"""

import re
from abc import ABC, abstractmethod


class PhrasingStrategy(ABC):
    """Render ``(verb, object, qualifier)`` as PC text for one language."""

    code: str = ""
    outcome_pattern: re.Pattern

    @abstractmethod
    def render(self, verb: str, obj: str, qualifier: str) -> str:
        ...

    def is_outcome_phrased(self, pc_text: str) -> bool:
        return bool(self.outcome_pattern.search(pc_text or ""))

    @staticmethod
    def _sentence(*parts: str) -> str:
        text = " ".join(p.strip() for p in parts if p and p.strip())
        text = text.rstrip(". ")
        if not text:
            return ""
        return text[0].upper() + text[1:] + "."


class EnglishPhrasing(PhrasingStrategy):
    """``"{Object} has been {verb} {qualifier}."``, or ``have been`` for plural objects."""

    code = "EN"
    outcome_pattern = re.compile(r"\b(has|have|had)\s+been\b", re.IGNORECASE)

    _HEAD_END = re.compile(r"\s+(?:of|for|in|on|to|with|from|by|under)\s+", re.IGNORECASE)
    _IRREGULAR_PLURALS = frozenset({"people", "children", "criteria", "staff", "personnel", "media"})
    _SINGULAR_ENDINGS = ("ss", "us", "is", "ics")

    def is_plural(self, obj: str) -> bool:
        """Compound objects and a plural head noun take ``have``."""
        head = self._HEAD_END.split((obj or "").strip(), maxsplit=1)[0]
        if re.search(r"\s+and\s+|,", head):
            return True
        words = head.split()
        if not words:
            return False
        noun = words[-1].lower()
        if noun in self._IRREGULAR_PLURALS:
            return True
        return noun.endswith("s") and not noun.endswith(self._SINGULAR_ENDINGS)

    def render(self, verb: str, obj: str, qualifier: str) -> str:
        auxiliary = "have been" if self.is_plural(obj) else "has been"
        return self._sentence(obj or "Work activity", auxiliary, verb, qualifier)


class MalayPhrasing(PhrasingStrategy):
    """``"{Object} telah {passive verb} {qualifier}."``"""

    code = "MS"
    outcome_pattern = re.compile(r"\b(telah|sudah)\b", re.IGNORECASE)

    PASSIVE = {
        "kenal pasti": "dikenal pasti",
        "rekod": "direkodkan",
        "catat": "dicatat",
        "baca": "dibaca",
        "periksa": "diperiksa",
        "semak": "disemak",
        "sediakan": "disediakan",
        "buat": "dibuat",
        "laksana": "dilaksanakan",
        "analisis": "dianalisis",
        "nilai": "dinilai",
        "siasat": "disiasat",
        "hantar": "dihantar",
        "salur": "disalurkan",
    }

    def passive(self, verb: str) -> str:
        v = (verb or "").strip().lower()
        if v in self.PASSIVE:
            return self.PASSIVE[v]
        # already passive (di-) or unknown: keep the author's wording
        return (verb or "").strip()

    def render(self, verb: str, obj: str, qualifier: str) -> str:
        return self._sentence(obj or "Aktiviti kerja", "telah", self.passive(verb), qualifier)


_STRATEGIES: dict[str, PhrasingStrategy] = {}


def register_phrasing(strategy: PhrasingStrategy) -> None:
    _STRATEGIES[strategy.code.upper()] = strategy


def get_phrasing(language: str | None) -> PhrasingStrategy:
    """Strategy for *language*; unknown languages use English."""
    return _STRATEGIES.get((language or "").upper(), _STRATEGIES["EN"])


def supported_languages() -> list[str]:
    return sorted(_STRATEGIES)


register_phrasing(EnglishPhrasing())
register_phrasing(MalayPhrasing())
