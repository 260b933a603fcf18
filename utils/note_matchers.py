from typing import List, Protocol, Sequence

from utils.config import NoteScanConfig


class NoteMatcher(Protocol):
    """Strategy deciding whether a clinical note documents statin intolerance."""

    def __call__(self, text: str) -> bool:
        ...


def contains_in_order(text: str, parts: Sequence[str]) -> bool:
    """True when every part occurs in text, each one after the end of the previous."""
    position = 0
    for part in parts:
        idx = text.find(part, position)
        if idx == -1:
            return False
        position = idx + len(part)
    return True


class KeywordNoteMatcher:
    """
    Substring heuristic over lowercased note text. Not NLP: negations
    ("denies muscle pain") still match, and paraphrases are missed.
    """

    def __init__(self, phrases: Sequence[str], ordered_patterns: Sequence[Sequence[str]] = ()):
        self.phrases: List[str] = [p.lower() for p in phrases]
        self.ordered_patterns: List[List[str]] = [[p.lower() for p in parts] for parts in ordered_patterns]

    @classmethod
    def from_config(cls, config: NoteScanConfig) -> "KeywordNoteMatcher":
        return cls(config.phrases, config.ordered_patterns)

    def __call__(self, text: str) -> bool:
        if not text:
            return False
        lowered = text.lower()
        if any(p in lowered for p in self.phrases):
            return True
        return any(contains_in_order(lowered, parts) for parts in self.ordered_patterns)
