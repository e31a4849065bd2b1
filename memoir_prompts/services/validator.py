"""Content-quality rules for story prompts.

``is_valid`` is the only gate the selector and generator use. The quality
report and entity checks build on the same rules for cleanup and generation.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field

from memoir_prompts.settings.config import settings

# Placeholder nouns left behind when a template failed to bind to a real
# entity from the user's story.
FORBIDDEN_WORDS: frozenset[str] = frozenset({
    "girl", "boy", "man", "woman", "house", "room", "chair",
})

# Too vague to anchor a prompt on, on top of the forbidden nouns.
GENERIC_ENTITY_WORDS: frozenset[str] = FORBIDDEN_WORDS | {"place", "thing", "person", "kid", "child"}

_FILLER_WORDS = frozenset({
    "the", "a", "an", "to", "from", "with", "of", "in", "on", "at", "by", "for",
    "said", "told", "was", "were", "had", "have", "did", "does", "do", "been", "being",
})

_GENERIC_PHRASES = (
    "tell me more",
    "what else",
    "how did that make you feel",
    "in your story about",
)

_YES_NO = re.compile(r"^(did|was|were|is|are|do|does|have|has|can|would)\b", re.I)
_WORD = re.compile(r"[a-z]+")


def word_count(text: str) -> int:
    return len((text or "").split())


def _tokens(text: str) -> set[str]:
    return set(_WORD.findall(text.lower()))


def has_forbidden_word(text: str) -> bool:
    return bool(_tokens(text) & FORBIDDEN_WORDS)


def is_valid(prompt_text: str, max_words: int | None = None) -> bool:
    """True when the prompt is short enough and free of placeholder nouns."""
    if not isinstance(prompt_text, str):
        return False
    limit = max_words if max_words is not None else settings.PROMPT_MAX_WORDS
    wc = word_count(prompt_text)
    if wc == 0 or wc > limit:
        return False
    return not has_forbidden_word(prompt_text)


def is_worthy_entity(text: str | None) -> bool:
    """Whether an extracted entity is specific enough to build a prompt on."""
    if not text:
        return False
    t = text.strip()
    if len(t) < 3 or not t[0].isalpha():
        return False
    low = t.lower()
    if low in GENERIC_ENTITY_WORDS or low in _FILLER_WORDS:
        return False
    # fragments like "my dad and" or "the old"
    if re.search(r"\s(the|a|an|and|or|but|so|yet)$", low):
        return False
    if _tokens(t) & FORBIDDEN_WORDS:
        return False
    if re.search(r"(?:^|\s)my\s+[a-z]{2,}|'s\b", t, re.I):
        return True
    if re.fullmatch(r"[A-Z][a-z]+(?:\s[A-Z][a-z.]+)*", t):
        return True
    return len(t.split()) >= 2


# ---------------------------------------------
# Quality report (cleanup / diagnostics)
# ---------------------------------------------
@dataclass
class QualityIssue:
    type: str  # empty|long|forbidden|generic|yes_no
    reason: str


@dataclass
class QualityReport:
    is_valid: bool
    word_count: int
    issues: list[QualityIssue] = field(default_factory=list)
    score: int = 100

    @property
    def issue_types(self) -> list[str]:
        return [i.type for i in self.issues]


_PENALTIES = {"empty": 100, "forbidden": 100, "long": 40, "generic": 40, "yes_no": 10}


def quality_report(prompt_text: str, max_words: int | None = None) -> QualityReport:
    text = prompt_text if isinstance(prompt_text, str) else ""
    limit = max_words if max_words is not None else settings.PROMPT_MAX_WORDS
    wc = word_count(text)
    issues: list[QualityIssue] = []

    if wc == 0:
        issues.append(QualityIssue("empty", "Prompt has no words"))
    if wc > limit:
        issues.append(QualityIssue("long", f"Prompt is too long ({wc} words, max {limit})"))
    found = sorted(_tokens(text) & FORBIDDEN_WORDS)
    if found:
        issues.append(QualityIssue("forbidden", f"Prompt uses placeholder nouns: {', '.join(found)}"))
    low = text.lower()
    if any(p in low for p in _GENERIC_PHRASES):
        issues.append(QualityIssue("generic", "Prompt is too generic"))
    if _YES_NO.match(text.strip()):
        issues.append(QualityIssue("yes_no", "Prompt is a yes/no question"))

    score = 100 - sum(_PENALTIES[i.type] for i in issues)
    return QualityReport(
        is_valid=is_valid(text, max_words=limit),
        word_count=wc,
        issues=issues,
        score=max(0, score),
    )
