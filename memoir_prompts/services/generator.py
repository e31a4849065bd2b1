# services/generator.py
"""Fallback prompt generation.

Tier 1 turns the user's most recent story into a persisted prompt; Tier 0
builds a transient decade prompt from the birth year.
"""
from __future__ import annotations

import hashlib
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Iterable, Optional

from memoir_prompts.llm_client import OllamaError
from memoir_prompts.models import ActivePrompt, PromptOutcome, PromptTier, Story, as_utc, utcnow
from memoir_prompts.services.validator import is_valid, is_worthy_entity
from memoir_prompts.settings.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anchor:
    kind: str  # person|place|object|emotion
    text: str
    memory_type: str
    priority: int


Composer = Callable[[Story, Anchor], Awaitable[list[str]]]

# kind -> (memory_type, priority, templates, templates using {year})
TEMPLATE_LIBRARY: dict[str, tuple[str, int, list[str], list[str]]] = {
    "person": (
        "person_expansion",
        95,
        [
            "{anchor} mattered. What did they teach you that truly stuck?",
            "When did you first see {anchor} differently than before?",
            "What is something {anchor} said that you still hear today?",
            "Who else was with you the day {anchor} changed your mind?",
        ],
        [
            "Back in {year}, what did {anchor} teach you that stayed with you?",
        ],
    ),
    "place": (
        "place_memory",
        88,
        [
            "Who shared {anchor} with you, and why did it matter?",
            "When did {anchor} stop feeling the same to you?",
            "What happened at {anchor} that you rarely talk about?",
        ],
        [
            "What do you remember most about {anchor} around {year}?",
        ],
    ),
    "object": (
        "object_as_bridge",
        85,
        [
            "{anchor} did not appear from nowhere. Who handed it to you, and why?",
            "When did {anchor} start meaning something more to you?",
        ],
        [],
    ),
    "emotion": (
        "emotion_link",
        80,
        [
            "You felt {anchor}. When did that feeling first teach you something important?",
            "Who helped you carry that {anchor} back then?",
        ],
        [],
    ),
}

DECADE_TEMPLATES = [
    "Tell me about a typical Saturday in the {decade}s.",
    "What was your favorite thing about the {decade}s?",
    "What do you remember most from the {decade}s?",
    "Tell me a story from the {decade}s that makes you smile.",
    "What was happening in your life in the {decade}s?",
]


# ---------------------------------------------
# Deterministic ordering helpers
# ---------------------------------------------
def _seed(*parts) -> int:
    msg = ":".join(str(p) for p in parts).encode("utf-8")
    return int.from_bytes(hashlib.sha256(msg).digest()[:8], "big")


def _shuffle_deterministic(items, seed: int):
    rnd = random.Random(seed)
    items = list(items)
    rnd.shuffle(items)
    return items


def anchor_hash(memory_type: str, entity: str, year: Optional[int]) -> str:
    raw = f"{memory_type}|{(entity or '').strip().lower()}|{year if year else 'NA'}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def latest_story(stories: Iterable[Story]) -> Optional[Story]:
    dated = [s for s in stories if s is not None]
    if not dated:
        return None
    floor = datetime.min.replace(tzinfo=utcnow().tzinfo)
    return max(dated, key=lambda s: as_utc(s.created_at) or floor)


def story_anchors(story: Story) -> list[Anchor]:
    """Worthy entities first (person, place, object), then emotions."""
    anchors: list[Anchor] = []
    seen: set[str] = set()
    entities = story.entities or []
    for kind in ("person", "place", "object"):
        memory_type, priority, _, _ = TEMPLATE_LIBRARY[kind]
        for ent in entities:
            if not isinstance(ent, dict) or ent.get("kind") != kind:
                continue
            text = str(ent.get("text") or "").strip()
            if not is_worthy_entity(text) or text.lower() in seen:
                continue
            seen.add(text.lower())
            anchors.append(Anchor(kind, text, memory_type, priority))
    memory_type, priority, _, _ = TEMPLATE_LIBRARY["emotion"]
    for emo in story.emotions or []:
        text = str(emo or "").strip().lower()
        if not text or text in seen:
            continue
        seen.add(text)
        anchors.append(Anchor("emotion", text, memory_type, priority))
    return anchors


async def template_candidates(story: Story, anchor: Anchor) -> list[str]:
    _, _, plain, with_year = TEMPLATE_LIBRARY[anchor.kind]
    patterns = list(plain)
    if story.story_year:
        patterns += with_year
    ordered = _shuffle_deterministic(patterns, _seed(story.user_id, story.id, anchor.text))
    return [p.format(anchor=anchor.text, year=story.story_year) for p in ordered]


def _compose_from_settings() -> Composer:
    if settings.PROMPT_COMPOSER == "ollama":
        from memoir_prompts.llm_client import compose_with_ollama
        return compose_with_ollama
    return template_candidates


class PromptGenerator:
    def __init__(
        self,
        repo,
        *,
        composer: Optional[Composer] = None,
        validator: Callable[[str], bool] = is_valid,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.composer = composer or _compose_from_settings()
        self.validator = validator
        self.clock = clock

    async def _candidates(self, story: Story, anchor: Anchor) -> list[str]:
        try:
            out = await self.composer(story, anchor)
        except OllamaError as exc:
            logger.warning("Composer failed for story %s (%s); using templates", story.id, exc)
            out = []
        if not out and self.composer is not template_candidates:
            out = await template_candidates(story, anchor)
        return [c.strip() for c in out if c and c.strip()]

    # ---------------------------------------------
    # Tier 1: story-derived
    # ---------------------------------------------
    async def from_latest_story(self, user_id: int, stories: Optional[list[Story]] = None) -> Optional[ActivePrompt]:
        if stories is None:
            stories = await self.repo.list_stories(user_id)
        story = latest_story(stories)
        if story is None:
            return None

        active = await self.repo.list_active(user_id)
        history = await self.repo.list_history(user_id)
        used_texts = {p.prompt_text.strip().lower() for p in active if p.prompt_text}
        used_texts |= {h.prompt_text.strip().lower() for h in history if h.prompt_text}
        rejected_anchors = {
            h.anchor_hash for h in history
            if h.anchor_hash and h.outcome == PromptOutcome.skipped
        }

        for anchor in story_anchors(story):
            ahash = anchor_hash(anchor.memory_type, anchor.text, story.story_year)
            if ahash in rejected_anchors:
                logger.debug("Anchor %r already retired for user %s", anchor.text, user_id)
                continue
            for text in await self._candidates(story, anchor):
                if not self.validator(text) or text.lower() in used_texts:
                    continue
                prompt = self._build_story_prompt(user_id, story, anchor, text, ahash)
                saved = await self.repo.insert_active(prompt)
                logger.info(
                    "Generated tier-1 prompt %s for user %s from story %s (anchor=%r)",
                    saved.id, user_id, story.id, anchor.text,
                )
                return saved

        logger.info("No valid tier-1 prompt from story %s for user %s", story.id, user_id)
        return None

    def _build_story_prompt(self, user_id: int, story: Story, anchor: Anchor, text: str, ahash: str) -> ActivePrompt:
        now = self.clock()
        ttl = settings.GENERATED_PROMPT_TTL_DAYS
        return ActivePrompt(
            user_id=user_id,
            prompt_text=text,
            context_note=f"Based on your {story.story_year} story" if story.story_year else "Based on your latest story",
            anchor_entity=anchor.text,
            anchor_year=story.story_year,
            anchor_hash=ahash,
            tier=int(PromptTier.STORY),
            memory_type=anchor.memory_type,
            prompt_score=float(anchor.priority),
            is_locked=False,
            expires_at=now + timedelta(days=ttl) if ttl else None,
            skip_count=0,
            shown_count=0,
            source_story_id=story.id,
            created_at=now,
        )

    # ---------------------------------------------
    # Tier 0: decade fallback (never persisted)
    # ---------------------------------------------
    async def decade_fallback(self, user_id: int, recorded_years: Iterable[int] = ()) -> ActivePrompt:
        now = self.clock()
        profile = await self.repo.get_user(user_id)
        birth_year = getattr(profile, "birth_year", None)

        current_decade = (now.year // 10) * 10
        if birth_year and 1850 <= int(birth_year) <= now.year:
            lived = list(range((int(birth_year) // 10) * 10, current_decade + 1, 10))
        else:
            lived = [current_decade]

        recorded = {(int(y) // 10) * 10 for y in recorded_years if y}
        pool = [d for d in lived if d not in recorded] or lived

        iso = now.isocalendar()
        seed = _seed(user_id, iso[0], iso[1])
        decade = pool[seed % len(pool)]
        template = DECADE_TEMPLATES[(seed >> 16) % len(DECADE_TEMPLATES)]

        return ActivePrompt(
            id=None,
            user_id=user_id,
            prompt_text=template.format(decade=decade),
            context_note=f"A memory from the {decade}s",
            anchor_entity=f"{decade}s",
            anchor_year=decade,
            tier=int(PromptTier.DECADE),
            memory_type="decade_fallback",
            prompt_score=0.0,
            is_locked=False,
            expires_at=None,
            skip_count=0,
            shown_count=0,
            created_at=now,
        )
