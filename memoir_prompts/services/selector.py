# services/selector.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable

from memoir_prompts.models import ActivePrompt, utcnow
from memoir_prompts.services.generator import PromptGenerator
from memoir_prompts.services.validator import is_valid

logger = logging.getLogger(__name__)


def _rank_key(p: ActivePrompt):
    return (-int(p.tier or 0), -float(p.prompt_score or 0), str(p.id))


class PromptSelector:
    """Picks the one prompt a user should see next."""

    def __init__(
        self,
        repo,
        generator: PromptGenerator,
        *,
        validator: Callable[[str], bool] = is_valid,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.generator = generator
        self.validator = validator
        self.clock = clock

    def rank_candidates(self, prompts: Iterable[ActivePrompt], now: datetime) -> list[ActivePrompt]:
        survivors = []
        for p in prompts:
            if p.is_locked:
                logger.debug("Skipping locked prompt %s", p.id)
                continue
            if p.is_expired(now):
                logger.debug("Skipping expired prompt %s", p.id)
                continue
            if not self.validator(p.prompt_text):
                logger.debug("Skipping invalid prompt %s", p.id)
                continue
            survivors.append(p)
        survivors.sort(key=_rank_key)
        return survivors

    async def get_next(self, user_id: int) -> ActivePrompt:
        now = self.clock()
        ranked = self.rank_candidates(await self.repo.list_active(user_id), now)
        if ranked:
            return ranked[0]

        stories = await self.repo.list_stories(user_id)
        if stories:
            generated = await self.generator.from_latest_story(user_id, stories)
            if generated is not None:
                return generated
            logger.info("Tier-1 generation produced nothing for user %s; using decade fallback", user_id)

        return await self.generator.decade_fallback(
            user_id, recorded_years=[s.story_year for s in stories if s.story_year]
        )
