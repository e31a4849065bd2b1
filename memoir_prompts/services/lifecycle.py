# services/lifecycle.py
"""Skip / answer / expiry transitions for active prompts.

An active prompt ends in exactly one history row. Skips count up through
``increment_rejection``; the skip that reaches the retirement threshold
archives it as ``skipped``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from memoir_prompts.models import ActivePrompt, PromptHistory, PromptOutcome, utcnow
from memoir_prompts.services.repository import PromptAlreadyArchived
from memoir_prompts.services.selector import PromptSelector
from memoir_prompts.services.validator import quality_report
from memoir_prompts.settings.config import settings

logger = logging.getLogger(__name__)


class PromptError(Exception):
    pass


class PromptRefRequired(PromptError):
    def __init__(self, msg: str = "promptId or promptText is required"):
        super().__init__(msg)


class PromptNotFound(PromptError):
    def __init__(self, msg: str = "Prompt not found"):
        super().__init__(msg)


@dataclass
class SkipResult:
    retired: bool
    next_prompt: ActivePrompt
    prompt: Optional[ActivePrompt] = None


@dataclass
class SweepReport:
    dry_run: bool
    expired: list[str] = field(default_factory=list)
    invalid: list[dict] = field(default_factory=list)
    kept: int = 0

    def as_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "expired": len(self.expired),
            "invalid": len(self.invalid),
            "kept": self.kept,
            "expired_ids": self.expired,
            "invalid_prompts": self.invalid,
        }


class PromptLifecycle:
    def __init__(
        self,
        repo,
        selector: PromptSelector,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.selector = selector
        self.clock = clock

    async def _resolve(self, user_id: int, prompt_id: Optional[str], prompt_text: Optional[str]) -> ActivePrompt:
        if not prompt_id and not prompt_text:
            raise PromptRefRequired()
        prompt = None
        if prompt_id:
            prompt = await self.repo.get_active(user_id, prompt_id)
        elif prompt_text:
            prompt = await self.repo.find_active_by_text(user_id, prompt_text)
        if prompt is None:
            raise PromptNotFound()
        return prompt

    async def skip(
        self,
        user_id: int,
        *,
        prompt_id: Optional[str] = None,
        prompt_text: Optional[str] = None,
    ) -> SkipResult:
        prompt = await self._resolve(user_id, prompt_id, prompt_text)
        now = self.clock()

        updated = await self.repo.increment_rejection(user_id, prompt.id, now)
        if updated is None:
            # archived by a concurrent request between resolve and increment
            logger.info("Prompt %s vanished before skip for user %s", prompt.id, user_id)
            retired = True
        else:
            prompt = updated
            count = prompt.rejection_count
            threshold = settings.PROMPT_RETIRE_THRESHOLD
            retired = count >= threshold
            if retired:
                try:
                    await self.repo.archive(prompt, PromptOutcome.skipped, skip_count=min(count, threshold), now=now)
                    logger.info("Retired prompt %s for user %s after %d skips", prompt.id, user_id, count)
                except PromptAlreadyArchived:
                    logger.info("Prompt %s already archived for user %s", prompt.id, user_id)
            else:
                logger.debug("Prompt %s skipped (%s=%d)", prompt.id, prompt.rejection_field, count)

        next_prompt = await self.selector.get_next(user_id)
        return SkipResult(retired=retired, next_prompt=next_prompt, prompt=prompt)

    async def answer(self, user_id: int, prompt_id: str, story_id: Optional[str] = None) -> PromptHistory:
        if not prompt_id:
            raise PromptRefRequired("promptId is required")
        prompt = await self.repo.get_active(user_id, prompt_id)
        if prompt is None:
            raise PromptNotFound()
        try:
            entry = await self.repo.archive(
                prompt,
                PromptOutcome.answered,
                skip_count=prompt.rejection_count,
                now=self.clock(),
                story_id=story_id,
            )
        except PromptAlreadyArchived as exc:
            raise PromptNotFound() from exc
        logger.info("Prompt %s answered by user %s (story=%s)", prompt.id, user_id, story_id)
        return entry

    async def sweep(self, user_id: int, *, dry_run: bool = False) -> SweepReport:
        now = self.clock()
        report = SweepReport(dry_run=dry_run)
        for p in await self.repo.list_active(user_id):
            if p.is_expired(now):
                outcome = PromptOutcome.expired
                report.expired.append(p.id)
            else:
                q = quality_report(p.prompt_text)
                if q.is_valid:
                    report.kept += 1
                    continue
                outcome = PromptOutcome.skipped
                report.invalid.append({"id": p.id, "prompt_text": p.prompt_text, "issues": q.issue_types})
            if dry_run:
                continue
            try:
                await self.repo.archive(p, outcome, skip_count=p.rejection_count, now=now)
            except PromptAlreadyArchived:
                logger.debug("Prompt %s already archived during sweep", p.id)

        logger.info(
            "Sweep for user %s: expired=%d invalid=%d kept=%d dry_run=%s",
            user_id, len(report.expired), len(report.invalid), report.kept, dry_run,
        )
        return report
