# services/memory_repository.py
"""Process-local PromptRepository used by the test-suite and local demos."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from memoir_prompts.models import (
    ActivePrompt, PromptHistory, PromptOutcome, Story, UserProfile,
)
from memoir_prompts.services.repository import (
    PromptAlreadyArchived, check_insertable, check_updatable, history_entry_for,
)


class InMemoryPromptRepository:
    def __init__(self):
        self._lock = asyncio.Lock()
        self.tables: dict[str, list[Any]] = {
            "active_prompts": [],
            "prompt_history": [],
            "stories": [],
            "user_profile": [],
        }

    # ---------- seeding ----------
    def seed(
        self,
        *,
        active_prompts: Iterable[ActivePrompt] = (),
        prompt_history: Iterable[PromptHistory] = (),
        stories: Iterable[Story] = (),
        profiles: Iterable[UserProfile] = (),
    ) -> "InMemoryPromptRepository":
        self.tables["active_prompts"].extend(active_prompts)
        self.tables["prompt_history"].extend(prompt_history)
        self.tables["stories"].extend(stories)
        self.tables["user_profile"].extend(profiles)
        return self

    @property
    def active_prompts(self) -> list[ActivePrompt]:
        return self.tables["active_prompts"]

    @property
    def prompt_history(self) -> list[PromptHistory]:
        return self.tables["prompt_history"]

    def _find(self, user_id: int, prompt_id: str) -> Optional[ActivePrompt]:
        for p in self.active_prompts:
            if p.user_id == user_id and p.id == prompt_id:
                return p
        return None

    # ---------- PromptRepository ----------
    async def list_active(self, user_id: int) -> list[ActivePrompt]:
        return [p for p in self.active_prompts if p.user_id == user_id]

    async def get_active(self, user_id: int, prompt_id: str) -> Optional[ActivePrompt]:
        return self._find(user_id, prompt_id)

    async def find_active_by_text(self, user_id: int, prompt_text: str) -> Optional[ActivePrompt]:
        matches = [p for p in self.active_prompts if p.user_id == user_id and p.prompt_text == prompt_text]
        matches.sort(key=lambda p: str(p.id))
        return matches[0] if matches else None

    async def insert_active(self, prompt: ActivePrompt) -> ActivePrompt:
        check_insertable(prompt)
        async with self._lock:
            if self._find(prompt.user_id, prompt.id) is not None:
                raise ValueError(f"Duplicate active prompt id {prompt.id}")
            if prompt.created_at is None:
                prompt.created_at = datetime.now(timezone.utc)
            if prompt.shown_count is None:
                prompt.shown_count = 0
            if prompt.is_locked is None:
                prompt.is_locked = False
            self.active_prompts.append(prompt)
        return prompt

    async def update_active(self, user_id: int, prompt_id: str, **fields: Any) -> None:
        check_updatable(fields)
        async with self._lock:
            p = self._find(user_id, prompt_id)
            if p is None:
                return
            for k, v in fields.items():
                setattr(p, k, v)

    async def delete_active(self, user_id: int, prompt_id: str) -> None:
        async with self._lock:
            self.tables["active_prompts"] = [
                p for p in self.active_prompts if not (p.user_id == user_id and p.id == prompt_id)
            ]

    async def increment_rejection(self, user_id: int, prompt_id: str, now: datetime) -> Optional[ActivePrompt]:
        async with self._lock:
            p = self._find(user_id, prompt_id)
            if p is None:
                return None
            if p.skip_count is not None:
                p.skip_count = p.skip_count + 1
            else:
                p.shown_count = (p.shown_count or 0) + 1
            p.last_shown_at = now
            return p

    async def append_history(self, entry: PromptHistory) -> PromptHistory:
        async with self._lock:
            self.prompt_history.append(entry)
        return entry

    async def archive(
        self,
        prompt: ActivePrompt,
        outcome: PromptOutcome,
        *,
        skip_count: int,
        now: datetime,
        story_id: Optional[str] = None,
    ) -> PromptHistory:
        entry = history_entry_for(prompt, outcome, skip_count=skip_count, now=now, story_id=story_id)
        async with self._lock:
            if self._find(prompt.user_id, prompt.id) is None:
                raise PromptAlreadyArchived(prompt.id)
            if any(h.prompt_id == prompt.id for h in self.prompt_history):
                raise PromptAlreadyArchived(prompt.id)
            self.tables["active_prompts"] = [
                p for p in self.active_prompts if not (p.user_id == prompt.user_id and p.id == prompt.id)
            ]
            self.prompt_history.append(entry)
        return entry

    async def list_history(self, user_id: int) -> list[PromptHistory]:
        rows = [h for h in self.prompt_history if h.user_id == user_id]
        rows.sort(key=lambda h: h.archived_at or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
        return rows

    async def list_stories(self, user_id: int) -> list[Story]:
        return [s for s in self.tables["stories"] if s.user_id == user_id]

    async def get_user(self, user_id: int) -> Optional[UserProfile]:
        for prof in self.tables["user_profile"]:
            if prof.user_id == user_id:
                return prof
        return None
