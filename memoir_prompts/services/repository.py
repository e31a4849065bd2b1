# services/repository.py
"""Storage boundary for the prompt engine.

Every method is scoped to one user. ``SqlPromptRepository`` is the only code
in the engine that talks to the database; the in-memory variant lives in
``memory_repository``.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional, Protocol

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from memoir_prompts.models import (
    ActivePrompt, PromptHistory, PromptOutcome, PromptTier, Story, UserProfile,
)

logger = logging.getLogger(__name__)

# Columns a caller may change through update_active
UPDATABLE_FIELDS = frozenset({
    "prompt_text", "context_note", "prompt_score", "is_locked", "expires_at",
    "skip_count", "shown_count", "last_shown_at", "tier",
})


class PromptAlreadyArchived(RuntimeError):
    """The prompt left active storage before it could be archived."""


class PromptRepository(Protocol):
    async def list_active(self, user_id: int) -> list[ActivePrompt]: ...

    async def get_active(self, user_id: int, prompt_id: str) -> Optional[ActivePrompt]: ...

    async def find_active_by_text(self, user_id: int, prompt_text: str) -> Optional[ActivePrompt]: ...

    async def insert_active(self, prompt: ActivePrompt) -> ActivePrompt: ...

    async def update_active(self, user_id: int, prompt_id: str, **fields: Any) -> None: ...

    async def delete_active(self, user_id: int, prompt_id: str) -> None: ...

    async def increment_rejection(self, user_id: int, prompt_id: str, now: datetime) -> Optional[ActivePrompt]: ...

    async def append_history(self, entry: PromptHistory) -> PromptHistory: ...

    async def archive(
        self,
        prompt: ActivePrompt,
        outcome: PromptOutcome,
        *,
        skip_count: int,
        now: datetime,
        story_id: Optional[str] = None,
    ) -> PromptHistory: ...

    async def list_history(self, user_id: int) -> list[PromptHistory]: ...

    async def list_stories(self, user_id: int) -> list[Story]: ...

    async def get_user(self, user_id: int) -> Optional[UserProfile]: ...


def check_insertable(prompt: ActivePrompt) -> None:
    if prompt.user_id is None:
        raise ValueError("ActivePrompt.user_id is required")
    if int(prompt.tier) < PromptTier.STORY:
        raise ValueError("Tier 0 prompts are never persisted")
    if not prompt.id:
        prompt.id = str(uuid.uuid4())


def check_updatable(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")


def history_entry_for(
    prompt: ActivePrompt,
    outcome: PromptOutcome,
    *,
    skip_count: int,
    now: datetime,
    story_id: Optional[str] = None,
) -> PromptHistory:
    return PromptHistory(
        id=str(uuid.uuid4()),
        prompt_id=prompt.id,
        user_id=prompt.user_id,
        prompt_text=prompt.prompt_text,
        anchor_entity=prompt.anchor_entity,
        anchor_year=prompt.anchor_year,
        anchor_hash=prompt.anchor_hash,
        tier=prompt.tier,
        memory_type=prompt.memory_type,
        prompt_score=prompt.prompt_score,
        outcome=PromptOutcome(outcome),
        skip_count=skip_count,
        story_id=story_id,
        created_at=prompt.created_at,
        archived_at=now,
    )


# ---------------------------------------------
# SQLAlchemy implementation
# ---------------------------------------------
class SqlPromptRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _commit(self) -> None:
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise

    async def list_active(self, user_id: int) -> list[ActivePrompt]:
        rows = await self.db.execute(
            select(ActivePrompt).where(ActivePrompt.user_id == user_id)
        )
        return list(rows.scalars().all())

    async def get_active(self, user_id: int, prompt_id: str) -> Optional[ActivePrompt]:
        return (await self.db.execute(
            select(ActivePrompt).where(
                (ActivePrompt.user_id == user_id) & (ActivePrompt.id == prompt_id)
            )
        )).scalars().first()

    async def find_active_by_text(self, user_id: int, prompt_text: str) -> Optional[ActivePrompt]:
        return (await self.db.execute(
            select(ActivePrompt)
            .where((ActivePrompt.user_id == user_id) & (ActivePrompt.prompt_text == prompt_text))
            .order_by(ActivePrompt.id.asc())
        )).scalars().first()

    async def insert_active(self, prompt: ActivePrompt) -> ActivePrompt:
        check_insertable(prompt)
        self.db.add(prompt)
        try:
            await self.db.flush()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self._commit()
        return prompt

    async def update_active(self, user_id: int, prompt_id: str, **fields: Any) -> None:
        check_updatable(fields)
        if not fields:
            return
        try:
            await self.db.execute(
                update(ActivePrompt)
                .where((ActivePrompt.user_id == user_id) & (ActivePrompt.id == prompt_id))
                .values(**fields)
                .execution_options(synchronize_session="fetch")
            )
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self._commit()

    async def delete_active(self, user_id: int, prompt_id: str) -> None:
        try:
            await self.db.execute(
                delete(ActivePrompt)
                .where((ActivePrompt.user_id == user_id) & (ActivePrompt.id == prompt_id))
            )
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self._commit()

    async def increment_rejection(self, user_id: int, prompt_id: str, now: datetime) -> Optional[ActivePrompt]:
        # One UPDATE statement: the row lock serialises concurrent skips, and
        # both SET expressions see the pre-update skip_count.
        legacy = ActivePrompt.skip_count.is_(None)
        stmt = (
            update(ActivePrompt)
            .where((ActivePrompt.user_id == user_id) & (ActivePrompt.id == prompt_id))
            .values(
                skip_count=case((legacy, None), else_=ActivePrompt.skip_count + 1),
                shown_count=case(
                    (legacy, func.coalesce(ActivePrompt.shown_count, 0) + 1),
                    else_=ActivePrompt.shown_count,
                ),
                last_shown_at=now,
            )
            .returning(ActivePrompt)
            .execution_options(populate_existing=True)
        )
        try:
            row = (await self.db.execute(stmt)).scalars().first()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self._commit()
        return row

    async def append_history(self, entry: PromptHistory) -> PromptHistory:
        self.db.add(entry)
        await self._commit()
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
        try:
            res = await self.db.execute(
                delete(ActivePrompt)
                .where((ActivePrompt.user_id == prompt.user_id) & (ActivePrompt.id == prompt.id))
                .returning(ActivePrompt.id)
            )
            if res.scalar_one_or_none() is None:
                await self.db.rollback()
                raise PromptAlreadyArchived(prompt.id)
            self.db.add(entry)
            await self.db.flush()
            await self.db.commit()
        except IntegrityError as exc:
            # history row already present for this prompt
            await self.db.rollback()
            raise PromptAlreadyArchived(prompt.id) from exc
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        logger.info("Archived prompt %s for user %s as %s", prompt.id, prompt.user_id, entry.outcome.value)
        return entry

    async def list_history(self, user_id: int) -> list[PromptHistory]:
        rows = await self.db.execute(
            select(PromptHistory)
            .where(PromptHistory.user_id == user_id)
            .order_by(PromptHistory.archived_at.desc())
        )
        return list(rows.scalars().all())

    async def list_stories(self, user_id: int) -> list[Story]:
        rows = await self.db.execute(
            select(Story).where(Story.user_id == user_id).order_by(Story.created_at.desc())
        )
        return list(rows.scalars().all())

    async def get_user(self, user_id: int) -> Optional[UserProfile]:
        return (await self.db.execute(
            select(UserProfile).where(UserProfile.user_id == user_id)
        )).scalars().first()
