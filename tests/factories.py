"""Builders for prompt engine rows used across the test modules."""
import uuid
from datetime import datetime, timezone

from memoir_prompts.models import ActivePrompt, PromptHistory, PromptOutcome, Story, UserProfile

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
USER_ID = 1
OTHER_USER_ID = 2


def fixed_clock():
    return NOW


def make_prompt(**kwargs) -> ActivePrompt:
    defaults = dict(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        prompt_text="Who showed you courage when you needed it most?",
        tier=1,
        prompt_score=50.0,
        is_locked=False,
        expires_at=None,
        skip_count=0,
        shown_count=0,
        created_at=NOW,
    )
    defaults.update(kwargs)
    return ActivePrompt(**defaults)


def make_story(**kwargs) -> Story:
    defaults = dict(
        id=str(uuid.uuid4()),
        user_id=USER_ID,
        title="Summer at the lake",
        story_text="Aunt May drove us to Lake Tahoe every July.",
        story_year=1995,
        emotions=["proud"],
        entities=[
            {"kind": "person", "text": "Aunt May"},
            {"kind": "place", "text": "Lake Tahoe"},
        ],
        created_at=NOW,
    )
    defaults.update(kwargs)
    return Story(**defaults)


def make_history(**kwargs) -> PromptHistory:
    defaults = dict(
        id=str(uuid.uuid4()),
        prompt_id=str(uuid.uuid4()),
        user_id=USER_ID,
        prompt_text="An archived prompt?",
        tier=1,
        outcome=PromptOutcome.skipped,
        skip_count=3,
        archived_at=NOW,
    )
    defaults.update(kwargs)
    return PromptHistory(**defaults)


def make_profile(birth_year=None, user_id=USER_ID) -> UserProfile:
    return UserProfile(user_id=user_id, birth_year=birth_year)
