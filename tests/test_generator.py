"""
Tier 1 (story-derived) and Tier 0 (decade) generation.
"""
import re

import pytest

from memoir_prompts.llm_client import OllamaError
from memoir_prompts.models import PromptOutcome
from memoir_prompts.services.generator import (
    PromptGenerator,
    anchor_hash,
    latest_story,
    story_anchors,
    template_candidates,
)
from memoir_prompts.services.validator import is_valid

from factories import NOW, USER_ID, fixed_clock, make_history, make_profile, make_prompt, make_story

DECADE_TOKEN = re.compile(r"\d{4}s")


class TestStoryAnchors:
    def test_people_before_places_before_emotions(self):
        story = make_story(
            entities=[
                {"kind": "place", "text": "Lake Tahoe"},
                {"kind": "object", "text": "Dad's truck"},
                {"kind": "person", "text": "Aunt May"},
            ],
            emotions=["proud"],
        )
        kinds = [(a.kind, a.text) for a in story_anchors(story)]
        assert kinds == [
            ("person", "Aunt May"),
            ("place", "Lake Tahoe"),
            ("object", "Dad's truck"),
            ("emotion", "proud"),
        ]

    def test_generic_entities_are_dropped(self):
        story = make_story(entities=[{"kind": "person", "text": "the girl"}, {"kind": "place", "text": "house"}], emotions=[])
        assert story_anchors(story) == []

    def test_latest_story_by_created_at(self):
        older = make_story(created_at=NOW.replace(year=2020))
        newer = make_story(created_at=NOW)
        assert latest_story([older, newer]) is newer
        assert latest_story([]) is None


class TestTemplateCandidates:
    @pytest.mark.asyncio
    async def test_candidates_are_valid_and_name_the_anchor(self):
        story = make_story()
        for anchor in story_anchors(story):
            candidates = await template_candidates(story, anchor)
            assert candidates
            for text in candidates:
                assert anchor.text in text
                assert is_valid(text)

    @pytest.mark.asyncio
    async def test_order_is_stable_per_story(self):
        story = make_story(id="story-1")
        anchor = story_anchors(story)[0]
        assert await template_candidates(story, anchor) == await template_candidates(story, anchor)


class TestFromLatestStory:
    @pytest.mark.asyncio
    async def test_persists_tier_one_prompt(self, repo, generator):
        story = make_story()
        repo.seed(stories=[story])

        prompt = await generator.from_latest_story(USER_ID)

        assert prompt is not None
        assert prompt.tier == 1
        assert prompt.id
        assert "Aunt May" in prompt.prompt_text
        assert prompt.source_story_id == story.id
        assert prompt.anchor_year == 1995
        assert prompt.skip_count == 0 and prompt.shown_count == 0
        assert prompt.is_locked is False
        assert prompt.memory_type == "person_expansion"
        assert prompt.anchor_hash == anchor_hash("person_expansion", "Aunt May", 1995)
        assert prompt.expires_at > NOW
        assert [p.id for p in await repo.list_active(USER_ID)] == [prompt.id]

    @pytest.mark.asyncio
    async def test_no_stories_returns_none(self, generator):
        assert await generator.from_latest_story(USER_ID) is None

    @pytest.mark.asyncio
    async def test_skips_text_already_in_history(self, repo):
        async def composer(story, anchor):
            return ["What did Aunt May teach you?", "Who first introduced you to Aunt May?"]

        repo.seed(
            stories=[make_story()],
            prompt_history=[make_history(prompt_text="what did aunt may teach you?", outcome=PromptOutcome.answered)],
        )
        gen = PromptGenerator(repo, composer=composer, clock=fixed_clock)

        prompt = await gen.from_latest_story(USER_ID)
        assert prompt.prompt_text == "Who first introduced you to Aunt May?"

    @pytest.mark.asyncio
    async def test_skips_text_already_active(self, repo):
        async def composer(story, anchor):
            return ["What did Aunt May teach you?", "Who first introduced you to Aunt May?"]

        repo.seed(stories=[make_story()], active_prompts=[make_prompt(prompt_text="What did Aunt May teach you?")])
        gen = PromptGenerator(repo, composer=composer, clock=fixed_clock)

        prompt = await gen.from_latest_story(USER_ID)
        assert prompt.prompt_text == "Who first introduced you to Aunt May?"

    @pytest.mark.asyncio
    async def test_retired_anchor_is_not_reused(self, repo, generator):
        repo.seed(
            stories=[make_story()],
            prompt_history=[make_history(anchor_hash=anchor_hash("person_expansion", "Aunt May", 1995))],
        )
        prompt = await generator.from_latest_story(USER_ID)
        assert prompt.anchor_entity == "Lake Tahoe"
        assert prompt.memory_type == "place_memory"

    @pytest.mark.asyncio
    async def test_composer_failure_falls_back_to_templates(self, repo):
        async def broken(story, anchor):
            raise OllamaError("connection refused")

        repo.seed(stories=[make_story()])
        gen = PromptGenerator(repo, composer=broken, clock=fixed_clock)

        prompt = await gen.from_latest_story(USER_ID)
        assert prompt is not None
        assert "Aunt May" in prompt.prompt_text

    @pytest.mark.asyncio
    async def test_only_invalid_candidates_returns_none(self, repo):
        async def composer(story, anchor):
            return ["What did that man tell you in the old house?"]

        repo.seed(stories=[make_story()])
        gen = PromptGenerator(repo, composer=composer, clock=fixed_clock)

        assert await gen.from_latest_story(USER_ID) is None
        assert await repo.list_active(USER_ID) == []


class TestDecadeFallback:
    @pytest.mark.asyncio
    async def test_transient_decade_prompt(self, repo, generator):
        repo.seed(profiles=[make_profile(birth_year=1980)])

        prompt = await generator.decade_fallback(USER_ID)

        assert prompt.id is None
        assert prompt.tier == 0
        assert DECADE_TOKEN.fullmatch(prompt.anchor_entity)
        assert prompt.anchor_entity in prompt.prompt_text
        assert 1980 <= prompt.anchor_year <= 2020
        assert prompt.expires_at is None
        assert is_valid(prompt.prompt_text)
        assert await repo.list_active(USER_ID) == []

    @pytest.mark.asyncio
    async def test_same_week_same_prompt(self, repo, generator):
        repo.seed(profiles=[make_profile(birth_year=1962)])
        first = await generator.decade_fallback(USER_ID)
        second = await generator.decade_fallback(USER_ID)
        assert first.prompt_text == second.prompt_text

    @pytest.mark.asyncio
    async def test_unknown_birth_year_uses_current_decade(self, generator):
        prompt = await generator.decade_fallback(USER_ID)
        assert prompt.anchor_entity == "2020s"

    @pytest.mark.asyncio
    async def test_prefers_decades_without_stories(self, repo, generator):
        repo.seed(profiles=[make_profile(birth_year=2005)])
        prompt = await generator.decade_fallback(USER_ID, recorded_years=[2003, 2015])
        assert prompt.anchor_entity == "2020s"
