"""
Shared fixtures for the prompt engine tests.

Services run against InMemoryPromptRepository; nothing here needs a database.
"""
import os

os.environ.setdefault("SECRET", "test-secret-key-for-testing-at-least-32-chars")

import pytest

from memoir_prompts.services.generator import PromptGenerator, template_candidates
from memoir_prompts.services.lifecycle import PromptLifecycle
from memoir_prompts.services.memory_repository import InMemoryPromptRepository
from memoir_prompts.services.selector import PromptSelector

from factories import fixed_clock


@pytest.fixture
def repo():
    return InMemoryPromptRepository()


@pytest.fixture
def generator(repo):
    return PromptGenerator(repo, composer=template_candidates, clock=fixed_clock)


@pytest.fixture
def selector(repo, generator):
    return PromptSelector(repo, generator, clock=fixed_clock)


@pytest.fixture
def lifecycle(repo, selector):
    return PromptLifecycle(repo, selector, clock=fixed_clock)
