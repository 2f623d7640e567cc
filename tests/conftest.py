"""
Pytest configuration and shared fixtures.

This file is automatically discovered by pytest and provides fixtures
available to all test files.
"""

import os
import random
import tempfile

# Headless pygame and throwaway log files; must be set before the imports below
os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")
os.environ.setdefault("CHARFORGE_LOG_DIR", tempfile.mkdtemp(prefix="charforge-logs-"))

import pytest
import pygame
from typing import Generator


@pytest.fixture(scope="session", autouse=True)
def pygame_init() -> Generator[None, None, None]:
    """
    Initialize pygame for the test session.
    This runs once before all tests and cleans up after.
    """
    pygame.init()
    pygame.display.set_mode((800, 600))
    yield
    pygame.quit()


@pytest.fixture
def sample_screen() -> pygame.Surface:
    """
    Create a sample pygame surface for tests that need a screen.
    """
    return pygame.Surface((1280, 720))


@pytest.fixture
def rng() -> random.Random:
    """Seeded rng so hit point rolls are repeatable."""
    return random.Random(1234)


@pytest.fixture
def catalog():
    """
    Create an in-memory catalog with no latency.
    """
    from engine.catalog_client import InMemoryCatalog
    return InMemoryCatalog()


@pytest.fixture
def wizard(catalog, rng):
    """
    Create a fresh CharacterWizard over the in-memory catalog.
    """
    from engine.wizard import CharacterWizard
    return CharacterWizard(catalog, rng=rng)


@pytest.fixture
def draft():
    """
    Create an empty CharacterDraft.
    """
    from systems.character_creation.draft import CharacterDraft
    return CharacterDraft()


@pytest.fixture
def race_def():
    """Decode a race row by id."""
    from systems.character_creation.definitions import decode_race
    from systems.character_creation.races import get_race_row

    def _decode(race_id: str):
        return decode_race(get_race_row(race_id))
    return _decode


@pytest.fixture
def background_def():
    """Decode a background row by id."""
    from systems.character_creation.definitions import decode_background
    from systems.character_creation.backgrounds import get_background_row

    def _decode(background_id: str):
        return decode_background(get_background_row(background_id))
    return _decode
