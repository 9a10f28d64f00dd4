import json
import shutil
from pathlib import Path

import pytest

TEST_DATA_DIR = Path("data-tests")
STORIES_DIR = Path(__file__).parent / "stories"


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    TEST_DATA_DIR.mkdir(parents=True)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def data_dir() -> Path:
    return TEST_DATA_DIR


@pytest.fixture
def demo_story_path() -> Path:
    return STORIES_DIR / "demo.json"


@pytest.fixture
def make_session(data_dir):
    """Build and start a StorySession over an in-memory story document."""
    from storyframe.engine import ScriptedEngine
    from storyframe.session import StorySession

    def _make(story: dict, start: bool = True, **kwargs) -> StorySession:
        session = StorySession(ScriptedEngine(story), data_dir, **kwargs)
        if start:
            session.start()
        return session

    return _make


@pytest.fixture
def demo_story(demo_story_path) -> dict:
    return json.loads(demo_story_path.read_text())
