import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from storyframe.api import router
from storyframe.engine import EngineError
from storyframe.session import StorySession

logger = logging.getLogger(__name__)

ROOT = Path(__file__).parent.parent.parent
load_dotenv(ROOT / ".env")

DEFAULT_DATA_DIR = ROOT / "data"
DEFAULT_STORY_FILE = ROOT / "stories" / "demo.json"


def create_app(data_dir: Path | None = None, story_file: Path | None = None) -> FastAPI:
    resolved_data = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    resolved_story = story_file or Path(os.getenv("STORY_FILE", str(DEFAULT_STORY_FILE)))
    quota = os.getenv("SAVE_QUOTA_BYTES", "")

    app = FastAPI(title="Storyframe")
    app.include_router(router, prefix="/api")

    try:
        session = StorySession.from_file(
            resolved_story, resolved_data, quota_bytes=int(quota) if quota else None
        )
        session.start()
    except EngineError:
        logger.exception("Could not load story %s", resolved_story)
        session = None
    app.state.session = session
    return app


# Default app instance for uvicorn (uses DATA_DIR / STORY_FILE env vars or defaults)
app = create_app()
