"""Storyframe dev launcher. Serves a story over the HTTP API."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Storyframe dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--story", type=Path, default=None,
                        help="Story JSON file (default: stories/demo.json)")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server when source files change")
    parser.add_argument("--debug", action="store_true",
                        help="Log at DEBUG level")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # the app reads these when uvicorn imports it
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())
    if args.story:
        os.environ["STORY_FILE"] = str(args.story.resolve())

    print(f"Starting server on http://localhost:{PORT} ...")
    uvicorn.run("storyframe.api.app:app", host=HOST, port=int(PORT), reload=args.reload)


if __name__ == "__main__":
    main()
