"""Seed story directories into Redis.

Usage:
    REDIS_URL=redis://localhost:6379/0 uv run python scripts/load_stories.py [stories_dir]

Invalid stories are skipped (run scripts/verify_stories.py for details).
Exits 1 if any story was skipped.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from fiction_engine.infra.redis_client import create_redis
from fiction_engine.story_loader import load_stories, story_dirs


def main(argv: list[str]) -> int:
    logging.basicConfig(level=logging.INFO)

    root = Path(argv[1]) if len(argv) > 1 else Path.cwd() / "stories"
    r = create_redis()
    try:
        loaded = load_stories(r=r, root=root)
    finally:
        r.close()

    print(f"Loaded {len(loaded)} stories: {', '.join(loaded) or '-'}")
    return 0 if len(loaded) == len(story_dirs(root)) else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
