"""Check story directories before they are published.

Usage:
    uv run python scripts/verify_stories.py [stories_dir]

Exits 1 if any story has problems.
"""

from __future__ import annotations

import sys
from pathlib import Path

from fiction_engine.story_loader import story_dirs, verify_stories


def main(argv: list[str]) -> int:
    root = Path(argv[1]) if len(argv) > 1 else Path.cwd() / "stories"
    if not root.is_dir():
        print(f"No stories directory found at {root}.")
        return 0

    print(f"Scanning {len(story_dirs(root))} stories in {root} ...")
    report = verify_stories(root)
    for errors in report.values():
        for err in errors:
            print(f"[ERROR] {err}", file=sys.stderr)

    if report:
        print("\nVerification FAILED. Please fix the errors above.", file=sys.stderr)
        return 1
    print("All stories verified successfully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
