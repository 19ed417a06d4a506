from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from string import Template

from fiction_engine.api.models import Intent


class PromptLoadError(RuntimeError):
    pass


def project_root() -> Path:
    # fiction_engine/prompts.py -> fiction_engine/ -> project root
    return Path(__file__).resolve().parents[1]


def load_prompt(name: str) -> str:
    """Load a prompt text file from the repo `prompts/` directory.

    Example:
        load_prompt("intent_classifier.txt")
    """

    path = project_root() / "prompts" / name
    try:
        return path.read_text(encoding="utf-8").strip() + "\n"
    except FileNotFoundError as e:
        raise PromptLoadError(f"Prompt not found: {path}") from e


def format_intent_lines(intents: Sequence[Intent]) -> str:
    if not intents:
        return "(none)"
    return "\n".join(f'- ID: "{i.id}" | Description: {i.hint}' for i in intents)


def render_classifier_prompt(
    name: str,
    *,
    raw_input: str,
    local_intents: Sequence[Intent],
    global_intents: Sequence[Intent],
    scene_text: str,
) -> str:
    """Fill a classifier prompt template ($placeholders; JSON braces in the text stay literal)."""

    allowed = [i.id for i in [*local_intents, *global_intents]]
    try:
        return Template(load_prompt(name)).substitute(
            scene_text=scene_text.strip(),
            local_intents=format_intent_lines(local_intents),
            global_intents=format_intent_lines(global_intents),
            allowed_ids=", ".join(allowed),
            player_input=raw_input.strip(),
        )
    except (KeyError, ValueError) as e:
        raise PromptLoadError(f"Bad placeholder in prompt {name}: {e}") from e
