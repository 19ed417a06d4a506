from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from fiction_engine.api.models import Intent

# Always resolvable, whatever node the player is on.
GLOBAL_INTENTS: tuple[Intent, ...] = (
    Intent(
        id="global_look_around",
        ai_intent_helper="The user wants to look around, inspect the surroundings, or see what is visible.",
        intent_description="Look around",
    ),
    Intent(
        id="global_inventory",
        ai_intent_helper="The user wants to check their inventory or see what they are carrying.",
        intent_description="Check inventory",
    ),
    Intent(
        id="global_status",
        ai_intent_helper="The user wants to check their overall status, health, or active effects.",
        intent_description="Check status",
    ),
)


# Headroom between the slowest classifier call and the session lock expiring.
LOCK_TTL_MARGIN_MS = 2_000


@dataclass(frozen=True, slots=True)
class EngineSettings:
    ai_provider: str = "keyword"
    classifier_timeout_s: float = 10.0
    correction_window_s: float = 60.0
    # Enables the raw-node `debug` input. Never on in production.
    debug_commands: bool = False
    session_lock_ttl_ms: int = 15_000
    end_redirect_url: str = "http://baseline-engine.com"
    stories_dir: Path | None = None
    plugins_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.session_lock_ttl_ms <= self.classifier_timeout_s * 1000 + LOCK_TTL_MARGIN_MS:
            raise ValueError(
                f"session_lock_ttl_ms ({self.session_lock_ttl_ms}) must exceed classifier_timeout_s "
                f"({self.classifier_timeout_s}s) plus {LOCK_TTL_MARGIN_MS}ms"
            )


def _optional_path(name: str) -> Path | None:
    value = os.environ.get(name)
    return Path(value) if value else None


def settings_from_env() -> EngineSettings:
    return EngineSettings(
        ai_provider=os.environ.get("AI_PROVIDER", "keyword").strip().lower(),
        classifier_timeout_s=float(os.environ.get("CLASSIFIER_TIMEOUT_S", "10")),
        correction_window_s=float(os.environ.get("CORRECTION_WINDOW_S", "60")),
        debug_commands=os.environ.get("APP_ENV", "production") == "development",
        session_lock_ttl_ms=int(os.environ.get("SESSION_LOCK_TTL_MS", "15000")),
        end_redirect_url=os.environ.get("END_REDIRECT_URL", "http://baseline-engine.com"),
        stories_dir=_optional_path("STORIES_DIR"),
        plugins_dir=_optional_path("PLUGINS_DIR"),
    )
