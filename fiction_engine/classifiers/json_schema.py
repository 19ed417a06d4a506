from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from fiction_engine.classifiers.base import UNKNOWN_INTENT


@dataclass(frozen=True, slots=True)
class JsonSchema:
    """Minimal JSON Schema wrapper for OpenAI-style structured outputs."""

    name: str
    schema: dict[str, Any]
    strict: bool = True

    def response_format(self) -> dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {"name": self.name, "schema": self.schema, "strict": self.strict},
        }


def intent_choice_schema(valid_ids: Sequence[str]) -> JsonSchema:
    """{"id": <one of the offered ids or "unknown">}"""

    return JsonSchema(
        name="pick_intent",
        schema={
            "type": "object",
            "additionalProperties": False,
            "properties": {"id": {"type": "string", "enum": [*valid_ids, UNKNOWN_INTENT]}},
            "required": ["id"],
        },
    )
