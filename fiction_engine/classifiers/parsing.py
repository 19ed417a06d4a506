from __future__ import annotations

import json
import re
from collections.abc import Sequence

from fiction_engine.classifiers.base import UNKNOWN_INTENT

_JSON_BLOB = re.compile(r"\{[\s\S]*?\}")
_FENCED_BLOCK = re.compile(r"```[\s\S]*?```")
_ID_FRAGMENT = re.compile(r'"id"\s*:\s*"([^"]+)"')


def _accept(candidate: str, valid_ids: Sequence[str]) -> str | None:
    candidate = candidate.strip()
    if candidate in valid_ids:
        return candidate
    if candidate == UNKNOWN_INTENT:
        return UNKNOWN_INTENT
    return None


def _unfence(match: re.Match[str]) -> str:
    inner = re.sub(r"^```\w*", "", match.group(0)).removesuffix("```").strip()
    return "" if "{" in inner else inner


def parse_intent_id(text: str, valid_ids: Sequence[str]) -> str:
    """Pull an intent id out of free-form model output.

    Tried in order:
    - a JSON object anywhere in the text: {"id": "<id>"}
    - an `"id": "<id>"` fragment (e.g. truncated JSON)
    - the first line, stripped of quotes/backticks
    - a valid id appearing as a whole word, then as a substring
    Falls back to "unknown".
    """

    raw = (text or "").strip()
    if not raw:
        return UNKNOWN_INTENT

    blob = _JSON_BLOB.search(raw)
    if blob:
        try:
            data = json.loads(blob.group(0))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("id"), str):
            found = _accept(data["id"], valid_ids)
            if found:
                return found

    cleaned = _FENCED_BLOCK.sub(_unfence, raw)

    fragment = _ID_FRAGMENT.search(cleaned)
    if fragment:
        found = _accept(fragment.group(1), valid_ids)
        if found:
            return found

    first_line = cleaned.strip().split("\n")[0]
    found = _accept(re.sub(r"[`'\".]", "", first_line), valid_ids)
    if found:
        return found

    for intent_id in valid_ids:
        if re.search(rf"\b{re.escape(intent_id)}\b", raw):
            return intent_id

    for intent_id in valid_ids:
        if intent_id in raw:
            return intent_id

    return UNKNOWN_INTENT
