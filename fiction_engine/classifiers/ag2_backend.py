from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from autogen import ConversableAgent

from fiction_engine.api.models import Intent, Node
from fiction_engine.classifiers.base import valid_intent_ids
from fiction_engine.classifiers.json_schema import intent_choice_schema
from fiction_engine.classifiers.llm_config import llm_config_from_env
from fiction_engine.classifiers.parsing import parse_intent_id
from fiction_engine.prompts import load_prompt, render_classifier_prompt

logger = logging.getLogger(__name__)


def _extract_last_content(messages: object) -> str:
    """Extract the last message content from AG2 chat history."""

    if not isinstance(messages, list):
        return ""

    for msg in reversed(messages):
        if isinstance(msg, dict):
            content = msg.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return ""


@dataclass(slots=True)
class LlmClassifier:
    """Intent classifier backed by an AG2 `ConversableAgent`.

    Asks for structured output ({"id": ...} restricted to the offered ids) and
    still runs the reply through `parse_intent_id`, since not every
    OpenAI-compatible server honours `response_format`.

    Environment variables supported:
    - OPENAI_MODEL
    - OPENAI_API_KEY (optional if OPENAI_BASE_URL is set)
    - OPENAI_BASE_URL (for OpenAI-compatible servers like Ollama, e.g. http://127.0.0.1:11434/v1)
    """

    model: str = "gpt-4o-mini"
    structured: bool = True
    name: str = "llm"

    def _run_chat(self, *, prompt: str, valid_ids: list[str]) -> str:
        agent = ConversableAgent(
            name="intent_classifier",
            system_message=load_prompt("intent_classifier_system.txt"),
            llm_config=llm_config_from_env(default_model=self.model),
            human_input_mode="NEVER",
        )

        # AG2 forwards unknown kwargs through to the OpenAI client.
        extra = {"response_format": intent_choice_schema(valid_ids).response_format()} if self.structured else {}
        result = agent.run(message=prompt, max_turns=1, **extra)
        result.process()

        text = _extract_last_content(list(result.messages))
        if not text and isinstance(result.summary, str):
            text = result.summary.strip()
        return text

    async def classify_intent(
        self,
        *,
        raw_input: str,
        local_intents: Sequence[Intent],
        global_intents: Sequence[Intent],
        scene_text: str,
        node: Node | None = None,
    ) -> str:
        prompt = render_classifier_prompt(
            "intent_classifier_json.txt",
            raw_input=raw_input,
            local_intents=local_intents,
            global_intents=global_intents,
            scene_text=scene_text,
        )
        valid_ids = valid_intent_ids(local_intents, global_intents)

        # The AG2 chat is blocking; keep it off the event loop so wait_for can cut it short.
        text = await asyncio.to_thread(self._run_chat, prompt=prompt, valid_ids=valid_ids)
        logger.debug("llm classifier raw reply: %r", text)
        return parse_intent_id(text, valid_ids)
