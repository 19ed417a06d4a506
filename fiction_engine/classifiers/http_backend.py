"""Completion-endpoint classifiers over HTTP.

    OllamaClassifier:     POST {host}/api/generate   {"model", "prompt", "stream": false}
                          Response: {"response": "..."}
    CustomHttpClassifier: POST {url}  {"prompt", "model", "params"}
                          Response: {"text": "..."}

Both render a prompt from `prompts/`, then pull the id out of the raw completion
with `parse_intent_id`. Transport errors propagate; `classify_with_timeout`
turns them into "unknown".
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from fiction_engine.api.models import Intent, Node
from fiction_engine.classifiers.base import valid_intent_ids
from fiction_engine.classifiers.parsing import parse_intent_id
from fiction_engine.prompts import render_classifier_prompt

logger = logging.getLogger(__name__)


class ClassifierBackendError(RuntimeError):
    pass


class OllamaClassifier:
    name = "ollama"

    def __init__(
        self,
        *,
        host: str = "http://localhost:11434",
        model: str = "phi3:mini",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._host = host.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def model_available(self) -> bool:
        """True if the configured model is pulled on the Ollama server."""

        try:
            async with self._client() as client:
                resp = await client.get(f"{self._host}/api/tags")
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Could not reach Ollama at %s: %s", self._host, e)
            return False

        models = resp.json().get("models") or []
        names = [str(m.get("name", "")) for m in models if isinstance(m, dict)]
        ok = any(n == self._model or n.startswith(self._model) for n in names)
        if not ok:
            logger.warning("Model %r not found on Ollama server %s", self._model, self._host)
        return ok

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
            "intent_classifier.txt",
            raw_input=raw_input,
            local_intents=local_intents,
            global_intents=global_intents,
            scene_text=scene_text,
        )
        body = {
            "model": self._model,
            "prompt": prompt,
            "stream": False,
            # Low temperature and a tiny budget: we only want an id back.
            "options": {"temperature": 0.1, "num_predict": 10},
        }
        logger.debug("ollama classify model=%s prompt_len=%d", self._model, len(prompt))

        async with self._client() as client:
            resp = await client.post(f"{self._host}/api/generate", json=body)
            resp.raise_for_status()

        text = resp.json().get("response")
        if not isinstance(text, str):
            raise ClassifierBackendError("Unexpected response format from Ollama")
        return parse_intent_id(text, valid_intent_ids(local_intents, global_intents))


class CustomHttpClassifier:
    name = "custom"

    def __init__(
        self,
        *,
        url: str = "http://localhost:3005/generate",
        model: str | None = None,
        api_key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

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
        body: dict[str, Any] = {"prompt": prompt, "model": self._model, "params": {"max_length": 32, "temperature": 0.1}}

        async with self._client() as client:
            resp = await client.post(self._url, json=body, headers=self._headers())
            resp.raise_for_status()

        data = resp.json()
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise ClassifierBackendError("Invalid response format from custom AI endpoint")
        logger.debug("custom classifier raw response: %r", text)
        return parse_intent_id(text, valid_intent_ids(local_intents, global_intents))
