from __future__ import annotations

import importlib.util
import inspect
import json
import logging
from pathlib import Path

from pydantic import BaseModel, ValidationError

from fiction_engine.hooks import HookBus

logger = logging.getLogger(__name__)

PLUGIN_MANIFEST = "plugin.json"


class PluginManifest(BaseModel):
    id: str
    name: str = ""
    version: str = "0.0.0"
    # Higher loads (and therefore runs) earlier.
    priority: int = 0
    entry: str = "plugin.py"
    dir_path: Path | None = None


def discover_plugins(plugins_dir: Path) -> list[PluginManifest]:
    """Read every `<plugins_dir>/<name>/plugin.json`, sorted by priority (descending)."""

    if not plugins_dir.is_dir():
        logger.info("No plugins directory at %s", plugins_dir)
        return []

    found: list[PluginManifest] = []
    for folder in sorted(p for p in plugins_dir.iterdir() if p.is_dir()):
        manifest_path = folder / PLUGIN_MANIFEST
        if not manifest_path.exists():
            logger.warning("Skipping plugin %s: no %s", folder.name, PLUGIN_MANIFEST)
            continue
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("plugin manifest must be a JSON object")
            data.setdefault("id", folder.name)
            data["dir_path"] = folder
            manifest = PluginManifest.model_validate(data)
        except (ValueError, ValidationError):
            logger.exception("Failed to load manifest for plugin %s", folder.name)
            continue
        found.append(manifest)

    # sorted() is stable: equal priorities keep directory order.
    return sorted(found, key=lambda m: -m.priority)


async def load_plugins(*, bus: HookBus, plugins_dir: Path) -> list[PluginManifest]:
    """Import each plugin's entry module and call its `init(registrar)`.

    Plugins register hooks through a registrar carrying their manifest priority.
    A broken plugin is logged and skipped.
    """

    loaded: list[PluginManifest] = []
    for manifest in discover_plugins(plugins_dir):
        assert manifest.dir_path is not None
        entry_path = manifest.dir_path / manifest.entry
        if not entry_path.exists():
            logger.warning("Plugin %s: entry %s not found", manifest.id, manifest.entry)
            continue

        try:
            spec = importlib.util.spec_from_file_location(f"fiction_engine_plugin_{manifest.id}", entry_path)
            if spec is None or spec.loader is None:
                raise ImportError(f"cannot import {entry_path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)

            init = getattr(module, "init", None)
            if callable(init):
                result = init(bus.scoped(priority=manifest.priority, owner=manifest.id))
                if inspect.isawaitable(result):
                    await result
        except Exception:
            logger.exception("Error initializing plugin %s", manifest.id)
            continue

        logger.info("Loaded plugin %s (%s) priority=%d", manifest.id, manifest.version, manifest.priority)
        loaded.append(manifest)

    return loaded
