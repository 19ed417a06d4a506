import logging

from fastapi import FastAPI

from fiction_engine.api.routes import router
from fiction_engine.classifiers.factory import create_classifier
from fiction_engine.config import settings_from_env
from fiction_engine.hooks import HookBus, HookName
from fiction_engine.infra.redis_client import create_redis
from fiction_engine.plugins import load_plugins
from fiction_engine.story_loader import load_stories

app = FastAPI(title="fiction-engine", version="0.1.0")
app.include_router(router)
# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app.state.settings = settings_from_env()
app.state.hooks = HookBus()
app.state.classifier = create_classifier(app.state.settings.ai_provider)


@app.on_event("startup")
async def _startup() -> None:
    settings = app.state.settings

    if settings.stories_dir is not None:
        r = create_redis()
        try:
            loaded = load_stories(r=r, root=settings.stories_dir)
        finally:
            r.close()
        logger.info("Story preload complete: %s", ", ".join(loaded) or "(none)")

    if settings.plugins_dir is not None:
        await load_plugins(bus=app.state.hooks, plugins_dir=settings.plugins_dir)

    await app.state.hooks.broadcast(HookName.server_init, app)
    logger.info("Engine online (classifier=%s)", app.state.classifier.name)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "fiction-engine", "version": "0.1.0"}
