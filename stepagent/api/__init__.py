from fastapi import FastAPI

from stepagent.agents import get_all_agent_info
from stepagent.api.endpoints.chat import router as chat_router
from stepagent.settings import settings
from stepagent.utils import setup_logging

setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT, service_name=settings.TITLE)

app = FastAPI(title=settings.TITLE, version=settings.VERSION)
app.include_router(chat_router)


@app.get("/info")
async def info():
    return {
        "agents": [agent.model_dump() for agent in get_all_agent_info()],
        "models": sorted(settings.AVAILABLE_MODELS),
        "default_model": settings.DEFAULT_MODEL,
    }
