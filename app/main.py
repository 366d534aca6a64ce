import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.database import init_db
from app.config import get_settings

# Import routers
from app.routes import progress, vocabulary, quiz, speech, workflows

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Initialize database
    await init_db()
    logger.info("Database initialized")
    logger.info("%s started, LLM provider: %s", settings.APP_NAME, settings.LLM_PROVIDER)
    logger.info("API Docs: http://localhost:8000/docs")
    yield
    # Shutdown
    logger.info("Shutting down...")


app = FastAPI(
    title=settings.APP_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# Include routers
app.include_router(progress.router)  # Progress mirror + due reviews
app.include_router(vocabulary.router)  # Topics, items, cloze
app.include_router(quiz.router)  # Answer evaluation
app.include_router(speech.router)  # Speech-to-text / text-to-speech
app.include_router(workflows.router)  # Background workflow status


# Health check for API
@app.get("/api/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
