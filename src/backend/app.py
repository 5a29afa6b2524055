import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.backend.v4.api.router import app_v4
from src.backend.v4.config.settings import config

# Allow patching via the top-level module name `app` as well as `src.backend.app`.
sys.modules.setdefault("app", sys.modules[__name__])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage FastAPI application lifecycle - startup and shutdown."""
    logger = logging.getLogger(__name__)

    logger.info("🚀 Starting cost report validation service (rulebook: %s)", config.rulebook_path)
    if not config.rulebook_path.exists():
        logger.warning("Rulebook not found at %s; rule endpoints will return 404", config.rulebook_path)
    yield
    logger.info("👋 Cost report validation service shutdown complete")


# Configure logging levels from environment variables
logging.basicConfig(level=getattr(logging, config.logging_level.upper(), logging.INFO))

# Initialize the FastAPI app
app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(app_v4)


@app.get("/health")
async def health():
    return {"status": "ok"}


# Run the app
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level="info",
        access_log=False,
    )
