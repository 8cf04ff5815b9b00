from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from metri.api.deps import get_connection_store, get_transcriber
from metri.api.routes import router as api_router
from metri.api.ws import router as ws_router
from metri.core.config import settings
from metri.core.log import setup_logging

logger = setup_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    transcriber = get_transcriber()
    logger.info(
        "Starting up backend. transcription=%s configured=%s default_mime=%s ws_max_size=%d",
        transcriber.name, transcriber.configured,
        get_connection_store().default_mime_type, settings.ws_max_size,
    )
    if not transcriber.configured:
        logger.warning("No transcription credentials; live chunks receive demo transcripts")
    yield


app = FastAPI(title="METRI Live Transcription API", version="0.1.0", lifespan=lifespan)

# CORS: the configured frontend plus localhost and preview hosts
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL.rstrip("/")],
    allow_origin_regex=settings.cors_origin_regex,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST + WebSocket routers
app.include_router(api_router)
app.include_router(ws_router)


def run():
    # Frames up to the audio limit must reach the pipeline; bigger ones get an error status there
    uvicorn.run(
        "metri.main:app",
        host=settings.HOST,
        port=settings.PORT,
        ws_max_size=settings.ws_max_size,
    )


if __name__ == "__main__":
    run()
