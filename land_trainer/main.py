import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from land_trainer.config import settings
from land_trainer.logging_config import setup_logging
from land_trainer.routes import parcels, personas, training_sessions, users
from land_trainer.routes.deps import get_feedback_queue
from land_trainer.services.tracing import init_tracing
from land_trainer.startup import startup

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.LOG_LEVEL)
    init_tracing()
    await asyncio.to_thread(startup)
    yield
    # Let queued feedback jobs finish
    await asyncio.to_thread(get_feedback_queue().shutdown)


app = FastAPI(title="Land Negotiation Trainer", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(training_sessions.router)
app.include_router(personas.router)
app.include_router(parcels.router)
app.include_router(users.router)


@app.get("/")
def home():
    return {"status": "Land Negotiation Trainer Backend Running"}


if __name__ == "__main__":
    uvicorn.run("land_trainer.main:app", host=settings.HOST, port=settings.PORT)
