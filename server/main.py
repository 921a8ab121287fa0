"""Tracejudge — FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server.config import settings
from server.db.database import close_db, init_db

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Tracejudge server...")
    await init_db()
    logger.info("Tracejudge server ready (max concurrency=%d)", settings.eval_max_concurrency)
    yield
    await close_db()
    logger.info("Tracejudge server stopped")


app = FastAPI(
    title="Tracejudge",
    description="LLM-as-judge evaluation of recorded conversation transcripts",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from server.api.eval import router as eval_router
from server.api.prompts import router as prompts_router

app.include_router(eval_router)
app.include_router(prompts_router)


@app.get("/health")
async def health():
    return {"status": "ok", "service": "tracejudge", "version": "0.1.0"}


@app.get("/")
async def root():
    return {"service": "tracejudge", "docs": "/docs"}
