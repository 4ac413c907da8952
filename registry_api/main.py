#!/usr/bin/env python
"""
main.py - Main entry point for the University Academic Registry API

Serves the academic rules engine (level progression, graduation and
course-registration eligibility) over HTTP with JWT-authenticated accounts.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from registry_api.academic.router import router as academic_router
from registry_api.user_db.database import AsyncSessionLocal, init_models

# Configure logging centrally
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# --- Application lifespan (startup/shutdown) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("API starting up...")
    try:
        app.state.db_pool = AsyncSessionLocal
        await init_models()
        logger.info("Database connection pool initialized and tables checked")
    except Exception as e:
        logger.error(f"Initialization error: {e}", exc_info=True)
        raise

    yield  # app runs here
    logger.info("API shutting down...")


app = FastAPI(
    title="University Academic Registry API",
    description="Level progression, graduation checks and course-registration eligibility.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # adjust as needed
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger.info("Registering routers...")
app.include_router(academic_router)  # /academic
logger.info("  - Academic router (/academic)")


# --- Health Check ---
@app.get("/", tags=["General"], summary="API Root/Health Check")
async def read_root():
    return {
        "message": "Welcome to the University Academic Registry API",
        "status": "OK",
        "docs_url": "/docs",
    }


if __name__ == "__main__":
    logger.info("Starting Uvicorn server...")
    uvicorn.run("registry_api.main:app", host="0.0.0.0", port=8000, reload=True)
