from __future__ import annotations

import logging
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might need env vars
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes.spreadsheets import router as spreadsheets_router
from middleware.rate_limit import RateLimitConfig, RateLimitMiddleware
from services.db import init_db
from services.grid_config import get_grid_settings


settings = get_grid_settings()
logging.basicConfig(level=settings.log_level)

app = FastAPI(title="Spreadsheet Editor")

if settings.rate_limit_enabled:
    app.add_middleware(
        RateLimitMiddleware,
        config=RateLimitConfig(requests_per_minute=settings.rate_limit_per_minute),
    )

# Allow any origin in local dev.
# This should be tightened for production.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Ensure DB schema exists
init_db()

app.include_router(spreadsheets_router)


@app.get("/")
async def root():
    return {"status": "ok"}
