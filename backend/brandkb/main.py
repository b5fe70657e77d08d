from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from brandkb.api import connectors, jobs
from brandkb.log import configure_logging
from brandkb.models.base import init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Startup: create tables
    init_db()
    yield


app = FastAPI(
    title="Brand KB Ingestion API",
    description="Brand onboarding crawl jobs and connector aggregation",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for dashboard
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
app.include_router(connectors.router, tags=["connectors"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
