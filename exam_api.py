"""
Merit Entrance Generation API — Main Application
FastAPI application for the entrance-exam system.
Manages blueprints, reference material, exams, and AI generation of missing questions.
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database.database import engine, Base
from database import models  # noqa: F401  (registers tables on Base.metadata)

from routers import blueprints, exams, knowledge_base

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables."""
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title="Merit Entrance Generation API",
    description="Exam blueprints, reference material, exams and AI generation of missing questions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(blueprints.router)        # /blueprints/*
app.include_router(knowledge_base.router)    # /knowledge-base/*
app.include_router(exams.router)             # /exams/*


@app.get("/")
def root():
    return {
        "name": "Merit Entrance Generation API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "blueprints": "/blueprints",
            "knowledge_base": "/knowledge-base",
            "exams": "/exams",
            "generate_missing": "/exams/{exam_id}/generate-missing-ai",
        },
    }


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "merit-entrance-generation-api"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
