"""
Text2SQL - FastAPI Application.

Main entry point for the backend API server.
Turns natural-language questions into read-only SQL, runs them
against one of several configured databases, and returns both the
query and its results.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from text2sql.config import settings
from text2sql.database import close_db, init_db
from text2sql.routes import datasources, query

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="Text2SQL API",
    description=(
        "API for converting natural-language questions into SQL. "
        "Runs a staged generation pipeline guarded by a read-only "
        "SQL safety gate."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware for frontend development server
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routes
app.include_router(query.router)
app.include_router(datasources.router)


@app.on_event("startup")
def on_startup():
    """Build the datasource router on application startup."""
    init_db()


@app.on_event("shutdown")
def on_shutdown():
    """Release every database engine."""
    close_db()


@app.get("/api/health", tags=["health"])
def health_check():
    """Health check endpoint to verify the API is running."""
    return {"status": "ok"}
