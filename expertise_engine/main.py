"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from expertise_engine.api import router as api_router
from expertise_engine.core.background import drain_background


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Let in-flight summary regenerations finish before shutdown
    await drain_background()


app = FastAPI(
    title="Expertise Engine",
    description="Expert interview, document and playbook synthesis service",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
