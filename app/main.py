"""FastAPI application entry point."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.config import get_settings
from app.core.lifespan import lifespan

app = FastAPI(
    title="LegacyGuard Personalization",
    description="Guardian management plus content, UI and recommendation personalization",
    version="0.1.0",
    lifespan=lifespan,
)

# Tracking batches and variant lookups come straight from the browser
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Liveness probe; does not touch Supabase."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


app.include_router(api_router, prefix="/v1", tags=["v1"])
