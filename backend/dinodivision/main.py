import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from dinodivision.api import game, rewards
from dinodivision.core.config import get_settings
from dinodivision.core.deps import get_image_cache

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # don't leave generations running past shutdown
    await get_image_cache().aclose()


app = FastAPI(
    title=settings.app_name,
    description="Adaptive long-division practice with dinosaur milestone rewards",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:5173",  # Vite dev server
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(game.router)
app.include_router(rewards.router)

# Generated reward images
app.mount(
    settings.reward_image_url_prefix,
    StaticFiles(directory=settings.reward_image_dir, check_dir=False),
    name="rewards",
)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "image_provider_configured": bool(settings.gemini_api_key),
    }
