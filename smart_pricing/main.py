import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smart_pricing import __version__
from smart_pricing.config import settings
from smart_pricing.database import engine, Base
from smart_pricing.models import core  # noqa: F401  registers tables
from smart_pricing.api import pricing, settings as settings_api

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


app = FastAPI(
    title="Smart Pricing Engine",
    description="Revenue-driven automatic price adjustment for storefront items",
    version=__version__
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pricing.router)
app.include_router(settings_api.router)

logger.info(f"[STARTUP] Smart pricing engine {__version__} ({settings.ENV})")


@app.get("/health")
def health_check():
    return {"status": "healthy"}

@app.get("/")
def root():
    return {
        "message": "Smart Pricing Engine API",
        "docs": "/docs",
        "health": "/health"
    }
