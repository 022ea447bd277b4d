import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api_routers.v1 import api_router
from app.features.health.routes.health import router as health_router
from app.platform.config import settings
from app.platform.db.session import init_models
from app.platform.exceptions import add_exception_handlers
from app.platform.logger import LOG_FORMAT

# Configure logging to show INFO level messages
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    yield


app = FastAPI(
    title="UX Audit AI API",
    description="Screenshot capture and AI-powered UX audits with plan-based quotas",
    version="1.0.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": "UX Audit AI API",
        "description": "AI-powered UX auditor for screenshots, single pages and small crawls.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": "/api/v1",
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

# Uploaded screenshots are served from here
Path("static").mkdir(exist_ok=True)
Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
app.mount("/static", StaticFiles(directory="static"), name="static")

app.include_router(health_router)
app.include_router(api_router, prefix="/api/v1")
