"""
Main FastAPI application entry point.
"""
import logfire
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from server.app.api.v1.api import api_router  # noqa: E402
from server.core.config.general_config import settings  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logfire.configure(
        token=settings.LOGFIRE_TOKEN,
    )
    logfire.instrument_fastapi(app)
    logfire.instrument_httpx()
    logfire.info("Starting up FastAPI application...")
    yield
    # Shutdown
    logfire.info("Shutting down FastAPI application...")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=settings.DESCRIPTION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        lifespan=lifespan,
    )

    # Set all CORS enabled origins
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin)
                           for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_application()
@app.get("/")
def read_root():
    return {"message": "Welcome to the receipt verification API. Visit /docs for API documentation."}
