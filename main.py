"""
Main FastAPI application entry point.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from services.clipper import clipper
from routes import clip_router, video_info_router, health_router, app_router

# Configure logging
handlers = [logging.StreamHandler()]
if config.LOG_TO_FILE:
    try:
        handlers.append(logging.FileHandler(config.LOG_FILE_NAME))
    except IOError as e:
        print(f"⚠️  Could not create log file: {e}")

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper()),
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    handlers=handlers
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting Clippa API")

    os.makedirs(config.TEMP_DIR, exist_ok=True)
    os.makedirs(config.OUTPUT_DIR, exist_ok=True)

    clipper.start_cleanup_thread()

    yield

    # Shutdown
    logger.info("Shutting down API")
    clipper.stop_cleanup_thread()
    clipper.cleanup_on_shutdown()


app = FastAPI(
    title="Clippa API",
    description="Clip segments of online videos: crop, burn subtitles and download",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(app_router)
app.include_router(clip_router)
app.include_router(video_info_router)
app.include_router(health_router)


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed requests are rejected with 400 before any job exists."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get('msg')))
    logger.info(f"Rejected request to {request.url.path}: {'; '.join(messages)}")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": messages}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """General exception handler."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description='Clippa clip-and-download API')
    parser.add_argument('--host', default=config.HOST, help='Host to bind to')
    parser.add_argument('--port', type=int, default=config.PORT, help='Port to bind to')
    parser.add_argument('--reload', action='store_true', help='Enable auto-reload')
    parser.add_argument('--log-level', default=config.LOG_LEVEL, choices=['debug', 'info', 'warning', 'error'], help='Log level')

    args = parser.parse_args()

    # Update config from args
    config.HOST = args.host
    config.PORT = args.port
    config.RELOAD = args.reload or config.RELOAD
    config.LOG_LEVEL = args.log_level

    print(f"🚀 Starting Clippa API")
    print(f"📍 Host: {config.HOST}")
    print(f"🔌 Port: {config.PORT}")
    print(f"🔄 Reload: {config.RELOAD}")
    print(f"📝 Log Level: {config.LOG_LEVEL}")
    print(f"🌐 API Documentation: http://{config.HOST}:{config.PORT}/docs")
    print(f"❤️  Health Check: http://{config.HOST}:{config.PORT}/health")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.RELOAD,
        log_level=config.LOG_LEVEL
    )
