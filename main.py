import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from app.routes.share_routes import router
from app.services.storage_manager import StorageManager
from config import ConfigError, Settings
from logger_config import setup_logger

# Logger setup
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    logger.info(f"Public URL: {settings.base_url}")
    logger.info(f"Storage directory: {settings.storage_dir}")
    logger.info(f"Maximum upload size: {settings.max_upload_size / (1024*1024):.2f} MB")
    yield


async def plain_text_http_exception(request: Request, exc: StarletteHTTPException):
    """Render every HTTP error as a plain text body, keeping its headers."""
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


def create_app(settings: Settings) -> FastAPI:
    """Build the share server around an already validated Settings."""
    # Only the three share routes are served, no generated docs
    app = FastAPI(
        title="Share Server",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.storage_manager = StorageManager(settings.storage_dir)
    app.add_exception_handler(StarletteHTTPException, plain_text_http_exception)
    app.include_router(router)
    return app


def run():
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        # Nothing is bound yet, refuse to start
        logger.critical(str(e))
        sys.exit(1)

    app = create_app(settings)
    logger.info(f"Starting share server on :{settings.port}")
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        timeout_keep_alive=config.KEEP_ALIVE_TIMEOUT,
    )


if __name__ == "__main__":
    run()
