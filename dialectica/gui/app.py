"""FastAPI JSON API for Dialectica."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from dialectica import __version__
from dialectica.config import Settings
from dialectica.errors import DialecticaError
from dialectica.gui.routers import common, results, search
from dialectica.gui.state import error_response, state, status_code_for
from dialectica.pipeline import PipelineController

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    controller: Optional[PipelineController] = None,
) -> FastAPI:
    """Build the API; *settings* and *controller* default to the configured ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize services on startup."""
        state.settings = settings or Settings.load()
        state.controller = controller or PipelineController.from_settings(state.settings)
        if not state.settings.gemini_api_key:
            logger.warning("No Gemini API key configured; set one via PUT /api/settings/api-key")
        yield

    app = FastAPI(title="Dialectica", version=__version__, lifespan=lifespan)

    @app.exception_handler(DialecticaError)
    async def dialectica_error(request: Request, exc: DialecticaError):
        return error_response(exc.message, status_code_for(exc), retryable=exc.retryable)

    @app.exception_handler(ValueError)
    async def value_error(request: Request, exc: ValueError):
        return error_response(str(exc), 422)

    app.include_router(search.router)
    app.include_router(results.router)
    app.include_router(common.router)
    return app


app = create_app()
