"""Application state shared by the API routers."""

from typing import Any

from fastapi.responses import JSONResponse

from dialectica.config import Settings
from dialectica.errors import (
    ConfigurationError,
    DialecticaError,
    InvalidTransitionError,
    NoResultsError,
    SearchSupersededError,
    ServiceUnavailableError,
)
from dialectica.pipeline import PipelineController


# ============================================================================
# Global State
# ============================================================================


class AppState:
    """Mutable singleton holding the settings and the pipeline controller."""

    settings: Settings
    controller: PipelineController


state = AppState()


# ============================================================================
# Error responses
# ============================================================================

_STATUS_CODES: list[tuple[type, int]] = [
    (ConfigurationError, 401),
    (NoResultsError, 404),
    (InvalidTransitionError, 409),
    (SearchSupersededError, 409),
    (ServiceUnavailableError, 503),
]


def status_code_for(error: DialecticaError) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return 502


def error_response(message: str, status_code: int, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def review_payload(sort_by: str = "relevance") -> dict[str, Any]:
    """Corpus in review order, each paper flagged with its selection."""
    controller = state.controller
    session = controller.session
    papers = controller.review_papers(sort_by) if session and session.corpus else []
    selection = session.selection if session else set()
    return {
        "stage": controller.stage.value,
        "session": session.to_dict() if session else None,
        "papers": [{**p.to_dict(), "selected": p.doi in selection} for p in papers],
    }

