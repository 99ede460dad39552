"""Common routes: usage statistics, API key and contact email."""

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from dialectica import __version__
from dialectica.config import DEFAULT_MODEL, save_email
from dialectica.gui.state import error_response, state
from dialectica.services.gemini_service import GeminiService
from dialectica.services.openalex_service import OpenAlexSource

router = APIRouter(prefix="/api")


@router.get("/version")
async def version():
    return JSONResponse({"version": __version__})


# ============================================================================
# Usage
# ============================================================================


@router.get("/usage")
async def get_usage():
    """Cumulative estimated token usage and cost for this process."""
    return JSONResponse(state.controller.usage_stats.to_dict())


@router.post("/usage/reset")
async def reset_usage():
    state.controller.reset_usage()
    return JSONResponse(state.controller.usage_stats.to_dict())


# ============================================================================
# Gemini API key
# ============================================================================


class ApiKeyPayload(BaseModel):
    """Request body for setting the Gemini API key."""
    api_key: str
    model: Optional[str] = None


def _api_key_status() -> dict:
    s = state.settings
    if s.env_api_key:
        source = "environment"
    elif s.active_llm is not None:
        source = "profile"
    else:
        source = None
    return {
        "configured": bool(s.gemini_api_key),
        "source": source,
        "model": s.llm_model,
    }


@router.get("/settings/api-key")
async def get_api_key():
    """Whether a key is configured (the key itself is never returned)."""
    return JSONResponse(_api_key_status())


@router.put("/settings/api-key")
async def update_api_key(body: ApiKeyPayload):
    """Store the key in ``llm_profiles.yaml`` and use it from now on."""
    api_key = body.api_key.strip()
    if not api_key:
        return error_response("API key must not be empty.", 422)
    s = state.settings
    profile = s.set_api_key(api_key, body.model or s.llm_model or DEFAULT_MODEL)

    llm = state.controller.llm
    if isinstance(llm, GeminiService):
        llm.configure(s.gemini_api_key, profile.model)
    return JSONResponse(_api_key_status())


# ============================================================================
# Email
# ============================================================================


class EmailPayload(BaseModel):
    """Request body for updating the contact email."""
    email: str


@router.get("/settings/email")
async def get_email():
    """Return the current contact email."""
    return JSONResponse({"email": state.settings.contact_email or ""})


@router.put("/settings/email")
async def update_email(body: EmailPayload):
    """Update the contact email and persist to ``email.yaml``."""
    email = body.email.strip() or None
    state.settings.contact_email = email
    # OpenAlex polite pool
    for source in state.controller.retriever.sources:
        if isinstance(source, OpenAlexSource):
            source.contact_email = email
    save_email(state.settings.metadata_dir / "email.yaml", email)
    return JSONResponse({"email": email or ""})
