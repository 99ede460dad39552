"""Search, review and synthesis endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dialectica.gui.state import error_response, review_payload, state
from dialectica.models.paper import ALL_SOURCES, DEFAULT_START_YEAR, FilterSet

router = APIRouter(prefix="/api", tags=["search"])


# ============================================================================
# Request bodies
# ============================================================================


class SearchPayload(BaseModel):
    """Request body for starting a search."""
    question: str
    start_year: Optional[int] = DEFAULT_START_YEAR
    end_year: Optional[int] = Field(default_factory=lambda: date.today().year)
    open_access_only: bool = False
    min_citations: int = Field(default=0, ge=0)
    sources: list[str] = Field(default_factory=lambda: sorted(ALL_SOURCES))

    def to_filters(self) -> FilterSet:
        return FilterSet(
            start_year=self.start_year,
            end_year=self.end_year,
            open_access_only=self.open_access_only,
            min_citations=self.min_citations,
            sources=frozenset(self.sources),
        )


class SelectionPayload(BaseModel):
    """Request body for replacing the review selection."""
    dois: list[str]


class SynthesizePayload(BaseModel):
    """Request body for synthesis; omit ``dois`` to use the current selection."""
    dois: Optional[list[str]] = None


class FollowUpPayload(BaseModel):
    question: str


# ============================================================================
# Search & Review
# ============================================================================


@router.post("/search")
async def search(body: SearchPayload):
    """Run standardize → retrieve (→ broaden) → assess; returns the review payload."""
    unknown = set(body.sources) - ALL_SOURCES
    if unknown:
        return error_response(f"Unknown source(s): {', '.join(sorted(unknown))}", 422)
    await state.controller.search(body.question, body.to_filters())
    return JSONResponse(review_payload())


@router.get("/review")
async def review(
    sort: str = Query("relevance", description="Sort by: relevance, year"),
):
    """Return the assessed corpus with its selection."""
    return JSONResponse(review_payload(sort))


@router.post("/review/selection")
async def update_selection(body: SelectionPayload):
    """Replace the selection (only while reviewing)."""
    state.controller.set_selection(body.dois)
    return JSONResponse(review_payload())


# ============================================================================
# Synthesis & Follow-up
# ============================================================================


@router.post("/synthesize")
async def synthesize(body: Optional[SynthesizePayload] = None):
    """Synthesize the selected papers into an analysis."""
    dois = body.dois if body is not None else None
    result = await state.controller.synthesize(dois)
    return JSONResponse(result.to_dict())


@router.post("/follow-up")
async def follow_up(body: FollowUpPayload):
    """Answer a follow-up question from the analyzed papers."""
    answer = await state.controller.ask_follow_up(body.question)
    return JSONResponse(answer.to_dict())
