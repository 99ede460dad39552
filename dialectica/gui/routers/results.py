"""Analysis results: knowledge graph, export and pipeline state."""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse, Response

from dialectica.gui.state import error_response, state
from dialectica.services.export_service import EXPORT_FILENAME, render_markdown, to_json
from dialectica.services.graph_layout_service import GraphLayoutEngine

router = APIRouter(prefix="/api", tags=["results"])

NO_ANALYSIS_MESSAGE = "No analysis is available yet."

engine = GraphLayoutEngine()


@router.get("/state")
async def pipeline_state():
    """Current stage, status message, last error and session summary."""
    return JSONResponse(state.controller.to_dict())


@router.get("/graph")
async def graph(
    show_all: bool = Query(False, description="Show papers no contention point references"),
    selected: Optional[str] = Query(None, description="Node id to highlight"),
):
    """Return the three-column graph layout with the active node/edge set."""
    session = state.controller.session
    if session is None or session.result is None:
        return error_response(NO_ANALYSIS_MESSAGE, 404)

    view = engine.view(session.result, show_all_papers=show_all)
    if selected:
        try:
            view.select(selected)
        except KeyError:
            return error_response(f"Unknown graph node: {selected}", 404)
    return JSONResponse(view.to_dict())


@router.get("/export")
async def export(
    format: str = Query("json", description="Export format: json, markdown"),
):
    """Download the current analysis."""
    session = state.controller.session
    if session is None or session.result is None:
        return error_response(NO_ANALYSIS_MESSAGE, 404)

    if format == "markdown":
        content = render_markdown(session.result, session.question, session.follow_ups)
        media_type, suffix = "text/markdown", "md"
    elif format == "json":
        content = to_json(session.result)
        media_type, suffix = "application/json", "json"
    else:
        return error_response("format must be json or markdown", 422)

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}.{suffix}"'},
    )
