"""Knowledge-graph layout: papers → contention points → research gaps.

Computes a three-column layered drawing of a finished analysis:
  1) Paper column in input order
  2) Contention column ordered by barycenter of the connected papers
  3) Gap column ordered by the position of the contention node targeting it

This is a single left-to-right barycenter pass, not full crossing
minimization.  Everything is a pure function of its inputs; the only
mutable state lives in :class:`GraphView` (selection + show-all toggle).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from dialectica.models.analysis import AnalysisResult, ContentionPoint
from dialectica.models.paper import Paper

logger = logging.getLogger(__name__)

PAPER = "paper"
CONTENTION = "contention"
GAP = "gap"

NODE_WIDTH = {PAPER: 220, CONTENTION: 240, GAP: 220}
NODE_HEIGHT = {PAPER: 60, CONTENTION: 90, GAP: 90}
PADDING = 40
COLUMN_GAP = 250
VERTICAL_GAP = 25
MIN_CONTROL_OFFSET = 40
CONTROL_OFFSET_RATIO = 0.4

# Barycenter of a node with no connection; sorts before every real position
UNCONNECTED = -1.0

# ---------------------------------------------------------------------------
# Result data classes
# ---------------------------------------------------------------------------

@dataclass
class GraphNode:
    """A positioned node; ``index`` is its position in the input list."""

    id: str
    kind: str
    label: str
    index: int
    x: float
    y: float
    width: float
    height: float
    barycenter: float = UNCONNECTED
    doi: Optional[str] = None

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.kind,
            "label": self.label,
            "index": self.index,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        if self.doi is not None:
            data["doi"] = self.doi
        return data


@dataclass
class GraphEdge:
    key: str
    source: str
    target: str
    kind: str
    path: str = ""

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "source": self.source,
            "target": self.target,
            "type": self.kind,
            "path": self.path,
        }


@dataclass
class GraphLayout:
    """Complete layout ready for JSON serialisation."""

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    width: float = 0
    height: float = 0
    total_papers: int = 0
    displayed_papers: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def node(self, node_id: str) -> Optional[GraphNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "width": self.width,
            "height": self.height,
            "totalPapers": self.total_papers,
            "displayedPapers": self.displayed_papers,
        }


# ---------------------------------------------------------------------------
# Edge inference
# ---------------------------------------------------------------------------

def topic_matches_gap(topic: str, gap: str) -> bool:
    """Heuristic link between a contention topic and a research gap.

    True when any whitespace-delimited word of *topic* occurs, case
    insensitively, as a substring of *gap*.  Short words ("of", "in")
    match liberally; this is a heuristic, not a guarantee.
    """
    gap_lower = gap.lower()
    return any(word.lower() in gap_lower for word in topic.split(" ") if word)


def infer_gap_links(
    contention_points: Sequence[ContentionPoint],
    research_gaps: Sequence[str],
) -> list[list[int]]:
    """Gap indices linked to each contention point.

    Every match is kept.  A contention point with no match gets gap
    ``index mod len(gaps)`` so no contention node is left without a gap.
    """
    links: list[list[int]] = []
    for index, point in enumerate(contention_points):
        matched = [
            gap_index
            for gap_index, gap in enumerate(research_gaps)
            if topic_matches_gap(point.topic, gap)
        ]
        if not matched and research_gaps:
            matched = [index % len(research_gaps)]
        links.append(matched)
    return links


def referenced_dois(contention_points: Sequence[ContentionPoint]) -> set[str]:
    return {doi for point in contention_points for doi in point.related_dois}


def select_displayed_papers(
    papers: Sequence[Paper],
    contention_points: Sequence[ContentionPoint],
    show_all: bool = False,
) -> list[Paper]:
    """Papers referenced by a contention point, or all of them.

    All papers are shown when *show_all* is set or when no paper is
    referenced at all.
    """
    referenced = referenced_dois(contention_points)
    if show_all or not referenced:
        return list(papers)
    return [p for p in papers if p.doi in referenced]


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def barycenter(positions: Sequence[float]) -> float:
    """Mean of *positions*, or :data:`UNCONNECTED` for none."""
    if not positions:
        return UNCONNECTED
    return sum(positions) / len(positions)


def order_by_barycenter(nodes: Sequence[GraphNode]) -> list[GraphNode]:
    """Stable ascending sort; unconnected nodes come first."""
    return sorted(nodes, key=lambda n: n.barycenter)


def stack(nodes: Sequence[GraphNode], x: float, gap: float) -> float:
    """Place *nodes* top to bottom at column *x*; return the next free y."""
    y = float(PADDING)
    for node in nodes:
        node.x = x
        node.y = y
        y += node.height + gap
    return y


def edge_path(source: GraphNode, target: GraphNode) -> str:
    """Cubic curve from the right edge of *source* to the left edge of *target*."""
    x1 = source.x + source.width
    y1 = source.center_y
    x2 = target.x
    y2 = target.center_y
    offset = max(MIN_CONTROL_OFFSET, (x2 - x1) * CONTROL_OFFSET_RATIO)
    return f"M {x1:g} {y1:g} C {x1 + offset:g} {y1:g} {x2 - offset:g} {y2:g} {x2:g} {y2:g}"


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------

def compute_layout(
    papers: Sequence[Paper],
    contention_points: Sequence[ContentionPoint],
    research_gaps: Sequence[str],
    show_all_papers: bool = False,
) -> GraphLayout:
    """Lay out the three columns and their edges.

    Returns an empty layout when there is no contention point or no
    paper to display.
    """
    displayed = select_displayed_papers(papers, contention_points, show_all_papers)
    if not contention_points or not displayed:
        return GraphLayout(total_papers=len(papers), displayed_papers=len(displayed))

    gap_links = infer_gap_links(contention_points, research_gaps)

    # ── 1) Papers: input order ────────────────────────────────────
    paper_nodes: list[GraphNode] = []
    seen_dois: set[str] = set()
    for index, paper in enumerate(displayed):
        if paper.doi in seen_dois:
            continue
        seen_dois.add(paper.doi)
        paper_nodes.append(GraphNode(
            id=f"paper-{paper.doi}",
            kind=PAPER,
            label=paper.title,
            index=index,
            x=0, y=0,
            width=NODE_WIDTH[PAPER],
            height=NODE_HEIGHT[PAPER],
            doi=paper.doi,
        ))
    paper_x = float(PADDING)
    paper_bottom = stack(paper_nodes, paper_x, VERTICAL_GAP)
    paper_by_doi = {n.doi: n for n in paper_nodes}

    # ── 2) Contention points: barycenter of connected papers ──────
    contention_nodes: list[GraphNode] = []
    for index, point in enumerate(contention_points):
        related = set(point.related_dois)
        connected = [n for n in paper_nodes if n.doi in related]
        contention_nodes.append(GraphNode(
            id=f"contention-{index}",
            kind=CONTENTION,
            label=point.topic,
            index=index,
            x=0, y=0,
            width=NODE_WIDTH[CONTENTION],
            height=NODE_HEIGHT[CONTENTION],
            barycenter=barycenter([n.center_y for n in connected]),
        ))
    contention_nodes = order_by_barycenter(contention_nodes)
    contention_x = paper_x + NODE_WIDTH[PAPER] + COLUMN_GAP
    contention_bottom = stack(contention_nodes, contention_x, VERTICAL_GAP * 2)
    contention_by_index = {n.index: n for n in contention_nodes}

    # ── 3) Gaps: position of the contention node targeting them ───
    # When several contention points target a gap the last one wins.
    gap_owner: dict[int, int] = {}
    for point_index, gap_indices in enumerate(gap_links):
        for gap_index in gap_indices:
            gap_owner[gap_index] = point_index

    gap_nodes: list[GraphNode] = []
    for index, gap in enumerate(research_gaps):
        owner = contention_by_index.get(gap_owner[index]) if index in gap_owner else None
        gap_nodes.append(GraphNode(
            id=f"gap-{index}",
            kind=GAP,
            label=gap,
            index=index,
            x=0, y=0,
            width=NODE_WIDTH[GAP],
            height=NODE_HEIGHT[GAP],
            barycenter=owner.center_y if owner else UNCONNECTED,
        ))
    gap_nodes = order_by_barycenter(gap_nodes)
    gap_x = contention_x + NODE_WIDTH[CONTENTION] + COLUMN_GAP
    gap_bottom = stack(gap_nodes, gap_x, VERTICAL_GAP)
    gap_by_index = {n.index: n for n in gap_nodes}

    # ── 4) Edges, in contention column order ──────────────────────
    edges: list[GraphEdge] = []
    edge_keys: set[str] = set()

    def add_edge(key: str, source: GraphNode, target: GraphNode, kind: str) -> None:
        if key in edge_keys:
            return
        edge_keys.add(key)
        edges.append(GraphEdge(
            key=key,
            source=source.id,
            target=target.id,
            kind=kind,
            path=edge_path(source, target),
        ))

    for node in contention_nodes:
        for doi in contention_points[node.index].related_dois:
            paper_node = paper_by_doi.get(doi)
            if paper_node is not None:
                add_edge(f"line-p-{doi}-{node.index}", paper_node, node, "paper-contention")
        for gap_index in gap_links[node.index]:
            gap_node = gap_by_index.get(gap_index)
            if gap_node is not None:
                add_edge(f"line-g-{node.index}-{gap_index}", node, gap_node, "contention-gap")

    layout = GraphLayout(
        nodes=[*paper_nodes, *contention_nodes, *gap_nodes],
        edges=edges,
        width=gap_x + NODE_WIDTH[GAP] + PADDING,
        height=max(paper_bottom, contention_bottom, gap_bottom) + PADDING,
        total_papers=len(papers),
        displayed_papers=len(paper_nodes),
    )
    logger.debug(
        "Graph layout: %d nodes, %d edges (%gx%g)",
        len(layout.nodes), len(layout.edges), layout.width, layout.height,
    )
    return layout


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def active_node_ids(layout: GraphLayout, selected_id: Optional[str]) -> Optional[frozenset[str]]:
    """Selected node plus every node one edge away; None means all active."""
    if selected_id is None:
        return None
    ids = {selected_id}
    for edge in layout.edges:
        if edge.source == selected_id:
            ids.add(edge.target)
        elif edge.target == selected_id:
            ids.add(edge.source)
    return frozenset(ids)


def is_edge_active(edge: GraphEdge, selected_id: Optional[str]) -> bool:
    return selected_id is None or edge.touches(selected_id)


class GraphView:
    """Interactive view over one analysis.

    Holds only the current selection and the show-all-papers toggle;
    the layout itself is recomputed from the analysis on demand.
    """

    def __init__(
        self,
        papers: Sequence[Paper],
        contention_points: Sequence[ContentionPoint],
        research_gaps: Sequence[str],
        show_all_papers: bool = False,
    ) -> None:
        self._papers = list(papers)
        self._contention_points = list(contention_points)
        self._research_gaps = list(research_gaps)
        self.show_all_papers = show_all_papers
        self.selected_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: AnalysisResult, show_all_papers: bool = False) -> "GraphView":
        return cls(
            result.papers,
            result.contention_points,
            result.research_gaps,
            show_all_papers=show_all_papers,
        )

    # -- public API ----------------------------------------------------------

    @property
    def layout(self) -> GraphLayout:
        return compute_layout(
            self._papers,
            self._contention_points,
            self._research_gaps,
            self.show_all_papers,
        )

    def select(self, node_id: Optional[str]) -> Optional[str]:
        """Click on a node; clicking the selected node or outside clears."""
        if node_id is None or node_id == self.selected_id:
            self.selected_id = None
        elif self.layout.node(node_id) is None:
            raise KeyError(f"Unknown graph node: {node_id}")
        else:
            self.selected_id = node_id
        return self.selected_id

    def clear_selection(self) -> None:
        self.selected_id = None

    def set_show_all_papers(self, show_all: bool) -> None:
        self.show_all_papers = show_all
        if self.selected_id is not None and self.layout.node(self.selected_id) is None:
            self.selected_id = None

    def active_nodes(self) -> Optional[frozenset[str]]:
        return active_node_ids(self.layout, self.selected_id)

    def to_dict(self) -> dict[str, Any]:
        layout = self.layout
        active = active_node_ids(layout, self.selected_id)
        data = layout.to_dict()
        data["selected"] = self.selected_id
        data["showAllPapers"] = self.show_all_papers
        data["activeNodes"] = sorted(active) if active is not None else None
        data["activeEdges"] = [
            e.key for e in layout.edges if is_edge_active(e, self.selected_id)
        ]
        return data


class GraphLayoutEngine:
    """Produces layouts and views for finished analyses."""

    def view(self, result: AnalysisResult, show_all_papers: bool = False) -> GraphView:
        return GraphView.from_result(result, show_all_papers)
