"""Tests for the three-column barycenter graph layout."""
import pytest

from conftest import make_paper
from dialectica.models.analysis import (
    AnalysisResult,
    ContentionPoint,
    DisagreementScore,
    RelatedPaper,
)
from dialectica.services.graph_layout_service import (
    UNCONNECTED,
    GraphLayoutEngine,
    GraphView,
    barycenter,
    compute_layout,
    infer_gap_links,
    select_displayed_papers,
    topic_matches_gap,
)


def point(topic, *dois):
    return ContentionPoint(
        topic=topic,
        related_papers=[RelatedPaper(doi=d, relevance=4) for d in dois],
    )


@pytest.fixture
def papers():
    return [make_paper(1), make_paper(2), make_paper(3)]


@pytest.fixture
def points():
    return [
        point("Dose response", "10.1000/p3"),
        point("Sample size"),
        point("Mechanism", "10.1000/p1"),
    ]


GAPS = ["Dose studies needed", "Larger sample trials", "Unrelated"]


def ids(nodes, kind):
    return [n.id for n in nodes if n.kind == kind]


# --- Edge inference ---

def test_topic_matches_gap_is_case_insensitive_substring():
    assert topic_matches_gap("Dose response", "More DOSE studies")
    assert not topic_matches_gap("Mechanism", "Larger sample trials")
    # Short words match liberally
    assert topic_matches_gap("Role of sleep", "Lack of data")


def test_gap_links_keep_all_matches_and_fall_back_round_robin():
    links = infer_gap_links(
        [point("sleep memory"), point("xyz"), point("abc")],
        ["sleep gap", "memory gap"],
    )
    assert links == [[0, 1], [1], [0]]
    assert infer_gap_links([point("x")], []) == [[]]


def test_barycenter():
    assert barycenter([]) == UNCONNECTED
    assert barycenter([30.0, 100.0]) == 65.0


def test_displayed_papers(papers, points):
    assert [p.doi for p in select_displayed_papers(papers, points)] == [
        "10.1000/p1", "10.1000/p3",
    ]
    assert len(select_displayed_papers(papers, points, show_all=True)) == 3
    # Nothing referenced: everything is shown
    assert len(select_displayed_papers(papers, [point("t")])) == 3


# --- Layout ---

def test_columns_are_ordered_by_barycenter(papers, points):
    layout = compute_layout(papers, points, GAPS)

    assert ids(layout.nodes, "paper") == ["paper-10.1000/p1", "paper-10.1000/p3"]
    # unconnected first, then by mean connected-paper position
    assert ids(layout.nodes, "contention") == ["contention-1", "contention-2", "contention-0"]
    # each gap follows the contention node targeting it
    assert ids(layout.nodes, "gap") == ["gap-1", "gap-2", "gap-0"]

    c2 = layout.node("contention-2")
    assert c2.barycenter == layout.node("paper-10.1000/p1").center_y == 70.0
    assert layout.node("contention-1").barycenter == UNCONNECTED


def test_geometry(papers, points):
    layout = compute_layout(papers, points, GAPS)

    p1 = layout.node("paper-10.1000/p1")
    p3 = layout.node("paper-10.1000/p3")
    assert (p1.x, p1.y, p1.width, p1.height) == (40, 40, 220, 60)
    assert p3.y == 40 + 60 + 25

    contention = [layout.node(i) for i in ("contention-1", "contention-2", "contention-0")]
    assert [n.x for n in contention] == [510] * 3
    assert [n.y for n in contention] == [40, 180, 320]
    assert layout.node("gap-1").x == 1000
    assert layout.width == 1260
    assert layout.height == 320 + 90 + 50 + 40


def test_edges_and_paths(papers, points):
    layout = compute_layout(papers, points, GAPS)

    assert [e.key for e in layout.edges] == [
        "line-g-1-1",
        "line-p-10.1000/p1-2",
        "line-g-2-2",
        "line-p-10.1000/p3-0",
        "line-g-0-0",
    ]
    edge = next(e for e in layout.edges if e.key == "line-p-10.1000/p1-2")
    assert edge.source == "paper-10.1000/p1"
    assert edge.target == "contention-2"
    assert edge.path == "M 260 70 C 360 70 410 225 510 225"


def test_duplicate_edges_are_collapsed(papers):
    layout = compute_layout(papers, [point("t", "10.1000/p1", "10.1000/p1")], ["t gap"])
    assert [e.key for e in layout.edges] == ["line-p-10.1000/p1-0", "line-g-0-0"]


def test_last_contention_point_defines_shared_gap_position(papers):
    points = [point("sleep a", "10.1000/p2"), point("sleep b", "10.1000/p1")]
    layout = compute_layout(papers, points, ["sleep gap"])
    assert layout.node("gap-0").barycenter == layout.node("contention-1").center_y


def test_empty_layouts(papers, points):
    assert compute_layout(papers, [], GAPS).is_empty
    assert compute_layout([], points, GAPS).is_empty
    empty = compute_layout([], points, GAPS).to_dict()
    assert empty["nodes"] == [] and empty["edges"] == []


def test_layout_is_deterministic(papers, points):
    first = compute_layout(papers, points, GAPS, show_all_papers=True).to_dict()
    second = compute_layout(papers, points, GAPS, show_all_papers=True).to_dict()
    assert first == second


def test_show_all_adds_unreferenced_papers(papers, points):
    layout = compute_layout(papers, points, GAPS, show_all_papers=True)
    assert len(ids(layout.nodes, "paper")) == 3
    assert layout.total_papers == 3 and layout.displayed_papers == 3


# --- Selection ---

@pytest.fixture
def view(papers, points):
    result = AnalysisResult(
        summary="s",
        disagreement_score=DisagreementScore(5, "Moderate"),
        contention_points=points,
        research_gaps=GAPS,
        papers=papers,
    )
    return GraphLayoutEngine().view(result)


def test_selection_activates_neighbours(view):
    assert view.active_nodes() is None
    view.select("contention-2")
    assert view.active_nodes() == {"contention-2", "paper-10.1000/p1", "gap-2"}
    data = view.to_dict()
    assert data["selected"] == "contention-2"
    assert data["activeEdges"] == ["line-p-10.1000/p1-2", "line-g-2-2"]


def test_selecting_again_or_outside_clears(view):
    view.select("gap-0")
    assert view.select("gap-0") is None
    view.select("gap-0")
    assert view.select(None) is None
    view.select("gap-0")
    view.clear_selection()
    assert view.selected_id is None


def test_unknown_node_cannot_be_selected(view):
    with pytest.raises(KeyError):
        view.select("paper-10.1000/missing")


def test_vanished_selection_is_cleared(view):
    view.set_show_all_papers(True)
    view.select("paper-10.1000/p2")
    view.set_show_all_papers(False)
    assert view.selected_id is None
    assert isinstance(view, GraphView)
