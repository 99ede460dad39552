"""Tests for JSON and Markdown export of analyses."""
import json

import pytest

from conftest import make_paper
from dialectica.models.analysis import (
    AnalysisResult,
    ContentionPoint,
    DisagreementScore,
    FollowUp,
    KeyPaper,
    RelatedPaper,
    Stance,
    UsageEstimate,
)
from dialectica.services.export_service import (
    AnalysisExporter,
    render_markdown,
    slugify,
    to_json,
)


@pytest.fixture
def result():
    p1, p2 = make_paper(1, authors=["Ada Lovelace"]), make_paper(2, year=2023)
    return AnalysisResult(
        summary="Researchers disagree on effect size.",
        disagreement_score=DisagreementScore(6, "Moderate Disagreement"),
        key_papers=[KeyPaper(p1, "Largest sample")],
        contention_points=[
            ContentionPoint(
                topic="Effect size",
                stances=[Stance("s1", "Large effect", "We found a large effect.", p1)],
                related_papers=[RelatedPaper(p1.doi, 5)],
            )
        ],
        research_gaps=["Replication in older adults"],
        papers=[p1, p2],
        synthesis_time=1.5,
        final_query="sleep AND memory",
        excluded_papers=[make_paper(3, relevance_justification="Off topic")],
        per_source_counts={"openalex": 2, "semantic_scholar": 1},
        usage=UsageEstimate(100, 50, 0.01),
    )


def test_json_export_round_trips(result):
    data = json.loads(to_json(result))
    assert data == json.loads(json.dumps(result.to_dict()))
    assert data["disagreementScore"] == {"score": 6, "qualitative": "Moderate Disagreement"}
    assert data["contentionPoints"][0]["relatedPapers"] == [{"doi": "10.1000/p1", "relevance": 5}]
    assert data["perSourceCounts"] == {"openalex": 2, "semantic_scholar": 1}
    assert data["usage"] == {"inputTokens": 100, "outputTokens": 50, "cost": 0.01}
    assert data["excludedPapers"][0]["relevanceJustification"] == "Off topic"


def test_markdown_report_sections(result):
    follow_up = FollowUp("Why?", "Because of sampling.")
    text = render_markdown(result, "Does sleep help memory?", [follow_up])

    assert text.startswith("# Does sleep help memory?")
    assert "- Disagreement: 6/10 (Moderate Disagreement)" in text
    assert "### Effect size" in text
    assert "> We found a large effect." in text
    assert "- Replication in older adults" in text
    assert "### Why?" in text
    # Papers newest first
    assert text.index("### Paper 2") < text.index("### Paper 1")
    assert "Off topic" in text


def test_slugify():
    assert slugify("Does sleep help memory?") == "does-sleep-help-memory"
    assert slugify("???") == "dialectica-analysis"


def test_exporter_writes_files(tmp_path, result):
    exporter = AnalysisExporter(tmp_path / "exports")
    json_path = exporter.export_json(result, "Sleep & memory")
    md_path = exporter.export_markdown(result, "Sleep & memory")

    assert json_path.suffix == ".json" and md_path.suffix == ".md"
    assert json_path.name.endswith("sleep-memory.json")
    assert json.loads(json_path.read_text(encoding="utf-8"))["summary"] == result.summary
    assert "## Summary" in md_path.read_text(encoding="utf-8")
