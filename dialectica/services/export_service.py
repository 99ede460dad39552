"""Analysis export service (JSON download and Markdown report)."""

import json
import re
from datetime import date
from pathlib import Path
from typing import Optional

from dialectica.models.analysis import AnalysisResult, FollowUp

EXPORT_FILENAME = "dialectica-analysis"


def to_json(result: AnalysisResult) -> str:
    """Serialise the full analysis, bookkeeping included, as pretty JSON."""
    return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)


def slugify(text: str, max_length: int = 60) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-") or EXPORT_FILENAME


def render_markdown(
    result: AnalysisResult,
    question: str,
    follow_ups: Optional[list[FollowUp]] = None,
) -> str:
    score = result.disagreement_score
    lines = [
        f"# {question}",
        "",
        f"- Disagreement: {score.score:g}/10 ({score.qualitative})",
    ]
    if result.final_query:
        lines.append(f"- Query: `{result.final_query}`")
    if result.per_source_counts:
        counts = ", ".join(f"{k}: {v}" for k, v in sorted(result.per_source_counts.items()))
        lines.append(f"- Sources: {counts}")
    lines += ["", "## Summary", "", result.summary, ""]

    if result.contention_points:
        lines += ["## Contention points", ""]
        for point in result.contention_points:
            lines.append(f"### {point.topic}")
            for stance in point.stances:
                lines.append(f"- **{stance.summary}**")
                lines.append(f"  > {stance.quote}")
                lines.append(
                    f"  ({', '.join(stance.paper.authors[:3])}, {stance.paper.year}, "
                    f"https://doi.org/{stance.paper.doi})"
                )
            lines.append("")

    if result.key_papers:
        lines += ["## Key papers", ""]
        for kp in result.key_papers:
            lines.append(f"- {kp.paper.title} ({kp.paper.year}): {kp.rationale}")
        lines.append("")

    if result.research_gaps:
        lines += ["## Research gaps", ""]
        lines += [f"- {gap}" for gap in result.research_gaps]
        lines.append("")

    if follow_ups:
        lines += ["## Follow-up questions", ""]
        for item in follow_ups:
            lines += [f"### {item.question}", "", item.answer, ""]

    lines += ["## Papers analyzed", ""]
    for paper in result.sorted_papers():
        lines.append(f"### {paper.title}")
        if paper.authors:
            lines.append(f"- Authors: {', '.join(paper.authors)}")
        if paper.year:
            lines.append(f"- Year: {paper.year}")
        lines.append(f"- DOI: {paper.doi}")
        lines.append(f"- Link: https://doi.org/{paper.doi}")
        lines.append("")

    if result.excluded_papers:
        lines += ["## Excluded papers", ""]
        for paper in result.excluded_papers:
            reason = paper.relevance_justification or "Not selected"
            lines.append(f"- {paper.title} ({paper.doi}): {reason}")
        lines.append("")

    return "\n".join(lines)


class AnalysisExporter:
    """Service for writing analyses to the export directory."""

    def __init__(self, export_dir: Path):
        """Initialize exporter.

        Args:
            export_dir: Directory to save exported files
        """
        self.export_dir = export_dir
        self.export_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, question: str, suffix: str) -> Path:
        return self.export_dir / f"{date.today().isoformat()}-{slugify(question)}{suffix}"

    def export_json(self, result: AnalysisResult, question: str) -> Path:
        """Write the analysis as JSON (overwrites a same-day export)."""
        filepath = self._path(question, ".json")
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(to_json(result))
        return filepath

    def export_markdown(
        self,
        result: AnalysisResult,
        question: str,
        follow_ups: Optional[list[FollowUp]] = None,
    ) -> Path:
        """Write a readable Markdown report of the analysis."""
        filepath = self._path(question, ".md")
        with open(filepath, "w", encoding="utf-8") as f:
            f.write(render_markdown(result, question, follow_ups))
        return filepath
