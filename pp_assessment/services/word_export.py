"""
Word (.docx) reports built with python-docx.

    generate_executive_summary — client-facing: key findings, risk register,
                                 phased roadmap, next steps
    generate_technical_guide   — one subsection per red/amber question with
                                 best practice and action items

Both return the document as bytes.
"""

import io
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from docx import Document
from docx.shared import Pt, RGBColor

from pp_assessment.services.catalog import PILLARS, Question
from pp_assessment.services.project_service import Project
from pp_assessment.services.recommendations import derive_recommendations
from pp_assessment.services.scoring_engine import RAG_AMBER, RAG_RED, question_rag

logger = logging.getLogger(__name__)

DOCX_MIMETYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

KEY_FINDINGS_LIMIT = 5

ROADMAP_PHASES = (
    ("Phase 1: Foundation", "0-3 Months",
     "Address all 'Red' status risks. Solidify DLP policies and environment strategy."),
    ("Phase 2: Optimization", "3-6 Months",
     "Remediate 'Amber' status risks. Implement ALM automation and mature CoE processes."),
    ("Phase 3: Innovation", "6-12 Months",
     "Focus on technical debt reduction, modernization of custom apps, and expanding "
     "Responsible AI governance."),
)

GENERIC_ACTION_ITEMS = (
    "Review the current configuration against the best practice",
    "Agree an owner and target date for remediation",
    "Implement and document the change",
    "Re-assess the question once the change is in place",
)

_RAG_COLORS = {
    RAG_RED: RGBColor(0xE7, 0x4C, 0x3C),
    RAG_AMBER: RGBColor(0xF3, 0x9C, 0x12),
}


@dataclass
class GapArea:
    """A question answered red or amber."""
    pillar_name: str
    question: Question
    rag: str
    answer: object
    risk_owner: str | None
    developer_note: str | None


def collect_gap_areas(project: Project) -> list[GapArea]:
    """Red and amber questions, red first, in catalog order within each colour."""
    areas = []
    for pillar in PILLARS:
        for question in pillar.questions:
            response = project.responses.get(question.id)
            if response is None:
                continue
            rag = question_rag(response)
            if rag not in (RAG_RED, RAG_AMBER):
                continue
            areas.append(GapArea(
                pillar_name=pillar.name,
                question=question,
                rag=rag,
                answer=response.value,
                risk_owner=project.risk_owners.get(question.id),
                developer_note=project.developer_notes.get(question.id),
            ))
    areas.sort(key=lambda a: 0 if a.rag == RAG_RED else 1)
    return areas


# ── Helpers ──────────────────────────────────────────────────────────────

def _title_block(doc, title: str, project: Project, now: datetime) -> None:
    doc.add_heading(title, 0)
    doc.add_heading(project.name, level=2)
    doc.add_paragraph(f"Date: {now.strftime('%d %B %Y')}")
    if project.client_name:
        doc.add_paragraph(f"Client: {project.client_name}")
    assessor = project.assessor or {}
    if assessor.get("name"):
        line = f"Assessed by: {assessor['name']}"
        if assessor.get("role"):
            line += f" ({assessor['role']})"
        doc.add_paragraph(line)
        if assessor.get("email"):
            doc.add_paragraph(f"Contact: {assessor['email']}")


def _table(doc, headers: list[str], rows: list[list[str]]):
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = "Table Grid"
    for cell, header in zip(table.rows[0].cells, headers):
        cell.text = ""
        run = cell.paragraphs[0].add_run(header)
        run.bold = True
    for values in rows:
        cells = table.add_row().cells
        for cell, value in zip(cells, values):
            cell.text = str(value)
    return table


def _label(doc, label: str, text: str | None = None) -> None:
    para = doc.add_paragraph()
    para.add_run(label).bold = True
    if text is not None:
        para.add_run(f" {text}")


def _format_answer(value) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value) if value is not None else "N/A"


def _to_bytes(doc) -> bytes:
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


# ═════════════════════════════════════════════════════════════════════════════
# EXECUTIVE SUMMARY
# ═════════════════════════════════════════════════════════════════════════════

def generate_executive_summary(project: Project, now: datetime | None = None) -> bytes:
    """Client-facing summary document."""
    now = now or datetime.now(timezone.utc)
    areas = collect_gap_areas(project)
    doc = Document()
    doc.styles["Normal"].font.size = Pt(11)

    _title_block(doc, "Power Platform Assessment: Executive Summary", project, now)
    doc.add_paragraph(f"Overall score: {project.overall_score():.1f} / 100")

    doc.add_heading("1. Key Findings & Strategic Recommendations", level=2)
    doc.add_paragraph(
        "This assessment identified the following areas for improvement, prioritised by "
        "business impact and risk mitigation."
    )
    if not areas:
        doc.add_paragraph("No red or amber findings were recorded.")
    for area in areas[:KEY_FINDINGS_LIMIT]:
        para = doc.add_paragraph()
        run = para.add_run(f"Recommendation for {area.pillar_name}: ")
        run.bold = True
        run.font.color.rgb = _RAG_COLORS[area.rag]
        para.add_run(f"Address critical gaps identified in '{area.question.text}'.")
        severity = "high" if area.rag == RAG_RED else "medium"
        doc.add_paragraph(f"Impact: Mitigates {severity} risk related to {area.question.category}.",
                          style="List Bullet")
        doc.add_paragraph(f"Assigned Owner (Recommended): {area.risk_owner or 'To be assigned'}",
                          style="List Bullet")

    doc.add_heading("2. High-Priority Risk Register", level=2)
    doc.add_paragraph("The most critical risks identified during the assessment that require "
                      "immediate attention.")
    _table(doc, ["Area", "Risk / Issue", "Status", "Owner"], [
        [a.pillar_name, a.question.text, a.rag.upper(), a.risk_owner or "TBA"] for a in areas
    ])

    doc.add_heading("3. Strategic Roadmap Overview", level=2)
    doc.add_paragraph("A phased approach: foundational improvements first, followed by "
                      "optimization and innovation.")
    _table(doc, ["Phase", "Timeline", "Focus Areas"], [list(p) for p in ROADMAP_PHASES])

    doc.add_heading("4. Next Steps", level=2)
    doc.add_paragraph(
        "We recommend a follow-up workshop to review these findings in detail and finalize the "
        "implementation plan and resource allocation. The accompanying technical guide provides "
        "detailed instructions for the development team."
    )

    logger.info("Executive summary generated", extra={"project_id": project.id})
    return _to_bytes(doc)


# ═════════════════════════════════════════════════════════════════════════════
# TECHNICAL IMPLEMENTATION GUIDE
# ═════════════════════════════════════════════════════════════════════════════

def generate_technical_guide(project: Project, now: datetime | None = None) -> bytes:
    """Developer-facing remediation guide, one subsection per gap."""
    now = now or datetime.now(timezone.utc)
    areas = collect_gap_areas(project)
    action_items = {rec.id: rec.action_items for rec in derive_recommendations(project.responses)}
    doc = Document()

    _title_block(doc, "Power Platform Assessment: Technical Implementation Guide", project, now)

    doc.add_heading("1. Introduction", level=2)
    doc.add_paragraph(
        "Detailed, actionable instructions for the development and administration teams to "
        "remediate the assessment findings. Each section corresponds to an identified gap."
    )
    if not areas:
        doc.add_paragraph("No red or amber gaps were recorded.")

    for area in areas:
        q = area.question
        doc.add_heading(f"Gap: {q.id} - {q.text}", level=2)
        table = doc.add_table(rows=0, cols=2)
        table.style = "Table Grid"
        for label, value in (("Standard", area.pillar_name), ("Category", q.category),
                             ("Status", area.rag.upper()), ("Current Answer", _format_answer(area.answer))):
            cells = table.add_row().cells
            cells[0].paragraphs[0].add_run(label).bold = True
            cells[1].text = value

        _label(doc, "Best Practice:", q.best_practice or "No guidance recorded.")
        _label(doc, "Implementation Steps:")
        for item in action_items.get(q.id) or GENERIC_ACTION_ITEMS:
            doc.add_paragraph(item, style="List Number")
        if area.developer_note:
            _label(doc, "Developer Documentation:", area.developer_note)

    logger.info("Technical guide generated", extra={"project_id": project.id})
    return _to_bytes(doc)
