"""
JSON and Excel export of assessment projects.

JSON:
    {"version": "1.0.0", "exportDate": "<iso>", "projects": [...]}
    Import accepts only this envelope; timestamps are revived to
    timezone-aware datetimes by ``Project.from_dict``.

Excel (bytes, in-memory):
    1. Assessment Results      — one row per question.
    2. Summary                 — one row per pillar plus the overall row.
    3. Developer Documentation — only when at least one developer note exists.
"""

import io
import json
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from pp_assessment.core.exceptions import ImportFormatError
from pp_assessment.services.catalog import PILLARS
from pp_assessment.services.persistence import STORAGE_VERSION
from pp_assessment.services.project_service import Project
from pp_assessment.services.responses import normalize
from pp_assessment.services.scoring_engine import RAG_GREY, question_rag

logger = logging.getLogger(__name__)

RAG_FILLS = {
    "green": PatternFill(start_color="27AE60", end_color="27AE60", fill_type="solid"),
    "amber": PatternFill(start_color="F39C12", end_color="F39C12", fill_type="solid"),
    "red": PatternFill(start_color="E74C3C", end_color="E74C3C", fill_type="solid"),
    "grey": PatternFill(start_color="95A5A6", end_color="95A5A6", fill_type="solid"),
}
WHITE_FONT = Font(color="FFFFFF", bold=True)
HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ═════════════════════════════════════════════════════════════════════════════
# JSON
# ═════════════════════════════════════════════════════════════════════════════

def build_export_envelope(projects: list[Project], now: datetime | None = None) -> dict:
    return {
        "version": STORAGE_VERSION,
        "exportDate": (now or datetime.now(timezone.utc)).isoformat(),
        "projects": [p.to_dict() for p in projects],
    }


def export_json(projects: list[Project], now: datetime | None = None) -> str:
    """Serialise projects into the export envelope."""
    return json.dumps(build_export_envelope(projects, now), indent=2)


def parse_import(payload) -> list[Project]:
    """Revive projects from an export envelope (JSON text, bytes or parsed dict).

    Raises:
        ImportFormatError: If the payload is not JSON, has no ``projects``
            list, or a project inside it cannot be revived.
    """
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"not valid JSON: {exc}") from None

    if not isinstance(payload, dict) or not isinstance(payload.get("projects"), list):
        raise ImportFormatError("missing 'projects' list")

    projects = []
    for index, data in enumerate(payload["projects"]):
        try:
            projects.append(Project.from_dict(data))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ImportFormatError(f"project #{index + 1} is malformed: {exc}") from None
    logger.info("Parsed %d projects from import (version %s)", len(projects), payload.get("version"))
    return projects


# ═════════════════════════════════════════════════════════════════════════════
# EXCEL
# ═════════════════════════════════════════════════════════════════════════════

def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _rag_cell(ws, row: int, col: int, rag: str) -> None:
    cell = ws.cell(row=row, column=col, value=rag.upper())
    cell.fill = RAG_FILLS.get(rag, RAG_FILLS[RAG_GREY])
    cell.font = WHITE_FONT
    cell.alignment = Alignment(horizontal="center")
    cell.border = THIN_BORDER


def _display_answer(response) -> str:
    if response is None:
        return "Not answered"
    if isinstance(response.value, bool):
        return "Yes" if response.value else "No"
    return str(response.value)


def generate_assessment_excel(project: Project, now: datetime | None = None) -> bytes:
    """Generate the assessment workbook for one project.

    Returns:
        bytes: Raw .xlsx file content.
    """
    now = now or datetime.now(timezone.utc)
    wb = Workbook()

    # ── Sheet 1: Assessment Results ──────────────────────────────────────
    ws = wb.active
    ws.title = "Assessment Results"
    ws.merge_cells("A1:J1")
    ws["A1"] = f"Power Platform Assessment: {project.name}"
    ws["A1"].font = Font(size=16, bold=True)
    ws["A2"] = f"Client: {project.client_name or '-'}    Generated: {now.strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    headers = ["Pillar", "Question ID", "Category", "Question", "Answer", "Score",
               "RAG", "Evidence / Notes", "Risk Owner", "Best Practice"]
    header_row = 4
    for col, header in enumerate(headers, 1):
        ws.cell(row=header_row, column=col, value=header)
    _apply_header_style(ws, header_row, len(headers))

    row = header_row + 1
    for pillar in PILLARS:
        for question in pillar.questions:
            response = project.responses.get(question.id)
            fraction = normalize(response) if response is not None else None
            values = [
                pillar.name,
                question.id,
                question.category,
                question.text,
                _display_answer(response),
                round(fraction * 100, 1) if fraction is not None else "-",
            ]
            for col, value in enumerate(values, 1):
                ws.cell(row=row, column=col, value=value).border = THIN_BORDER
            _rag_cell(ws, row, 7, question_rag(response))
            ws.cell(row=row, column=8, value=project.question_notes.get(question.id, "")).border = THIN_BORDER
            ws.cell(row=row, column=9, value=project.risk_owners.get(question.id, "")).border = THIN_BORDER
            ws.cell(row=row, column=10, value=question.best_practice).border = THIN_BORDER
            row += 1
    ws.freeze_panes = ws.cell(row=header_row + 1, column=1)
    _auto_width(ws)

    # ── Sheet 2: Summary ─────────────────────────────────────────────────
    ws2 = wb.create_sheet("Summary")
    headers = ["Pillar", "Completion %", "Raw Score", "Task Adjustment", "Maturity Score",
               "Target", "Gap", "RAG"]
    for col, header in enumerate(headers, 1):
        ws2.cell(row=1, column=col, value=header)
    _apply_header_style(ws2, 1, len(headers))

    rows = project.score_rows()
    for r, score in enumerate(rows, 2):
        values = [score.name, round(score.completion, 1), round(score.raw_score, 1),
                  round(score.adjustment, 1), round(score.score, 1), score.target, round(score.gap, 1)]
        for col, value in enumerate(values, 1):
            ws2.cell(row=r, column=col, value=value).border = THIN_BORDER
        _rag_cell(ws2, r, 8, score.rag)

    total_row = len(rows) + 3
    ws2.cell(row=total_row, column=1, value="Overall").font = Font(bold=True)
    ws2.cell(row=total_row, column=5, value=round(project.overall_score(), 1)).font = Font(bold=True)
    _auto_width(ws2)

    # ── Sheet 3: Developer Documentation (only when notes exist) ─────────
    if project.developer_notes:
        ws3 = wb.create_sheet("Developer Documentation")
        headers = ["Pillar", "Question ID", "Question", "Developer Notes"]
        for col, header in enumerate(headers, 1):
            ws3.cell(row=1, column=col, value=header)
        _apply_header_style(ws3, 1, len(headers))
        r = 2
        for pillar in PILLARS:
            for question in pillar.questions:
                note = project.developer_notes.get(question.id)
                if not note:
                    continue
                for col, value in enumerate([pillar.name, question.id, question.text, note], 1):
                    cell = ws3.cell(row=r, column=col, value=value)
                    cell.border = THIN_BORDER
                    cell.alignment = Alignment(wrap_text=True, vertical="top")
                r += 1
        _auto_width(ws3)

    buf = io.BytesIO()
    wb.save(buf)
    logger.info("Excel export generated", extra={"project_id": project.id})
    return buf.getvalue()
