"""Export renderers for IntegrityReport.

Two equivalent artifacts describe the same report:
    - tabular:   CSV, one row per event (Timestamp, Event, Details)
    - narrative: header, summary and chronological listing, as plain text
                 and as a PDF carrying exactly the same lines

Rendering is deterministic: timestamps are always written as UTC ISO-8601
with millisecond precision, and the PDF is produced in reportlab's
invariant mode so regenerated files are byte-identical.
"""

from __future__ import annotations

import csv
import io
from datetime import datetime, timezone
from pathlib import Path

from reportlab.lib.pagesizes import letter
from reportlab.lib.units import inch
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas

from integrity_monitor.report.generator import MAX_SCORE, IntegrityReport

CSV_HEADER = ("Timestamp", "Event", "Details")
TITLE = "Session Integrity Report"

_FONT = "Helvetica"
_FONT_BOLD = "Helvetica-Bold"
_FONT_SIZE = 10
_LEADING = 13


def format_timestamp(ts: datetime | None) -> str:
    if ts is None:
        return "not ended"
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds")


# ── Tabular ──────────────────────────────────────────────────────────────────


def render_csv(report: IntegrityReport) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in report.rows:
        writer.writerow((format_timestamp(row.timestamp), row.kind.value, row.details))
    return buffer.getvalue()


# ── Narrative ────────────────────────────────────────────────────────────────


def narrative_lines(report: IntegrityReport) -> list[str]:
    lines = [TITLE, "=" * 50]
    lines.append(f"Subject: {report.subject or 'N/A'}")
    lines.append(f"Session ID: {report.session_id}")
    lines.append(f"Started At: {format_timestamp(report.started_at)}")
    lines.append(f"Ended At: {format_timestamp(report.ended_at)}")
    lines.append("")

    lines.append("Summary:")
    if report.counts:
        for kind, count in report.counts.items():
            penalty = report.penalties.get(kind)
            suffix = f" (-{penalty})" if penalty else ""
            lines.append(f"  - {kind}: {count}{suffix}")
    else:
        lines.append("  - no events recorded")
    lines.append(f"Integrity Score: {report.score}/{MAX_SCORE}")
    lines.append("")

    lines.append(f"Event Log ({report.event_count} events):")
    for row in report.rows:
        lines.append(f"  {format_timestamp(row.timestamp)} | {row.kind.value} | {row.details}")
    return lines


def render_text(report: IntegrityReport) -> str:
    return "\n".join(narrative_lines(report)) + "\n"


def render_pdf(report: IntegrityReport, path: str | Path) -> None:
    """Write the narrative lines to a letter-size PDF at *path*."""
    width, height = letter
    margin = inch
    usable = width - 2 * margin

    pdf = canvas.Canvas(str(path), pagesize=letter, invariant=1)
    pdf.setTitle(f"{TITLE} {report.session_id}")

    y = height - margin
    for index, line in enumerate(narrative_lines(report)):
        font = _FONT_BOLD if index == 0 else _FONT
        wrapped = simpleSplit(line, font, _FONT_SIZE, usable) or [""]
        for part in wrapped:
            if y < margin:
                pdf.showPage()
                y = height - margin
            pdf.setFont(font, _FONT_SIZE)
            pdf.drawString(margin, y, part)
            y -= _LEADING
    pdf.save()
