"""PDF export of generated solutions (reportlab)."""
from __future__ import annotations

import io
import re
from datetime import datetime
from typing import List, Optional

from solvem8.errors import PDFRenderError

try:
    from reportlab.lib.pagesizes import A4
    from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Preformatted, HRFlowable
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib import colors
except Exception:
    SimpleDocTemplate = None
    A4 = None

_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_CODE_RE = re.compile(r"`([^`]+)`")


def esc(s: str) -> str:
    return (s or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def inline_markup(line: str) -> str:
    """Escape a line and turn **bold** / `code` into reportlab markup."""
    out = esc(line)
    out = _BOLD_RE.sub(r"<b>\1</b>", out)
    out = _CODE_RE.sub(r'<font face="Courier">\1</font>', out)
    return out


def render_solution_pdf(solution: str, question: Optional[str] = None, title: str = "SOLVEM8 Solution") -> bytes:
    """Render the solution (and optionally the question) to PDF bytes."""
    if SimpleDocTemplate is None:
        raise PDFRenderError("PDF generator not available")
    if not (solution or "").strip():
        raise PDFRenderError("No solution to render")

    styles = getSampleStyleSheet()
    base = ParagraphStyle("base", parent=styles["BodyText"], fontSize=10.5, leading=14)
    head = ParagraphStyle("head", parent=styles["Heading2"], spaceBefore=10, spaceAfter=4)
    small = ParagraphStyle("small", parent=base, fontSize=8.5, textColor=colors.grey)
    mono = ParagraphStyle("mono", parent=base, fontName="Courier", fontSize=9, leading=11)

    story: List = [
        Paragraph(esc(title), styles["Title"]),
        Paragraph(f"Generated {datetime.now().strftime('%B %d, %Y')}", small),
        Spacer(1, 10),
    ]

    if (question or "").strip():
        story.append(Paragraph("Question", head))
        for line in question.strip().splitlines():
            if line.strip():
                story.append(Paragraph(inline_markup(line), base))
        story.append(Spacer(1, 6))
        story.append(HRFlowable(width="100%", color=colors.lightgrey))
        story.append(Paragraph("Solution", head))

    in_block = False
    block: List[str] = []
    for raw in solution.strip().splitlines():
        line = raw.rstrip()

        # Fenced code/table blocks
        if line.startswith("```"):
            if in_block:
                story.append(Preformatted("\n".join(block), mono))
                block = []
            in_block = not in_block
            continue
        if in_block:
            block.append(line)
            continue

        if not line.strip():
            story.append(Spacer(1, 6))
            continue

        # Headings
        m = re.match(r"^#{1,6}\s+(.*)$", line)
        if m:
            story.append(Paragraph(inline_markup(m.group(1)), head))
            continue

        # Bullets
        m = re.match(r"^\s*[-*]\s+(.*)$", line)
        if m:
            story.append(Paragraph(inline_markup(m.group(1)), base, bulletText="•"))
            continue

        story.append(Paragraph(inline_markup(line), base))

    if block:
        story.append(Preformatted("\n".join(block), mono))

    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=50,
        rightMargin=50,
        topMargin=45,
        bottomMargin=45,
        title=title,
    )
    try:
        doc.build(story)
    except Exception as e:
        raise PDFRenderError(f"PDF export failed: {type(e).__name__}: {e}") from e
    return buf.getvalue()
