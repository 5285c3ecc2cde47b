import io

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas


def _draw_lines(c: canvas.Canvas, lines: list[str]) -> None:
    y = 720
    for line in lines:
        c.drawString(72, y, line)
        y -= 18


@pytest.fixture()
def report_pdf_bytes() -> bytes:
    """Two-page report with headings, a revenue line and an emissions line."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    _draw_lines(
        c,
        [
            "FINANCIAL HIGHLIGHTS",
            "Revenue for the year was EUR 1,234 million and the group",
            "grew in all of its segments compared to the prior year.",
        ],
    )
    c.showPage()
    _draw_lines(
        c,
        [
            "2.1 Environmental performance",
            "Scope 1 emissions were 5,600 tCO2e in the reporting year.",
        ],
    )
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.drawString(72, 720, "Hello PDF World")
    c.save()
    return buf.getvalue()


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    c.showPage()
    c.save()
    return buf.getvalue()
