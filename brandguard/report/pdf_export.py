from __future__ import annotations

import io
import logging
from datetime import datetime

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from brandguard.errors import SerializationError
from brandguard.report.blocks import format_generated_at
from brandguard.report.paginator import (
    ImageOp,
    LayoutStyle,
    LineOp,
    OverlayOp,
    RectOp,
    RenderedPage,
    TextOp,
)


logger = logging.getLogger(__name__)


def _safe_canvas_font(canvas: Canvas, font_name: str, size: float) -> None:
    for candidate in (str(font_name or '').strip(), 'Helvetica'):
        if not candidate:
            continue
        try:
            canvas.setFont(candidate, size)
            return
        except Exception:
            continue


class _PdfPainter:
    """Draws layout ops (top-left origin) onto a reportlab canvas (bottom-left origin)."""

    def __init__(self, canvas: Canvas, page_height: float):
        self.canvas = canvas
        self.page_height = page_height

    def _y(self, top: float) -> float:
        return self.page_height - top

    def text(self, op: TextOp) -> None:
        self.canvas.setFillColor(colors.HexColor(op.color))
        _safe_canvas_font(self.canvas, op.font, op.size)
        self.canvas.drawString(op.x, self._y(op.baseline), op.text)

    def rect(self, op: RectOp) -> None:
        r = op.rect
        if op.fill:
            self.canvas.setFillColor(colors.HexColor(op.fill))
        if op.stroke:
            self.canvas.setStrokeColor(colors.HexColor(op.stroke))
            self.canvas.setLineWidth(op.line_width)
        self.canvas.rect(
            r.x,
            self._y(r.y + r.height),
            r.width,
            r.height,
            stroke=1 if op.stroke else 0,
            fill=1 if op.fill else 0,
        )

    def line(self, op: LineOp) -> None:
        self.canvas.setStrokeColor(colors.HexColor(op.color))
        self.canvas.setLineWidth(op.line_width)
        self.canvas.line(op.x1, self._y(op.y1), op.x2, self._y(op.y2))

    def image(self, op: ImageOp) -> None:
        r = op.rect
        reader = ImageReader(io.BytesIO(op.image.data))
        self.canvas.drawImage(reader, r.x, self._y(r.y + r.height), width=r.width, height=r.height)

    def overlay(self, op: OverlayOp, *, font: str) -> None:
        r = op.rect
        self.canvas.setStrokeColor(colors.HexColor(op.color))
        self.canvas.setLineWidth(op.line_width)
        self.canvas.rect(r.x, self._y(r.y + r.height), r.width, r.height, stroke=1, fill=0)

        tag = op.label_rect
        self.canvas.setFillColor(colors.HexColor(op.color))
        self.canvas.rect(tag.x, self._y(tag.y + tag.height), tag.width, tag.height, stroke=0, fill=1)
        self.canvas.setFillColor(colors.white)
        _safe_canvas_font(self.canvas, font, op.label_font_size)
        self.canvas.drawString(tag.x + 1 * mm, self._y(tag.y + tag.height - 1 * mm), op.label)

    def page(self, page: RenderedPage, *, label_font: str) -> None:
        for op in page.ops:
            self.canvas.saveState()
            try:
                if isinstance(op, TextOp):
                    self.text(op)
                elif isinstance(op, RectOp):
                    self.rect(op)
                elif isinstance(op, LineOp):
                    self.line(op)
                elif isinstance(op, ImageOp):
                    self.image(op)
                elif isinstance(op, OverlayOp):
                    self.overlay(op, font=label_font)
            finally:
                self.canvas.restoreState()


def _draw_footer(
    canvas: Canvas,
    style: LayoutStyle,
    *,
    product_name: str,
    submission_id: str,
    page_number: int,
    page_count: int,
) -> None:
    canvas.saveState()
    footer_y = 8.5 * mm
    right_x = style.page_width - style.margins.right
    canvas.setStrokeColor(colors.HexColor('#D1D5DB'))
    canvas.setLineWidth(0.7)
    canvas.line(style.margins.left, 13.5 * mm, right_x, 13.5 * mm)
    canvas.setFillColor(colors.HexColor('#6B7280'))
    _safe_canvas_font(canvas, style.regular, 7.8)
    canvas.drawString(style.margins.left, footer_y, f'Generated by {product_name} · Submission {submission_id}')
    canvas.drawRightString(right_x, footer_y, f'Page {page_number} of {page_count}')
    canvas.restoreState()


def render_pdf(
    pages: list[RenderedPage],
    *,
    style: LayoutStyle,
    title: str,
    product_name: str,
    submission_id: str,
    generated_at: datetime,
) -> bytes:
    """Serialize laid-out pages. Output depends only on its inputs (``invariant`` canvas)."""
    buffer = io.BytesIO()
    try:
        canvas = Canvas(buffer, pagesize=(style.page_width, style.page_height), invariant=1)
        canvas.setTitle(title)
        canvas.setAuthor(product_name)
        canvas.setSubject(f'Compliance report for submission {submission_id}')
        canvas.setCreator(product_name)
        canvas.setProducer(product_name)
        canvas.setKeywords(f'generated:{format_generated_at(generated_at)}')

        painter = _PdfPainter(canvas, style.page_height)
        for page in pages:
            painter.page(page, label_font=style.bold)
            _draw_footer(
                canvas,
                style,
                product_name=product_name,
                submission_id=submission_id,
                page_number=page.number,
                page_count=len(pages),
            )
            canvas.showPage()
        canvas.save()
    except Exception as exc:
        logger.error('PDF serialization failed for submission %s: %s', submission_id, exc)
        raise SerializationError(f'failed to serialize PDF report: {type(exc).__name__}: {exc}') from exc
    return buffer.getvalue()
