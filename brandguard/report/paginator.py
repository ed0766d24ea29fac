from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, TypeVar, Union

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit

from brandguard.report.blocks import (
    ActionListBlock,
    Block,
    CategoryScoresBlock,
    IssueBlock,
    MetadataBlock,
    ReportDocument,
    ScoreBlock,
    SummaryBlock,
    TitleBlock,
    ViolationTableBlock,
)
from brandguard.report.evidence import EvidenceImage, Fallback
from brandguard.report.geometry import Rect, fit_within, map_box


VIOLATION_MARKER = 'VIOLATION'

COLOR_ACCENT = '#4F46E5'
COLOR_TEXT = '#000000'
COLOR_MUTED = '#646464'
COLOR_FAINT = '#969696'
COLOR_PASS = '#16A34A'
COLOR_FAIL = '#DC2626'
COLOR_PANEL = '#F3F4F6'
COLOR_TABLE_HEAD = '#E5E7EB'
COLOR_RULE = '#E5E7EB'
COLOR_OVERLAY = '#DC2626'
COLOR_LABEL_TEXT = '#FFFFFF'

_FONT_VARIANTS: dict[str, tuple[str, str, str]] = {
    'helvetica': ('Helvetica', 'Helvetica-Bold', 'Helvetica-Oblique'),
    'times-roman': ('Times-Roman', 'Times-Bold', 'Times-Italic'),
    'times': ('Times-Roman', 'Times-Bold', 'Times-Italic'),
    'courier': ('Courier', 'Courier-Bold', 'Courier-Oblique'),
}


@dataclass(frozen=True)
class TextOp:
    x: float
    baseline: float
    text: str
    font: str
    size: float
    color: str = COLOR_TEXT


@dataclass(frozen=True)
class RectOp:
    rect: Rect
    fill: str | None = None
    stroke: str | None = None
    line_width: float = 1.0


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    color: str = COLOR_RULE
    line_width: float = 0.5


@dataclass(frozen=True)
class ImageOp:
    rect: Rect
    image: EvidenceImage


@dataclass(frozen=True)
class OverlayOp:
    rect: Rect
    label_rect: Rect
    label: str = VIOLATION_MARKER
    color: str = COLOR_OVERLAY
    line_width: float = 1.0
    label_font_size: float = 6.0


DrawOp = Union[TextOp, RectOp, LineOp, ImageOp, OverlayOp]
OpT = TypeVar('OpT')


@dataclass
class RenderedPage:
    number: int
    ops: list[DrawOp] = field(default_factory=list)
    issue_id: str | None = None

    def ops_of(self, kind: type[OpT]) -> list[OpT]:
        return [op for op in self.ops if isinstance(op, kind)]

    def text(self) -> str:
        return '\n'.join(op.text for op in self.ops_of(TextOp))


@dataclass(frozen=True)
class Margins:
    top: float
    right: float
    bottom: float
    left: float

    @classmethod
    def uniform(cls, value: float) -> 'Margins':
        return cls(top=value, right=value, bottom=value, left=value)


@dataclass(frozen=True)
class LayoutStyle:
    page_width: float = A4[0]
    page_height: float = A4[1]
    margins: Margins = Margins.uniform(20 * mm)
    font_name: str = 'Helvetica'
    title_font_size: float = 26
    body_font_size: float = 11
    evidence_frame_width: float = 120 * mm
    evidence_frame_height: float = 80 * mm

    @property
    def fonts(self) -> tuple[str, str, str]:
        variants = _FONT_VARIANTS.get(self.font_name.strip().lower())
        if variants is None:
            return (self.font_name, self.font_name, self.font_name)
        return variants

    @property
    def regular(self) -> str:
        return self.fonts[0]

    @property
    def bold(self) -> str:
        return self.fonts[1]

    @property
    def italic(self) -> str:
        return self.fonts[2]


def leading_for(size: float) -> float:
    return round(size * 1.45, 2)


class Paginator:
    """Layout cursor over a sequence of fixed-size pages.

    Coordinates are points with a top-left origin. ``cursor_y`` is the top of
    the next free line on the current page.
    """

    def __init__(self, page_width: float, page_height: float, margins: Margins):
        self.page_width = page_width
        self.page_height = page_height
        self.margins = margins
        self.pages: list[RenderedPage] = []
        self.cursor_y = margins.top

    @property
    def current_page(self) -> RenderedPage:
        if not self.pages:
            return self.new_page()
        return self.pages[-1]

    @property
    def left(self) -> float:
        return self.margins.left

    @property
    def right(self) -> float:
        return self.page_width - self.margins.right

    @property
    def content_width(self) -> float:
        return self.right - self.left

    @property
    def content_bottom(self) -> float:
        return self.page_height - self.margins.bottom

    @property
    def content_height(self) -> float:
        return self.content_bottom - self.margins.top

    def new_page(self, *, issue_id: str | None = None) -> RenderedPage:
        page = RenderedPage(number=len(self.pages) + 1, issue_id=issue_id)
        self.pages.append(page)
        self.cursor_y = self.margins.top
        return page

    def remaining(self) -> float:
        return self.content_bottom - self.cursor_y

    def fits(self, height: float) -> bool:
        return height <= self.remaining()

    def ensure_space(self, height: float) -> bool:
        """Start a new page unless ``height`` fits below the cursor. Returns True on a break."""
        if self.fits(height):
            return False
        page = self.current_page
        self.new_page(issue_id=page.issue_id)
        return True

    def advance(self, dy: float) -> None:
        self.cursor_y += dy

    def draw(self, op: DrawOp) -> None:
        self.current_page.ops.append(op)

    @staticmethod
    def wrap(text: str, font: str, size: float, width: float) -> list[str]:
        lines: list[str] = []
        for paragraph in str(text or '').splitlines() or ['']:
            wrapped = simpleSplit(paragraph, font, size, width)
            lines.extend(wrapped or [''])
        return lines

    def measure(self, text: str, font: str, size: float, *, width: float | None = None) -> float:
        lines = self.wrap(text, font, size, width if width is not None else self.content_width)
        return len(lines) * leading_for(size)

    def write_lines(
        self,
        lines: Iterable[str],
        *,
        font: str,
        size: float,
        color: str = COLOR_TEXT,
        x: float | None = None,
    ) -> None:
        leading = leading_for(size)
        left = self.left if x is None else x
        for line in lines:
            self.ensure_space(leading)
            self.draw(TextOp(x=left, baseline=self.cursor_y + size, text=line, font=font, size=size, color=color))
            self.advance(leading)

    def write_text(
        self,
        text: str,
        *,
        font: str,
        size: float,
        color: str = COLOR_TEXT,
        x: float | None = None,
        width: float | None = None,
    ) -> None:
        left = self.left if x is None else x
        avail = width if width is not None else self.right - left
        self.write_lines(self.wrap(text, font, size, avail), font=font, size=size, color=color, x=left)


class DocumentLayout:
    """Lays a ``ReportDocument`` out into pages using the fixed report policy."""

    SECTION_GAP = 10 * mm
    TABLE_ROW_HEIGHT = 10 * mm
    SCORE_BOX_HEIGHT = 30 * mm
    LABEL_TAG_WIDTH = 30 * mm
    LABEL_TAG_HEIGHT = 4 * mm

    def __init__(self, style: LayoutStyle):
        self.style = style
        self.paginator = Paginator(style.page_width, style.page_height, style.margins)

    def run(self, document: ReportDocument) -> list[RenderedPage]:
        self.paginator.new_page()
        for block in document.summary_blocks:
            self._layout_block(block)
        for issue_block in document.issue_blocks:
            self._layout_issue(issue_block)
        return self.paginator.pages

    def _layout_block(self, block: Block) -> None:
        if isinstance(block, TitleBlock):
            self._title(block)
        elif isinstance(block, MetadataBlock):
            self._metadata(block)
        elif isinstance(block, ScoreBlock):
            self._score(block)
        elif isinstance(block, SummaryBlock):
            self._summary(block)
        elif isinstance(block, ViolationTableBlock):
            self._violations(block)
        elif isinstance(block, CategoryScoresBlock):
            self._category_scores(block)
        elif isinstance(block, ActionListBlock):
            self._actions(block)
        else:
            raise TypeError(f'unsupported block: {type(block).__name__}')

    def _heading_height(self) -> float:
        return leading_for(14) + 2 * mm

    def _heading(self, text: str) -> None:
        p = self.paginator
        p.write_text(text, font=self.style.bold, size=14)
        p.advance(2 * mm)

    def _title(self, block: TitleBlock) -> None:
        p = self.paginator
        p.write_text(block.title, font=self.style.bold, size=self.style.title_font_size, color=COLOR_ACCENT)
        p.advance(4 * mm)

    def _metadata(self, block: MetadataBlock) -> None:
        p = self.paginator
        size = 12
        row_height = 7 * mm
        column_x = p.left + p.content_width / 2
        pairs = [block.rows[i:i + 2] for i in range(0, len(block.rows), 2)]
        for pair in pairs:
            p.ensure_space(row_height)
            for index, (label, value) in enumerate(pair):
                x = p.left if index == 0 else column_x
                p.draw(
                    TextOp(
                        x=x,
                        baseline=p.cursor_y + size,
                        text=f'{label}: {value}',
                        font=self.style.regular,
                        size=size,
                        color=COLOR_MUTED,
                    )
                )
            p.advance(row_height)
        p.advance(5 * mm)

    def _score(self, block: ScoreBlock) -> None:
        p = self.paginator
        p.ensure_space(self.SCORE_BOX_HEIGHT + self.SECTION_GAP)
        top = p.cursor_y
        p.draw(RectOp(rect=Rect(p.left, top, p.content_width, self.SCORE_BOX_HEIGHT), fill=COLOR_PANEL))
        p.draw(TextOp(x=p.left + 10 * mm, baseline=top + 12 * mm, text='Overall Score', font=self.style.regular, size=14))
        p.draw(
            TextOp(
                x=p.left + 10 * mm,
                baseline=top + 24 * mm,
                text=f'{block.score}/100',
                font=self.style.bold,
                size=22,
                color=COLOR_PASS if block.passed else COLOR_FAIL,
            )
        )
        p.draw(
            TextOp(
                x=p.left + 80 * mm,
                baseline=top + 20 * mm,
                text=f'Decision: {block.decision.value.upper()}',
                font=self.style.regular,
                size=12,
                color='#3C3C3C',
            )
        )
        p.advance(self.SCORE_BOX_HEIGHT + self.SECTION_GAP)

    def _summary(self, block: SummaryBlock) -> None:
        p = self.paginator
        size = self.style.body_font_size
        body_height = p.measure(block.text, self.style.regular, size)
        needed = self._heading_height() + body_height
        if needed <= p.content_height:
            p.ensure_space(needed)
        else:
            p.ensure_space(self._heading_height() + leading_for(size))
        self._heading(block.heading)
        p.write_text(block.text, font=self.style.regular, size=size)
        p.advance(self.SECTION_GAP)

    def _table_header(self) -> None:
        p = self.paginator
        top = p.cursor_y
        p.draw(RectOp(rect=Rect(p.left, top, p.content_width, self.TABLE_ROW_HEIGHT), fill=COLOR_TABLE_HEAD))
        for label, offset in (('SEVERITY', 5 * mm), ('CATEGORY', 40 * mm), ('ISSUE', 80 * mm)):
            p.draw(TextOp(x=p.left + offset, baseline=top + 7 * mm, text=label, font=self.style.bold, size=10))
        p.advance(self.TABLE_ROW_HEIGHT)

    def _violations(self, block: ViolationTableBlock) -> None:
        p = self.paginator
        first_row = self.TABLE_ROW_HEIGHT if block.rows else leading_for(10)
        p.ensure_space(self._heading_height() + self.TABLE_ROW_HEIGHT + first_row)
        self._heading(block.heading)
        if not block.rows:
            p.write_text('No violations found.', font=self.style.italic, size=10, color=COLOR_MUTED)
            p.advance(self.SECTION_GAP)
            return
        self._table_header()
        for row in block.rows:
            if p.ensure_space(self.TABLE_ROW_HEIGHT):
                self._table_header()
            top = p.cursor_y
            baseline = top + 7 * mm
            p.draw(TextOp(x=p.left + 5 * mm, baseline=baseline, text=row.severity, font=self.style.regular, size=10))
            p.draw(TextOp(x=p.left + 40 * mm, baseline=baseline, text=row.category, font=self.style.regular, size=10))
            p.draw(TextOp(x=p.left + 80 * mm, baseline=baseline, text=row.title, font=self.style.regular, size=10))
            p.draw(LineOp(x1=p.left, y1=top + self.TABLE_ROW_HEIGHT, x2=p.right, y2=top + self.TABLE_ROW_HEIGHT))
            p.advance(self.TABLE_ROW_HEIGHT)
        p.advance(self.SECTION_GAP)

    def _category_scores(self, block: CategoryScoresBlock) -> None:
        p = self.paginator
        size = 10
        indent = p.left + 5 * mm
        first = block.rows[0]
        p.ensure_space(self._heading_height() + leading_for(size) + p.measure(first.notes, self.style.regular, size))
        self._heading(block.heading)
        for row in block.rows:
            note_lines = p.wrap(row.notes, self.style.italic, size, p.right - indent) if row.notes else []
            p.ensure_space(leading_for(size) * (1 + len(note_lines)))
            p.write_lines([f'{row.category}: {row.score:g}'], font=self.style.bold, size=size)
            if note_lines:
                p.write_lines(note_lines, font=self.style.italic, size=size, color=COLOR_MUTED, x=indent)
        p.advance(self.SECTION_GAP)

    def _actions(self, block: ActionListBlock) -> None:
        p = self.paginator
        size = 10
        p.ensure_space(self._heading_height() + leading_for(size))
        self._heading(block.heading)
        for action in block.actions:
            text = f'{action.priority}. {action.action}'
            if action.related_issue_ids:
                text += f" (issues: {', '.join(action.related_issue_ids)})"
            lines = p.wrap(text, self.style.regular, size, p.content_width)
            p.ensure_space(len(lines) * leading_for(size))
            p.write_lines(lines, font=self.style.regular, size=size)
        p.advance(self.SECTION_GAP)

    def _layout_issue(self, block: IssueBlock) -> None:
        p = self.paginator
        style = self.style
        p.new_page(issue_id=block.issue.issue_id)

        p.write_text(block.header, font=style.bold, size=16, color=COLOR_ACCENT)
        p.advance(2 * mm)
        p.write_text(block.meta_line, font=style.regular, size=10, color=COLOR_MUTED)
        p.advance(6 * mm)

        p.write_text(block.issue.description, font=style.regular, size=style.body_font_size)
        p.advance(5 * mm)

        if block.recommendation_line:
            p.write_text(block.recommendation_line, font=style.italic, size=style.body_font_size, color=COLOR_PASS)
            details = block.issue.recommendation.details if block.issue.recommendation else ''
            if details:
                p.write_text(details, font=style.italic, size=10, color=COLOR_MUTED)
            p.advance(5 * mm)

        self._evidence(block)

    def _evidence(self, block: IssueBlock) -> None:
        p = self.paginator
        resolution = block.resolution
        if isinstance(resolution, Fallback):
            p.advance(4 * mm)
            p.write_text(resolution.message, font=self.style.italic, size=10, color=COLOR_FAINT)
            return

        frame_width = min(self.style.evidence_frame_width, p.content_width)
        frame_height = min(self.style.evidence_frame_height, p.content_height - self.LABEL_TAG_HEIGHT - 6 * mm)
        p.advance(self.LABEL_TAG_HEIGHT + 2 * mm)
        p.ensure_space(frame_height + leading_for(8))
        frame = Rect(p.left, p.cursor_y, frame_width, frame_height)
        placed = fit_within(frame, resolution.width, resolution.height)
        p.draw(ImageOp(rect=placed, image=resolution))

        coordinates = block.issue.evidence.coordinates if block.issue.evidence else None
        if coordinates is not None:
            overlay = map_box(coordinates, placed)
            p.draw(
                OverlayOp(
                    rect=overlay,
                    label_rect=Rect(overlay.x, overlay.y - self.LABEL_TAG_HEIGHT, self.LABEL_TAG_WIDTH, self.LABEL_TAG_HEIGHT),
                )
            )
        p.advance(placed.height + 2 * mm)
        if resolution.captured_at_seconds is not None:
            caption = f'Frame captured at {resolution.captured_at_seconds:.1f}s ({block.time_label})'
            p.write_text(caption, font=self.style.italic, size=8, color=COLOR_MUTED)


def layout_document(document: ReportDocument, style: LayoutStyle | None = None) -> list[RenderedPage]:
    return DocumentLayout(style or LayoutStyle()).run(document)
