"""
Blueprint Overlays

Turns normalized task geometry into drawable overlays for one blueprint page
and renders them with reportlab.

Task geometry is stored as fractions of the page measured from the top-left
corner. PDF drawing uses points from the bottom-left corner, so every shape
goes through rect_to_pdf / point_to_pdf with the scaled page size.

Annotations are drawn in their task's status colour. Markers are always
MARKER_BLUE regardless of status.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from reportlab.lib.colors import HexColor, white
from reportlab.pdfgen import canvas as pdf_canvas

from ..models import Annotation, BlueprintDocument, Marker
from .styles import MARGIN, MARKER_BLUE, PAGE_HEIGHT, PAGE_WIDTH, StatusColors, status_colors

logger = logging.getLogger(__name__)

FILL_OPACITY = 0.125
BORDER_WIDTH = 2
BADGE_RADIUS = 11
BADGE_RING = 2
BADGE_FONT_SIZE = 9

MARKER_DOT_RADIUS = 4
MARKER_LABEL_OFFSET = (18, 18)
MARKER_LABEL_RADIUS = 12
MARKER_FONT_SIZE = 7
LEADER_OPACITY = 0.7

LABEL_STRIP_HEIGHT = 18
LABEL_STRIP_OPACITY = 0.85
LABEL_COLOR = "#6b7280"


@dataclass(frozen=True)
class PdfRect:
    """Rectangle in PDF points, origin bottom-left."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


def rect_to_pdf(annotation: Annotation, page_width: float, page_height: float) -> PdfRect:
    """Map a normalized top-left rectangle onto a bottom-left page of the given size."""
    height = annotation.height * page_height
    return PdfRect(
        x=annotation.x * page_width,
        y=page_height - annotation.y * page_height - height,
        width=annotation.width * page_width,
        height=height,
    )


def point_to_pdf(marker: Marker, page_width: float, page_height: float) -> Tuple[float, float]:
    """Map a normalized top-left point onto a bottom-left page of the given size."""
    return marker.x * page_width, page_height - marker.y * page_height


@dataclass(frozen=True)
class RectOverlay:
    """Status-coloured rectangle with a task number badge."""
    task_number: int
    status: str
    rect: PdfRect
    colors: StatusColors

    @property
    def badge_text(self) -> str:
        return str(self.task_number)


@dataclass(frozen=True)
class MarkerOverlay:
    """Point marker with a leader line to its label circle."""
    label: str
    point: Tuple[float, float]
    color: str = MARKER_BLUE

    @property
    def label_center(self) -> Tuple[float, float]:
        return self.point[0] + MARKER_LABEL_OFFSET[0], self.point[1] + MARKER_LABEL_OFFSET[1]


@dataclass
class OverlayPage:
    """Everything drawn above one embedded blueprint page."""
    width: float
    height: float
    label: str
    rects: List[RectOverlay] = field(default_factory=list)
    markers: List[MarkerOverlay] = field(default_factory=list)


def plan_overlay_page(
    blueprint: BlueprintDocument,
    page_number: int,
    page_width: float,
    page_height: float,
) -> OverlayPage:
    """
    Build the overlays for one page of a blueprint.

    Geometry targeting any other page number, including page numbers past
    the end of the document, is simply not selected.
    """
    page = OverlayPage(
        width=page_width,
        height=page_height,
        label=f"{blueprint.name} — Page {page_number}",
    )

    for annotation in blueprint.annotations:
        if annotation.page != page_number:
            continue
        page.rects.append(RectOverlay(
            task_number=annotation.task_number,
            status=annotation.status,
            rect=rect_to_pdf(annotation, page_width, page_height),
            colors=status_colors(annotation.status),
        ))

    for group in blueprint.markers or []:
        on_page = [m for m in group.markers if m.page == page_number]
        for i, marker in enumerate(on_page):
            page.markers.append(MarkerOverlay(
                label=f"{group.task_number}-{i + 1}",
                point=point_to_pdf(marker, page_width, page_height),
            ))

    return page


# =============================================================================
# RENDERING
# =============================================================================

def render_overlay_pages(pages: Sequence[OverlayPage]) -> bytes:
    """Render one transparent PDF page per OverlayPage, sized to match."""
    buffer = io.BytesIO()
    c = pdf_canvas.Canvas(buffer, invariant=1)
    for page in pages:
        c.setPageSize((page.width, page.height))
        _draw_label_strip(c, page)
        for rect in page.rects:
            _draw_rect_overlay(c, rect)
        for marker in page.markers:
            _draw_marker_overlay(c, marker)
        c.showPage()
    c.save()
    return buffer.getvalue()


def render_divider_pages(names: Sequence[str]) -> bytes:
    """
    Render the A4 section page that lists every blueprint.

    A list longer than one page continues on further pages titled
    "Blueprints (continued)", so every name is always shown.
    """
    buffer = io.BytesIO()
    c = pdf_canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT), invariant=1)

    _draw_divider_heading(c, "Blueprints")
    y = PAGE_HEIGHT - MARGIN - 50
    for name in names:
        if y < MARGIN:
            c.showPage()
            _draw_divider_heading(c, "Blueprints (continued)")
            y = PAGE_HEIGHT - MARGIN - 50
        c.drawString(MARGIN, y, name)
        y -= 18

    c.showPage()
    c.save()
    return buffer.getvalue()


def _draw_divider_heading(c, title: str):
    c.setFont("Helvetica-Bold", 18)
    c.setFillColor(HexColor("#111827"))
    c.drawString(MARGIN, PAGE_HEIGHT - MARGIN - 18, title)

    c.setStrokeColor(HexColor("#d1d5db"))
    c.setLineWidth(1)
    c.line(MARGIN, PAGE_HEIGHT - MARGIN - 26, PAGE_WIDTH - MARGIN, PAGE_HEIGHT - MARGIN - 26)

    # body font for the names that follow
    c.setFont("Helvetica", 10)
    c.setFillColor(HexColor("#3b4251"))


def _draw_label_strip(c, page: OverlayPage):
    c.saveState()
    c.setFillColor(white)
    c.setFillAlpha(LABEL_STRIP_OPACITY)
    c.rect(0, page.height - LABEL_STRIP_HEIGHT, page.width, LABEL_STRIP_HEIGHT, stroke=0, fill=1)
    c.restoreState()

    c.setFont("Helvetica", 8)
    c.setFillColor(HexColor(LABEL_COLOR))
    c.drawString(8, page.height - 13, page.label)


def _draw_rect_overlay(c, overlay: RectOverlay):
    color = HexColor(overlay.colors.text)
    r = overlay.rect

    c.saveState()
    c.setFillColor(color)
    c.setFillAlpha(FILL_OPACITY)
    c.rect(r.x, r.y, r.width, r.height, stroke=0, fill=1)
    c.restoreState()

    c.saveState()
    c.setStrokeColor(color)
    c.setStrokeAlpha(1)
    c.setLineWidth(BORDER_WIDTH)
    c.rect(r.x, r.y, r.width, r.height, stroke=1, fill=0)
    c.restoreState()

    cx, cy = r.center
    _draw_badge(c, cx, cy, BADGE_RADIUS, color, overlay.badge_text, BADGE_FONT_SIZE, 3)


def _draw_marker_overlay(c, overlay: MarkerOverlay):
    color = HexColor(overlay.color)
    mx, my = overlay.point
    lx, ly = overlay.label_center

    c.saveState()
    c.setFillColor(color)
    c.setStrokeColor(white)
    c.setLineWidth(1)
    c.circle(mx, my, MARKER_DOT_RADIUS, stroke=1, fill=1)

    c.setStrokeColor(color)
    c.setStrokeAlpha(LEADER_OPACITY)
    c.line(mx, my, lx, ly)
    c.restoreState()

    _draw_badge(c, lx, ly, MARKER_LABEL_RADIUS, color, overlay.label, MARKER_FONT_SIZE, 2.5)


def _draw_badge(c, cx: float, cy: float, radius: float, color, text: str, font_size: float,
                baseline_drop: float):
    c.saveState()
    c.setFillColor(white)
    c.circle(cx, cy, radius + BADGE_RING, stroke=0, fill=1)
    c.setFillColor(color)
    c.circle(cx, cy, radius, stroke=0, fill=1)
    c.setFillColor(white)
    c.setFont("Helvetica-Bold", font_size)
    c.drawCentredString(cx, cy - baseline_drop, text)
    c.restoreState()
