"""
Shared page geometry and colours for protocol documents.
"""

from dataclasses import dataclass

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 50
CONTENT_WIDTH = PAGE_WIDTH - MARGIN * 2
PAGE_BOTTOM = 790  # measured from the top edge

COLORS = {
    "heading": HexColor("#111827"),
    "label": HexColor("#6b7280"),
    "value": HexColor("#111827"),
    "muted": HexColor("#9ca3af"),
    "border": HexColor("#d1d5db"),
    "border_dark": HexColor("#111827"),
    "body": HexColor("#374151"),
    "row_rule": HexColor("#f3f4f6"),
    "footer_rule": HexColor("#e5e7eb"),
}


@dataclass(frozen=True)
class StatusColors:
    """Background/text colour pair for a task status."""
    background: str
    text: str


STATUS_COLORS = {
    "open": StatusColors(background="#fef2f2", text="#b91c1c"),
    "in_progress": StatusColors(background="#fefce8", text="#a16207"),
    "completed": StatusColors(background="#f0fdf4", text="#15803d"),
    "verified": StatusColors(background="#eff6ff", text="#1d4ed8"),
}

NEUTRAL_STATUS_COLORS = StatusColors(background="#f3f4f6", text="#6b7280")

# Markers are reference points, not status carriers: always this blue.
MARKER_BLUE = "#3b82f6"


def status_colors(status: str) -> StatusColors:
    """Colour pair for a task status; unknown statuses get neutral grey."""
    return STATUS_COLORS.get(status, NEUTRAL_STATUS_COLORS)
