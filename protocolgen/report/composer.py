"""
Protocol Document Composer

Lays out the base protocol document on a reportlab canvas:
1. Cover section: title, project metadata, task stat boxes
2. Task table, paginated
3. Photo grid grouped by task, paginated
4. A single "Generated {date}" footer where the content ends

Layout uses a top-down cursor (points from the top edge) the way the
sections read; it is converted to reportlab's bottom-left origin only when
drawing.

Blueprint pages are not drawn here; the embedder splices them in after the
cover section, so compose_base reports how many pages the cover used.
"""

import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union

from PIL import Image
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas as pdf_canvas

from ..errors import CompositionFailure
from ..models import ReportData, TaskPhotoAsset, TaskSnapshot
from .styles import (
    COLORS,
    CONTENT_WIDTH,
    MARGIN,
    PAGE_BOTTOM,
    PAGE_HEIGHT,
    PAGE_WIDTH,
    STATUS_COLORS,
)

logger = logging.getLogger(__name__)

# Task table
TABLE_COLUMNS = [
    ("#", 25),
    ("Title", 160),
    ("Status", 65),
    ("Priority", 55),
    ("Trade", 80),
    ("Assigned To", 110),
]
TITLE_LIMIT = 32
TRADE_LIMIT = 15
ASSIGNEE_LIMIT = 22
HEADER_ROW_HEIGHT = 16
ROW_HEIGHT = 15
NO_TASKS_TEXT = "No tasks in this project."

# Photo grid
PHOTOS_PER_ROW = 3
PHOTO_GAP = 10
PHOTO_WIDTH = (CONTENT_WIDTH - PHOTO_GAP * (PHOTOS_PER_ROW - 1)) / PHOTOS_PER_ROW
PHOTO_HEIGHT = 100
PHOTO_ROW_PITCH = PHOTO_HEIGHT + 25
CAPTION_LIMIT = 30
IMAGE_UNAVAILABLE_TEXT = "Image unavailable"

# Stat boxes
STAT_BOX_GAP = 10
STAT_BOX_HEIGHT = 45
STAT_LABELS = [
    ("open", "Open"),
    ("in_progress", "In Progress"),
    ("completed", "Completed"),
    ("verified", "Verified"),
]

LINE_SPACING = 1.2
EMPTY_VALUE = "—"


@dataclass
class ComposedDocument:
    """Base protocol document before blueprint pages are spliced in."""
    pdf_bytes: bytes
    cover_page_count: int
    page_count: int
    unavailable_photos: int = 0


def truncate(text: str, limit: int) -> str:
    """Cut text to limit characters and append '...' when it was longer."""
    if len(text) > limit:
        return text[:limit] + "..."
    return text


def format_date(value: Optional[Union[str, date, datetime]]) -> str:
    """Format a date as 'Mar 5, 2025'; empty values become an em dash."""
    if not value:
        return EMPTY_VALUE
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    return f"{value:%b} {value.day}, {value.year}"


class _Cursor:
    """Top-down drawing cursor over a reportlab canvas."""

    def __init__(self, canvas):
        self.canvas = canvas
        self.y = MARGIN

    @property
    def page_number(self) -> int:
        return self.canvas.getPageNumber()

    def new_page(self):
        self.canvas.showPage()
        self.y = MARGIN

    def ensure_space(self, height: float):
        if self.y + height > PAGE_BOTTOM:
            self.new_page()

    def move_down(self, lines: float = 1.0, size: float = 9):
        self.y += lines * size * LINE_SPACING

    def text(self, value: str, x: float, top: float, font: str = "Helvetica", size: float = 9,
             color=COLORS["value"], width: Optional[float] = None, align: str = "left"):
        """Draw one line of text whose top edge sits at `top`."""
        c = self.canvas
        c.setFont(font, size)
        c.setFillColor(color)
        baseline = PAGE_HEIGHT - top - size * 0.8
        if align == "center" and width is not None:
            c.drawCentredString(x + width / 2, baseline, value)
        elif align == "right" and width is not None:
            c.drawRightString(x + width, baseline, value)
        else:
            c.drawString(x, baseline, value)

    def line(self, x1: float, top: float, x2: float, width: float, color):
        c = self.canvas
        c.setStrokeColor(color)
        c.setLineWidth(width)
        c.line(x1, PAGE_HEIGHT - top, x2, PAGE_HEIGHT - top)

    def paragraph(self, value: str, x: float, width: float, font: str = "Helvetica",
                  size: float = 9, color=COLORS["value"]):
        """Draw wrapped text at the cursor, breaking pages as needed."""
        for line in simpleSplit(value, font, size, width) or [""]:
            self.ensure_space(size * LINE_SPACING)
            self.text(line, x, self.y, font=font, size=size, color=color)
            self.y += size * LINE_SPACING


class DocumentComposer:
    """Builds the base protocol PDF (everything except blueprint pages)."""

    def compose_base(self, data: ReportData) -> ComposedDocument:
        """
        Compose cover section, task table, photo grid and footer.

        Returns:
            ComposedDocument with the PDF bytes and cover page count

        Raises:
            CompositionFailure: layout or drawing failed
        """
        try:
            return self._compose(data)
        except CompositionFailure:
            raise
        except Exception as e:
            raise CompositionFailure(f"Failed to compose protocol document: {e}") from e

    def _compose(self, data: ReportData) -> ComposedDocument:
        buffer = io.BytesIO()
        c = pdf_canvas.Canvas(buffer, pagesize=(PAGE_WIDTH, PAGE_HEIGHT), invariant=1)
        c.setTitle(f"Protocol - {data.project.name}")
        c.setAuthor(data.organization_name)
        cursor = _Cursor(c)

        self._draw_project_description(cursor, data)
        cover_page_count = cursor.page_number

        self._draw_tasks_table(cursor, data.tasks)

        unavailable = 0
        if data.photos:
            unavailable = self._draw_task_photos(cursor, data.tasks, data.photos)

        self._draw_footer(cursor, data.generated_at)
        page_count = cursor.page_number

        c.save()
        logger.debug(f"Composed base protocol: {page_count} pages, cover uses {cover_page_count}")
        return ComposedDocument(
            pdf_bytes=buffer.getvalue(),
            cover_page_count=cover_page_count,
            page_count=page_count,
            unavailable_photos=unavailable,
        )

    # =========================================================================
    # COVER SECTION
    # =========================================================================

    def _draw_project_description(self, cursor: _Cursor, data: ReportData):
        project = data.project

        cursor.text("Project Protocol", MARGIN, cursor.y, font="Helvetica-Bold", size=18,
                    color=COLORS["heading"])
        cursor.move_down(1.3, 18)
        cursor.line(MARGIN, cursor.y, MARGIN + CONTENT_WIDTH, 2, COLORS["border_dark"])
        cursor.move_down(0.8, 18)

        cursor.text(project.name, MARGIN, cursor.y, font="Helvetica-Bold", size=14,
                    color=COLORS["heading"])
        cursor.move_down(1.2, 14)
        cursor.text(data.organization_name, MARGIN, cursor.y, size=9, color=COLORS["label"])
        cursor.move_down(1.6, 9)

        fields = []
        if project.address:
            fields.append(("Address", project.address))
        fields.append(("Status", project.status.replace("_", " ").capitalize()))
        fields.append(("Start Date", format_date(project.start_date)))
        fields.append(("Target Completion", format_date(project.target_completion_date)))
        if project.responsible_user_name:
            fields.append(("Responsible", project.responsible_user_name))
        fields.append(("Tasks", data.filter_summary))

        value_x = MARGIN + 120
        value_width = CONTENT_WIDTH - 120
        for label, value in fields:
            cursor.ensure_space(9 * LINE_SPACING)
            cursor.text(label, MARGIN, cursor.y, font="Helvetica-Bold", size=9, color=COLORS["label"])
            cursor.paragraph(value, value_x, value_width, size=9, color=COLORS["value"])
            cursor.y += 2

        if project.description:
            cursor.move_down(0.5, 9)
            cursor.ensure_space(9 * LINE_SPACING)
            cursor.text("Description", MARGIN, cursor.y, font="Helvetica-Bold", size=9,
                        color=COLORS["label"])
            cursor.move_down(1, 9)
            cursor.paragraph(project.description, MARGIN, CONTENT_WIDTH, size=9, color=COLORS["body"])

        cursor.move_down(1, 9)
        self._draw_stat_boxes(cursor, data.status_counts())
        cursor.move_down(1.5, 9)

    def _draw_stat_boxes(self, cursor: _Cursor, counts: Dict[str, int]):
        cursor.ensure_space(STAT_BOX_HEIGHT)
        c = cursor.canvas
        box_width = (CONTENT_WIDTH - STAT_BOX_GAP * 3) / 4
        top = cursor.y

        for i, (status, label) in enumerate(STAT_LABELS):
            pair = STATUS_COLORS[status]
            x = MARGIN + i * (box_width + STAT_BOX_GAP)

            c.setFillColor(HexColor(pair.background))
            c.roundRect(x, PAGE_HEIGHT - top - STAT_BOX_HEIGHT, box_width, STAT_BOX_HEIGHT, 4,
                        stroke=0, fill=1)

            text_color = HexColor(pair.text)
            cursor.text(str(counts.get(status, 0)), x, top + 8, font="Helvetica-Bold", size=16,
                        color=text_color, width=box_width, align="center")
            cursor.text(label, x, top + 28, size=8, color=text_color, width=box_width, align="center")

        cursor.y = top + STAT_BOX_HEIGHT

    # =========================================================================
    # TASK TABLE
    # =========================================================================

    def _draw_tasks_table(self, cursor: _Cursor, tasks: List[TaskSnapshot]):
        cursor.ensure_space(40)
        cursor.text(f"Tasks ({len(tasks)})", MARGIN, cursor.y, font="Helvetica-Bold", size=14,
                    color=COLORS["heading"])
        cursor.move_down(1.2, 14)
        cursor.line(MARGIN, cursor.y, MARGIN + CONTENT_WIDTH, 1, COLORS["border"])
        cursor.move_down(0.5, 14)

        if not tasks:
            cursor.text(NO_TASKS_TEXT, MARGIN, cursor.y, size=9, color=COLORS["label"])
            cursor.move_down(1, 9)
            return

        table_width = sum(width for _, width in TABLE_COLUMNS)
        self._draw_table_row(cursor, [name for name, _ in TABLE_COLUMNS], font="Helvetica-Bold",
                             color=COLORS["body"])
        cursor.y += HEADER_ROW_HEIGHT
        cursor.line(MARGIN, cursor.y - 3, MARGIN + table_width, 0.5, COLORS["border"])

        for task in tasks:
            if cursor.y > PAGE_BOTTOM:
                cursor.new_page()
            self._draw_table_row(cursor, task_row(task), font="Helvetica", color=COLORS["heading"])
            cursor.y += ROW_HEIGHT
            cursor.line(MARGIN, cursor.y - 2, MARGIN + table_width, 0.25, COLORS["row_rule"])

        cursor.y += 10

    def _draw_table_row(self, cursor: _Cursor, cells: Sequence[str], font: str, color):
        x = MARGIN
        for cell, (_, width) in zip(cells, TABLE_COLUMNS):
            cursor.text(cell, x, cursor.y, font=font, size=8, color=color)
            x += width

    # =========================================================================
    # PHOTO GRID
    # =========================================================================

    def _draw_task_photos(self, cursor: _Cursor, tasks: List[TaskSnapshot],
                          photos: List[TaskPhotoAsset]) -> int:
        cursor.new_page()
        cursor.text("Task Photos", MARGIN, cursor.y, font="Helvetica-Bold", size=14,
                    color=COLORS["heading"])
        cursor.move_down(1.2, 14)
        cursor.line(MARGIN, cursor.y, MARGIN + CONTENT_WIDTH, 1, COLORS["border"])
        cursor.move_down(0.8, 14)

        task_map = {task.id: task for task in tasks}
        photos_by_task: Dict[str, List[TaskPhotoAsset]] = {}
        for photo in photos:
            photos_by_task.setdefault(photo.task_id, []).append(photo)

        unavailable = 0
        for task_id, task_photos in photos_by_task.items():
            task = task_map.get(task_id)
            if task is None:
                continue

            cursor.ensure_space(PHOTO_HEIGHT + 30)
            number = f"#{task.task_number}"
            cursor.text(number, MARGIN, cursor.y, size=9, color=COLORS["muted"])
            number_width = cursor.canvas.stringWidth(number, "Helvetica", 9)
            cursor.text(f" {task.title}", MARGIN + number_width, cursor.y, font="Helvetica-Bold",
                        size=9, color=COLORS["body"])
            cursor.move_down(1.4, 9)

            for start in range(0, len(task_photos), PHOTOS_PER_ROW):
                cursor.ensure_space(PHOTO_HEIGHT)
                row = task_photos[start:start + PHOTOS_PER_ROW]
                for col, photo in enumerate(row):
                    x = MARGIN + col * (PHOTO_WIDTH + PHOTO_GAP)
                    if not self._draw_photo(cursor, photo, x, cursor.y):
                        unavailable += 1
                cursor.y += PHOTO_ROW_PITCH

            cursor.y += 10

        return unavailable

    def _draw_photo(self, cursor: _Cursor, photo: TaskPhotoAsset, x: float, top: float) -> bool:
        c = cursor.canvas
        bottom = PAGE_HEIGHT - top - PHOTO_HEIGHT
        drawn = True
        try:
            image = Image.open(io.BytesIO(photo.image_bytes))
            image.load()
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            c.drawImage(ImageReader(image), x, bottom, width=PHOTO_WIDTH, height=PHOTO_HEIGHT,
                        preserveAspectRatio=True, anchor="c")
        except Exception as e:
            logger.warning(f"Photo for task {photo.task_id} could not be decoded: {e}")
            drawn = False
            c.setStrokeColor(COLORS["border"])
            c.setLineWidth(1)
            c.rect(x, bottom, PHOTO_WIDTH, PHOTO_HEIGHT, stroke=1, fill=0)
            cursor.text(IMAGE_UNAVAILABLE_TEXT, x, top + PHOTO_HEIGHT / 2 - 5, size=7,
                        color=COLORS["muted"], width=PHOTO_WIDTH, align="center")

        if photo.caption:
            cursor.text(truncate(photo.caption, CAPTION_LIMIT), x, top + PHOTO_HEIGHT + 2, size=7,
                        color=COLORS["label"])
        return drawn

    # =========================================================================
    # FOOTER
    # =========================================================================

    def _draw_footer(self, cursor: _Cursor, generated_at: datetime):
        if cursor.y > PAGE_BOTTOM - 40:
            cursor.new_page()
        cursor.move_down(2, 9)

        footer_top = cursor.y
        cursor.line(MARGIN, footer_top, MARGIN + CONTENT_WIDTH, 0.5, COLORS["footer_rule"])
        cursor.text(f"Generated {format_date(generated_at)}", MARGIN, footer_top + 8, size=8,
                    color=COLORS["muted"], width=CONTENT_WIDTH, align="center")
        cursor.y = footer_top + 18


def task_row(task: TaskSnapshot) -> List[str]:
    """Table cells for one task, truncated to the column limits."""
    return [
        str(task.task_number),
        truncate(task.title, TITLE_LIMIT),
        task.status.replace("_", " "),
        task.priority,
        truncate(task.trade or EMPTY_VALUE, TRADE_LIMIT),
        truncate(task.assignee_name or EMPTY_VALUE, ASSIGNEE_LIMIT),
    ]
