"""
Blueprint Embedding

Splices blueprint pages into the base protocol document:
1. Divider pages listing every blueprint, at the insertion index
2. Every page of every blueprint, scaled to the target width, with the
   blueprint page drawn underneath and its overlay page drawn on top

Each blueprint is staged into its own document first and only spliced in
once every page of it rendered. A blueprint that fails at any point is
logged and left out entirely; the remaining blueprints still go in.

The final layout is also returned as an arena of PageRecord entries indexed
by page position. Overlays refer to 1-indexed source page numbers, never to
page objects.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from ..errors import CompositionFailure, SourceReadFailure
from ..models import BlueprintDocument
from .overlays import OverlayPage, plan_overlay_page, render_divider_pages, render_overlay_pages
from .styles import PAGE_WIDTH

logger = logging.getLogger(__name__)

PAGE_KIND_DIVIDER = "divider"
PAGE_KIND_BLUEPRINT = "blueprint"

# PyMuPDF keeps global state and is not thread-safe. Every fitz call in the
# process goes through this lock, so embeds from concurrent jobs run one at a time.
FITZ_LOCK = threading.RLock()


@dataclass
class PageRecord:
    """One inserted page of the final document."""
    index: int                      # 0-based position in the final document
    kind: str                       # divider | blueprint
    blueprint_name: Optional[str] = None
    source_page: Optional[int] = None   # 1-indexed page within the blueprint
    overlay: Optional[OverlayPage] = None

    @property
    def annotation_count(self) -> int:
        return len(self.overlay.rects) if self.overlay else 0

    @property
    def marker_count(self) -> int:
        return len(self.overlay.markers) if self.overlay else 0


@dataclass
class EmbedResult:
    """Merged document plus the layout of the pages that were inserted."""
    pdf_bytes: bytes
    page_count: int
    pages: List[PageRecord] = field(default_factory=list)
    embedded_blueprints: List[str] = field(default_factory=list)
    skipped_blueprints: List[str] = field(default_factory=list)

    def blueprint_pages(self, name: str) -> List[PageRecord]:
        return [p for p in self.pages if p.kind == PAGE_KIND_BLUEPRINT and p.blueprint_name == name]


class BlueprintEmbedder:
    """Inserts blueprint pages with task overlays into a PDF."""

    def __init__(self, target_width: float = PAGE_WIDTH):
        self.target_width = target_width

    def embed(
        self,
        base_bytes: bytes,
        blueprints: Sequence[BlueprintDocument],
        insertion_page_index: int,
    ) -> EmbedResult:
        """
        Insert the divider and all blueprint pages at insertion_page_index.

        Args:
            base_bytes: Base protocol PDF
            blueprints: Blueprints in output order
            insertion_page_index: 0-based page index for the divider page

        Returns:
            EmbedResult

        Raises:
            CompositionFailure: base document unreadable or final save failed
        """
        with FITZ_LOCK:
            return self._embed(base_bytes, blueprints, insertion_page_index)

    def _embed(
        self,
        base_bytes: bytes,
        blueprints: Sequence[BlueprintDocument],
        insertion_page_index: int,
    ) -> EmbedResult:
        try:
            out = fitz.open(stream=base_bytes, filetype="pdf")
        except Exception as e:
            raise CompositionFailure(f"Base protocol document is unreadable: {e}") from e

        with out:
            if not blueprints:
                return EmbedResult(pdf_bytes=base_bytes, page_count=out.page_count)

            result = EmbedResult(pdf_bytes=b"", page_count=0)
            index = min(max(insertion_page_index, 0), out.page_count)

            before = out.page_count
            try:
                self._insert_pdf(out, render_divider_pages([bp.name for bp in blueprints]), index)
            except Exception as e:
                raise CompositionFailure(f"Failed to insert blueprint divider page: {e}") from e
            divider_pages = out.page_count - before
            for offset in range(divider_pages):
                result.pages.append(PageRecord(index=index + offset, kind=PAGE_KIND_DIVIDER))
            index += divider_pages

            for blueprint in blueprints:
                before = out.page_count
                try:
                    staged_bytes, overlay_pages = self._stage_blueprint(blueprint)
                    self._insert_pdf(out, staged_bytes, index)
                except Exception as e:
                    added = out.page_count - before
                    if added > 0:
                        out.delete_pages(index, index + added - 1)
                    logger.warning(f"Failed to embed blueprint {blueprint.name!r} in protocol PDF: {e}")
                    result.skipped_blueprints.append(blueprint.name)
                    continue

                for page_number, overlay in enumerate(overlay_pages, start=1):
                    result.pages.append(PageRecord(
                        index=index + page_number - 1,
                        kind=PAGE_KIND_BLUEPRINT,
                        blueprint_name=blueprint.name,
                        source_page=page_number,
                        overlay=overlay,
                    ))
                index += len(overlay_pages)
                result.embedded_blueprints.append(blueprint.name)

            try:
                result.pdf_bytes = out.tobytes(garbage=3, deflate=True)
            except Exception as e:
                raise CompositionFailure(f"Failed to save merged protocol document: {e}") from e
            result.page_count = out.page_count

        logger.info(
            f"Embedded {len(result.embedded_blueprints)} blueprints "
            f"({len(result.pages) - divider_pages} pages), skipped {len(result.skipped_blueprints)}"
        )
        return result

    def _stage_blueprint(self, blueprint: BlueprintDocument) -> Tuple[bytes, List[OverlayPage]]:
        """Render every page of one blueprint into a standalone PDF."""
        with fitz.open(stream=blueprint.source_bytes, filetype="pdf") as src:
            if src.page_count == 0:
                raise SourceReadFailure(f"Blueprint {blueprint.name!r} has no pages")

            overlay_pages = []
            for pno in range(src.page_count):
                source_rect = src[pno].rect
                if source_rect.width <= 0 or source_rect.height <= 0:
                    raise SourceReadFailure(f"Page {pno + 1} of {blueprint.name!r} has no area")
                scale = self.target_width / source_rect.width
                overlay_pages.append(plan_overlay_page(
                    blueprint,
                    page_number=pno + 1,
                    page_width=self.target_width,
                    page_height=source_rect.height * scale,
                ))

            with fitz.open(stream=render_overlay_pages(overlay_pages), filetype="pdf") as overlay_doc, \
                    fitz.open() as staged:
                for pno, overlay in enumerate(overlay_pages):
                    page = staged.new_page(width=overlay.width, height=overlay.height)
                    # blank source pages have no content stream to show
                    if src[pno].get_contents():
                        page.show_pdf_page(page.rect, src, pno, keep_proportion=False)
                    page.show_pdf_page(page.rect, overlay_doc, pno, keep_proportion=False)
                staged_bytes = staged.tobytes(garbage=3, deflate=True)

        return staged_bytes, overlay_pages

    @staticmethod
    def _insert_pdf(out, pdf_bytes: bytes, index: int):
        with fitz.open(stream=pdf_bytes, filetype="pdf") as doc:
            start_at = index if index < out.page_count else -1
            out.insert_pdf(doc, start_at=start_at)
