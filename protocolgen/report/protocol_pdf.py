"""
Protocol PDF generation.

Structure of the final document:
    cover section -> blueprints (divider + annotated pages) -> rest of the
    task table -> task photos -> footer

Usage:
    from protocolgen.report import generate_protocol_pdf
    document = generate_protocol_pdf(report_data)
    Path("protocol.pdf").write_bytes(document.pdf_bytes)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..models import ReportData
from .composer import ComposedDocument, DocumentComposer
from .embedder import BlueprintEmbedder, EmbedResult

logger = logging.getLogger(__name__)


@dataclass
class ProtocolDocument:
    """Final protocol bytes with the intermediate layout results."""
    pdf_bytes: bytes
    page_count: int
    base: ComposedDocument
    embedding: Optional[EmbedResult] = None

    @property
    def size_bytes(self) -> int:
        return len(self.pdf_bytes)


def generate_protocol_pdf(
    data: ReportData,
    composer: Optional[DocumentComposer] = None,
    embedder: Optional[BlueprintEmbedder] = None,
) -> ProtocolDocument:
    """Compose the base document and splice blueprint pages after the cover section."""
    composer = composer or DocumentComposer()
    embedder = embedder or BlueprintEmbedder()

    base = composer.compose_base(data)
    if not data.blueprints:
        return ProtocolDocument(pdf_bytes=base.pdf_bytes, page_count=base.page_count, base=base)

    embedding = embedder.embed(base.pdf_bytes, data.blueprints, base.cover_page_count)
    return ProtocolDocument(
        pdf_bytes=embedding.pdf_bytes,
        page_count=embedding.page_count,
        base=base,
        embedding=embedding,
    )
