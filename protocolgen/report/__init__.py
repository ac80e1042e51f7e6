"""
Protocol report generation: aggregation, composition and blueprint embedding.
"""

from .aggregator import DataAggregator, collect_geometry
from .composer import ComposedDocument, DocumentComposer
from .embedder import BlueprintEmbedder, EmbedResult, PageRecord
from .overlays import point_to_pdf, rect_to_pdf
from .protocol_pdf import ProtocolDocument, generate_protocol_pdf

__all__ = [
    "DataAggregator",
    "collect_geometry",
    "ComposedDocument",
    "DocumentComposer",
    "BlueprintEmbedder",
    "EmbedResult",
    "PageRecord",
    "point_to_pdf",
    "rect_to_pdf",
    "ProtocolDocument",
    "generate_protocol_pdf",
]
