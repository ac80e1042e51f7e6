"""
Data model for protocol generation.
"""

from .protocol_schema import (
    Annotation,
    AnnotationGeometry,
    BlueprintDocument,
    BlueprintRef,
    JobStatus,
    Marker,
    MarkerGroup,
    OrgMeta,
    PhotoRef,
    ProjectMeta,
    ProtocolJob,
    ReportData,
    TaskFilters,
    TaskPhotoAsset,
    TaskPriority,
    TaskSnapshot,
    TaskStatus,
)

__all__ = [
    "Annotation",
    "AnnotationGeometry",
    "BlueprintDocument",
    "BlueprintRef",
    "JobStatus",
    "Marker",
    "MarkerGroup",
    "OrgMeta",
    "PhotoRef",
    "ProjectMeta",
    "ProtocolJob",
    "ReportData",
    "TaskFilters",
    "TaskPhotoAsset",
    "TaskPriority",
    "TaskSnapshot",
    "TaskStatus",
]
