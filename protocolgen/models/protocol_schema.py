"""
Protocol Schema
Pydantic models for protocol generation input and job records.

Geometry is normalized: every coordinate and extent is a fraction in [0, 1]
of the target page, measured from the top-left corner. Pages are 1-indexed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class TaskStatus(str, Enum):
    """Task workflow status."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VERIFIED = "verified"


class TaskPriority(str, Enum):
    """Task priority."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class JobStatus(str, Enum):
    """Protocol job status. GENERATING is initial, the others terminal."""
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.GENERATING


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# FILTERS
# =============================================================================

class TaskFilters(BaseModel):
    """
    Task selection criteria for a protocol.

    All fields optional; an empty filter selects every task of the project.

    dateFrom/dateTo are accepted from request payloads and kept on the job
    record, but do not narrow the task selection.
    """
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    status: Optional[TaskStatus] = None
    trade: Optional[str] = None
    priority: Optional[TaskPriority] = None
    date_from: Optional[str] = Field(default=None, alias="dateFrom")
    date_to: Optional[str] = Field(default=None, alias="dateTo")

    @field_validator("trade", mode="before")
    @classmethod
    def _normalize_trade(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def is_empty(self) -> bool:
        return self.status is None and self.trade is None and self.priority is None

    def summary(self) -> str:
        """Human readable filter line, e.g. 'Status: open, Trade: Electrical'."""
        parts = []
        if self.status is not None:
            parts.append(f"Status: {self.status.value}")
        if self.trade is not None:
            parts.append(f"Trade: {self.trade}")
        if self.priority is not None:
            parts.append(f"Priority: {self.priority.value}")
        return ", ".join(parts) if parts else "All tasks"

    def matches(self, task: "TaskSnapshot") -> bool:
        if self.status is not None and task.status != self.status.value:
            return False
        if self.trade is not None and task.trade != self.trade:
            return False
        if self.priority is not None and task.priority != self.priority.value:
            return False
        return True


# =============================================================================
# GEOMETRY
# =============================================================================

class Annotation(BaseModel):
    """Status-coloured rectangle anchored on one blueprint page."""
    model_config = ConfigDict(frozen=True)

    task_number: int
    status: str
    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)
    page: int = Field(ge=1, description="1-indexed page number")


class Marker(BaseModel):
    """Point reference on one blueprint page."""
    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    page: int = Field(ge=1, description="1-indexed page number")


class MarkerGroup(BaseModel):
    """Ordered markers belonging to one task."""
    model_config = ConfigDict(frozen=True)

    task_number: int
    markers: List[Marker] = Field(default_factory=list)


class AnnotationGeometry(BaseModel):
    """Rectangle geometry stored on a task, without task identity."""
    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)
    page: int = Field(ge=1)


# =============================================================================
# SOURCE RECORDS
# =============================================================================

class TaskSnapshot(BaseModel):
    """A task as it appears in a protocol."""
    model_config = ConfigDict(frozen=True)

    id: str
    task_number: int = Field(ge=1)
    title: str
    status: str
    priority: str = TaskPriority.NORMAL.value
    trade: Optional[str] = None
    assignee_name: Optional[str] = None
    photo_count: int = Field(default=0, ge=0)
    blueprint_id: Optional[str] = None
    annotation: Optional[AnnotationGeometry] = None
    markers: Optional[List[Marker]] = None

    def to_annotation(self) -> Optional[Annotation]:
        if self.annotation is None:
            return None
        return Annotation(
            task_number=self.task_number,
            status=self.status,
            **self.annotation.model_dump(),
        )

    def to_marker_group(self) -> Optional[MarkerGroup]:
        if not self.markers:
            return None
        return MarkerGroup(task_number=self.task_number, markers=list(self.markers))


class ProjectMeta(BaseModel):
    """Project metadata shown on the cover section."""
    id: str
    organization_id: str
    name: str
    status: str = "active"
    address: Optional[str] = None
    start_date: Optional[str] = None
    target_completion_date: Optional[str] = None
    description: Optional[str] = None
    responsible_user_name: Optional[str] = None


class OrgMeta(BaseModel):
    """Organization metadata."""
    id: str
    name: str
    storage_used_bytes: int = Field(default=0, ge=0)


class PhotoRef(BaseModel):
    """Pointer to a stored task photo."""
    id: str
    task_id: str
    storage_key: str
    caption: Optional[str] = None


class BlueprintRef(BaseModel):
    """Pointer to a stored blueprint document."""
    id: str
    project_id: str
    name: str
    storage_key: str


class ProtocolJob(BaseModel):
    """
    Protocol generation job record.

    storage_key and size_bytes are set exactly when status is COMPLETED.
    """
    id: str
    project_id: str
    organization_id: str
    name: str
    filters: TaskFilters = Field(default_factory=TaskFilters)
    status: JobStatus = JobStatus.GENERATING
    storage_key: Optional[str] = None
    size_bytes: Optional[int] = Field(default=None, ge=0)
    requested_by: str
    created_at: datetime = Field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_completion_fields(self):
        completed = self.status is JobStatus.COMPLETED
        has_output = self.storage_key is not None and self.size_bytes is not None
        if completed != has_output:
            raise ValueError("storage_key and size_bytes must be set iff status is completed")
        return self


# =============================================================================
# PIPELINE CONTAINERS
# =============================================================================

@dataclass
class TaskPhotoAsset:
    """Photo bytes attached to a task."""
    task_id: str
    image_bytes: bytes
    caption: Optional[str] = None


@dataclass
class BlueprintDocument:
    """Blueprint source document with the overlays that target it."""
    name: str
    source_bytes: bytes
    annotations: List[Annotation] = field(default_factory=list)
    markers: Optional[List[MarkerGroup]] = None


@dataclass
class ReportData:
    """Everything the composer and embedder need for one protocol."""
    organization_name: str
    project: ProjectMeta
    generated_at: datetime
    requested_by: str
    filter_summary: str
    tasks: List[TaskSnapshot] = field(default_factory=list)
    photos: List[TaskPhotoAsset] = field(default_factory=list)
    blueprints: List[BlueprintDocument] = field(default_factory=list)

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in self.tasks:
            if task.status in counts:
                counts[task.status] += 1
        return counts
