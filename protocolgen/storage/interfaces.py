"""
Collaborator interfaces consumed by the protocol pipeline.

Persistence, blob storage and auditing live outside this package; anything
implementing these protocols can be plugged into the aggregator and the
orchestrator.
"""

from typing import Any, Dict, List, Optional, Protocol

from ..models import (
    BlueprintRef,
    OrgMeta,
    PhotoRef,
    ProjectMeta,
    ProtocolJob,
    TaskFilters,
    TaskSnapshot,
)


class ProjectRepo(Protocol):
    def get(self, project_id: str, organization_id: str) -> Optional[ProjectMeta]: ...


class OrgRepo(Protocol):
    def get(self, organization_id: str) -> Optional[OrgMeta]: ...

    def increment_storage_used(self, organization_id: str, size_bytes: int) -> None: ...


class TaskRepo(Protocol):
    def query(
        self,
        project_id: str,
        organization_id: str,
        filters: TaskFilters,
        cap: int,
    ) -> List[TaskSnapshot]: ...


class TaskPhotoRepo(Protocol):
    def list_by_task(self, task_id: str, organization_id: str) -> List[PhotoRef]: ...


class BlueprintRepo(Protocol):
    def list_by_project(self, project_id: str, organization_id: str) -> List[BlueprintRef]: ...


class BlobStore(Protocol):
    def read(self, key: str) -> bytes: ...

    def write(self, key: str, data: bytes, content_type: str) -> None: ...

    def download_ref(self, key: str) -> str: ...


class ProtocolRepo(Protocol):
    def create(
        self,
        project_id: str,
        organization_id: str,
        name: str,
        filters: TaskFilters,
        requested_by: str,
    ) -> str: ...

    def get(self, job_id: str) -> Optional[ProtocolJob]: ...

    def list_by_project(self, project_id: str, organization_id: str) -> List[ProtocolJob]: ...

    def mark_completed(self, job_id: str, storage_key: str, size_bytes: int) -> ProtocolJob: ...

    def mark_failed(self, job_id: str) -> ProtocolJob: ...


class AuditLog(Protocol):
    def record(self, action: str, metadata: Dict[str, Any]) -> None: ...
