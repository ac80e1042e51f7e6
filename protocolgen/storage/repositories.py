"""
In-memory repositories.

Thread-safe stand-ins for the persistence layer. The protocol repository
enforces the job state machine: generating -> completed | failed, nothing
else.
"""

import logging
import threading
import uuid
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from ..errors import InvalidJobTransition, JobNotFound
from ..models import (
    BlueprintRef,
    JobStatus,
    OrgMeta,
    PhotoRef,
    ProjectMeta,
    ProtocolJob,
    TaskFilters,
    TaskSnapshot,
)
from ..models.protocol_schema import utcnow

logger = logging.getLogger(__name__)


class InMemoryProjectRepo:
    def __init__(self, projects: Iterable[ProjectMeta] = ()):
        self._lock = threading.Lock()
        self._projects: Dict[str, ProjectMeta] = {p.id: p for p in projects}

    def add(self, project: ProjectMeta) -> None:
        with self._lock:
            self._projects[project.id] = project

    def delete(self, project_id: str) -> None:
        with self._lock:
            self._projects.pop(project_id, None)

    def get(self, project_id: str, organization_id: str) -> Optional[ProjectMeta]:
        with self._lock:
            project = self._projects.get(project_id)
        if project is None or project.organization_id != organization_id:
            return None
        return project


class InMemoryOrgRepo:
    def __init__(self, organizations: Iterable[OrgMeta] = ()):
        self._lock = threading.Lock()
        self._orgs: Dict[str, OrgMeta] = {o.id: o for o in organizations}

    def add(self, org: OrgMeta) -> None:
        with self._lock:
            self._orgs[org.id] = org

    def get(self, organization_id: str) -> Optional[OrgMeta]:
        with self._lock:
            return self._orgs.get(organization_id)

    def increment_storage_used(self, organization_id: str, size_bytes: int) -> None:
        with self._lock:
            org = self._orgs.get(organization_id)
            if org is None:
                return
            self._orgs[organization_id] = org.model_copy(
                update={"storage_used_bytes": org.storage_used_bytes + size_bytes}
            )


class InMemoryTaskRepo:
    """Tasks keyed by project. Query results are ordered by task number."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, List[TaskSnapshot]] = defaultdict(list)
        self._project_orgs: Dict[str, str] = {}

    def add(self, project_id: str, organization_id: str, task: TaskSnapshot) -> None:
        with self._lock:
            self._project_orgs[project_id] = organization_id
            self._tasks[project_id].append(task)

    def query(
        self,
        project_id: str,
        organization_id: str,
        filters: TaskFilters,
        cap: int,
    ) -> List[TaskSnapshot]:
        with self._lock:
            if self._project_orgs.get(project_id) != organization_id:
                return []
            tasks = [t for t in self._tasks[project_id] if filters.matches(t)]
        tasks.sort(key=lambda t: t.task_number)
        return tasks[:cap]


class InMemoryTaskPhotoRepo:
    def __init__(self):
        self._lock = threading.Lock()
        self._photos: Dict[str, List[PhotoRef]] = defaultdict(list)
        self._task_orgs: Dict[str, str] = {}

    def add(self, organization_id: str, photo: PhotoRef) -> None:
        with self._lock:
            self._task_orgs[photo.task_id] = organization_id
            self._photos[photo.task_id].append(photo)

    def list_by_task(self, task_id: str, organization_id: str) -> List[PhotoRef]:
        with self._lock:
            if self._task_orgs.get(task_id) != organization_id:
                return []
            return list(self._photos[task_id])


class InMemoryBlueprintRepo:
    def __init__(self):
        self._lock = threading.Lock()
        self._blueprints: Dict[str, List[BlueprintRef]] = defaultdict(list)
        self._project_orgs: Dict[str, str] = {}

    def add(self, organization_id: str, blueprint: BlueprintRef) -> None:
        with self._lock:
            self._project_orgs[blueprint.project_id] = organization_id
            self._blueprints[blueprint.project_id].append(blueprint)

    def list_by_project(self, project_id: str, organization_id: str) -> List[BlueprintRef]:
        with self._lock:
            if self._project_orgs.get(project_id) != organization_id:
                return []
            return list(self._blueprints[project_id])


class InMemoryProtocolRepo:
    """Protocol job records with a one-way state machine."""

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, ProtocolJob] = {}

    def create(
        self,
        project_id: str,
        organization_id: str,
        name: str,
        filters: TaskFilters,
        requested_by: str,
    ) -> str:
        job = ProtocolJob(
            id=str(uuid.uuid4()),
            project_id=project_id,
            organization_id=organization_id,
            name=name,
            filters=filters,
            requested_by=requested_by,
        )
        with self._lock:
            self._jobs[job.id] = job
        return job.id

    def get(self, job_id: str) -> Optional[ProtocolJob]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_by_project(self, project_id: str, organization_id: str) -> List[ProtocolJob]:
        """Jobs of one project, newest first. Ties keep the newer insertion first."""
        with self._lock:
            jobs = [
                j for j in self._jobs.values()
                if j.project_id == project_id and j.organization_id == organization_id
            ]
        return sorted(reversed(jobs), key=lambda j: j.created_at, reverse=True)

    def all_jobs(self) -> List[ProtocolJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def _finish(self, job_id: str, status: JobStatus, **fields) -> ProtocolJob:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFound(job_id)
            if job.status.is_terminal:
                raise InvalidJobTransition(
                    f"Job {job_id} is already {job.status.value}, cannot become {status.value}"
                )
            data = job.model_dump()
            data.update(status=status, finished_at=utcnow(), **fields)
            finished = ProtocolJob.model_validate(data)
            self._jobs[job_id] = finished
        logger.debug(f"Protocol job {job_id} -> {status.value}")
        return finished

    def mark_completed(self, job_id: str, storage_key: str, size_bytes: int) -> ProtocolJob:
        return self._finish(job_id, JobStatus.COMPLETED, storage_key=storage_key, size_bytes=size_bytes)

    def mark_failed(self, job_id: str) -> ProtocolJob:
        return self._finish(job_id, JobStatus.FAILED)
