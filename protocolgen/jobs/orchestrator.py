"""
Protocol Job Orchestration

start() creates a job in status 'generating', hands the work to the worker
pool and returns the job id straight away. The background run is:

    aggregate -> compose -> embed blueprints -> write to blob store -> mark completed

Any failure in that sequence marks the job failed. Nothing is written to
the blob store before the document is complete, and failed jobs are never
retried.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from ..audit import record_audit_action
from ..config import ProtocolConfig
from ..errors import JobNotFound, MissingDependency, PersistFailure
from ..models import JobStatus, ProtocolJob, TaskFilters
from ..report.aggregator import DataAggregator
from ..report.composer import DocumentComposer
from ..report.embedder import BlueprintEmbedder
from ..report.protocol_pdf import generate_protocol_pdf
from ..storage.blob_store import protocol_storage_key
from ..storage.interfaces import (
    AuditLog,
    BlobStore,
    BlueprintRepo,
    OrgRepo,
    ProjectRepo,
    ProtocolRepo,
    TaskPhotoRepo,
    TaskRepo,
)
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
MAX_NAME_LENGTH = 255
AUDIT_ACTION_GENERATED = "protocol.generated"


@dataclass(frozen=True)
class GenerationParams:
    """Validated request to generate one protocol."""
    project_id: str
    organization_id: str
    requested_by: str
    name: str
    filters: TaskFilters = field(default_factory=TaskFilters)
    ip_address: Optional[str] = None


@dataclass(frozen=True)
class JobView:
    """Read model returned by get_job and list_jobs."""
    id: str
    name: str
    status: JobStatus
    created_at: datetime
    size_bytes: Optional[int] = None
    download_ref: Optional[str] = None


def build_params(
    project_id: str,
    organization_id: str,
    requester_id: str,
    name: str,
    filters: Union[TaskFilters, Mapping[str, Any], None] = None,
    ip_address: Optional[str] = None,
) -> GenerationParams:
    """
    Validate raw request values into GenerationParams.

    Raises:
        ValueError: empty/oversized name or invalid filters
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Protocol name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"Protocol name exceeds {MAX_NAME_LENGTH} characters")
    if filters is None:
        filters = TaskFilters()
    elif not isinstance(filters, TaskFilters):
        filters = TaskFilters.model_validate(dict(filters))
    return GenerationParams(
        project_id=project_id,
        organization_id=organization_id,
        requested_by=requester_id,
        name=name,
        filters=filters,
        ip_address=ip_address,
    )


class ProtocolJobOrchestrator:
    """Runs protocol generation jobs in the background."""

    def __init__(
        self,
        projects: ProjectRepo,
        organizations: OrgRepo,
        tasks: TaskRepo,
        photos: TaskPhotoRepo,
        blueprints: BlueprintRepo,
        blob_store: BlobStore,
        protocols: ProtocolRepo,
        audit_log: Optional[AuditLog] = None,
        config: Optional[ProtocolConfig] = None,
        pool: Optional[WorkerPool] = None,
        composer: Optional[DocumentComposer] = None,
        embedder: Optional[BlueprintEmbedder] = None,
    ):
        self.config = config or ProtocolConfig()
        self.organizations = organizations
        self.blob_store = blob_store
        self.protocols = protocols
        self.audit_log = audit_log
        self.pool = pool or WorkerPool(self.config.max_workers, self.config.max_pending)
        self.composer = composer or DocumentComposer()
        self.embedder = embedder or BlueprintEmbedder()
        self.aggregator = DataAggregator(
            projects=projects,
            organizations=organizations,
            tasks=tasks,
            photos=photos,
            blueprints=blueprints,
            blob_store=blob_store,
            task_cap=self.config.task_cap,
            read_workers=self.config.read_workers,
        )
        self._handles: Dict[str, Future] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def start_generation(
        self,
        project_id: str,
        organization_id: str,
        requester_id: str,
        name: str,
        filters: Union[TaskFilters, Mapping[str, Any], None] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        """Validate the request and start a job. Returns the job id."""
        params = build_params(project_id, organization_id, requester_id, name, filters, ip_address)
        return self.start(params)

    def start(self, params: GenerationParams) -> str:
        """
        Create the job record and schedule generation.

        Raises:
            QueueFull: the worker pool has no free slot; no job is created
        """
        reservation = self.pool.reserve()
        try:
            job_id = self.protocols.create(
                project_id=params.project_id,
                organization_id=params.organization_id,
                name=params.name,
                filters=params.filters,
                requested_by=params.requested_by,
            )
        except Exception:
            reservation.release()
            raise

        future = reservation.submit(self._run, job_id, params)
        with self._lock:
            self._handles[job_id] = future
        future.add_done_callback(lambda _f: self._forget(job_id))
        logger.info(f"Protocol job {job_id} queued for project {params.project_id}")
        return job_id

    def handle(self, job_id: str) -> Future:
        """
        Future resolving to the finished ProtocolJob.

        Handles are only held while a job runs. For a job that already
        finished, an already-resolved future is built from the job record.
        """
        with self._lock:
            future = self._handles.get(job_id)
        if future is not None:
            return future

        job = self.protocols.get(job_id)
        if job is None or job.status is JobStatus.GENERATING:
            raise JobNotFound(job_id)
        future = Future()
        future.set_result(job)
        return future

    def wait(self, job_id: str, timeout: Optional[float] = None) -> ProtocolJob:
        return self.handle(job_id).result(timeout=timeout)

    @property
    def running_jobs(self) -> int:
        with self._lock:
            return len(self._handles)

    def get_job(
        self,
        job_id: str,
        organization_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> JobView:
        """
        Look up one job.

        When organization_id or project_id is given, a job belonging to a
        different organization or project is reported as not found.

        Raises:
            JobNotFound: unknown job, or job outside the given scope
        """
        job = self.protocols.get(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if organization_id is not None and job.organization_id != organization_id:
            raise JobNotFound(job_id)
        if project_id is not None and job.project_id != project_id:
            raise JobNotFound(job_id)
        return self._view(job)

    def list_jobs(self, project_id: str, organization_id: str) -> List[JobView]:
        """All protocol jobs of a project, newest first."""
        return [self._view(job) for job in self.protocols.list_by_project(project_id, organization_id)]

    def shutdown(self, wait: bool = True):
        self.pool.shutdown(wait=wait)

    # =========================================================================
    # BACKGROUND RUN
    # =========================================================================

    def _run(self, job_id: str, params: GenerationParams) -> Optional[ProtocolJob]:
        try:
            data = self.aggregator.aggregate(
                params.project_id,
                params.organization_id,
                params.filters,
                requested_by=params.requested_by,
            )
            document = generate_protocol_pdf(data, self.composer, self.embedder)

            key = protocol_storage_key(params.organization_id, params.project_id, job_id, params.name)
            try:
                self.blob_store.write(key, document.pdf_bytes, PDF_CONTENT_TYPE)
            except Exception as e:
                raise PersistFailure(f"Failed to store protocol {job_id}: {e}") from e

            self.protocols.mark_completed(job_id, key, document.size_bytes)
        except MissingDependency as e:
            logger.warning(f"Protocol job {job_id} failed: {e}")
            return self._mark_failed(job_id)
        except Exception:
            logger.exception(f"Protocol job {job_id} failed")
            return self._mark_failed(job_id)

        self._track_storage(params.organization_id, document.size_bytes)
        record_audit_action(self.audit_log, AUDIT_ACTION_GENERATED, {
            "organization_id": params.organization_id,
            "user_id": params.requested_by,
            "resource_type": "protocol",
            "resource_id": job_id,
            "project_id": params.project_id,
            "task_count": len(data.tasks),
            "ip_address": params.ip_address,
        })
        logger.info(
            f"Protocol {job_id} generated: project={params.project_id} "
            f"tasks={len(data.tasks)} pages={document.page_count} size={document.size_bytes}"
        )
        return self.protocols.get(job_id)

    def _view(self, job: ProtocolJob) -> JobView:
        download_ref = None
        if job.status is JobStatus.COMPLETED:
            download_ref = self.blob_store.download_ref(job.storage_key)
        return JobView(
            id=job.id,
            name=job.name,
            status=job.status,
            created_at=job.created_at,
            size_bytes=job.size_bytes,
            download_ref=download_ref,
        )

    def _forget(self, job_id: str):
        with self._lock:
            self._handles.pop(job_id, None)

    def _mark_failed(self, job_id: str) -> Optional[ProtocolJob]:
        try:
            return self.protocols.mark_failed(job_id)
        except Exception as e:
            logger.error(f"Could not mark protocol job {job_id} as failed: {e}")
            return self.protocols.get(job_id)

    def _track_storage(self, organization_id: str, size_bytes: int):
        try:
            self.organizations.increment_storage_used(organization_id, size_bytes)
        except Exception as e:
            logger.warning(f"Failed to track storage usage for {organization_id}: {e}")
