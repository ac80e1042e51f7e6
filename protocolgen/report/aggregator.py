"""
Protocol Data Aggregation

Collects everything one protocol needs from the repositories and the blob
store:
- project and organization metadata (both required)
- tasks matching the filters, capped at task_cap
- photo bytes for tasks that have photos
- blueprint bytes with the annotation/marker geometry of referencing tasks

Individual photo or blueprint read failures drop that item only. Reads fan
out over a small thread pool; results are consumed in submission order so
the report layout never depends on read timing.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from ..config import DEFAULT_TASK_CAP
from ..errors import MissingDependency, SourceReadFailure
from ..models import (
    Annotation,
    BlueprintDocument,
    BlueprintRef,
    MarkerGroup,
    PhotoRef,
    ReportData,
    TaskFilters,
    TaskPhotoAsset,
    TaskSnapshot,
)
from ..models.protocol_schema import utcnow
from ..storage.interfaces import BlobStore, BlueprintRepo, OrgRepo, ProjectRepo, TaskPhotoRepo, TaskRepo

logger = logging.getLogger(__name__)


class DataAggregator:
    """Loads and assembles ReportData for a project."""

    def __init__(
        self,
        projects: ProjectRepo,
        organizations: OrgRepo,
        tasks: TaskRepo,
        photos: TaskPhotoRepo,
        blueprints: BlueprintRepo,
        blob_store: BlobStore,
        task_cap: int = DEFAULT_TASK_CAP,
        read_workers: int = 4,
    ):
        self.projects = projects
        self.organizations = organizations
        self.tasks = tasks
        self.photos = photos
        self.blueprints = blueprints
        self.blob_store = blob_store
        self.task_cap = task_cap
        self.read_workers = max(1, read_workers)

    def aggregate(
        self,
        project_id: str,
        organization_id: str,
        filters: Optional[TaskFilters] = None,
        requested_by: str = "",
        generated_at: Optional[datetime] = None,
    ) -> ReportData:
        """
        Aggregate report data for one project.

        Raises:
            MissingDependency: project or organization does not exist
        """
        filters = filters or TaskFilters()

        project = self.projects.get(project_id, organization_id)
        if project is None:
            raise MissingDependency("project", project_id)
        org = self.organizations.get(organization_id)
        if org is None:
            raise MissingDependency("organization", organization_id)

        tasks = self.tasks.query(project_id, organization_id, filters, self.task_cap)
        if len(tasks) >= self.task_cap:
            logger.info(
                f"Task list for project {project_id} reached the cap of {self.task_cap}; "
                f"further tasks are omitted from the protocol"
            )

        with ThreadPoolExecutor(max_workers=self.read_workers, thread_name_prefix="protocol-read") as pool:
            photos = self._load_photos(pool, tasks, organization_id)
            blueprints = self._load_blueprints(pool, tasks, project_id, organization_id)

        logger.info(
            f"Aggregated project {project_id}: {len(tasks)} tasks, "
            f"{len(photos)} photos, {len(blueprints)} blueprints"
        )

        return ReportData(
            organization_name=org.name,
            project=project,
            generated_at=generated_at or utcnow(),
            requested_by=requested_by,
            filter_summary=filters.summary(),
            tasks=tasks,
            photos=photos,
            blueprints=blueprints,
        )

    # -------------------------------------------------------------------------
    # Photos
    # -------------------------------------------------------------------------

    def _list_photo_refs(self, tasks: List[TaskSnapshot], organization_id: str) -> List[PhotoRef]:
        refs: List[PhotoRef] = []
        for task in tasks:
            if task.photo_count <= 0:
                continue
            try:
                refs.extend(self.photos.list_by_task(task.id, organization_id))
            except Exception as e:
                logger.warning(f"Failed to fetch photos for task {task.id}: {e}")
        return refs

    def _load_photos(self, pool, tasks: List[TaskSnapshot], organization_id: str) -> List[TaskPhotoAsset]:
        refs = self._list_photo_refs(tasks, organization_id)
        assets = []
        for ref, image_bytes in self._read_all(pool, refs, lambda r: r.storage_key, "photo"):
            assets.append(TaskPhotoAsset(task_id=ref.task_id, image_bytes=image_bytes, caption=ref.caption))
        return assets

    # -------------------------------------------------------------------------
    # Blueprints
    # -------------------------------------------------------------------------

    def _load_blueprints(
        self,
        pool,
        tasks: List[TaskSnapshot],
        project_id: str,
        organization_id: str,
    ) -> List[BlueprintDocument]:
        refs = self.blueprints.list_by_project(project_id, organization_id)
        documents = []
        for ref, source_bytes in self._read_all(pool, refs, lambda r: r.storage_key, "blueprint"):
            annotations, markers = collect_geometry(ref, tasks)
            documents.append(BlueprintDocument(
                name=ref.name,
                source_bytes=source_bytes,
                annotations=annotations,
                markers=markers or None,
            ))
        return documents

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _read(self, key: str) -> bytes:
        try:
            return self.blob_store.read(key)
        except Exception as e:
            raise SourceReadFailure(f"{key}: {e}") from e

    def _read_all(self, pool, refs, key_of: Callable, kind: str) -> List[Tuple[object, bytes]]:
        """Read refs concurrently, returning (ref, bytes) in ref order, skipping failures."""
        futures = [(ref, pool.submit(self._read, key_of(ref))) for ref in refs]
        results = []
        for ref, future in futures:
            try:
                results.append((ref, future.result()))
            except SourceReadFailure as e:
                logger.warning(f"Failed to read {kind} {ref.id} for protocol PDF: {e}")
        return results


def collect_geometry(ref: BlueprintRef, tasks: List[TaskSnapshot]) -> Tuple[List[Annotation], List[MarkerGroup]]:
    """Annotations and marker groups of tasks referencing a blueprint."""
    annotations = []
    markers = []
    for task in tasks:
        if task.blueprint_id != ref.id:
            continue
        annotation = task.to_annotation()
        if annotation is not None:
            annotations.append(annotation)
        group = task.to_marker_group()
        if group is not None:
            markers.append(group)
    return annotations, markers
