"""
Project bundle loader.

A bundle is a YAML file describing one organization, one project, its tasks
and the photo/blueprint files that belong to them. Paths are relative to the
bundle file. Loading copies the files into a blob store and fills in-memory
repositories, which is all the orchestrator needs to generate a protocol.

Example:

    organization: {id: org-1, name: Acme Construction}
    project:
      id: proj-1
      name: Riverside Apartments
      address: 12 River Rd
    blueprints:
      - {id: bp-1, name: Ground Floor, file: plans/ground.pdf}
    tasks:
      - id: t-1
        task_number: 1
        title: Fix outlet
        status: open
        blueprint: bp-1
        annotation: {x: 0.1, y: 0.2, width: 0.1, height: 0.05, page: 1}
        photos:
          - {file: photos/outlet.jpg, caption: Before}
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from ..models import BlueprintRef, OrgMeta, PhotoRef, ProjectMeta, TaskSnapshot
from .blob_store import build_storage_key
from .repositories import (
    InMemoryBlueprintRepo,
    InMemoryOrgRepo,
    InMemoryProjectRepo,
    InMemoryProtocolRepo,
    InMemoryTaskPhotoRepo,
    InMemoryTaskRepo,
)

logger = logging.getLogger(__name__)

_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


class BundleError(ValueError):
    """Bundle file is malformed or references missing files."""


@dataclass
class ProjectBundle:
    """Repositories populated from a bundle."""
    organization: OrgMeta
    project: ProjectMeta
    projects: InMemoryProjectRepo
    organizations: InMemoryOrgRepo
    tasks: InMemoryTaskRepo
    photos: InMemoryTaskPhotoRepo
    blueprints: InMemoryBlueprintRepo
    protocols: InMemoryProtocolRepo
    task_count: int = 0
    photo_count: int = 0
    blueprint_count: int = 0


def _import_file(blob_store, base_dir: Path, rel_path: str, key: str) -> None:
    path = base_dir / rel_path
    if not path.is_file():
        raise BundleError(f"Bundle references missing file: {rel_path}")
    content_type = _CONTENT_TYPES.get(path.suffix.lower(), "application/octet-stream")
    blob_store.write(key, path.read_bytes(), content_type)


def _require(entry: Any, key: str, what: str) -> Any:
    if not isinstance(entry, dict):
        raise BundleError(f"{what} entry must be a mapping, got {entry!r}")
    if entry.get(key) in (None, ""):
        raise BundleError(f"{what} entry is missing '{key}': {entry!r}")
    return entry[key]


def load_bundle(bundle_path: Path, blob_store) -> ProjectBundle:
    """
    Load a project bundle into in-memory repositories.

    Args:
        bundle_path: Path to the bundle YAML
        blob_store: Blob store receiving photo and blueprint bytes

    Returns:
        ProjectBundle
    """
    bundle_path = Path(bundle_path)
    base_dir = bundle_path.parent

    with open(bundle_path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise BundleError(f"Bundle {bundle_path} must contain a mapping")

    try:
        org = OrgMeta(**data["organization"])
        project = ProjectMeta(organization_id=org.id, **data["project"])
    except KeyError as e:
        raise BundleError(f"Bundle is missing section: {e.args[0]}") from None
    except (TypeError, ValidationError) as e:
        raise BundleError(f"Invalid organization/project: {e}") from None

    bundle = ProjectBundle(
        organization=org,
        project=project,
        projects=InMemoryProjectRepo([project]),
        organizations=InMemoryOrgRepo([org]),
        tasks=InMemoryTaskRepo(),
        photos=InMemoryTaskPhotoRepo(),
        blueprints=InMemoryBlueprintRepo(),
        protocols=InMemoryProtocolRepo(),
    )

    for entry in data.get("blueprints") or []:
        blueprint_id = _require(entry, "id", "Blueprint")
        rel_path = _require(entry, "file", "Blueprint")
        filename = Path(rel_path).name
        key = build_storage_key("blueprints", org.id, project.id, blueprint_id, filename)
        _import_file(blob_store, base_dir, rel_path, key)
        bundle.blueprints.add(org.id, BlueprintRef(
            id=blueprint_id,
            project_id=project.id,
            name=entry.get("name") or filename,
            storage_key=key,
        ))
        bundle.blueprint_count += 1

    for entry in data.get("tasks") or []:
        bundle.task_count += 1
        _load_task(bundle, blob_store, base_dir, entry)

    logger.info(
        f"Loaded bundle {bundle_path}: {bundle.task_count} tasks, "
        f"{bundle.photo_count} photos, {bundle.blueprint_count} blueprints"
    )
    return bundle


def _load_task(bundle: ProjectBundle, blob_store, base_dir: Path, entry: Dict[str, Any]) -> None:
    org_id = bundle.organization.id
    if not isinstance(entry, dict):
        raise BundleError(f"Task entry must be a mapping, got {entry!r}")
    entry = dict(entry)
    photos = entry.pop("photos", None) or []
    blueprint_id = entry.pop("blueprint", None)

    try:
        task = TaskSnapshot(
            photo_count=len(photos),
            blueprint_id=blueprint_id,
            **entry,
        )
    except (TypeError, ValidationError) as e:
        raise BundleError(f"Invalid task {entry.get('id', '?')}: {e}") from None

    for i, photo in enumerate(photos, start=1):
        rel_path = _require(photo, "file", f"Photo of task {task.id}")
        photo_id = photo.get("id") or f"{task.id}-photo-{i}"
        key = build_storage_key("photos", org_id, task.id, photo_id, Path(rel_path).name)
        _import_file(blob_store, base_dir, rel_path, key)
        bundle.photos.add(org_id, PhotoRef(
            id=photo_id,
            task_id=task.id,
            storage_key=key,
            caption=photo.get("caption"),
        ))
        bundle.photo_count += 1

    bundle.tasks.add(bundle.project.id, org_id, task)
