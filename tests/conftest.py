import io
import sys
from pathlib import Path

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from protocolgen.audit import RecordingAuditLog
from protocolgen.config import ProtocolConfig
from protocolgen.jobs import ProtocolJobOrchestrator
from protocolgen.models import BlueprintRef, OrgMeta, PhotoRef, ProjectMeta, TaskSnapshot
from protocolgen.report import DataAggregator
from protocolgen.storage import (
    InMemoryBlobStore,
    InMemoryBlueprintRepo,
    InMemoryOrgRepo,
    InMemoryProjectRepo,
    InMemoryProtocolRepo,
    InMemoryTaskPhotoRepo,
    InMemoryTaskRepo,
)


def make_blueprint_pdf(page_sizes=((800, 600),), label="PLAN") -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    for i, size in enumerate(page_sizes, start=1):
        c.setPageSize(size)
        c.drawString(20, 20, f"{label} {i}")
        c.showPage()
    c.save()
    return buffer.getvalue()


def make_png(color=(200, 80, 40), size=(40, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


STAT_BOX_LABELS = ("Open", "Progress", "Completed", "Verified")


def read_stat_boxes(page) -> dict:
    """Map each stat box label on a cover page to the number drawn above it."""
    words = page.get_text("words")
    numbers = [w for w in words if w[4].isdigit()]
    counts = {}
    for label in STAT_BOX_LABELS:
        label_word = min((w for w in words if w[4] == label), key=lambda w: w[1])
        centre = (label_word[0] + label_word[2]) / 2
        above = [
            w for w in numbers
            if 0 < label_word[1] - w[1] < 40 and abs((w[0] + w[2]) / 2 - centre) < 40
        ]
        closest = max(above, key=lambda w: w[1])
        counts[label] = int(closest[4])
    return counts


class ProjectEnv:
    """One organization and project wired to in-memory collaborators."""

    def __init__(self):
        self.org = OrgMeta(id="org-1", name="Acme Construction")
        self.project = ProjectMeta(
            id="proj-1",
            organization_id="org-1",
            name="Riverside Apartments",
            address="12 River Rd",
            start_date="2025-03-05",
        )
        self.projects = InMemoryProjectRepo([self.project])
        self.organizations = InMemoryOrgRepo([self.org])
        self.tasks = InMemoryTaskRepo()
        self.photos = InMemoryTaskPhotoRepo()
        self.blueprints = InMemoryBlueprintRepo()
        self.protocols = InMemoryProtocolRepo()
        self.blob_store = InMemoryBlobStore()
        self.audit_log = RecordingAuditLog()
        self._orchestrators = []

    def add_task(self, number, status="open", photos=(), **fields) -> TaskSnapshot:
        """photos: (bytes or None, caption) pairs; None leaves the blob missing."""
        task_id = f"task-{number}"
        fields.setdefault("title", f"Task {number}")
        task = TaskSnapshot(
            id=task_id,
            task_number=number,
            status=status,
            photo_count=len(photos),
            **fields,
        )
        self.tasks.add(self.project.id, self.org.id, task)
        for i, (data, caption) in enumerate(photos, start=1):
            key = f"photos/{self.org.id}/{task_id}/p{i}/photo.png"
            if data is not None:
                self.blob_store.write(key, data, "image/png")
            self.photos.add(self.org.id, PhotoRef(
                id=f"{task_id}-p{i}",
                task_id=task_id,
                storage_key=key,
                caption=caption,
            ))
        return task

    def add_blueprint(self, blueprint_id, name, data) -> BlueprintRef:
        key = f"blueprints/{self.org.id}/{self.project.id}/{blueprint_id}/plan.pdf"
        if data is not None:
            self.blob_store.write(key, data, "application/pdf")
        ref = BlueprintRef(id=blueprint_id, project_id=self.project.id, name=name, storage_key=key)
        self.blueprints.add(self.org.id, ref)
        return ref

    def aggregator(self, **kwargs) -> DataAggregator:
        return DataAggregator(
            projects=self.projects,
            organizations=self.organizations,
            tasks=self.tasks,
            photos=self.photos,
            blueprints=self.blueprints,
            blob_store=self.blob_store,
            **kwargs,
        )

    def orchestrator(self, **kwargs) -> ProtocolJobOrchestrator:
        kwargs.setdefault("blob_store", self.blob_store)
        kwargs.setdefault("audit_log", self.audit_log)
        kwargs.setdefault("config", ProtocolConfig(max_workers=1, max_pending=4))
        orchestrator = ProtocolJobOrchestrator(
            projects=self.projects,
            organizations=self.organizations,
            tasks=self.tasks,
            photos=self.photos,
            blueprints=self.blueprints,
            protocols=self.protocols,
            **kwargs,
        )
        self._orchestrators.append(orchestrator)
        return orchestrator

    def close(self):
        for orchestrator in self._orchestrators:
            orchestrator.shutdown(wait=True)


@pytest.fixture
def env():
    project_env = ProjectEnv()
    yield project_env
    project_env.close()


@pytest.fixture
def blueprint_pdf():
    return make_blueprint_pdf


@pytest.fixture
def png_bytes():
    return make_png


@pytest.fixture
def stat_boxes():
    return read_stat_boxes
