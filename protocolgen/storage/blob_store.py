"""
Blob stores for photo, blueprint and protocol bytes.

Keys follow {kind}/{org_id}/{parent_id}/{resource_id}/{filename}.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME = re.compile(r"[^a-zA-Z0-9\-_]")

KEY_KINDS = ("blueprints", "photos", "protocols")


def sanitize_filename(name: str) -> str:
    """Replace everything but letters, digits, '-' and '_' with '_'."""
    return _UNSAFE_FILENAME.sub("_", name) or "protocol"


def build_storage_key(kind: str, org_id: str, parent_id: str, resource_id: str, filename: str) -> str:
    if kind not in KEY_KINDS:
        raise ValueError(f"Unknown storage kind: {kind}")
    return f"{kind}/{org_id}/{parent_id}/{resource_id}/{filename}"


def protocol_storage_key(org_id: str, project_id: str, job_id: str, name: str) -> str:
    return build_storage_key("protocols", org_id, project_id, job_id, f"{sanitize_filename(name)}.pdf")


class LocalBlobStore:
    """Blob store backed by a directory on the local filesystem."""

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if path != self.root and self.root not in path.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def read(self, key: str) -> bytes:
        return self._path(key).read_bytes()

    def write(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".part")
        tmp_path.write_bytes(data)
        tmp_path.replace(path)
        logger.debug(f"Wrote {len(data)} bytes ({content_type}) to {key}")

    def download_ref(self, key: str) -> str:
        return self._path(key).as_uri()


class InMemoryBlobStore:
    """Blob store holding bytes in a dict. Used by tests and dry runs."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self._lock = threading.Lock()

    def read(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._blobs[key]
            except KeyError:
                raise FileNotFoundError(key) from None

    def write(self, key: str, data: bytes, content_type: str) -> None:
        with self._lock:
            self._blobs[key] = bytes(data)
            self.content_types[key] = content_type

    def download_ref(self, key: str) -> str:
        return f"memory://{key}"

    def keys(self):
        with self._lock:
            return sorted(self._blobs)
