from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from app.ceac.errors import StoreUnavailable
from app.ceac.models import ArtifactRef

LOGGER = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_segment(value: str) -> str:
    cleaned = _UNSAFE_NAME_RE.sub("_", value.strip()).strip("._")
    return cleaned or "artifact"


class LocalArtifactStore:
    """Write screenshots under the runtime directory served as static files."""

    def __init__(self, artifacts_dir: Path, *, public_prefix: str = "/runtime/artifacts") -> None:
        self.artifacts_dir = artifacts_dir
        self.public_prefix = public_prefix.rstrip("/")
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)

    def store(
        self,
        data: bytes,
        *,
        job_id: str,
        kind: str,
        filename: str,
        mime_type: str,
    ) -> ArtifactRef:
        target_dir = self.artifacts_dir / _safe_segment(job_id) / _safe_segment(kind)
        path = target_dir / _safe_segment(filename)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write artifact {path}: {exc}") from exc
        rel = path.relative_to(self.artifacts_dir)
        artifact_id = str(rel).replace(os.sep, "/")
        LOGGER.info(
            "Artifact stored (%s, %s bytes)",
            mime_type,
            len(data),
            extra={"job_id": job_id, "artifact": artifact_id},
        )
        return ArtifactRef(
            artifact_id=artifact_id,
            public_url=f"{self.public_prefix}/{artifact_id}",
        )

