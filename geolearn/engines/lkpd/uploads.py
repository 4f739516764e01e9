"""
Artifact uploads for LKPD stages.

Files are checked here (kind, stage, extension, size) and then handed to
an ArtifactUploader. The workflow only ever stores the returned
reference; it never inspects file contents.

Objects are stored at {owner_id}/{project_id}/stage{N}/{kind}_{millis}.{ext}.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel

from geolearn.engines.errors import InvalidArtifact
from geolearn.logging_config import get_logger
from geolearn.schemas.lkpd import ArtifactKind

logger = get_logger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = (1.0, 2.0, 4.0)  # seconds

# Which stage accepts which kind of artifact
ARTIFACT_STAGES: Dict[ArtifactKind, int] = {
    ArtifactKind.SKETCH: 2,
    ArtifactKind.STL: 4,
    ArtifactKind.RESULT_PHOTO: 5,
}

MAX_IMAGES_PER_STAGE = 3
_MB = 1024 * 1024


@dataclass
class ArtifactFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""


class UploadResult(BaseModel):
    url: str
    path: str
    size: int


@dataclass(frozen=True)
class UploadLimits:
    max_stl_size_mb: int = 50
    max_image_size_mb: int = 5


def validate_artifact(
    stage: int,
    kind: ArtifactKind,
    file: ArtifactFile,
    limits: UploadLimits = UploadLimits(),
) -> None:
    """Raise InvalidArtifact if `file` may not be attached to `stage` as `kind`."""
    expected_stage = ARTIFACT_STAGES[kind]
    if stage != expected_stage:
        raise InvalidArtifact(f"{kind.value} files belong to stage {expected_stage}, not stage {stage}")
    if file.size == 0:
        raise InvalidArtifact("File is empty")

    if kind == ArtifactKind.STL:
        if file.extension != "stl":
            raise InvalidArtifact("File must be an STL file")
        max_bytes = limits.max_stl_size_mb * _MB
    else:
        if not file.content_type.lower().startswith("image/"):
            raise InvalidArtifact("File must be an image")
        max_bytes = limits.max_image_size_mb * _MB

    if file.size > max_bytes:
        raise InvalidArtifact(
            f"File size must be less than {max_bytes // _MB}MB (got {file.size / _MB:.2f}MB)"
        )


def object_path(owner_id: str, project_id: str, stage: int, kind: ArtifactKind, file: ArtifactFile) -> str:
    stamp = int(time.time() * 1000)
    name = f"{kind.value}_{stamp}.{file.extension}" if file.extension else f"{kind.value}_{stamp}"
    return f"{owner_id}/{project_id}/stage{stage}/{name}"


class ArtifactUploader(ABC):
    """Collaborator interface: store bytes, return a reference."""

    @abstractmethod
    async def upload_artifact(
        self,
        owner_id: str,
        project_id: str,
        stage: int,
        file: ArtifactFile,
        kind: ArtifactKind,
    ) -> UploadResult:
        ...


async def _request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Retry 5xx responses and connection timeouts with exponential backoff."""
    last_exc = None
    for attempt in range(MAX_RETRIES):
        try:
            response = await client.request(method, url, **kwargs)
            if response.status_code >= 500 and attempt < MAX_RETRIES - 1:
                await asyncio.sleep(RETRY_BACKOFF[attempt])
                continue
            return response
        except (httpx.TimeoutException, httpx.ConnectError) as e:
            last_exc = e
            if attempt < MAX_RETRIES - 1:
                await asyncio.sleep(RETRY_BACKOFF[attempt])
    raise last_exc


class HttpArtifactUploader(ArtifactUploader):
    """
    Uploads to an object-storage REST endpoint.

    POST {base_url}/object/{bucket}/{path}; the public URL is
    {base_url}/object/public/{bucket}/{path}.
    """

    def __init__(
        self,
        base_url: str,
        bucket: str,
        api_key: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def upload_artifact(
        self,
        owner_id: str,
        project_id: str,
        stage: int,
        file: ArtifactFile,
        kind: ArtifactKind,
    ) -> UploadResult:
        path = object_path(owner_id, project_id, stage, kind, file)
        headers = {"Content-Type": file.content_type, "x-upsert": "false"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await _request_with_retry(
                client,
                "POST",
                f"{self.base_url}/object/{self.bucket}/{path}",
                content=file.data,
                headers=headers,
            )
        if response.status_code >= 400:
            logger.error(
                "Artifact upload failed",
                extra={"status_code": response.status_code, "path": path},
            )
            response.raise_for_status()

        return UploadResult(
            url=f"{self.base_url}/object/public/{self.bucket}/{path}",
            path=path,
            size=file.size,
        )
