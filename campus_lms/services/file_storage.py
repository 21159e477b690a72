"""File storage collaborator used for assignment attachments and submission files.

Two backends: a directory on local disk and a remote object store reached over
HTTP. Both raise :class:`ServiceError` on failure; callers decide whether that
is fatal (uploads) or best-effort (deletes, see :func:`release_files`).
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol

import httpx

from campus_lms.core.config import Settings
from campus_lms.core.errors import ServiceError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class StoredFile:
    url: str
    size: int


@dataclass(frozen=True)
class Upload:
    """Raw bytes received from a client, not yet in storage."""

    filename: str
    data: bytes
    content_type: str | None = None

    @property
    def name(self) -> str:
        return self.filename

    @property
    def size(self) -> int:
        return len(self.data)


class FileStorage(Protocol):
    def upload(self, data: bytes, *, folder: str, filename: str) -> StoredFile: ...

    def delete(self, url: str) -> None: ...


def _safe_name(filename: str) -> str:
    name = _UNSAFE_CHARS.sub("_", Path(filename or "file").name).strip("._")
    return f"{uuid.uuid4().hex[:12]}_{name or 'file'}"


class LocalFileStorage:
    def __init__(self, root: str | Path, public_url: str = "/files"):
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")

    def _path_for(self, url: str) -> Path:
        prefix = f"{self.public_url}/"
        if not url.startswith(prefix):
            raise ServiceError(f"File {url} is not managed by local storage", url=url)
        path = (self.root / url[len(prefix):]).resolve()
        if self.root.resolve() not in path.parents:
            raise ServiceError(f"File {url} is outside the storage root", url=url)
        return path

    def upload(self, data: bytes, *, folder: str, filename: str) -> StoredFile:
        key = f"{folder.strip('/')}/{_safe_name(filename)}"
        target = self.root / key
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise ServiceError(f"Could not store {filename}: {e}", filename=filename) from e

        logger.info("Stored %s (%d bytes) at %s", filename, len(data), target)
        return StoredFile(url=f"{self.public_url}/{key}", size=len(data))

    def delete(self, url: str) -> None:
        path = self._path_for(url)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ServiceError(f"Could not delete {url}: {e}", url=url) from e


class HttpFileStorage:
    """Remote object store: ``POST {base}/{folder}`` with a multipart file, ``DELETE <url>``.

    The store answers uploads with ``{"url": ..., "size": ...}``.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                response = self._client.request(method, url, timeout=self.timeout, **kwargs)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"File storage returned {e.response.status_code} for {method} {url}",
                status=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise ServiceError(f"File storage unreachable: {e}", url=url) from e

    def upload(self, data: bytes, *, folder: str, filename: str) -> StoredFile:
        response = self._request(
            "POST",
            f"{self.base_url}/{folder.strip('/')}",
            files={"file": (filename, data)},
        )
        try:
            body = response.json()
            return StoredFile(url=body["url"], size=int(body.get("size", len(data))))
        except (ValueError, KeyError, TypeError) as e:
            raise ServiceError(f"File storage sent an unexpected upload response: {e}") from e

    def delete(self, url: str) -> None:
        target = url if url.startswith(("http://", "https://")) else f"{self.base_url}/{url.lstrip('/')}"
        self._request("DELETE", target)


def release_files(storage: FileStorage, urls: Iterable[str]) -> list[str]:
    """Best-effort delete; returns the urls that could not be removed."""
    failed: list[str] = []
    for url in urls:
        try:
            storage.delete(url)
        except ServiceError as e:
            logger.warning("Could not release file %s: %s", url, e.message)
            failed.append(url)
    return failed


def build_file_storage(settings: Settings) -> FileStorage:
    if settings.FILE_STORAGE_BACKEND == "http":
        if not settings.FILE_STORAGE_URL:
            raise ValueError("FILE_STORAGE_URL is required when FILE_STORAGE_BACKEND=http")
        return HttpFileStorage(settings.FILE_STORAGE_URL, timeout=settings.FILE_STORAGE_TIMEOUT_SECONDS)
    return LocalFileStorage(settings.FILE_STORAGE_ROOT, public_url=settings.FILE_STORAGE_PUBLIC_URL)
