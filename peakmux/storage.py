"""
Payload storage collaborators.

The multiplexer hands a finished payload (a readable binary stream positioned
at the start) to a PayloadStore after a successful run. It does not know
whether the destination is local disk or a remote object store.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

import httpx

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 64 * 1024


class PayloadStore(ABC):
    """
    Abstract base class for payload destinations.

    All stores must implement put().
    """

    @abstractmethod
    def put(self, destination: str, stream: BinaryIO) -> str:
        """
        Store a completed payload.

        Args:
            destination: Destination identifier (path or key)
            stream: Readable binary stream positioned at the start of the payload

        Returns:
            Identifier of the stored payload
        """
        ...


class LocalFileStore(PayloadStore):
    """Writes payloads to the local filesystem, optionally under a root directory."""

    def __init__(self, root: Optional[Union[str, Path]] = None) -> None:
        self.root = Path(root) if root is not None else None

    def resolve(self, destination: str) -> Path:
        path = Path(destination)
        if self.root is not None:
            path = self.root / destination.lstrip("/")
        return path

    def put(self, destination: str, stream: BinaryIO) -> str:
        path = self.resolve(destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as out:
            shutil.copyfileobj(stream, out)
        logger.info(f"[STORE] Payload written to {path}")
        return str(path)


class HttpPutStore(PayloadStore):
    """
    Uploads payloads with HTTP PUT (object stores, pre-signed URLs).

    The destination is joined onto base_url; an absolute http(s) destination
    is used as-is.
    """

    def __init__(
        self,
        base_url: str = "",
        client: Optional[httpx.Client] = None,
        timeout: float = 60.0,
        content_type: str = "application/octet-stream",
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.content_type = content_type
        self._client = client or httpx.Client(timeout=timeout)
        self._owns_client = client is None

    def url_for(self, destination: str) -> str:
        if destination.startswith(("http://", "https://")):
            return destination
        return f"{self.base_url}/{destination.lstrip('/')}"

    def put(self, destination: str, stream: BinaryIO) -> str:
        url = self.url_for(destination)
        headers = {"Content-Type": self.content_type}
        size = _remaining_size(stream)
        if size is not None:
            # Explicit length, not chunked transfer encoding
            headers["Content-Length"] = str(size)
        response = self._client.put(url, content=_iter_chunks(stream), headers=headers)
        response.raise_for_status()
        logger.info(f"[STORE] Payload uploaded to {url} (status={response.status_code})")
        return url

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


def _iter_chunks(stream: BinaryIO) -> Iterator[bytes]:
    while True:
        chunk = stream.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


def _remaining_size(stream: BinaryIO) -> Optional[int]:
    try:
        position = stream.tell()
        end = stream.seek(0, 2)
        stream.seek(position)
    except (AttributeError, OSError, ValueError):
        return None
    return end - position
