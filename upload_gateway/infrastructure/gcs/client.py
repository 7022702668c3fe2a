"""
Object storage client for uploaded files.

Wraps a single Google Cloud Storage bucket with upload, download, delete
and list operations. Mock mode stores files in memory, enabling API
testing without Google credentials.

The real client never builds its own storage.Client. It asks a
StorageClientProvider for one, and the provider only hands it out after
credential resolution has completed. Any call made before that raises
NotReadyError rather than touching an uninitialized handle.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import requests
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import storage

from ...core.errors import NotFoundError, NotReadyError, UpstreamError

logger = logging.getLogger(__name__)

PUBLIC_URL_BASE = "https://storage.googleapis.com"

# Everything the SDK can raise for a failed call: API errors and exhausted
# retries, token refresh failures, and transport errors from requests.
SDK_ERRORS = (
    api_exceptions.GoogleAPIError,
    auth_exceptions.GoogleAuthError,
    requests.exceptions.RequestException,
)


@dataclass
class StorageConfig:
    """Bucket-level settings for the storage facade."""
    bucket_name: str
    make_public: bool = False
    timeout_seconds: float = 60.0


def build_public_url(bucket_name: str, filename: str) -> str:
    """
    Public-style URL for an object.

    This is a construction, not a guarantee: unless the object (or
    bucket) grants public read, fetching it will be denied.
    """
    return f"{PUBLIC_URL_BASE}/{bucket_name}/{filename}"


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Using a protocol means routes can be tested against the mock and
    the real GCS client interchangeably.
    """

    @property
    def is_ready(self) -> bool:
        """True once operations can be served."""
        ...

    async def initialize(self) -> None:
        """Acquire the underlying handle. Safe to call more than once."""
        ...

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        """Upload file and return its URL."""
        ...

    async def download(self, filename: str) -> bytes:
        """Download file contents."""
        ...

    async def delete(self, filename: str) -> None:
        """Delete a file."""
        ...

    async def list(self, prefix: Optional[str] = None) -> list[str]:
        """List filenames, optionally under a prefix."""
        ...


class StorageClientProvider:
    """
    Acquire-once holder for the storage.Client handle.

    initialize() runs the resolver at most once, even when called
    concurrently. A failed attempt leaves the provider uninitialized,
    so the error propagates and a later call may retry.
    """

    def __init__(self, resolve: Callable[[], storage.Client]) -> None:
        self._resolve = resolve
        self._client: Optional[storage.Client] = None
        self._lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    async def initialize(self) -> storage.Client:
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                # resolution does blocking network I/O
                self._client = await asyncio.to_thread(self._resolve)
        return self._client

    def get(self) -> storage.Client:
        if self._client is None:
            raise NotReadyError(
                "Storage not initialized. Call initialize() first."
            )
        return self._client


class GCSStorageClient:
    """
    Google Cloud Storage facade over one bucket.

    The SDK is synchronous, so each call runs in a worker thread to
    keep the event loop free. Every call passes an explicit timeout.
    No retries are added on top of the SDK's own.
    """

    def __init__(self, provider: StorageClientProvider, config: StorageConfig) -> None:
        self._provider = provider
        self._config = config

        if config.make_public:
            logger.warning(
                "Uploaded objects will be made publicly readable",
                extra={"bucket": config.bucket_name}
            )

    @property
    def is_ready(self) -> bool:
        return self._provider.is_ready

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    async def initialize(self) -> None:
        await self._provider.initialize()

    def _bucket(self) -> storage.Bucket:
        return self._provider.get().bucket(self._config.bucket_name)

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        """
        Upload bytes to the bucket under filename.

        Existing objects with the same name are overwritten. The
        returned URL is public-style regardless of the object's ACL.
        """
        blob = self._bucket().blob(filename)

        def _upload() -> None:
            blob.upload_from_string(
                content,
                content_type=content_type or "application/octet-stream",
                timeout=self._config.timeout_seconds,
            )
            if self._config.make_public:
                blob.make_public(timeout=self._config.timeout_seconds)

        try:
            await asyncio.to_thread(_upload)
        except SDK_ERRORS as e:
            logger.error(
                "Failed to upload file",
                extra={"object_name": filename, "error": str(e)}
            )
            raise UpstreamError(f"Upload failed: {e}")

        logger.info(
            "Uploaded file",
            extra={
                "bucket": self._config.bucket_name,
                "object_name": filename,
                "size_bytes": len(content),
            }
        )

        return build_public_url(self._config.bucket_name, filename)

    async def download(self, filename: str) -> bytes:
        """Download file contents from the bucket."""
        blob = self._bucket().blob(filename)

        try:
            return await asyncio.to_thread(
                blob.download_as_bytes,
                timeout=self._config.timeout_seconds,
            )
        except api_exceptions.NotFound:
            raise NotFoundError(f"File not found: {filename}")
        except SDK_ERRORS as e:
            logger.error(
                "Failed to download file",
                extra={"object_name": filename, "error": str(e)}
            )
            raise UpstreamError(f"Download failed: {e}")

    async def delete(self, filename: str) -> None:
        """Delete a file from the bucket."""
        blob = self._bucket().blob(filename)

        try:
            await asyncio.to_thread(
                blob.delete,
                timeout=self._config.timeout_seconds,
            )
        except api_exceptions.NotFound:
            raise NotFoundError(f"File not found: {filename}")
        except SDK_ERRORS as e:
            logger.error(
                "Failed to delete file",
                extra={"object_name": filename, "error": str(e)}
            )
            raise UpstreamError(f"Delete failed: {e}")

        logger.info("Deleted file", extra={"object_name": filename})

    async def list(self, prefix: Optional[str] = None) -> list[str]:
        """
        List filenames in the bucket.

        Not cached: every call enumerates the bucket again. Order is
        whatever the service returns.
        """
        client = self._provider.get()

        def _list() -> list[str]:
            blobs = client.list_blobs(
                self._config.bucket_name,
                prefix=prefix,
                timeout=self._config.timeout_seconds,
            )
            return [blob.name for blob in blobs]

        try:
            return await asyncio.to_thread(_list)
        except SDK_ERRORS as e:
            logger.error(
                "Failed to list files",
                extra={"prefix": prefix, "error": str(e)}
            )
            raise UpstreamError(f"List failed: {e}")


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development.

    Files live in a dict keyed by filename. URLs use the same shape as
    the real client so callers can't tell the difference.
    """

    def __init__(self, bucket_name: str = "mock-bucket") -> None:
        self._bucket_name = bucket_name
        self._files: dict[str, bytes] = {}
        logger.info("Initialized mock storage client (in-memory)")

    @property
    def is_ready(self) -> bool:
        return True

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    async def initialize(self) -> None:
        return None

    async def upload(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
    ) -> str:
        self._files[filename] = content
        logger.debug(
            "Stored file in mock storage",
            extra={"object_name": filename, "size_bytes": len(content)}
        )
        return build_public_url(self._bucket_name, filename)

    async def download(self, filename: str) -> bytes:
        if filename not in self._files:
            raise NotFoundError(f"File not found: {filename}")
        return self._files[filename]

    async def delete(self, filename: str) -> None:
        if filename not in self._files:
            raise NotFoundError(f"File not found: {filename}")
        del self._files[filename]

    async def list(self, prefix: Optional[str] = None) -> list[str]:
        return [
            name for name in self._files
            if prefix is None or name.startswith(prefix)
        ]


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    config: Optional[StorageConfig] = None,
    resolve: Optional[Callable[[], storage.Client]] = None,
    mock_mode: bool = False,
) -> StorageClient:
    """
    Create storage client based on configuration.

    Args:
        config: Bucket configuration (required if not mock_mode)
        resolve: Zero-argument callable producing a storage.Client
        mock_mode: If True, return mock client for testing

    Returns:
        StorageClient implementation (GCS or Mock). The GCS client
        still needs `await client.initialize()` before use.
    """
    if mock_mode:
        return MockStorageClient(config.bucket_name if config else "mock-bucket")

    if config is None or resolve is None:
        raise ValueError("config and resolve are required when not in mock mode")

    return GCSStorageClient(StorageClientProvider(resolve), config)
