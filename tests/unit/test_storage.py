"""
Unit tests for the storage facade.

GCSStorageClient runs against a small in-memory stand-in for
google.cloud.storage.Client that raises the same api_core exceptions
the real SDK does, so error translation is tested for real.
"""

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
import requests
from google.api_core import exceptions as api_exceptions
from google.auth import exceptions as auth_exceptions

from upload_gateway.core.errors import (
    AuthenticationError,
    NotFoundError,
    NotReadyError,
    UpstreamError,
)
from upload_gateway.infrastructure.gcs.client import (
    GCSStorageClient,
    MockStorageClient,
    StorageClientProvider,
    StorageConfig,
    create_storage_client,
)


class FakeBlob:
    def __init__(self, client: "FakeGoogleClient", name: str) -> None:
        self._client = client
        self.name = name

    def upload_from_string(self, data, content_type=None, timeout=None):
        self._client.objects[self.name] = data
        self._client.timeouts.append(timeout)

    def download_as_bytes(self, timeout=None):
        if self.name not in self._client.objects:
            raise api_exceptions.NotFound(f"No such object: {self.name}")
        return self._client.objects[self.name]

    def delete(self, timeout=None):
        if self.name not in self._client.objects:
            raise api_exceptions.NotFound(f"No such object: {self.name}")
        del self._client.objects[self.name]

    def make_public(self, timeout=None):
        self._client.public.add(self.name)


class FakeBucket:
    def __init__(self, client: "FakeGoogleClient", name: str) -> None:
        self._client = client
        self.name = name

    def blob(self, name: str) -> FakeBlob:
        return FakeBlob(self._client, name)


class FakeGoogleClient:
    """Just enough of storage.Client for one bucket."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.public: set[str] = set()
        self.timeouts: list = []
        self.list_calls = 0

    def bucket(self, name: str) -> FakeBucket:
        return FakeBucket(self, name)

    def list_blobs(self, bucket_name, prefix=None, timeout=None):
        self.list_calls += 1
        return [
            SimpleNamespace(name=name)
            for name in self.objects
            if prefix is None or name.startswith(prefix)
        ]


@pytest.fixture
def fake_google_client() -> FakeGoogleClient:
    return FakeGoogleClient()


@pytest.fixture
def config() -> StorageConfig:
    return StorageConfig(bucket_name="uploads", timeout_seconds=5.0)


@pytest_asyncio.fixture
async def gcs_client(fake_google_client, config) -> GCSStorageClient:
    client = GCSStorageClient(StorageClientProvider(lambda: fake_google_client), config)
    await client.initialize()
    return client


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

class TestStorageClientProvider:
    """Tests for acquire-once initialization."""

    @pytest.mark.asyncio
    async def test_operations_before_initialize_raise_not_ready(self, config):
        resolve = MagicMock()
        client = GCSStorageClient(StorageClientProvider(resolve), config)

        assert client.is_ready is False
        with pytest.raises(NotReadyError):
            await client.upload(b"data", "a.txt")
        with pytest.raises(NotReadyError):
            await client.download("a.txt")
        with pytest.raises(NotReadyError):
            await client.delete("a.txt")
        with pytest.raises(NotReadyError):
            await client.list()
        resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_concurrent_initialize_resolves_once(self, fake_google_client):
        resolve = MagicMock(return_value=fake_google_client)
        provider = StorageClientProvider(resolve)

        results = await asyncio.gather(*(provider.initialize() for _ in range(5)))

        resolve.assert_called_once()
        assert all(result is fake_google_client for result in results)
        assert provider.is_ready is True

    @pytest.mark.asyncio
    async def test_failed_initialize_is_not_cached(self, fake_google_client):
        resolve = MagicMock(side_effect=[AuthenticationError("bucket listing denied"), fake_google_client])
        provider = StorageClientProvider(resolve)

        with pytest.raises(AuthenticationError):
            await provider.initialize()
        assert provider.is_ready is False

        assert await provider.initialize() is fake_google_client
        assert resolve.call_count == 2


# ---------------------------------------------------------------------------
# GCS Facade
# ---------------------------------------------------------------------------

class TestGCSStorageClient:
    """Tests for bucket operations against the fake SDK client."""

    @pytest.mark.asyncio
    async def test_upload_returns_public_style_url(self, gcs_client, fake_google_client):
        url = await gcs_client.upload(b"hello", "docs/a.txt", content_type="text/plain")

        assert url == "https://storage.googleapis.com/uploads/docs/a.txt"
        assert fake_google_client.objects["docs/a.txt"] == b"hello"
        assert fake_google_client.public == set()

    @pytest.mark.asyncio
    async def test_upload_passes_timeout(self, gcs_client, fake_google_client):
        await gcs_client.upload(b"hello", "a.txt")

        assert fake_google_client.timeouts == [5.0]

    @pytest.mark.asyncio
    async def test_make_public_is_opt_in(self, fake_google_client):
        config = StorageConfig(bucket_name="uploads", make_public=True)
        client = GCSStorageClient(StorageClientProvider(lambda: fake_google_client), config)
        await client.initialize()

        await client.upload(b"hello", "a.txt")

        assert fake_google_client.public == {"a.txt"}

    @pytest.mark.asyncio
    async def test_round_trip(self, gcs_client):
        """upload -> list -> download -> delete -> list."""
        await gcs_client.upload(b"contents", "a.txt")

        assert "a.txt" in await gcs_client.list()
        assert await gcs_client.download("a.txt") == b"contents"

        await gcs_client.delete("a.txt")

        assert "a.txt" not in await gcs_client.list()

    @pytest.mark.asyncio
    async def test_upload_overwrites_existing(self, gcs_client):
        await gcs_client.upload(b"first", "a.txt")
        await gcs_client.upload(b"second", "a.txt")

        assert await gcs_client.download("a.txt") == b"second"
        assert await gcs_client.list() == ["a.txt"]

    @pytest.mark.asyncio
    async def test_list_filters_by_prefix(self, gcs_client):
        await gcs_client.upload(b"1", "reports/q1.pdf")
        await gcs_client.upload(b"2", "images/logo.png")

        assert await gcs_client.list("reports/") == ["reports/q1.pdf"]

    @pytest.mark.asyncio
    async def test_list_is_not_cached(self, gcs_client, fake_google_client):
        await gcs_client.list()
        await gcs_client.list()

        assert fake_google_client.list_calls == 2

    @pytest.mark.asyncio
    async def test_download_missing_raises_not_found(self, gcs_client):
        with pytest.raises(NotFoundError):
            await gcs_client.download("missing.txt")

    @pytest.mark.asyncio
    async def test_delete_missing_raises_not_found(self, gcs_client):
        with pytest.raises(NotFoundError):
            await gcs_client.delete("missing.txt")

    @pytest.mark.asyncio
    async def test_other_api_errors_raise_upstream(self, config):
        google_client = MagicMock()
        blob = google_client.bucket.return_value.blob.return_value
        blob.download_as_bytes.side_effect = api_exceptions.ServiceUnavailable("backend down")
        client = GCSStorageClient(StorageClientProvider(lambda: google_client), config)
        await client.initialize()

        with pytest.raises(UpstreamError, match="backend down"):
            await client.download("a.txt")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            api_exceptions.RetryError("Deadline of 5.0s exceeded", cause=None),
            requests.exceptions.ConnectionError("connection reset by peer"),
            requests.exceptions.ReadTimeout("read timed out"),
            auth_exceptions.TransportError("token endpoint unreachable"),
        ],
        ids=["retries_exhausted", "connection_reset", "read_timeout", "token_refresh"],
    )
    @pytest.mark.parametrize("operation", ["upload", "download", "delete", "list"])
    async def test_transport_errors_raise_upstream(self, config, error, operation):
        """Failures below the API layer still surface as UpstreamError."""
        google_client = MagicMock()
        blob = google_client.bucket.return_value.blob.return_value
        blob.upload_from_string.side_effect = error
        blob.download_as_bytes.side_effect = error
        blob.delete.side_effect = error
        google_client.list_blobs.side_effect = error
        client = GCSStorageClient(StorageClientProvider(lambda: google_client), config)
        await client.initialize()

        calls = {
            "upload": lambda: client.upload(b"hello", "a.txt"),
            "download": lambda: client.download("a.txt"),
            "delete": lambda: client.delete("a.txt"),
            "list": lambda: client.list(),
        }

        with pytest.raises(UpstreamError):
            await calls[operation]()


# ---------------------------------------------------------------------------
# Mock Storage and Factory
# ---------------------------------------------------------------------------

class TestMockStorageClient:
    """The in-memory client must honor the same contract."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        storage = MockStorageClient("uploads")

        url = await storage.upload(b"abc", "a.txt")
        assert url == "https://storage.googleapis.com/uploads/a.txt"
        assert await storage.list() == ["a.txt"]
        assert await storage.download("a.txt") == b"abc"

        await storage.delete("a.txt")
        assert await storage.list() == []

    @pytest.mark.asyncio
    async def test_missing_file_raises_not_found(self):
        storage = MockStorageClient()

        with pytest.raises(NotFoundError):
            await storage.download("nope")
        with pytest.raises(NotFoundError):
            await storage.delete("nope")


class TestCreateStorageClient:

    def test_mock_mode_returns_mock(self, config):
        assert isinstance(create_storage_client(config, mock_mode=True), MockStorageClient)

    def test_real_mode_requires_resolver(self, config):
        with pytest.raises(ValueError):
            create_storage_client(config)

    def test_real_mode_is_not_ready_until_initialized(self, config):
        client = create_storage_client(config, resolve=MagicMock())

        assert isinstance(client, GCSStorageClient)
        assert client.is_ready is False
