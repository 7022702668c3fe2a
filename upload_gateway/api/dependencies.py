"""
FastAPI dependency injection.

The storage client is created once by the application lifespan and kept
on app.state. Routes receive it through these dependencies instead of
reaching for a global, which keeps them testable: a test app can carry
a MockStorageClient and nothing else changes.
"""

from typing import Annotated

from fastapi import Depends, Request

from ..config.settings import Settings
from ..infrastructure.gcs.client import StorageClient


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with."""
    return request.app.state.settings

def get_storage_client(request: Request) -> StorageClient:
    """
    Provide the shared storage client.

    Whether it is ready is the client's concern: the GCS client raises
    NotReadyError on use if initialization has not finished.
    """
    return request.app.state.storage

# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

SettingsDep = Annotated[Settings, Depends(get_app_settings)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
