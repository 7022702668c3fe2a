"""
Shared fixtures for unit tests.

Keys are generated once per session with cryptography so the PEM
parsing path runs against real key material, not string stubs.
"""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


@pytest.fixture(scope="session")
def pem_private_key() -> str:
    """A PKCS#8 PEM private key with real line breaks."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def escaped_private_key(pem_private_key: str) -> str:
    """The same key as it looks when pasted into an env var."""
    return pem_private_key.replace("\n", "\\n")


@pytest.fixture
def service_account_info(escaped_private_key: str) -> dict:
    """A service account key document, private key escaped."""
    return {
        "type": "service_account",
        "project_id": "key-project",
        "private_key_id": "abc123",
        "private_key": escaped_private_key,
        "client_email": "uploader@key-project.iam.gserviceaccount.com",
        "token_uri": "https://oauth2.googleapis.com/token",
    }
