"""
Upload Gateway - HTTP front door for Google Cloud Storage uploads.

This package contains the complete application:
- core: Framework-agnostic credential model and error taxonomy
- infrastructure: Google Cloud integrations (credentials, storage)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
