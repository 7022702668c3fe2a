"""
Infrastructure layer - external service integrations.

- gcs: Google Cloud credential resolution and object storage

These wrappers translate SDK exceptions into our error taxonomy.
"""
