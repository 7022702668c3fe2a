"""
Google Cloud integration: credential resolution and bucket storage.

Includes mock mode for local development without credentials.
"""
