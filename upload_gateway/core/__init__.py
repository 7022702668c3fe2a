"""
Core domain for the upload gateway.

This module is framework-agnostic - it doesn't import FastAPI or any
Google SDK. Credential parsing and the error taxonomy live here so they
can be tested without network access.
"""
