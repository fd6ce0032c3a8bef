"""
FastAPI routers for organizing API endpoints.

``catalog`` serves the canonical schema; ``wizard`` drives upload sessions
from checklist to completed processing.
"""
