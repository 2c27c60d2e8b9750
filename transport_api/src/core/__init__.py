"""
Core application utilities for settings and FastAPI dependencies.

This package provides:
- Application-level settings (separate from DB settings)
- Session cookie signing and password hashing
- Dependency helpers (principal resolution, tenant-routed storage)
"""
