"""
Tenant isolation layer: principal to tenant resolution, storage routing,
leakage validation and the per-request isolation guard.

Submodules are imported directly (e.g. `from src.tenancy.router import
StorageRouter`); nothing is re-exported here so that the
storage and repository layers can import its constants and errors without
cycles.
"""
