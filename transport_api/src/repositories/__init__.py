"""
Repository layer for data access.

Tenant-owned repositories are bound to a tenant id and scope every query by
it; control-plane repositories (tenants, users) read the shared schema.
Repositories never commit: the storage provider wraps each operation in a
single transaction.
"""
