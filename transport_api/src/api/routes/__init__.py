"""
API route modules.

This package contains subrouters for:
- Auth: session cookie login, logout and current session
- Companies, Drivers, Weekly Processing, Payments, Company Balances and
  Transport Orders: CRUD over the caller's tenant storage
- Tenants: tenant registration and storage provisioning (superadmin)

Routers are included from src.api.main (under the /api/v1 prefix).
"""
