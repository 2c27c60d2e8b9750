"""
Per-tenant storage providers behind a common async contract.
"""
