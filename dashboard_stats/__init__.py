"""
Dashboard statistics service package.

Precomputes per-tenant dashboard and report statistics for the hotel
platform and keeps them fresh on a fixed schedule, so readers never
recompute on the request path.

Subpackages:
- access: Principal resolution and tenant isolation
- aggregation: Daily snapshots, trend window, range queries and dashboard payloads
- cache: Tenant-scoped cache stores (in-memory and Redis)
- refresh: Scheduler, job runner and the refresh job catalog
"""

__all__ = [
    "__doc__",
]
